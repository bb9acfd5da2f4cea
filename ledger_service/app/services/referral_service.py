"""추천 보너스 서비스.

피추천 계정의 첫 구매에서 추천인에게 한 번만 보너스를 지급한다.
referrals.referred_id 유니크 인덱스로 추천 기록을 먼저 예약(pending)하고,
보너스 지급 거래는 "referral:<referral_id>" 키로 멱등 처리한다.
중간에 실패한 pending 기록은 다음 호출에서 이어서 처리된다.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from common.types.datetime import utc_now
from common.types.money import quantize_money

from ..exceptions import NotFound, NotPending
from ..models.money import Currency, Money
from ..models.referral import Referral, ReferralStatus
from ..models.transaction import TransactionType
from ..repositories.interfaces import AccountRepositoryInterface, ReferralRepositoryInterface
from .event_publisher import LedgerEventPublisher
from .transaction_service import TransactionService


logger = logging.getLogger(__name__)


def compute_bonus(purchase_amount: Decimal, percentage: Decimal) -> Decimal:
    return quantize_money(purchase_amount * percentage / Decimal(100))


class ReferralService:
    def __init__(
        self,
        account_repo: AccountRepositoryInterface,
        referral_repo: ReferralRepositoryInterface,
        transactions: TransactionService,
        events: LedgerEventPublisher,
        *,
        default_percentage: Decimal,
    ) -> None:
        self._account_repo = account_repo
        self._referral_repo = referral_repo
        self._transactions = transactions
        self._events = events
        self._default_percentage = default_percentage

    def on_qualifying_purchase(
        self, buyer_id: str, purchase_amount: Decimal
    ) -> Referral | None:
        """구매자의 추천인에게 보너스를 지급한다. 지급 대상이 아니면 None."""

        buyer = self._account_repo.find_by_id(buyer_id)
        if buyer is None:
            raise NotFound("account", buyer_id)
        if not buyer.referred_by:
            return None

        referrer = self._account_repo.find_by_referral_code(buyer.referred_by)
        if referrer is None:
            logger.warning(
                "referrer code %s not found for buyer", buyer.referred_by,
                extra={"account_id": buyer_id},
            )
            return None
        if referrer.id == buyer.id:
            return None

        existing = self._referral_repo.find_by_referred(buyer_id)
        if existing is None:
            percentage = (
                buyer.referral_bonus_percentage
                if buyer.referral_bonus_percentage is not None
                else self._default_percentage
            )
            now = utc_now()
            existing = self._referral_repo.reserve(
                Referral(
                    referrer_id=str(referrer.id),
                    referred_id=buyer_id,
                    status=ReferralStatus.PENDING,
                    bonus_amount=compute_bonus(purchase_amount, percentage),
                    bonus_percentage=percentage,
                    source_amount=purchase_amount,
                    created_at=now,
                    updated_at=now,
                )
            )
            if existing is None:
                # 동시 호출이 먼저 예약했다. 그 기록을 기준으로 이어간다.
                existing = self._referral_repo.find_by_referred(buyer_id)
                if existing is None:
                    raise RuntimeError(f"referral reservation conflict for {buyer_id}")

        if existing.status == ReferralStatus.PAID:
            return None

        return self._pay(existing, referred_username=buyer.username)

    def _pay(self, referral: Referral, *, referred_username: str) -> Referral | None:
        referral_id = str(referral.id)
        if referral.bonus_amount <= 0:
            return self._referral_repo.mark_paid(referral_id, utc_now())

        try:
            posting = self._transactions.post(
                referral.referrer_id,
                TransactionType.REFERRAL_BONUS,
                Money(currency=Currency.NSL, amount=referral.bonus_amount),
                idempotency_key=f"referral:{referral_id}",
                reason="referral bonus",
                referral_id=referral_id,
                notes=(
                    f"Referral bonus {referral.bonus_percentage}% from "
                    f"{referred_username}'s first purchase"
                ),
            )
        except NotPending as exc:
            if exc.in_progress:
                logger.info("referral %s is being paid by another request", referral_id)
                return None
            raise

        paid = self._referral_repo.mark_paid(referral_id, utc_now())
        if paid is None:
            # 다른 호출이 이미 paid 로 바꿨다
            return None

        logger.info(
            "referral bonus paid amount=%s",
            referral.bonus_amount,
            extra={
                "referral_id": referral_id,
                "account_id": referral.referrer_id,
                "transaction_id": posting.transaction.id,
            },
        )
        self._events.referral_bonus_paid(paid, referred_username)
        return paid

    def list_for_referrer(
        self, referrer_id: str, page: int, page_size: int
    ) -> tuple[list[Referral], int]:
        return self._referral_repo.list_by_referrer(referrer_id, page, page_size)
