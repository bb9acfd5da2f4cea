"""멤버십(상품 구매/만료/갱신/일일 수익) 서비스.

구매 순서:
1. 사전 검증 (상품 비활성, 이미 보유, 잔액 부족)
2. 활성 멤버십 예약 insert. 부분 유니크 인덱스가 동시 중복 구매를 AlreadyOwned 로 바꾼다.
3. "purchase:<membership_id>" 키로 구매 거래 기록 + 차감. 실패하면 예약을 지운다.
   차감 여부를 알 수 없는 채로 끝난 예약은 reconcile 이 결제 거래를 rejected 로 닫으며 지운다.
4. 계정 등급 재계산, 추천 보너스 처리 (추천 보너스 실패는 구매를 실패시키지 않는다).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import date, datetime

from common.types.datetime import utc_date, utc_now

from ..exceptions import (
    AlreadyOwned,
    InsufficientFunds,
    LedgerServiceError,
    NotFound,
    ProductInactive,
)
from ..models.account import Account, MembershipLevel
from ..models.membership import DeactivationReason, Membership, PurchaseResult
from ..models.money import Currency, Money
from ..models.product import Product
from ..models.referral import Referral
from ..models.transaction import (
    RESERVATION_TYPES,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from ..repositories.interfaces import (
    AccountRepositoryInterface,
    MembershipRepositoryInterface,
)
from .catalog_service import CatalogService
from .event_publisher import LedgerEventPublisher
from .referral_service import ReferralService
from .transaction_service import TransactionService


logger = logging.getLogger(__name__)

# 동시 변경으로 등급 계산이 뒤집히는 경우 재계산 횟수
LEVEL_REFRESH_ATTEMPTS = 3


def _payment_key(tx_type: TransactionType, membership_id: str) -> str:
    return f"{tx_type}:{membership_id}"


def compute_membership_level(
    product_names: Iterable[str], ranking: Sequence[str]
) -> MembershipLevel:
    """보유 중인 활성 상품 중 순위가 가장 높은 등급. 없으면 none."""

    best = -1
    for name in product_names:
        try:
            best = max(best, list(ranking).index(str(name)))
        except ValueError:
            continue
    if best < 0:
        return MembershipLevel.NONE
    return MembershipLevel(ranking[best])


class MembershipService:
    def __init__(
        self,
        account_repo: AccountRepositoryInterface,
        membership_repo: MembershipRepositoryInterface,
        catalog: CatalogService,
        transactions: TransactionService,
        referrals: ReferralService | None,
        events: LedgerEventPublisher,
    ) -> None:
        self._account_repo = account_repo
        self._membership_repo = membership_repo
        self._catalog = catalog
        self._transactions = transactions
        self._referrals = referrals
        self._events = events

    # 구매 -----------------------------------------------------------------
    def purchase(self, account_id: str, product_id: str) -> PurchaseResult:
        account = self._require_account(account_id)
        product = self._catalog.get_product(product_id)
        result = self._purchase(account, product, tx_type=TransactionType.PURCHASE)

        referral: Referral | None = None
        referral_error: str | None = None
        if self._referrals is not None:
            try:
                referral = self._referrals.on_qualifying_purchase(
                    account_id, result.transaction.amount
                )
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "referral bonus processing failed after purchase",
                    extra={"account_id": account_id, "membership_id": result.membership.id},
                )
                referral_error = str(exc) or exc.__class__.__name__

        return result.model_copy(update={"referral": referral, "referral_error": referral_error})

    def _purchase(
        self,
        account: Account,
        product: Product,
        *,
        tx_type: TransactionType,
        renewed_from: str | None = None,
    ) -> PurchaseResult:
        account_id = str(account.id)
        product_id = str(product.id)

        if not product.active:
            raise ProductInactive(product_id)
        owned = self._membership_repo.find_active(account_id, product_id)
        if owned is not None:
            raise AlreadyOwned(owned.id, owned.expires_at)
        if account.balance_primary < product.price_primary:
            raise InsufficientFunds(
                str(Currency.NSL), account.balance_primary, product.price_primary
            )

        now = utc_now()
        reserved = self._membership_repo.insert_active(
            Membership(
                account_id=account_id,
                product_id=product_id,
                product_name=product.name,
                price_paid=product.price_primary,
                daily_credit_primary=product.daily_credit_primary,
                purchased_at=now,
                expires_at=now + product.validity,
                active=True,
                auto_renew=True,
                renewed_from=renewed_from,
                created_at=now,
                updated_at=now,
            )
        )
        if reserved is None:
            owned = self._membership_repo.find_active(account_id, product_id)
            raise AlreadyOwned(
                owned.id if owned else None, owned.expires_at if owned else None
            )

        membership_id = str(reserved.id)
        payment_key = _payment_key(tx_type, membership_id)
        try:
            posting = self._transactions.post(
                account_id,
                tx_type,
                Money(currency=Currency.NSL, amount=product.price_primary),
                idempotency_key=payment_key,
                reason=f"{tx_type} {product.name}",
                membership_id=membership_id,
                product_id=product_id,
                notes=(
                    f"Purchased {product.name} - valid until "
                    f"{reserved.expires_at.date().isoformat()}"
                ),
            )
        except LedgerServiceError:
            # 결제되지 않은 예약은 구매가 아니므로 지운다
            self._membership_repo.delete_reservation(membership_id)
            raise
        except Exception:  # noqa: BLE001
            self._discard_unpaid_reservation(account_id, membership_id, payment_key)
            raise

        level = self.refresh_membership_level(account_id)
        balance = self._require_account(account_id).balance_primary

        logger.info(
            "membership purchased product=%s level=%s",
            product.name,
            level,
            extra={
                "account_id": account_id,
                "membership_id": membership_id,
                "transaction_id": posting.transaction.id,
                "amount": str(product.price_primary),
            },
        )
        self._events.product_purchased(reserved, renewal=tx_type == TransactionType.RENEWAL)
        return PurchaseResult(
            membership=reserved,
            transaction=posting.transaction,
            balance_primary=balance,
            membership_level=level,
        )

    # 생명주기 ---------------------------------------------------------------
    def expire(self, membership_id: str) -> Membership:
        """멤버십을 만료 처리한다. 이미 비활성이면 그대로 돌려준다."""

        return self._deactivate(membership_id, DeactivationReason.EXPIRED)

    def deactivate(self, membership_id: str, admin_id: str, reason: str | None = None) -> Membership:
        """관리자 비활성화. 환불은 하지 않는다."""

        membership = self._deactivate(membership_id, DeactivationReason.ADMIN)
        logger.info(
            "membership deactivated by admin=%s reason=%s",
            admin_id,
            reason,
            extra={"membership_id": membership_id, "account_id": membership.account_id},
        )
        return membership

    def renew(self, membership_id: str) -> Membership | None:
        """만료 시점의 자동 갱신.

        auto_renew 이고 상품이 활성이며 잔액이 충분하면 기존 멤버십을 renewed 로 닫고
        같은 상품을 renewal 거래로 다시 구매한다. 아니면 expired 로 닫고 None 을 반환한다.
        재구매가 실패하면 renewed 로 닫았던 사유를 expired 로 되돌린다.
        """

        current = self._require_membership(membership_id)
        if not current.active:
            return None
        if not current.auto_renew:
            self.expire(membership_id)
            return None

        account = self._account_repo.find_by_id(current.account_id)
        product = self._catalog_product_or_none(current.product_id)
        if (
            account is None
            or product is None
            or not product.active
            or account.balance_primary < product.price_primary
        ):
            self.expire(membership_id)
            logger.info(
                "membership lapsed without renewal",
                extra={"membership_id": membership_id, "account_id": current.account_id},
            )
            return None

        self._deactivate(membership_id, DeactivationReason.RENEWED)
        try:
            result = self._purchase(
                account,
                product,
                tx_type=TransactionType.RENEWAL,
                renewed_from=membership_id,
            )
        except (InsufficientFunds, ProductInactive, AlreadyOwned) as exc:
            self._lapse_renewal(membership_id)
            logger.info(
                "membership renewal failed: %s",
                exc,
                extra={"membership_id": membership_id, "account_id": current.account_id},
            )
            return None
        except Exception:  # noqa: BLE001
            self._lapse_renewal(membership_id)
            raise
        return result.membership

    def process_due(self, now: datetime | None = None, limit: int = 100) -> list[str]:
        """만료 시각이 지난 활성 멤버십을 갱신 또는 만료 처리한다 (스케줄러 진입점)."""

        now = now or utc_now()
        processed: list[str] = []
        for membership in self._membership_repo.list_due(now, limit):
            membership_id = str(membership.id)
            try:
                if membership.auto_renew:
                    self.renew(membership_id)
                else:
                    self.expire(membership_id)
            except Exception:  # noqa: BLE001
                logger.exception("failed to process due membership", extra={"membership_id": membership_id})
                continue
            processed.append(membership_id)
        return processed

    def credit_daily_income(
        self, membership_id: str, on_date: date | None = None
    ) -> Transaction | None:
        """하루 한 번 일일 수익을 지급한다. 이미 지급했거나 비활성/만료면 None.

        결제 거래가 승인되지 않은 멤버십에도 지급하지 않는다.
        """

        membership = self._require_membership(membership_id)
        now = utc_now()
        if not membership.active or membership.is_expired(now):
            return None
        if membership.daily_credit_primary <= 0:
            return None
        if not self._is_paid(membership):
            logger.warning(
                "daily income skipped for unpaid membership",
                extra={"membership_id": membership_id, "account_id": membership.account_id},
            )
            return None

        income_date = (on_date or utc_date(now)).isoformat()
        posting = self._transactions.post(
            membership.account_id,
            TransactionType.INCOME,
            Money(currency=Currency.NSL, amount=membership.daily_credit_primary),
            idempotency_key=f"income:{membership_id}:{income_date}",
            reason="daily income",
            membership_id=membership_id,
            product_id=membership.product_id,
            notes=f"Daily income from {membership.product_name} ({income_date})",
        )
        if not posting.applied:
            return None

        self._membership_repo.mark_income(membership_id, income_date)
        self._events.income_credited(posting.transaction, income_date)
        return posting.transaction

    # 복구 -----------------------------------------------------------------
    def reconcile(self, transaction_id: str, now: datetime | None = None) -> Transaction:
        """오래 점유된 거래를 정리하고, 결제되지 않은 멤버십 예약을 지운다."""

        tx = self._transactions.reconcile(transaction_id, now)
        self._void_unpaid(tx)
        return tx

    def reconcile_stale(self, now: datetime | None = None, limit: int = 100) -> list[Transaction]:
        reconciled = self._transactions.reconcile_stale(now, limit)
        for tx in reconciled:
            self._void_unpaid(tx)
        return reconciled

    # 조회 -----------------------------------------------------------------
    def get(self, membership_id: str) -> Membership:
        return self._require_membership(membership_id)

    def list_active(self, account_id: str) -> list[Membership]:
        """활성 멤버십을 등급 순위 내림차순으로 돌려준다."""

        memberships = self._membership_repo.list_active(account_id)
        return sorted(
            memberships,
            key=lambda m: self._catalog.rank_of(m.product_name),
            reverse=True,
        )

    def list_for_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[Membership], int]:
        return self._membership_repo.list_by_account(account_id, page, page_size)

    def refresh_membership_level(self, account_id: str) -> MembershipLevel:
        """활성 멤버십 기준으로 계정 등급을 다시 계산해 저장한다.

        저장 후 다시 읽은 활성 멤버십으로 같은 등급이 나올 때까지 반복해
        동시 변경이 이전 스냅샷으로 등급을 덮어쓰는 것을 막는다.
        """

        ranking = [str(name) for name in self._catalog.ranking]
        level = MembershipLevel.NONE
        for _ in range(LEVEL_REFRESH_ATTEMPTS):
            names = [m.product_name for m in self._membership_repo.list_active(account_id)]
            level = compute_membership_level(names, ranking)
            self._account_repo.set_membership_level(account_id, level)
            names_after = [m.product_name for m in self._membership_repo.list_active(account_id)]
            if compute_membership_level(names_after, ranking) == level:
                break
        return level

    # 내부 util -------------------------------------------------------------
    def _deactivate(self, membership_id: str, reason: DeactivationReason) -> Membership:
        membership = self._require_membership(membership_id)
        if not membership.active:
            return membership

        updated = self._membership_repo.deactivate(membership_id, reason, utc_now())
        if updated is None:
            return self._require_membership(membership_id)

        level = self.refresh_membership_level(updated.account_id)
        logger.info(
            "membership deactivated reason=%s level=%s",
            reason,
            level,
            extra={"membership_id": membership_id, "account_id": updated.account_id},
        )
        self._events.membership_expired(updated, level)
        return updated

    def _is_paid(self, membership: Membership) -> bool:
        tx_type = TransactionType.RENEWAL if membership.renewed_from else TransactionType.PURCHASE
        payment = self._transactions.find_posting(_payment_key(tx_type, str(membership.id)))
        return payment is not None and payment.status == TransactionStatus.APPROVED

    def _discard_unpaid_reservation(
        self, account_id: str, membership_id: str, payment_key: str
    ) -> None:
        """결제 중 예외로 끝난 예약을 지운다. 차감 여부를 확인하지 못하면 reconcile 에 맡긴다."""

        try:
            posted = self._transactions.is_posted(account_id, payment_key)
        except Exception:  # noqa: BLE001
            logger.exception(
                "could not verify payment for reservation",
                extra={"account_id": account_id, "membership_id": membership_id},
            )
            return
        if posted:
            return
        self._membership_repo.delete_reservation(membership_id)
        logger.warning(
            "unpaid reservation discarded",
            extra={"account_id": account_id, "membership_id": membership_id},
        )

    def _void_unpaid(self, tx: Transaction) -> None:
        if (
            tx.type not in RESERVATION_TYPES
            or tx.status != TransactionStatus.REJECTED
            or tx.membership_id is None
        ):
            return
        membership = self._membership_repo.find_by_id(tx.membership_id)
        if membership is None:
            return

        self._membership_repo.delete_reservation(tx.membership_id)
        if membership.renewed_from:
            self._lapse_renewal(membership.renewed_from)
        level = self.refresh_membership_level(membership.account_id)
        logger.warning(
            "unpaid membership removed by reconciliation level=%s",
            level,
            extra={
                "membership_id": tx.membership_id,
                "account_id": membership.account_id,
                "transaction_id": tx.id,
            },
        )

    def _lapse_renewal(self, membership_id: str) -> None:
        """갱신 결제가 성립하지 않았으면 renewed 사유를 expired 로 되돌린다."""

        previous = self._membership_repo.find_by_id(membership_id)
        if previous is None:
            return
        successors = [
            m
            for m in self._membership_repo.list_active(previous.account_id)
            if m.renewed_from == membership_id
        ]
        if successors:
            return
        relabeled = self._membership_repo.relabel_deactivation(
            membership_id, DeactivationReason.RENEWED, DeactivationReason.EXPIRED, utc_now()
        )
        if relabeled is not None:
            logger.info(
                "renewal not completed, membership marked expired",
                extra={"membership_id": membership_id, "account_id": previous.account_id},
            )

    def _require_account(self, account_id: str) -> Account:
        account = self._account_repo.find_by_id(account_id)
        if account is None:
            raise NotFound("account", account_id)
        return account

    def _require_membership(self, membership_id: str) -> Membership:
        membership = self._membership_repo.find_by_id(membership_id)
        if membership is None:
            raise NotFound("membership", membership_id)
        return membership

    def _catalog_product_or_none(self, product_id: str) -> Product | None:
        try:
            return self._catalog.get_product(product_id)
        except NotFound:
            return None
