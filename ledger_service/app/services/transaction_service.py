"""거래 워크플로 서비스.

- 요청 거래(recharge/withdrawal): create 로 pending 생성 -> 관리자가 approve/reject.
- 시스템 거래(purchase/renewal/income/referral_bonus/관리자 지급): post 로 기록과 원장 반영을 함께 수행.

두 경우 모두 같은 순서를 따른다: 거래 점유(claim) -> 원장 반영(ref 로 멱등) -> 승인 완료.
중간에 프로세스가 죽어 점유가 남으면 reconcile 이 원장 ref 유무로 승인 완료 또는 점유 해제를 결정한다.
멤버십 결제(purchase/renewal)는 점유를 해제하지 않고 rejected 로 닫는다. 예약된 멤버십 정리는
MembershipService.reconcile 이 맡는다.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from common.types.datetime import utc_now

from ..exceptions import (
    InsufficientFunds,
    LedgerServiceError,
    NotFound,
    NotPending,
    ValidationFailed,
)
from ..models.money import Money
from ..models.transaction import (
    REQUEST_TYPES,
    RESERVATION_TYPES,
    Posting,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from ..repositories.interfaces import TransactionRepositoryInterface
from .event_publisher import LedgerEventPublisher
from .ledger_service import LedgerService, validate_amount


logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class TransactionService:
    def __init__(
        self,
        transaction_repo: TransactionRepositoryInterface,
        ledger: LedgerService,
        events: LedgerEventPublisher,
        *,
        claim_stale_seconds: int,
    ) -> None:
        self._transaction_repo = transaction_repo
        self._ledger = ledger
        self._events = events
        self._claim_stale = timedelta(seconds=claim_stale_seconds)

    # 조회 -----------------------------------------------------------------
    def get(self, transaction_id: str) -> Transaction:
        tx = self._transaction_repo.find_by_id(transaction_id)
        if tx is None:
            raise NotFound("transaction", transaction_id)
        return tx

    def list_for_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[Transaction], int]:
        return self._transaction_repo.list_by_account(account_id, page, page_size)

    def list_pending(self, page: int, page_size: int) -> tuple[list[Transaction], int]:
        return self._transaction_repo.list_by_status(TransactionStatus.PENDING, page, page_size)

    def find_posting(self, idempotency_key: str) -> Transaction | None:
        return self._transaction_repo.find_by_idempotency_key(idempotency_key)

    def is_posted(self, account_id: str, idempotency_key: str) -> bool:
        """시스템 거래의 원장 반영 여부. 거래 상태와 무관하게 원장 ref 로 판단한다."""
        return self._ledger.has_applied(account_id, idempotency_key)

    # 요청 거래 --------------------------------------------------------------
    def create(
        self,
        account_id: str,
        tx_type: TransactionType,
        money: Money,
        metadata: dict[str, Any] | None = None,
        notes: str | None = None,
    ) -> Transaction:
        """입금/출금 요청을 pending 으로 기록한다. 잔액은 승인 시점에만 바뀐다."""

        if TransactionType(tx_type) not in REQUEST_TYPES:
            raise ValidationFailed(f"only recharge/withdrawal can be requested, got {tx_type}")
        amount = validate_amount(money.amount)
        # 존재하지 않는 계정의 요청은 받지 않는다
        self._ledger.get_balance(account_id)

        now = utc_now()
        created = self._transaction_repo.insert(
            Transaction(
                account_id=account_id,
                type=tx_type,
                currency=money.currency,
                amount=amount,
                status=TransactionStatus.PENDING,
                metadata=metadata,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
        )
        if created is None:
            raise RuntimeError("failed to insert transaction")
        logger.info(
            "transaction requested type=%s",
            tx_type,
            extra={
                "account_id": account_id,
                "transaction_id": created.id,
                "currency": str(money.currency),
                "amount": str(amount),
            },
        )
        return created

    def approve(
        self, transaction_id: str, approver_id: str, notes: str | None = None
    ) -> Transaction:
        """pending 요청을 점유한 뒤 원장에 반영하고 승인한다.

        출금 잔액이 부족하면 점유를 풀고 InsufficientFunds 를 올린다 (거래는 pending 유지).
        """

        tx = self.get(transaction_id)
        if tx.type not in REQUEST_TYPES:
            raise ValidationFailed(f"transaction type {tx.type} cannot be approved manually")
        if tx.status != TransactionStatus.PENDING:
            raise NotPending(transaction_id, tx.status)

        token = uuid.uuid4().hex
        claimed = self._transaction_repo.claim_pending(
            transaction_id, token, approver_id, utc_now()
        )
        if claimed is None:
            raise self._not_pending(transaction_id)

        try:
            self._apply(claimed, reason=f"{claimed.type} approval")
        except LedgerServiceError:
            self._transaction_repo.release_claim(transaction_id, token)
            raise

        completed = self._transaction_repo.complete_claimed(
            transaction_id,
            token,
            approved_by=approver_id,
            admin_notes=notes,
            at=utc_now(),
        )
        if completed is None:
            # 점유가 reconcile 로 해제/완료된 경우. 원장 ref 가 있으므로 reconcile 이 승인으로 마무리한다.
            logger.warning("claim lost while approving transaction %s", transaction_id)
            return self.get(transaction_id)

        logger.info(
            "transaction approved by=%s",
            approver_id,
            extra={"transaction_id": transaction_id, "account_id": completed.account_id},
        )
        self._events.transaction_status(completed)
        return completed

    def reject(self, transaction_id: str, approver_id: str, reason: str) -> Transaction:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationFailed("rejection reason is required")

        tx = self.get(transaction_id)
        if tx.type not in REQUEST_TYPES:
            raise ValidationFailed(f"transaction type {tx.type} cannot be rejected manually")
        if tx.status != TransactionStatus.PENDING:
            raise NotPending(transaction_id, tx.status)

        rejected = self._transaction_repo.reject_pending(
            transaction_id, rejected_by=approver_id, reason=reason, at=utc_now()
        )
        if rejected is None:
            raise self._not_pending(transaction_id)

        logger.info(
            "transaction rejected by=%s reason=%s",
            approver_id,
            reason,
            extra={"transaction_id": transaction_id, "account_id": rejected.account_id},
        )
        self._events.transaction_status(rejected)
        return rejected

    # 시스템 거래 --------------------------------------------------------------
    def post(
        self,
        account_id: str,
        tx_type: TransactionType,
        money: Money,
        *,
        idempotency_key: str,
        reason: str,
        actor: str = SYSTEM_ACTOR,
        membership_id: str | None = None,
        product_id: str | None = None,
        referral_id: str | None = None,
        notes: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Posting:
        """시스템 거래를 기록하고 원장에 반영한다.

        idempotency_key 가 같은 호출은 한 번만 반영된다. 이미 승인된 거래가 있으면
        applied=False 로 그 거래를 돌려주고, pending 으로 남은 거래가 있으면 이어서 처리한다.
        원장 반영이 실패하면 거래는 rejected 로 남는다.
        """

        amount = validate_amount(money.amount)
        now = utc_now()
        token = uuid.uuid4().hex

        tx = self._transaction_repo.insert(
            Transaction(
                account_id=account_id,
                type=tx_type,
                currency=money.currency,
                amount=amount,
                status=TransactionStatus.PENDING,
                membership_id=membership_id,
                product_id=product_id,
                referral_id=referral_id,
                idempotency_key=idempotency_key,
                notes=notes,
                metadata=metadata,
                claim_token=token,
                claimed_by=actor,
                claimed_at=now,
                created_at=now,
                updated_at=now,
            )
        )
        if tx is None:
            existing = self._transaction_repo.find_by_idempotency_key(idempotency_key)
            if existing is None:
                raise RuntimeError(f"idempotency key conflict without record: {idempotency_key}")
            if existing.status == TransactionStatus.APPROVED:
                return Posting(transaction=existing, applied=False)
            if existing.status == TransactionStatus.REJECTED:
                raise NotPending(str(existing.id), existing.status)
            tx = self._transaction_repo.claim_pending(str(existing.id), token, actor, now)
            if tx is None:
                raise self._not_pending(str(existing.id))
            logger.info("resuming interrupted posting key=%s", idempotency_key)

        tx_id = str(tx.id)
        try:
            self._apply(tx, reason=reason)
        except LedgerServiceError as exc:
            failure = "insufficient funds" if isinstance(exc, InsufficientFunds) else str(exc)
            self._transaction_repo.reject_claimed(tx_id, token, reason=failure, at=utc_now())
            raise

        completed = self._transaction_repo.complete_claimed(
            tx_id, token, approved_by=actor, admin_notes=None, at=utc_now()
        )
        if completed is None:
            logger.warning("claim lost while posting transaction %s", tx_id)
            completed = self.get(tx_id)
        return Posting(transaction=completed, applied=True)

    # 복구 -----------------------------------------------------------------
    def reconcile(self, transaction_id: str, now: datetime | None = None) -> Transaction:
        """오래 점유된 거래를 정리한다.

        원장에 ref 가 반영되어 있으면 승인 완료로, 아니면 점유만 해제해 pending 으로 되돌린다.
        단 멤버십 결제는 반영되지 않았으면 rejected 로 닫는다.
        점유되지 않았거나 아직 오래되지 않은 거래는 그대로 돌려준다.
        """

        now = now or utc_now()
        tx = self.get(transaction_id)
        if (
            tx.status != TransactionStatus.PENDING
            or tx.claim_token is None
            or tx.claimed_at is None
            or tx.claimed_at > now - self._claim_stale
        ):
            return tx

        if self._ledger.has_applied(tx.account_id, tx.ledger_ref):
            completed = self._transaction_repo.complete_claimed(
                transaction_id,
                tx.claim_token,
                approved_by=tx.claimed_by or SYSTEM_ACTOR,
                admin_notes="completed by reconciliation",
                at=now,
            )
            if completed is not None:
                logger.warning(
                    "stale claim reconciled as approved",
                    extra={"transaction_id": transaction_id, "account_id": tx.account_id},
                )
                if completed.type in REQUEST_TYPES:
                    self._events.transaction_status(completed)
                return completed
        elif tx.type in RESERVATION_TYPES:
            # 결제되지 않은 예약은 재개하지 않는다 (같은 멤버십으로 다시 결제하는 경로가 없다)
            rejected = self._transaction_repo.reject_claimed(
                transaction_id, tx.claim_token, reason="payment not applied", at=now
            )
            if rejected is not None:
                logger.warning(
                    "stale unpaid %s posting rejected",
                    tx.type,
                    extra={
                        "transaction_id": transaction_id,
                        "account_id": tx.account_id,
                        "membership_id": tx.membership_id,
                    },
                )
                return rejected
        elif self._transaction_repo.release_claim(transaction_id, tx.claim_token):
            logger.warning(
                "stale claim released",
                extra={"transaction_id": transaction_id, "account_id": tx.account_id},
            )
        return self.get(transaction_id)

    def reconcile_stale(self, now: datetime | None = None, limit: int = 100) -> list[Transaction]:
        now = now or utc_now()
        stale = self._transaction_repo.list_stale_claims(now - self._claim_stale, limit)
        return [self.reconcile(str(tx.id), now) for tx in stale]

    # 내부 util -------------------------------------------------------------
    def _apply(self, tx: Transaction, *, reason: str) -> None:
        if tx.is_debit:
            self._ledger.debit(tx.account_id, tx.currency, tx.amount, reason, ref=tx.ledger_ref)
        else:
            self._ledger.credit(tx.account_id, tx.currency, tx.amount, reason, ref=tx.ledger_ref)

    def _not_pending(self, transaction_id: str) -> NotPending:
        current = self.get(transaction_id)
        return NotPending(
            transaction_id,
            current.status,
            in_progress=current.status == TransactionStatus.PENDING,
        )
