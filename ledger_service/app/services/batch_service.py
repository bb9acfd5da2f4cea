"""관리자 배치 작업 서비스.

배치는 트랜잭션이 아니라 리포트다. 대상마다 독립적으로 처리하고 실패는 리포트에 담는다.
최상위 ValidationFailed 는 대상이 비었거나, 작업 이름이 잘못됐거나, 파라미터가 잘못된 경우뿐이다.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import date
from typing import Any, cast

from pydantic import BaseModel, Field, ValidationError, model_validator

from common.types.money import DecimalStr

from ..exceptions import LedgerServiceError, ValidationFailed
from ..models.batch import BatchFailure, BatchOperation, BatchReport
from ..models.money import Currency, Money
from ..models.transaction import TransactionType
from .ledger_service import LedgerService
from .membership_service import MembershipService
from .transaction_service import TransactionService


logger = logging.getLogger(__name__)

MIN_ADD_CURRENCY_REASON_LENGTH = 5


class ApproveParams(BaseModel):
    notes: str | None = None


class RejectParams(BaseModel):
    reason: str = Field(min_length=1)


class AddCurrencyParams(BaseModel):
    amount_primary: DecimalStr | None = None
    amount_secondary: DecimalStr | None = None
    reason: str = Field(min_length=MIN_ADD_CURRENCY_REASON_LENGTH)
    batch_id: str | None = None

    @model_validator(mode="after")
    def _check_amounts(self) -> "AddCurrencyParams":
        amounts = [a for a in (self.amount_primary, self.amount_secondary) if a is not None]
        if not amounts:
            raise ValueError("amount_primary or amount_secondary is required")
        if any(a < 0 for a in amounts) or not any(a > 0 for a in amounts):
            raise ValueError("amounts must be positive")
        return self

    def credits(self) -> list[Money]:
        result: list[Money] = []
        if self.amount_primary:
            result.append(Money(currency=Currency.NSL, amount=self.amount_primary))
        if self.amount_secondary:
            result.append(Money(currency=Currency.USDT, amount=self.amount_secondary))
        return result


class ExpireParams(BaseModel):
    pass


class DailyIncomeParams(BaseModel):
    on_date: date | None = None


_PARAM_MODELS: dict[BatchOperation, type[BaseModel]] = {
    BatchOperation.APPROVE_TRANSACTIONS: ApproveParams,
    BatchOperation.REJECT_TRANSACTIONS: RejectParams,
    BatchOperation.ADD_CURRENCY: AddCurrencyParams,
    BatchOperation.EXPIRE_MEMBERSHIPS: ExpireParams,
    BatchOperation.CREDIT_DAILY_INCOME: DailyIncomeParams,
}


class BatchService:
    def __init__(
        self,
        ledger: LedgerService,
        transactions: TransactionService,
        memberships: MembershipService,
    ) -> None:
        self._ledger = ledger
        self._transactions = transactions
        self._memberships = memberships

    def apply(
        self,
        operation: str,
        target_ids: list[str],
        params: dict[str, Any] | None,
        actor_id: str,
    ) -> BatchReport:
        try:
            op = BatchOperation(operation)
        except ValueError as exc:
            raise ValidationFailed(f"unknown batch operation: {operation}") from exc

        targets = list(dict.fromkeys(t.strip() for t in target_ids or [] if t and t.strip()))
        if not targets:
            raise ValidationFailed("target_ids must not be empty")

        try:
            parsed = _PARAM_MODELS[op].model_validate(params or {})
        except ValidationError as exc:
            raise ValidationFailed(f"invalid params for {op}: {exc.errors()[0]['msg']}") from exc

        handler = self._build_handler(op, parsed, actor_id)
        report = BatchReport(operation=op)
        for target_id in targets:
            try:
                handler(target_id)
            except LedgerServiceError as exc:
                report.failed.append(BatchFailure(id=target_id, code=exc.code, error=str(exc)))
                continue
            except Exception as exc:  # noqa: BLE001
                logger.exception("batch target failed op=%s target=%s", op, target_id)
                report.failed.append(
                    BatchFailure(id=target_id, code="internal_error", error=str(exc))
                )
                continue
            report.succeeded.append(target_id)

        logger.info(
            "batch %s finished succeeded=%d failed=%d by=%s",
            op,
            len(report.succeeded),
            len(report.failed),
            actor_id,
            extra={"operation": str(op)},
        )
        return report

    def _build_handler(
        self, op: BatchOperation, params: BaseModel, actor_id: str
    ) -> Callable[[str], Any]:
        if op == BatchOperation.APPROVE_TRANSACTIONS:
            notes = params.notes  # type: ignore[attr-defined]
            return lambda tx_id: self._transactions.approve(tx_id, actor_id, notes)
        if op == BatchOperation.REJECT_TRANSACTIONS:
            reason = params.reason  # type: ignore[attr-defined]
            return lambda tx_id: self._transactions.reject(tx_id, actor_id, reason)
        if op == BatchOperation.ADD_CURRENCY:
            add_params = cast(AddCurrencyParams, params)
            batch_id = add_params.batch_id or uuid.uuid4().hex
            return lambda account_id: self._add_currency(account_id, add_params, batch_id, actor_id)
        if op == BatchOperation.EXPIRE_MEMBERSHIPS:
            return self._memberships.expire
        on_date = params.on_date  # type: ignore[attr-defined]
        return lambda membership_id: self._memberships.credit_daily_income(membership_id, on_date)

    def _add_currency(
        self,
        account_id: str,
        params: AddCurrencyParams,
        batch_id: str,
        actor_id: str,
    ) -> None:
        """계정에 통화별로 승인된 recharge 거래를 하나씩 기록한다."""

        self._ledger.get_balance(account_id)
        for money in params.credits():
            self._transactions.post(
                account_id,
                TransactionType.RECHARGE,
                money,
                idempotency_key=f"batch:{batch_id}:{account_id}:{money.currency}",
                reason="admin add currency",
                actor=actor_id,
                notes=params.reason,
                metadata={"batch_id": batch_id, "source": "admin_batch"},
            )
