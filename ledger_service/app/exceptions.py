from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any


class LedgerServiceError(Exception):
    """Base exception for all ledger-service domain errors.

    code 는 API 응답과 배치 리포트에서 그대로 사용하는 기계 판독용 식별자다.
    """

    code = "ledger_error"

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class NotFound(LedgerServiceError):
    """Requested entity does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ValidationFailed(LedgerServiceError):
    """Caller-supplied data is malformed (amount <= 0, unknown operation, ...)."""

    code = "validation_failed"


class InsufficientFunds(LedgerServiceError):
    """Balance is lower than the amount to debit. Carries the current balance."""

    code = "insufficient_funds"

    def __init__(self, currency: str, balance: Decimal, required: Decimal) -> None:
        super().__init__(
            f"insufficient {currency} balance: balance={balance} required={required}"
        )
        self.currency = currency
        self.balance = balance
        self.required = required

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update(
            currency=self.currency,
            balance=str(self.balance),
            required=str(self.required),
        )
        return detail


class AlreadyOwned(LedgerServiceError):
    """Account already holds an active membership for the product."""

    code = "already_owned"

    def __init__(self, membership_id: str | None, expires_at: datetime | None) -> None:
        super().__init__(
            "product already owned; wait for it to expire before repurchasing"
            + (f" (expires_at={expires_at.isoformat()})" if expires_at else "")
        )
        self.membership_id = membership_id
        self.expires_at = expires_at

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update(
            membership_id=self.membership_id,
            expires_at=self.expires_at.isoformat() if self.expires_at else None,
        )
        return detail


class ProductInactive(LedgerServiceError):
    """Product exists but is not available for purchase."""

    code = "product_inactive"

    def __init__(self, product_id: str) -> None:
        super().__init__(f"product is not available: {product_id}")
        self.product_id = product_id


class NotPending(LedgerServiceError):
    """Invalid state transition: the transaction is no longer pending (or is being processed)."""

    code = "not_pending"

    def __init__(self, transaction_id: str, status: str, *, in_progress: bool = False) -> None:
        message = f"transaction {transaction_id} is not pending (status={status})"
        if in_progress:
            message = f"transaction {transaction_id} is being processed by another request"
        super().__init__(message)
        self.transaction_id = transaction_id
        self.status = status
        self.in_progress = in_progress

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update(status=self.status, in_progress=self.in_progress)
        return detail


class CurrencyNotFound(LedgerServiceError):
    """Currency code is absent or disabled."""

    code = "currency_not_found"

    def __init__(self, currency_code: str) -> None:
        super().__init__(f"currency not found or disabled: {currency_code}")
        self.currency_code = currency_code


class RateSourceUnavailable(LedgerServiceError):
    """Override cannot be cleared because no feed rate was ever recorded."""

    code = "rate_source_unavailable"

    def __init__(self, currency_code: str) -> None:
        super().__init__(
            f"no feed rate recorded for {currency_code}; keep the override or refresh feed rates first"
        )
        self.currency_code = currency_code
