from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from common.types.money import DecimalStr

from ...models.money import Currency
from ...models.transaction import Transaction, TransactionStatus, TransactionType


class CreateTransactionRequest(BaseModel):
    """입금(recharge) / 출금(withdrawal) 요청."""

    account_id: str
    type: TransactionType
    currency: Currency
    amount: DecimalStr
    notes: str | None = None
    # 출금 주소/네트워크, 결제 수단, 입금 증빙 URL 등
    metadata: dict[str, Any] | None = None


class ApproveRequest(BaseModel):
    notes: str | None = None


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)


class TransactionResponse(BaseModel):
    id: str
    account_id: str
    type: TransactionType
    status: TransactionStatus
    currency: Currency
    amount: DecimalStr
    amount_primary: DecimalStr
    amount_secondary: DecimalStr
    membership_id: str | None
    product_id: str | None
    referral_id: str | None
    approved_by: str | None
    notes: str | None
    admin_notes: str | None
    rejection_reason: str | None
    metadata: dict[str, Any] | None
    in_progress: bool  # 승인 처리 중 (점유됨)
    created_at: datetime
    completed_at: datetime | None
    rejected_at: datetime | None

    @classmethod
    def from_domain(cls, tx: Transaction) -> "TransactionResponse":
        return cls(
            id=str(tx.id),
            account_id=tx.account_id,
            type=tx.type,
            status=tx.status,
            currency=tx.currency,
            amount=tx.amount,
            amount_primary=tx.amount_primary,
            amount_secondary=tx.amount_secondary,
            membership_id=tx.membership_id,
            product_id=tx.product_id,
            referral_id=tx.referral_id,
            approved_by=tx.approved_by,
            notes=tx.notes,
            admin_notes=tx.admin_notes,
            rejection_reason=tx.rejection_reason,
            metadata=tx.metadata,
            in_progress=tx.claim_token is not None,
            created_at=tx.created_at,
            completed_at=tx.completed_at,
            rejected_at=tx.rejected_at,
        )
