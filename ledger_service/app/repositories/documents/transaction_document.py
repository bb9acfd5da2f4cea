from __future__ import annotations

from typing import Any

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    MongoDecimal,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.money import Currency
from ...models.transaction import Transaction, TransactionStatus, TransactionType


class TransactionDocument(BaseDocument):
    """MongoDB transactions 컬렉션 도큐먼트 모델.

    amount_primary / amount_secondary 는 조회/집계 편의를 위해 함께 저장한다.
    """

    account_id: str
    type: TransactionType
    currency: Currency
    amount: MongoDecimal
    amount_primary: MongoDecimal
    amount_secondary: MongoDecimal
    status: TransactionStatus
    membership_id: str | None = None
    product_id: str | None = None
    referral_id: str | None = None
    idempotency_key: str | None = None
    approved_by: str | None = None
    notes: str | None = None
    admin_notes: str | None = None
    rejection_reason: str | None = None
    metadata: dict[str, Any] | None = None
    claim_token: str | None = None
    claimed_by: str | None = None
    claimed_at: MongoDateTime | None = None
    completed_at: MongoDateTime | None = None
    rejected_at: MongoDateTime | None = None

    @classmethod
    def from_domain(cls, tx: Transaction) -> "TransactionDocument":
        data = build_document_data_from_domain(tx)
        data["amount_primary"] = tx.amount_primary
        data["amount_secondary"] = tx.amount_secondary
        return cls.model_validate(data)

    def to_domain(self) -> Transaction:
        return Transaction(
            id=from_object_id(self.id),
            **self.model_dump(exclude={"id", "amount_primary", "amount_secondary"}),
        )
