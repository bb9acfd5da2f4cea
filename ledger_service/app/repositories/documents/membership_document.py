from __future__ import annotations

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    MongoDecimal,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.account import MembershipLevel
from ...models.membership import DeactivationReason, Membership


class MembershipDocument(BaseDocument):
    """MongoDB memberships 컬렉션 도큐먼트 모델."""

    account_id: str
    product_id: str
    product_name: MembershipLevel
    price_paid: MongoDecimal
    daily_credit_primary: MongoDecimal
    purchased_at: MongoDateTime
    expires_at: MongoDateTime
    active: bool
    auto_renew: bool = True
    deactivated_at: MongoDateTime | None = None
    deactivation_reason: DeactivationReason | None = None
    last_income_on: str | None = None
    renewed_from: str | None = None

    @classmethod
    def from_domain(cls, membership: Membership) -> "MembershipDocument":
        data = build_document_data_from_domain(membership)
        return cls.model_validate(data)

    def to_domain(self) -> Membership:
        return Membership(
            id=from_object_id(self.id),
            **self.model_dump(exclude={"id"}),
        )
