from __future__ import annotations

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    MongoDecimal,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.referral import Referral, ReferralStatus


class ReferralDocument(BaseDocument):
    """MongoDB referrals 컬렉션 도큐먼트 모델. referred_id 는 unique 이다."""

    referrer_id: str
    referred_id: str
    status: ReferralStatus
    bonus_amount: MongoDecimal
    bonus_percentage: MongoDecimal
    source_amount: MongoDecimal
    paid_at: MongoDateTime | None = None

    @classmethod
    def from_domain(cls, referral: Referral) -> "ReferralDocument":
        data = build_document_data_from_domain(referral)
        return cls.model_validate(data)

    def to_domain(self) -> Referral:
        return Referral(
            id=from_object_id(self.id),
            **self.model_dump(exclude={"id"}),
        )
