"""계정 MongoDB 도큐먼트.

ledger_refs 는 최근 적용된 원장 ref 목록(크기 제한)으로, 도메인 모델에는 노출하지 않는다.
"""

from __future__ import annotations

from pydantic import Field

from common.mongo.types import (
    BaseDocument,
    MongoDecimal,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.account import Account, MembershipLevel


class AccountDocument(BaseDocument):
    """MongoDB accounts 컬렉션 도큐먼트 모델."""

    username: str
    balance_primary: MongoDecimal
    balance_secondary: MongoDecimal
    membership_level: MembershipLevel = MembershipLevel.NONE
    referral_code: str
    referred_by: str | None = None
    referral_bonus_percentage: MongoDecimal | None = None
    ledger_refs: list[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, account: Account) -> "AccountDocument":
        data = build_document_data_from_domain(account)
        return cls.model_validate(data)

    def to_domain(self) -> Account:
        return Account(
            id=from_object_id(self.id),
            username=self.username,
            balance_primary=self.balance_primary,
            balance_secondary=self.balance_secondary,
            membership_level=self.membership_level,
            referral_code=self.referral_code,
            referred_by=self.referred_by,
            referral_bonus_percentage=self.referral_bonus_percentage,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
