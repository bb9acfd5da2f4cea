from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from common.types.money import DecimalStr

from ...models.account import Account, MembershipLevel


class OpenAccountRequest(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    referral_code: str | None = None  # 가입 시 입력한 추천 코드


class AccountResponse(BaseModel):
    id: str
    username: str
    balance_primary: DecimalStr
    balance_secondary: DecimalStr
    membership_level: MembershipLevel
    referral_code: str
    referred_by: str | None
    created_at: datetime

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        return cls(
            id=str(account.id),
            username=account.username,
            balance_primary=account.balance_primary,
            balance_secondary=account.balance_secondary,
            membership_level=account.membership_level,
            referral_code=account.referral_code,
            referred_by=account.referred_by,
            created_at=account.created_at,
        )


class BalanceResponse(BaseModel):
    account_id: str
    balance_primary: DecimalStr
    balance_secondary: DecimalStr


class PurchaseRequest(BaseModel):
    product_id: str
