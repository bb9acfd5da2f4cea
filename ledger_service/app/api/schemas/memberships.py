from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel

from common.types.money import DecimalStr

from ...models.account import MembershipLevel
from ...models.membership import DeactivationReason, Membership, PurchaseResult
from ...models.referral import Referral, ReferralStatus
from .transactions import TransactionResponse


class MembershipResponse(BaseModel):
    id: str
    account_id: str
    product_id: str
    product_name: MembershipLevel
    price_paid: DecimalStr
    daily_credit_primary: DecimalStr
    purchased_at: datetime
    expires_at: datetime
    active: bool
    auto_renew: bool
    deactivated_at: datetime | None
    deactivation_reason: DeactivationReason | None
    last_income_on: str | None

    @classmethod
    def from_domain(cls, membership: Membership) -> "MembershipResponse":
        return cls(
            id=str(membership.id),
            **membership.model_dump(
                include={
                    "account_id",
                    "product_id",
                    "product_name",
                    "price_paid",
                    "daily_credit_primary",
                    "purchased_at",
                    "expires_at",
                    "active",
                    "auto_renew",
                    "deactivated_at",
                    "deactivation_reason",
                    "last_income_on",
                }
            ),
        )


class ReferralResponse(BaseModel):
    id: str
    referrer_id: str
    referred_id: str
    status: ReferralStatus
    bonus_amount: DecimalStr
    bonus_percentage: DecimalStr
    paid_at: datetime | None
    created_at: datetime

    @classmethod
    def from_domain(cls, referral: Referral) -> "ReferralResponse":
        return cls(
            id=str(referral.id),
            referrer_id=referral.referrer_id,
            referred_id=referral.referred_id,
            status=referral.status,
            bonus_amount=referral.bonus_amount,
            bonus_percentage=referral.bonus_percentage,
            paid_at=referral.paid_at,
            created_at=referral.created_at,
        )


class PurchaseResponse(BaseModel):
    membership: MembershipResponse
    transaction: TransactionResponse
    balance_primary: DecimalStr
    membership_level: MembershipLevel
    referral: ReferralResponse | None
    # 추천 보너스 처리 실패 경고 (구매 자체는 성공)
    referral_warning: str | None

    @classmethod
    def from_domain(cls, result: PurchaseResult) -> "PurchaseResponse":
        return cls(
            membership=MembershipResponse.from_domain(result.membership),
            transaction=TransactionResponse.from_domain(result.transaction),
            balance_primary=result.balance_primary,
            membership_level=result.membership_level,
            referral=ReferralResponse.from_domain(result.referral) if result.referral else None,
            referral_warning=result.referral_error,
        )


class DeactivateRequest(BaseModel):
    reason: str | None = None


class DailyIncomeRequest(BaseModel):
    on_date: date | None = None


class DailyIncomeResponse(BaseModel):
    credited: bool
    transaction: TransactionResponse | None = None


class ProcessDueResponse(BaseModel):
    processed: list[str]
