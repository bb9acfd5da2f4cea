"""멤버십(구매한 상품 보유 기록) 도메인 모델."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel

from common.types.money import DecimalStr

from .account import MembershipLevel
from .referral import Referral
from .transaction import Transaction


class DeactivationReason(StrEnum):
    EXPIRED = "expired"
    ADMIN = "admin"
    RENEWED = "renewed"


class Membership(BaseModel):
    id: str | None = None
    account_id: str
    product_id: str
    product_name: MembershipLevel
    price_paid: DecimalStr  # 구매 당시 가격 (이후 상품 가격이 바뀌어도 유지)
    daily_credit_primary: DecimalStr  # 구매 당시 일일 지급액
    purchased_at: datetime
    expires_at: datetime
    active: bool = True
    auto_renew: bool = True
    deactivated_at: datetime | None = None
    deactivation_reason: DeactivationReason | None = None
    last_income_on: str | None = None  # YYYY-MM-DD
    renewed_from: str | None = None  # 자동 갱신으로 생성된 경우 이전 멤버십 ID
    created_at: datetime
    updated_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class PurchaseResult(BaseModel):
    """구매 결과. 추천 보너스 실패는 구매를 실패시키지 않고 referral_error 로만 전달된다."""

    membership: Membership
    transaction: Transaction
    balance_primary: DecimalStr
    membership_level: MembershipLevel
    referral: Referral | None = None
    referral_error: str | None = None
