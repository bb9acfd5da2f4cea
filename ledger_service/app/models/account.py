"""계정 도메인 모델."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel

from common.types.money import DecimalStr

from .money import Currency


class MembershipLevel(StrEnum):
    """계정의 멤버십 등급. 보유 중인 활성 상품에서 파생되는 값이다."""

    NONE = "none"
    VIP1 = "VIP1"
    VIP2 = "VIP2"
    VIP3 = "VIP3"
    VIP4 = "VIP4"
    VIP5 = "VIP5"
    VIP6 = "VIP6"
    VIP7 = "VIP7"
    VIP8 = "VIP8"
    VIP9 = "VIP9"


class Account(BaseModel):
    id: str | None = None
    username: str
    balance_primary: DecimalStr = Decimal("0")  # NSL
    balance_secondary: DecimalStr = Decimal("0")  # USDT
    membership_level: MembershipLevel = MembershipLevel.NONE
    referral_code: str
    referred_by: str | None = None  # 추천인의 referral_code
    # 가입 시점의 추천 보너스 비율(%) 스냅샷. None 이면 설정값을 사용한다.
    referral_bonus_percentage: DecimalStr | None = None
    created_at: datetime
    updated_at: datetime

    def balance_of(self, currency: Currency) -> Decimal:
        if Currency(currency) == Currency.NSL:
            return self.balance_primary
        return self.balance_secondary


class Balances(BaseModel):
    account_id: str
    balance_primary: DecimalStr
    balance_secondary: DecimalStr
