"""추천 보너스 도메인 모델."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel

from common.types.money import DecimalStr


class ReferralStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"


class Referral(BaseModel):
    """피추천 계정당 하나만 존재하는 추천 기록."""

    id: str | None = None
    referrer_id: str
    referred_id: str
    status: ReferralStatus = ReferralStatus.PENDING
    bonus_amount: DecimalStr
    bonus_percentage: DecimalStr
    source_amount: DecimalStr  # 보너스 산정 기준이 된 첫 구매 금액
    paid_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
