"""상품(VIP 티어) 도메인 모델."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from pydantic import BaseModel, Field

from common.types.money import DecimalStr

from .account import MembershipLevel


class Product(BaseModel):
    id: str | None = None
    name: MembershipLevel  # 티어 이름 (unique)
    price_primary: DecimalStr  # NSL 구매 가격
    price_secondary: DecimalStr = Decimal("0")  # USDT 표시 가격
    daily_credit_primary: DecimalStr  # 하루 지급 NSL
    validity_days: int = 60
    active: bool = True
    description: str = ""
    benefits: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @property
    def validity(self) -> timedelta:
        return timedelta(days=self.validity_days)


class ProductUpdate(BaseModel):
    """관리자가 바꿀 수 있는 상품 필드. None 은 변경하지 않음을 의미한다."""

    price_primary: DecimalStr | None = None
    price_secondary: DecimalStr | None = None
    daily_credit_primary: DecimalStr | None = None
    active: bool | None = None
    description: str | None = None
    benefits: list[str] | None = None
