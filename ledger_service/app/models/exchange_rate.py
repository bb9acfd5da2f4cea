"""환율 도메인 모델.

rate_to_usd 는 1 USD 당 해당 통화 단위 수이고 usd_per_unit 은 그 역수다.
두 값은 현재 활성 소스(feed/admin) 기준으로 항상 함께 갱신된다.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel

from common.types.money import DecimalStr


class RateSource(StrEnum):
    FEED = "feed"
    ADMIN = "admin"


def invert_rate(rate: Decimal) -> Decimal:
    return Decimal(1) / rate


class ExchangeRate(BaseModel):
    id: str | None = None
    currency_code: str
    currency_name: str
    currency_symbol: str = ""
    country: str = ""
    rate_to_usd: DecimalStr
    usd_per_unit: DecimalStr
    feed_rate: DecimalStr | None = None
    admin_override_rate: DecimalStr | None = None
    active_rate_source: RateSource = RateSource.FEED
    override_set_by: str | None = None
    override_reason: str | None = None
    override_set_at: datetime | None = None
    last_feed_update: datetime | None = None
    enabled: bool = True
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    def to_usd(self, amount: Decimal) -> Decimal:
        return amount * self.usd_per_unit

    def from_usd(self, usd_amount: Decimal) -> Decimal:
        return usd_amount * self.rate_to_usd
