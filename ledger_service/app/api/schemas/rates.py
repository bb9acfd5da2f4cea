from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from common.types.money import DecimalStr

from ...models.exchange_rate import ExchangeRate, RateSource


class AddCurrencyRequest(BaseModel):
    currency_code: str = Field(min_length=2, max_length=10)
    currency_name: str
    rate_to_usd: DecimalStr
    currency_symbol: str = ""
    country: str = ""
    notes: str | None = None


class ConvertRequest(BaseModel):
    amount: DecimalStr
    from_code: str
    to_code: str


class ConvertResponse(BaseModel):
    amount: DecimalStr
    from_code: str
    to_code: str
    converted: DecimalStr


class OverrideRequest(BaseModel):
    rate: DecimalStr
    reason: str = Field(min_length=1)


class SetEnabledRequest(BaseModel):
    enabled: bool


class RefreshResponse(BaseModel):
    updated: list[str]


class ExchangeRateResponse(BaseModel):
    currency_code: str
    currency_name: str
    currency_symbol: str
    country: str
    rate_to_usd: DecimalStr
    usd_per_unit: DecimalStr
    feed_rate: DecimalStr | None
    admin_override_rate: DecimalStr | None
    active_rate_source: RateSource
    override_set_by: str | None
    override_reason: str | None
    override_set_at: datetime | None
    last_feed_update: datetime | None
    enabled: bool

    @classmethod
    def from_domain(cls, rate: ExchangeRate) -> "ExchangeRateResponse":
        return cls(**rate.model_dump(exclude={"id", "notes", "created_at", "updated_at"}))
