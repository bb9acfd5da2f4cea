from __future__ import annotations

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    MongoDecimal,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.exchange_rate import ExchangeRate, RateSource


class ExchangeRateDocument(BaseDocument):
    """MongoDB exchange_rates 컬렉션 도큐먼트 모델."""

    currency_code: str
    currency_name: str
    currency_symbol: str = ""
    country: str = ""
    rate_to_usd: MongoDecimal
    usd_per_unit: MongoDecimal
    feed_rate: MongoDecimal | None = None
    admin_override_rate: MongoDecimal | None = None
    active_rate_source: RateSource = RateSource.FEED
    override_set_by: str | None = None
    override_reason: str | None = None
    override_set_at: MongoDateTime | None = None
    last_feed_update: MongoDateTime | None = None
    enabled: bool = True
    notes: str | None = None

    @classmethod
    def from_domain(cls, rate: ExchangeRate) -> "ExchangeRateDocument":
        data = build_document_data_from_domain(rate)
        return cls.model_validate(data)

    def to_domain(self) -> ExchangeRate:
        return ExchangeRate(
            id=from_object_id(self.id),
            **self.model_dump(exclude={"id"}),
        )
