"""환율 변환 서비스.

모든 변환은 USD 를 거친다: to.from_usd(from.to_usd(amount)).
활성 소스가 admin 이면 관리자 오버라이드 값, feed 면 피드 값이 rate_to_usd/usd_per_unit 에 들어 있다.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from common.types.datetime import utc_now

from ..config import CurrencySeedConfig
from ..exceptions import CurrencyNotFound, RateSourceUnavailable, ValidationFailed
from ..models.exchange_rate import ExchangeRate, RateSource, invert_rate
from ..repositories.interfaces import ExchangeRateRepositoryInterface
from .event_publisher import LedgerEventPublisher
from .rate_feed_client import RateFeedClient


logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    value = (code or "").strip().upper()
    if not value:
        raise ValidationFailed("currency code is required")
    return value


def _validate_rate(rate: Decimal) -> Decimal:
    try:
        value = Decimal(rate)
    except (TypeError, ArithmeticError) as exc:
        raise ValidationFailed(f"invalid rate: {rate!r}") from exc
    if not value.is_finite() or value <= 0:
        raise ValidationFailed(f"rate must be positive: {rate}")
    return value


class RateService:
    def __init__(
        self,
        rate_repo: ExchangeRateRepositoryInterface,
        events: LedgerEventPublisher,
    ) -> None:
        self._rate_repo = rate_repo
        self._events = events

    # 조회/변환 ---------------------------------------------------------------
    def get_rate(self, code: str) -> ExchangeRate:
        """활성화된 통화의 환율. 없거나 비활성이면 CurrencyNotFound."""

        normalized = normalize_code(code)
        rate = self._rate_repo.find_by_code(normalized)
        if rate is None or not rate.enabled:
            raise CurrencyNotFound(normalized)
        return rate

    def list_rates(self, *, include_disabled: bool = False) -> list[ExchangeRate]:
        return self._rate_repo.list(include_disabled=include_disabled)

    def convert(self, amount: Decimal, from_code: str, to_code: str) -> Decimal:
        source = self.get_rate(from_code)
        target = self.get_rate(to_code)
        if source.currency_code == target.currency_code:
            return Decimal(amount)
        return target.from_usd(source.to_usd(Decimal(amount)))

    # 관리 -----------------------------------------------------------------
    def add_currency(
        self,
        code: str,
        name: str,
        rate_to_usd: Decimal,
        *,
        symbol: str = "",
        country: str = "",
        notes: str | None = None,
    ) -> ExchangeRate:
        normalized = normalize_code(code)
        rate = _validate_rate(rate_to_usd)
        now = utc_now()
        created = self._rate_repo.insert(
            ExchangeRate(
                currency_code=normalized,
                currency_name=name or normalized,
                currency_symbol=symbol,
                country=country,
                rate_to_usd=rate,
                usd_per_unit=invert_rate(rate),
                feed_rate=rate,
                active_rate_source=RateSource.FEED,
                last_feed_update=now,
                enabled=True,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
        )
        if created is None:
            raise ValidationFailed(f"currency already exists: {normalized}")
        logger.info("currency added code=%s rate_to_usd=%s", normalized, rate)
        return created

    def seed_currencies(self, seeds: list[CurrencySeedConfig]) -> list[ExchangeRate]:
        created: list[ExchangeRate] = []
        for seed in seeds:
            if self._rate_repo.find_by_code(seed.code) is not None:
                continue
            created.append(
                self.add_currency(
                    seed.code,
                    seed.name,
                    seed.rate_to_usd,
                    symbol=seed.symbol,
                    country=seed.country,
                )
            )
        logger.info("seeded %d currencies", len(created))
        return created

    def set_override(self, code: str, rate: Decimal, reason: str, admin_id: str) -> ExchangeRate:
        normalized = normalize_code(code)
        value = _validate_rate(rate)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationFailed("override reason is required")

        updated = self._rate_repo.set_override(
            normalized,
            rate=value,
            usd_per_unit=invert_rate(value),
            set_by=admin_id,
            reason=reason,
            at=utc_now(),
        )
        if updated is None:
            raise CurrencyNotFound(normalized)
        logger.info(
            "rate override set code=%s rate=%s by=%s reason=%s",
            normalized,
            value,
            admin_id,
            reason,
        )
        self._events.rate_source_changed(updated, changed_by=admin_id, reason=reason)
        return updated

    def clear_override(self, code: str, admin_id: str | None = None) -> ExchangeRate:
        """피드 환율로 되돌린다. 기록된 피드 환율이 없으면 RateSourceUnavailable."""

        normalized = normalize_code(code)
        updated = self._rate_repo.clear_override(normalized, utc_now())
        if updated is None:
            if self._rate_repo.find_by_code(normalized) is None:
                raise CurrencyNotFound(normalized)
            raise RateSourceUnavailable(normalized)
        logger.info("rate override cleared code=%s by=%s", normalized, admin_id)
        self._events.rate_source_changed(updated, changed_by=admin_id, reason="override cleared")
        return updated

    def update_feed_rate(self, code: str, rate: Decimal) -> ExchangeRate:
        """피드 환율을 기록한다. 활성 소스가 feed 일 때만 활성 환율도 바뀐다."""

        normalized = normalize_code(code)
        value = _validate_rate(rate)
        updated = self._rate_repo.record_feed_rate(
            normalized, rate=value, usd_per_unit=invert_rate(value), at=utc_now()
        )
        if updated is None:
            raise CurrencyNotFound(normalized)
        return updated

    def refresh_feed_rates(self, client: RateFeedClient) -> list[str]:
        """피드에서 받은 환율 중 등록된 통화만 갱신하고, 갱신된 코드 목록을 돌려준다."""

        feed = client.fetch_rates()
        updated: list[str] = []
        for rate in self._rate_repo.list(include_disabled=True):
            value = feed.get(rate.currency_code)
            if value is None:
                continue
            self.update_feed_rate(rate.currency_code, value)
            updated.append(rate.currency_code)
        logger.info("feed rates refreshed updated=%d received=%d", len(updated), len(feed))
        return updated

    def set_enabled(self, code: str, enabled: bool) -> ExchangeRate:
        normalized = normalize_code(code)
        updated = self._rate_repo.set_enabled(normalized, enabled, utc_now())
        if updated is None:
            raise CurrencyNotFound(normalized)
        logger.info("currency %s enabled=%s", normalized, enabled)
        return updated
