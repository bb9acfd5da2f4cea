from __future__ import annotations

from decimal import Decimal

import httpx
import pytest

from common.eventbus.topics import TOPIC_RATES
from common.events.ledger import RateSourceChangedEvent
from ledger_service.app.config import CurrencySeedConfig
from ledger_service.app.exceptions import (
    CurrencyNotFound,
    RateSourceUnavailable,
    ValidationFailed,
)
from ledger_service.app.models.exchange_rate import RateSource
from ledger_service.app.services.rate_feed_client import RateFeedClient
from ledger_service.tests.fakes import LedgerFixture, build_ledger_fixture


def _build_fixture() -> LedgerFixture:
    fx = build_ledger_fixture()
    fx.rates.seed_currencies(
        [
            CurrencySeedConfig(code="USD", name="US Dollar", rate_to_usd=Decimal("1")),
            CurrencySeedConfig(code="NGN", name="Naira", rate_to_usd=Decimal("1650")),
            CurrencySeedConfig(code="GBP", name="Pound", rate_to_usd=Decimal("0.8")),
        ]
    )
    return fx


def _close(actual: Decimal, expected: Decimal) -> bool:
    return abs(actual - expected) < Decimal("1e-12")


def _feed_client(body: object, status_code: int = 200) -> RateFeedClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=body)

    return RateFeedClient("https://rates.test/latest/USD", transport=httpx.MockTransport(handler))


def test_convert_goes_through_usd() -> None:
    fx = _build_fixture()

    assert _close(fx.rates.convert(Decimal("3300"), "ngn", "USD"), Decimal("2"))
    assert _close(fx.rates.convert(Decimal("10"), "USD", "GBP"), Decimal("8"))
    assert fx.rates.convert(Decimal("5"), "NGN", "NGN") == Decimal("5")


def test_unknown_or_disabled_currency_is_not_found() -> None:
    fx = _build_fixture()
    fx.rates.set_enabled("GBP", False)

    with pytest.raises(CurrencyNotFound):
        fx.rates.convert(Decimal("1"), "USD", "XYZ")
    with pytest.raises(CurrencyNotFound):
        fx.rates.get_rate("GBP")
    assert [r.currency_code for r in fx.rates.list_rates()] == ["NGN", "USD"]
    assert len(fx.rates.list_rates(include_disabled=True)) == 3


def test_add_currency_validates_rate_and_duplicates() -> None:
    fx = _build_fixture()

    with pytest.raises(ValidationFailed):
        fx.rates.add_currency("EUR", "Euro", Decimal("0"))
    with pytest.raises(ValidationFailed):
        fx.rates.add_currency("ngn", "Naira", Decimal("1600"))

    euro = fx.rates.add_currency(" eur ", "Euro", Decimal("0.92"), symbol="€")
    assert euro.currency_code == "EUR"
    assert euro.active_rate_source == RateSource.FEED
    assert euro.feed_rate == Decimal("0.92")


def test_override_and_clear_switch_active_source() -> None:
    fx = _build_fixture()

    overridden = fx.rates.set_override("NGN", Decimal("1500"), "bank rate", "admin-1")
    assert overridden.active_rate_source == RateSource.ADMIN
    assert overridden.rate_to_usd == Decimal("1500")
    assert _close(overridden.usd_per_unit * Decimal("1500"), Decimal("1"))
    assert overridden.override_set_by == "admin-1"

    # 오버라이드 중에는 피드 값이 기록만 되고 활성 환율은 유지된다
    fed = fx.rates.update_feed_rate("NGN", Decimal("1700"))
    assert fed.feed_rate == Decimal("1700")
    assert fed.rate_to_usd == Decimal("1500")

    cleared = fx.rates.clear_override("NGN", "admin-1")
    assert cleared.active_rate_source == RateSource.FEED
    assert cleared.rate_to_usd == Decimal("1700")
    assert cleared.admin_override_rate is None
    assert cleared.override_set_by is None

    rate_events = [
        RateSourceChangedEvent.from_dict(e.payload)
        for topic, e in fx.bus.published
        if topic == TOPIC_RATES.base
    ]
    assert [(e.active_rate_source, e.changed_by) for e in rate_events] == [
        ("admin", "admin-1"),
        ("feed", "admin-1"),
    ]
    assert rate_events[0].reason == "bank rate"


def test_override_requires_reason_and_positive_rate() -> None:
    fx = _build_fixture()

    with pytest.raises(ValidationFailed):
        fx.rates.set_override("NGN", Decimal("1500"), " ", "admin-1")
    with pytest.raises(ValidationFailed):
        fx.rates.set_override("NGN", Decimal("-1"), "typo", "admin-1")
    with pytest.raises(CurrencyNotFound):
        fx.rates.set_override("XYZ", Decimal("1"), "new", "admin-1")


def test_clear_override_without_feed_rate_is_unavailable() -> None:
    fx = _build_fixture()
    fx.rate_repo.rates["NGN"] = fx.rate_repo.rates["NGN"].model_copy(update={"feed_rate": None})
    fx.rates.set_override("NGN", Decimal("1500"), "bank rate", "admin-1")

    with pytest.raises(RateSourceUnavailable):
        fx.rates.clear_override("NGN")
    assert fx.rates.get_rate("NGN").active_rate_source == RateSource.ADMIN

    with pytest.raises(CurrencyNotFound):
        fx.rates.clear_override("XYZ")


def test_refresh_feed_rates_updates_known_currencies_only() -> None:
    fx = _build_fixture()
    client = _feed_client({"result": "success", "rates": {"NGN": 1600.5, "GBP": 0.79, "JPY": 150}})

    updated = fx.rates.refresh_feed_rates(client)

    assert sorted(updated) == ["GBP", "NGN"]
    assert fx.rates.get_rate("NGN").rate_to_usd == Decimal("1600.5")
    assert fx.rates.get_rate("GBP").last_feed_update is not None


def test_feed_client_skips_invalid_values() -> None:
    client = _feed_client({"rates": {"ngn": "1650", "BAD": "x", "ZERO": 0}})

    assert client.fetch_rates() == {"NGN": Decimal("1650")}


@pytest.mark.parametrize(
    "body,status_code",
    [({"rates": {}}, 500), ({"error": "quota"}, 200), (["not", "an", "object"], 200)],
)
def test_feed_client_errors(body: object, status_code: int) -> None:
    client = _feed_client(body, status_code)

    with pytest.raises(RuntimeError):
        client.fetch_rates()


def test_convert_round_trip_is_close_to_identity() -> None:
    fx = _build_fixture()
    fx.rates.set_override("GBP", Decimal("0.79"), "manual", "admin-1")

    amount = Decimal("1234.56789")
    there = fx.rates.convert(amount, "NGN", "GBP")
    back = fx.rates.convert(there, "GBP", "NGN")

    assert _close(back, amount)
