from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml


DEFAULT_CONFIG_FILE_NAME = "config.yaml"

DEFAULT_REFERRAL_BONUS_PERCENTAGE = Decimal("35")
DEFAULT_LEDGER_REF_WINDOW = 500
DEFAULT_CLAIM_STALE_SECONDS = 300
DEFAULT_RATE_FEED_URL = "https://open.er-api.com/v6/latest/USD"
DEFAULT_RATE_FEED_TIMEOUT_SECONDS = 10.0
DEFAULT_PORT = 8003


def get_referral_bonus_percentage() -> Decimal:
    raw = os.getenv("REFERRAL_BONUS_PERCENTAGE")
    if raw is None or raw.strip() == "":
        return DEFAULT_REFERRAL_BONUS_PERCENTAGE
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as exc:
        raise RuntimeError(f"invalid REFERRAL_BONUS_PERCENTAGE: {raw!r}") from exc
    if value < 0 or value > 100:
        raise RuntimeError(f"REFERRAL_BONUS_PERCENTAGE out of range: {raw!r}")
    return value


def _get_positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"invalid {name}: {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive: {raw!r}")
    return value


def get_ledger_ref_window() -> int:
    """계정별로 보관하는 최근 원장 ref 개수."""

    return _get_positive_int("LEDGER_REF_WINDOW", DEFAULT_LEDGER_REF_WINDOW)


def get_claim_stale_seconds() -> int:
    return _get_positive_int("CLAIM_STALE_SECONDS", DEFAULT_CLAIM_STALE_SECONDS)


def get_rate_feed_url() -> str:
    return os.getenv("RATE_FEED_URL", DEFAULT_RATE_FEED_URL)


def get_rate_feed_timeout() -> float:
    raw = os.getenv("RATE_FEED_TIMEOUT_SECONDS")
    if not raw:
        return DEFAULT_RATE_FEED_TIMEOUT_SECONDS
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"invalid RATE_FEED_TIMEOUT_SECONDS: {raw!r}") from exc


def get_port() -> int:
    return _get_positive_int("LEDGER_SERVICE_PORT", DEFAULT_PORT)


@dataclass(slots=True)
class ProductSeedConfig:
    name: str
    price_primary: Decimal
    price_secondary: Decimal
    daily_credit_primary: Decimal
    validity_days: int = 60
    description: str = ""
    benefits: list[str] = field(default_factory=list)


@dataclass(slots=True)
class CatalogConfig:
    ranking: list[str]
    products: list[ProductSeedConfig]


@dataclass(slots=True)
class CurrencySeedConfig:
    code: str
    name: str
    rate_to_usd: Decimal
    symbol: str = ""
    country: str = ""


@dataclass(slots=True)
class RatesConfig:
    feed_url: str
    feed_timeout_seconds: float
    currencies: list[CurrencySeedConfig]


@dataclass(slots=True)
class LedgerConfig:
    ref_window: int
    claim_stale_seconds: int
    referral_bonus_percentage: Decimal


@dataclass(slots=True)
class AppConfig:
    """ledger-service 전체 설정 루트.

    - ledger: 환경 변수 기반 런타임 파라미터
    - catalog / rates: config.yaml 의 정적 카탈로그와 초기 환율
    """

    ledger: LedgerConfig
    catalog: CatalogConfig
    rates: RatesConfig


def _find_config_path() -> Path:
    """현재 작업 디렉토리 기준으로 상위로 올라가며 config.yaml 을 찾는다."""

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / DEFAULT_CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate

    raise RuntimeError(
        f"{DEFAULT_CONFIG_FILE_NAME} not found. Place config.yaml in project root.",
    )


def _to_decimal(value: Any, *, where: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise RuntimeError(f"invalid decimal at {where}: {value!r}") from exc


def parse_catalog_config(data: dict[str, Any]) -> CatalogConfig:
    catalog = data.get("catalog") or {}
    ranking = [str(name).strip() for name in catalog.get("ranking") or []]
    if not ranking:
        raise RuntimeError("catalog.ranking must not be empty")

    nsl_per_usdt = _to_decimal(catalog.get("nsl_per_usdt", 25), where="catalog.nsl_per_usdt")
    products: list[ProductSeedConfig] = []
    for item in catalog.get("products") or []:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name", "")).strip()
        if name not in ranking:
            raise RuntimeError(f"catalog product {name!r} is not in catalog.ranking")
        price = _to_decimal(item.get("price_primary"), where=f"catalog.products[{name}].price_primary")
        raw_secondary = item.get("price_secondary")
        price_secondary = (
            _to_decimal(raw_secondary, where=f"catalog.products[{name}].price_secondary")
            if raw_secondary is not None
            else (price / nsl_per_usdt).quantize(Decimal("0.01"))
        )
        products.append(
            ProductSeedConfig(
                name=name,
                price_primary=price,
                price_secondary=price_secondary,
                daily_credit_primary=_to_decimal(
                    item.get("daily_credit_primary"),
                    where=f"catalog.products[{name}].daily_credit_primary",
                ),
                validity_days=int(item.get("validity_days", 60)),
                description=str(item.get("description") or ""),
                benefits=[str(b) for b in item.get("benefits") or []],
            ),
        )
    return CatalogConfig(ranking=ranking, products=products)


def parse_currency_seeds(data: dict[str, Any]) -> list[CurrencySeedConfig]:
    rates = data.get("rates") or {}
    seeds: list[CurrencySeedConfig] = []
    for item in rates.get("currencies") or []:
        if not isinstance(item, dict):
            continue
        code = str(item.get("code", "")).strip().upper()
        if not code:
            continue
        seeds.append(
            CurrencySeedConfig(
                code=code,
                name=str(item.get("name") or code),
                rate_to_usd=_to_decimal(item.get("rate_to_usd"), where=f"rates.currencies[{code}]"),
                symbol=str(item.get("symbol") or ""),
                country=str(item.get("country") or ""),
            ),
        )
    return seeds


def load_config() -> AppConfig:
    """환경 변수와 config.yaml 을 읽어 AppConfig 로 반환한다."""

    path = _find_config_path()
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return AppConfig(
        ledger=LedgerConfig(
            ref_window=get_ledger_ref_window(),
            claim_stale_seconds=get_claim_stale_seconds(),
            referral_bonus_percentage=get_referral_bonus_percentage(),
        ),
        catalog=parse_catalog_config(data),
        rates=RatesConfig(
            feed_url=get_rate_feed_url(),
            feed_timeout_seconds=get_rate_feed_timeout(),
            currencies=parse_currency_seeds(data),
        ),
    )


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    return load_config()
