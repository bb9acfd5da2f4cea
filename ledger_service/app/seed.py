"""config.yaml 의 기본 상품/통화를 DB 에 채워 넣는 CLI.

이미 있는 상품(이름)과 통화(코드)는 건드리지 않으므로 여러 번 실행해도 된다.
"""

from __future__ import annotations

import logging

from common.logger import setup_logger
from common.mongo.client import close_client, get_database

from .config import get_app_config
from .repositories.exchange_rate_repository import ExchangeRateRepository
from .repositories.product_repository import ProductRepository
from .services.catalog_service import CatalogService
from .services.event_publisher import LedgerEventPublisher
from .services.rate_service import RateService


logger = logging.getLogger(__name__)


def main() -> None:
    setup_logger()
    config = get_app_config()
    db = get_database()
    try:
        catalog = CatalogService(ProductRepository(db), ranking=config.catalog.ranking)
        products = catalog.seed_products(config.catalog.products)

        rates = RateService(ExchangeRateRepository(db), LedgerEventPublisher(None))
        currencies = rates.seed_currencies(config.rates.currencies)

        logger.info(
            "seed completed products=%d currencies=%d", len(products), len(currencies)
        )
    finally:
        close_client()


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
