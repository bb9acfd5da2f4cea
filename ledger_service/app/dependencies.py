"""FastAPI DI 팩토리 모음.

서비스끼리 의존하므로(구매 -> 거래 -> 원장) 팩토리를 한 곳에 모았다.
요청 단위로 Depends 결과가 캐시되므로 한 요청 안에서는 같은 레포지토리 인스턴스를 공유한다.
"""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from pymongo.database import Database

from common.eventbus.config import is_event_bus_enabled
from common.eventbus.kafka import get_kafka_event_bus
from common.mongo.client import get_database

from .config import AppConfig, get_app_config
from .repositories.account_repository import AccountRepository
from .repositories.exchange_rate_repository import ExchangeRateRepository
from .repositories.interfaces import (
    AccountRepositoryInterface,
    ExchangeRateRepositoryInterface,
    MembershipRepositoryInterface,
    ProductRepositoryInterface,
    ReferralRepositoryInterface,
    TransactionRepositoryInterface,
)
from .repositories.membership_repository import MembershipRepository
from .repositories.product_repository import ProductRepository
from .repositories.referral_repository import ReferralRepository
from .repositories.transaction_repository import TransactionRepository
from .services.account_service import AccountService
from .services.batch_service import BatchService
from .services.catalog_service import CatalogService
from .services.event_publisher import LedgerEventPublisher
from .services.ledger_service import LedgerService
from .services.membership_service import MembershipService
from .services.rate_feed_client import RateFeedClient
from .services.rate_service import RateService
from .services.referral_service import ReferralService
from .services.transaction_service import TransactionService


def get_config() -> AppConfig:
    return get_app_config()


def get_actor_id(x_actor_id: str | None = Header(default=None)) -> str:
    """게이트웨이가 넘긴 호출자 ID. 인증은 게이트웨이 책임이다."""

    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "actor_required", "message": "X-Actor-Id header is required"},
        )
    return x_actor_id


def get_event_publisher() -> LedgerEventPublisher:
    bus = get_kafka_event_bus() if is_event_bus_enabled() else None
    return LedgerEventPublisher(bus)


# -------- Repositories --------


def get_account_repository(
    db: Database = Depends(get_database),
    config: AppConfig = Depends(get_config),
) -> AccountRepositoryInterface:
    return AccountRepository(db, ref_window=config.ledger.ref_window)


def get_product_repository(db: Database = Depends(get_database)) -> ProductRepositoryInterface:
    return ProductRepository(db)


def get_membership_repository(
    db: Database = Depends(get_database),
) -> MembershipRepositoryInterface:
    return MembershipRepository(db)


def get_transaction_repository(
    db: Database = Depends(get_database),
) -> TransactionRepositoryInterface:
    return TransactionRepository(db)


def get_referral_repository(db: Database = Depends(get_database)) -> ReferralRepositoryInterface:
    return ReferralRepository(db)


def get_exchange_rate_repository(
    db: Database = Depends(get_database),
) -> ExchangeRateRepositoryInterface:
    return ExchangeRateRepository(db)


# -------- Services --------


def get_ledger_service(
    account_repo: AccountRepositoryInterface = Depends(get_account_repository),
) -> LedgerService:
    return LedgerService(account_repo)


def get_account_service(
    account_repo: AccountRepositoryInterface = Depends(get_account_repository),
    config: AppConfig = Depends(get_config),
) -> AccountService:
    return AccountService(
        account_repo,
        referral_bonus_percentage=config.ledger.referral_bonus_percentage,
    )


def get_catalog_service(
    product_repo: ProductRepositoryInterface = Depends(get_product_repository),
    config: AppConfig = Depends(get_config),
) -> CatalogService:
    return CatalogService(product_repo, ranking=config.catalog.ranking)


def get_transaction_service(
    transaction_repo: TransactionRepositoryInterface = Depends(get_transaction_repository),
    ledger: LedgerService = Depends(get_ledger_service),
    events: LedgerEventPublisher = Depends(get_event_publisher),
    config: AppConfig = Depends(get_config),
) -> TransactionService:
    return TransactionService(
        transaction_repo,
        ledger,
        events,
        claim_stale_seconds=config.ledger.claim_stale_seconds,
    )


def get_referral_service(
    account_repo: AccountRepositoryInterface = Depends(get_account_repository),
    referral_repo: ReferralRepositoryInterface = Depends(get_referral_repository),
    transactions: TransactionService = Depends(get_transaction_service),
    events: LedgerEventPublisher = Depends(get_event_publisher),
    config: AppConfig = Depends(get_config),
) -> ReferralService:
    return ReferralService(
        account_repo,
        referral_repo,
        transactions,
        events,
        default_percentage=config.ledger.referral_bonus_percentage,
    )


def get_membership_service(
    account_repo: AccountRepositoryInterface = Depends(get_account_repository),
    membership_repo: MembershipRepositoryInterface = Depends(get_membership_repository),
    catalog: CatalogService = Depends(get_catalog_service),
    transactions: TransactionService = Depends(get_transaction_service),
    referrals: ReferralService = Depends(get_referral_service),
    events: LedgerEventPublisher = Depends(get_event_publisher),
) -> MembershipService:
    return MembershipService(
        account_repo, membership_repo, catalog, transactions, referrals, events
    )


def get_rate_service(
    rate_repo: ExchangeRateRepositoryInterface = Depends(get_exchange_rate_repository),
    events: LedgerEventPublisher = Depends(get_event_publisher),
) -> RateService:
    return RateService(rate_repo, events)


def get_rate_feed_client(config: AppConfig = Depends(get_config)) -> RateFeedClient:
    return RateFeedClient(config.rates.feed_url, timeout=config.rates.feed_timeout_seconds)


def get_batch_service(
    ledger: LedgerService = Depends(get_ledger_service),
    transactions: TransactionService = Depends(get_transaction_service),
    memberships: MembershipService = Depends(get_membership_service),
) -> BatchService:
    return BatchService(ledger, transactions, memberships)
