"""테스트용 인메모리 레포지토리/이벤트 버스.

Mongo 구현체의 조건부 갱신 의미(유니크 인덱스, claim token, ledger_refs 창)를
그대로 흉내 낸다. 서비스 테스트는 이 fake 들로 전체 서비스 그래프를 조립해 검증한다.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable

from bson import ObjectId

from common.eventbus.core import Event, Topic
from ledger_service.app.models.account import Account, MembershipLevel
from ledger_service.app.models.exchange_rate import ExchangeRate, RateSource, invert_rate
from ledger_service.app.models.membership import DeactivationReason, Membership
from ledger_service.app.models.product import Product
from ledger_service.app.models.referral import Referral, ReferralStatus
from ledger_service.app.models.transaction import Transaction, TransactionStatus
from ledger_service.app.services.account_service import AccountService
from ledger_service.app.services.batch_service import BatchService
from ledger_service.app.services.catalog_service import CatalogService
from ledger_service.app.services.event_publisher import LedgerEventPublisher
from ledger_service.app.services.ledger_service import LedgerService
from ledger_service.app.services.membership_service import MembershipService
from ledger_service.app.services.rate_service import RateService
from ledger_service.app.services.referral_service import ReferralService
from ledger_service.app.services.transaction_service import TransactionService


RANKING = [f"VIP{i}" for i in range(1, 10)]


def _new_id() -> str:
    return str(ObjectId())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _page(items: list[Any], page: int, page_size: int) -> tuple[list[Any], int]:
    start = (page - 1) * page_size
    return items[start : start + page_size], len(items)


class FakeAccountRepository:
    def __init__(self, *, ref_window: int = 500) -> None:
        self._lock = threading.Lock()
        self._ref_window = ref_window
        self.accounts: dict[str, Account] = {}
        self.refs: dict[str, list[str]] = {}
        # apply_delta 직전에 끼어드는 훅 (동시성 시나리오 재현용)
        self.before_apply: Callable[[str, str], None] | None = None

    def insert(self, account: Account) -> Account | None:
        with self._lock:
            for existing in self.accounts.values():
                if existing.username == account.username:
                    return None
                if existing.referral_code == account.referral_code:
                    return None
            created = account.model_copy(update={"id": _new_id()})
            self.accounts[created.id] = created
            self.refs[created.id] = []
            return created.model_copy()

    def find_by_id(self, account_id: str) -> Account | None:
        account = self.accounts.get(account_id)
        return account.model_copy() if account else None

    def find_by_username(self, username: str) -> Account | None:
        for account in self.accounts.values():
            if account.username == username:
                return account.model_copy()
        return None

    def find_by_referral_code(self, referral_code: str) -> Account | None:
        for account in self.accounts.values():
            if account.referral_code == referral_code:
                return account.model_copy()
        return None

    def apply_delta(
        self,
        account_id: str,
        field: str,
        delta: Decimal,
        *,
        ref: str,
        require_min: Decimal | None = None,
    ) -> Account | None:
        if self.before_apply is not None:
            self.before_apply(account_id, ref)
        with self._lock:
            account = self.accounts.get(account_id)
            if account is None:
                return None
            refs = self.refs[account_id]
            if ref in refs:
                return None
            current: Decimal = getattr(account, field)
            if require_min is not None and current < require_min:
                return None
            updated = account.model_copy(
                update={field: current + delta, "updated_at": _now()}
            )
            self.accounts[account_id] = updated
            refs.append(ref)
            del refs[: max(0, len(refs) - self._ref_window)]
            return updated.model_copy()

    def has_ledger_ref(self, account_id: str, ref: str) -> bool:
        return ref in self.refs.get(account_id, [])

    def set_membership_level(self, account_id: str, level: MembershipLevel) -> Account | None:
        with self._lock:
            account = self.accounts.get(account_id)
            if account is None:
                return None
            updated = account.model_copy(update={"membership_level": level, "updated_at": _now()})
            self.accounts[account_id] = updated
            return updated.model_copy()

    def list(self, page: int, page_size: int) -> tuple[list[Account], int]:
        items = sorted(self.accounts.values(), key=lambda a: a.created_at, reverse=True)
        return _page([a.model_copy() for a in items], page, page_size)

    # 테스트 헬퍼 -------------------------------------------------------------
    def set_balance(self, account_id: str, *, primary: Decimal | None = None, secondary: Decimal | None = None) -> None:
        update: dict[str, Any] = {}
        if primary is not None:
            update["balance_primary"] = primary
        if secondary is not None:
            update["balance_secondary"] = secondary
        self.accounts[account_id] = self.accounts[account_id].model_copy(update=update)


class FakeProductRepository:
    def __init__(self) -> None:
        self.products: dict[str, Product] = {}

    def insert(self, product: Product) -> Product | None:
        if any(p.name == product.name for p in self.products.values()):
            return None
        created = product.model_copy(update={"id": _new_id()})
        self.products[created.id] = created
        return created.model_copy()

    def find_by_id(self, product_id: str) -> Product | None:
        product = self.products.get(product_id)
        return product.model_copy() if product else None

    def find_by_name(self, name: str) -> Product | None:
        for product in self.products.values():
            if product.name == name:
                return product.model_copy()
        return None

    def list(self, *, active_only: bool) -> list[Product]:
        items = [p for p in self.products.values() if p.active or not active_only]
        return [p.model_copy() for p in sorted(items, key=lambda p: p.price_primary)]

    def update_fields(self, product_id: str, fields: dict[str, Any]) -> Product | None:
        product = self.products.get(product_id)
        if product is None:
            return None
        updated = product.model_copy(update={**fields, "updated_at": _now()})
        self.products[product_id] = updated
        return updated.model_copy()


class FakeMembershipRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.memberships: dict[str, Membership] = {}

    def insert_active(self, membership: Membership) -> Membership | None:
        with self._lock:
            for existing in self.memberships.values():
                if (
                    existing.active
                    and existing.account_id == membership.account_id
                    and existing.product_id == membership.product_id
                ):
                    return None
            created = membership.model_copy(update={"id": _new_id()})
            self.memberships[created.id] = created
            return created.model_copy()

    def delete_reservation(self, membership_id: str) -> bool:
        return self.memberships.pop(membership_id, None) is not None

    def find_by_id(self, membership_id: str) -> Membership | None:
        membership = self.memberships.get(membership_id)
        return membership.model_copy() if membership else None

    def find_active(self, account_id: str, product_id: str) -> Membership | None:
        for m in self.memberships.values():
            if m.active and m.account_id == account_id and m.product_id == product_id:
                return m.model_copy()
        return None

    def list_active(self, account_id: str) -> list[Membership]:
        return [
            m.model_copy()
            for m in self.memberships.values()
            if m.active and m.account_id == account_id
        ]

    def list_by_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[Membership], int]:
        items = sorted(
            (m for m in self.memberships.values() if m.account_id == account_id),
            key=lambda m: m.purchased_at,
            reverse=True,
        )
        return _page([m.model_copy() for m in items], page, page_size)

    def list_due(self, now: datetime, limit: int) -> list[Membership]:
        items = sorted(
            (m for m in self.memberships.values() if m.active and m.expires_at <= now),
            key=lambda m: m.expires_at,
        )
        return [m.model_copy() for m in items[:limit]]

    def deactivate(
        self, membership_id: str, reason: DeactivationReason, at: datetime
    ) -> Membership | None:
        with self._lock:
            membership = self.memberships.get(membership_id)
            if membership is None or not membership.active:
                return None
            updated = membership.model_copy(
                update={
                    "active": False,
                    "deactivated_at": at,
                    "deactivation_reason": reason,
                    "updated_at": at,
                }
            )
            self.memberships[membership_id] = updated
            return updated.model_copy()

    def relabel_deactivation(
        self,
        membership_id: str,
        expected: DeactivationReason,
        reason: DeactivationReason,
        at: datetime,
    ) -> Membership | None:
        with self._lock:
            membership = self.memberships.get(membership_id)
            if membership is None or membership.active or membership.deactivation_reason != expected:
                return None
            updated = membership.model_copy(update={"deactivation_reason": reason, "updated_at": at})
            self.memberships[membership_id] = updated
            return updated.model_copy()

    def mark_income(self, membership_id: str, income_date: str) -> bool:
        with self._lock:
            membership = self.memberships.get(membership_id)
            if membership is None:
                return False
            if membership.last_income_on is not None and membership.last_income_on >= income_date:
                return False
            self.memberships[membership_id] = membership.model_copy(
                update={"last_income_on": income_date}
            )
            return True

    # 테스트 헬퍼 -------------------------------------------------------------
    def set_expires_at(self, membership_id: str, expires_at: datetime) -> None:
        self.memberships[membership_id] = self.memberships[membership_id].model_copy(
            update={"expires_at": expires_at}
        )


class FakeTransactionRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.transactions: dict[str, Transaction] = {}

    def _update_if(
        self,
        tx_id: str,
        predicate: Callable[[Transaction], bool],
        update: dict[str, Any],
    ) -> Transaction | None:
        with self._lock:
            tx = self.transactions.get(tx_id)
            if tx is None or not predicate(tx):
                return None
            updated = tx.model_copy(update=update)
            self.transactions[tx_id] = updated
            return updated.model_copy()

    def insert(self, tx: Transaction) -> Transaction | None:
        with self._lock:
            if tx.idempotency_key is not None and any(
                t.idempotency_key == tx.idempotency_key for t in self.transactions.values()
            ):
                return None
            created = tx.model_copy(update={"id": _new_id()})
            self.transactions[created.id] = created
            return created.model_copy()

    def find_by_id(self, tx_id: str) -> Transaction | None:
        tx = self.transactions.get(tx_id)
        return tx.model_copy() if tx else None

    def find_by_idempotency_key(self, key: str) -> Transaction | None:
        for tx in self.transactions.values():
            if tx.idempotency_key == key:
                return tx.model_copy()
        return None

    def claim_pending(
        self, tx_id: str, token: str, claimed_by: str, at: datetime
    ) -> Transaction | None:
        return self._update_if(
            tx_id,
            lambda t: t.status == TransactionStatus.PENDING and t.claim_token is None,
            {"claim_token": token, "claimed_by": claimed_by, "claimed_at": at, "updated_at": at},
        )

    def complete_claimed(
        self,
        tx_id: str,
        token: str,
        *,
        approved_by: str,
        admin_notes: str | None,
        at: datetime,
    ) -> Transaction | None:
        update: dict[str, Any] = {
            "status": TransactionStatus.APPROVED,
            "approved_by": approved_by,
            "completed_at": at,
            "updated_at": at,
            "claim_token": None,
            "claimed_at": None,
        }
        if admin_notes:
            update["admin_notes"] = admin_notes
        return self._update_if(
            tx_id,
            lambda t: t.status == TransactionStatus.PENDING and t.claim_token == token,
            update,
        )

    def reject_claimed(
        self, tx_id: str, token: str, *, reason: str, at: datetime
    ) -> Transaction | None:
        return self._update_if(
            tx_id,
            lambda t: t.status == TransactionStatus.PENDING and t.claim_token == token,
            {
                "status": TransactionStatus.REJECTED,
                "rejection_reason": reason,
                "rejected_at": at,
                "updated_at": at,
                "claim_token": None,
                "claimed_at": None,
            },
        )

    def release_claim(self, tx_id: str, token: str) -> bool:
        released = self._update_if(
            tx_id,
            lambda t: t.status == TransactionStatus.PENDING and t.claim_token == token,
            {"claim_token": None, "claimed_by": None, "claimed_at": None},
        )
        return released is not None

    def reject_pending(
        self, tx_id: str, *, rejected_by: str, reason: str, at: datetime
    ) -> Transaction | None:
        return self._update_if(
            tx_id,
            lambda t: t.status == TransactionStatus.PENDING and t.claim_token is None,
            {
                "status": TransactionStatus.REJECTED,
                "approved_by": rejected_by,
                "rejection_reason": reason,
                "rejected_at": at,
                "updated_at": at,
            },
        )

    def _list(
        self, predicate: Callable[[Transaction], bool], page: int, page_size: int
    ) -> tuple[list[Transaction], int]:
        items = sorted(
            (t for t in self.transactions.values() if predicate(t)),
            key=lambda t: t.created_at,
            reverse=True,
        )
        return _page([t.model_copy() for t in items], page, page_size)

    def list_by_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[Transaction], int]:
        return self._list(lambda t: t.account_id == account_id, page, page_size)

    def list_by_status(
        self, status: TransactionStatus, page: int, page_size: int
    ) -> tuple[list[Transaction], int]:
        return self._list(lambda t: t.status == status, page, page_size)

    def list_stale_claims(self, claimed_before: datetime, limit: int) -> list[Transaction]:
        items = sorted(
            (
                t
                for t in self.transactions.values()
                if t.status == TransactionStatus.PENDING
                and t.claimed_at is not None
                and t.claimed_at <= claimed_before
            ),
            key=lambda t: t.claimed_at,  # type: ignore[arg-type, return-value]
        )
        return [t.model_copy() for t in items[:limit]]

    # 테스트 헬퍼 -------------------------------------------------------------
    def of_account(self, account_id: str) -> list[Transaction]:
        return [t for t in self.transactions.values() if t.account_id == account_id]


class FakeReferralRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.referrals: dict[str, Referral] = {}

    def reserve(self, referral: Referral) -> Referral | None:
        with self._lock:
            if any(r.referred_id == referral.referred_id for r in self.referrals.values()):
                return None
            created = referral.model_copy(update={"id": _new_id()})
            self.referrals[created.id] = created
            return created.model_copy()

    def find_by_referred(self, referred_id: str) -> Referral | None:
        for referral in self.referrals.values():
            if referral.referred_id == referred_id:
                return referral.model_copy()
        return None

    def mark_paid(self, referral_id: str, at: datetime) -> Referral | None:
        with self._lock:
            referral = self.referrals.get(referral_id)
            if referral is None or referral.status == ReferralStatus.PAID:
                return None
            updated = referral.model_copy(
                update={"status": ReferralStatus.PAID, "paid_at": at, "updated_at": at}
            )
            self.referrals[referral_id] = updated
            return updated.model_copy()

    def list_by_referrer(
        self, referrer_id: str, page: int, page_size: int
    ) -> tuple[list[Referral], int]:
        items = sorted(
            (r for r in self.referrals.values() if r.referrer_id == referrer_id),
            key=lambda r: r.created_at,
            reverse=True,
        )
        return _page([r.model_copy() for r in items], page, page_size)


class FakeExchangeRateRepository:
    def __init__(self) -> None:
        self.rates: dict[str, ExchangeRate] = {}

    def _update(self, code: str, update: dict[str, Any]) -> ExchangeRate | None:
        rate = self.rates.get(code)
        if rate is None:
            return None
        updated = rate.model_copy(update=update)
        self.rates[code] = updated
        return updated.model_copy()

    def insert(self, rate: ExchangeRate) -> ExchangeRate | None:
        if rate.currency_code in self.rates:
            return None
        created = rate.model_copy(update={"id": _new_id()})
        self.rates[created.currency_code] = created
        return created.model_copy()

    def find_by_code(self, code: str) -> ExchangeRate | None:
        rate = self.rates.get(code)
        return rate.model_copy() if rate else None

    def list(self, *, include_disabled: bool) -> list[ExchangeRate]:
        return [
            r.model_copy()
            for code, r in sorted(self.rates.items())
            if include_disabled or r.enabled
        ]

    def set_override(
        self,
        code: str,
        *,
        rate: Decimal,
        usd_per_unit: Decimal,
        set_by: str,
        reason: str,
        at: datetime,
    ) -> ExchangeRate | None:
        return self._update(
            code,
            {
                "admin_override_rate": rate,
                "rate_to_usd": rate,
                "usd_per_unit": usd_per_unit,
                "active_rate_source": RateSource.ADMIN,
                "override_set_by": set_by,
                "override_reason": reason,
                "override_set_at": at,
                "updated_at": at,
            },
        )

    def clear_override(self, code: str, at: datetime) -> ExchangeRate | None:
        current = self.rates.get(code)
        if current is None or current.feed_rate is None or current.feed_rate <= 0:
            return None
        return self._update(
            code,
            {
                "active_rate_source": RateSource.FEED,
                "rate_to_usd": current.feed_rate,
                "usd_per_unit": invert_rate(current.feed_rate),
                "admin_override_rate": None,
                "override_set_by": None,
                "override_reason": None,
                "override_set_at": None,
                "updated_at": at,
            },
        )

    def record_feed_rate(
        self, code: str, *, rate: Decimal, usd_per_unit: Decimal, at: datetime
    ) -> ExchangeRate | None:
        current = self.rates.get(code)
        if current is None:
            return None
        update: dict[str, Any] = {"feed_rate": rate, "last_feed_update": at, "updated_at": at}
        if current.active_rate_source == RateSource.FEED:
            update["rate_to_usd"] = rate
            update["usd_per_unit"] = usd_per_unit
        return self._update(code, update)

    def set_enabled(self, code: str, enabled: bool, at: datetime) -> ExchangeRate | None:
        return self._update(code, {"enabled": enabled, "updated_at": at})


class FakeEventBus:
    def __init__(self) -> None:
        self.published: list[tuple[str, Event]] = []

    def publish(self, topic: str, event: Event) -> None:
        self.published.append((topic, event))

    def subscribe(
        self,
        group_id: str,
        topic: Topic,
        handler: Callable[[Event], None],
        *,
        poll_timeout: float = 0.1,
        stop_flag: list[bool] | None = None,
    ) -> None:
        for published_topic, event in list(self.published):
            if published_topic == topic.base:
                handler(event)

    def close(self) -> None:
        return None

    def event_types(self) -> list[str]:
        return [str(event.payload.get("type")) for _, event in self.published]


@dataclass
class LedgerFixture:
    account_repo: FakeAccountRepository
    product_repo: FakeProductRepository
    membership_repo: FakeMembershipRepository
    transaction_repo: FakeTransactionRepository
    referral_repo: FakeReferralRepository
    rate_repo: FakeExchangeRateRepository
    bus: FakeEventBus
    ledger: LedgerService
    accounts: AccountService
    catalog: CatalogService
    transactions: TransactionService
    referrals: ReferralService
    memberships: MembershipService
    rates: RateService
    batch: BatchService
    products: dict[str, Product] = field(default_factory=dict)

    def open_account(
        self,
        username: str,
        *,
        primary: Decimal | str = "0",
        secondary: Decimal | str = "0",
        referred_by: str | None = None,
    ) -> Account:
        account = self.accounts.open_account(username, referred_by)
        self.account_repo.set_balance(
            str(account.id), primary=Decimal(primary), secondary=Decimal(secondary)
        )
        return self.account_repo.find_by_id(str(account.id))  # type: ignore[return-value]

    def balance(self, account_id: str) -> Decimal:
        return self.ledger.get_balance(account_id).balance_primary

    def add_product(
        self,
        name: str,
        price: Decimal | str,
        daily_credit: Decimal | str = "0",
        *,
        active: bool = True,
    ) -> Product:
        now = _now()
        product = self.catalog.create_product(
            Product(
                name=MembershipLevel(name),
                price_primary=Decimal(price),
                daily_credit_primary=Decimal(daily_credit),
                active=active,
                created_at=now,
                updated_at=now,
            )
        )
        self.products[name] = product
        return product


def build_ledger_fixture(
    *,
    referral_percentage: Decimal = Decimal("35"),
    ref_window: int = 500,
    claim_stale_seconds: int = 300,
) -> LedgerFixture:
    account_repo = FakeAccountRepository(ref_window=ref_window)
    product_repo = FakeProductRepository()
    membership_repo = FakeMembershipRepository()
    transaction_repo = FakeTransactionRepository()
    referral_repo = FakeReferralRepository()
    rate_repo = FakeExchangeRateRepository()
    bus = FakeEventBus()
    events = LedgerEventPublisher(bus)

    ledger = LedgerService(account_repo)
    accounts = AccountService(account_repo, referral_bonus_percentage=referral_percentage)
    catalog = CatalogService(product_repo, ranking=RANKING)
    transactions = TransactionService(
        transaction_repo, ledger, events, claim_stale_seconds=claim_stale_seconds
    )
    referrals = ReferralService(
        account_repo,
        referral_repo,
        transactions,
        events,
        default_percentage=referral_percentage,
    )
    memberships = MembershipService(
        account_repo, membership_repo, catalog, transactions, referrals, events
    )
    rates = RateService(rate_repo, events)
    batch = BatchService(ledger, transactions, memberships)

    return LedgerFixture(
        account_repo=account_repo,
        product_repo=product_repo,
        membership_repo=membership_repo,
        transaction_repo=transaction_repo,
        referral_repo=referral_repo,
        rate_repo=rate_repo,
        bus=bus,
        ledger=ledger,
        accounts=accounts,
        catalog=catalog,
        transactions=transactions,
        referrals=referrals,
        memberships=memberships,
        rates=rates,
        batch=batch,
    )


def stale_time(claim_stale_seconds: int = 300) -> datetime:
    """reconcile 에 넘길 '점유가 오래된' 기준 시각."""

    return _now() + timedelta(seconds=claim_stale_seconds + 60)
