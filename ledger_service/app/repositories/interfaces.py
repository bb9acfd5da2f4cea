from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from ..models.account import Account, MembershipLevel
from ..models.exchange_rate import ExchangeRate
from ..models.membership import DeactivationReason, Membership
from ..models.product import Product
from ..models.referral import Referral
from ..models.transaction import Transaction, TransactionStatus


class AccountRepositoryInterface(Protocol):
    """AccountRepository 가 따라야 할 최소한의 계약.

    잔액 필드는 apply_delta 로만 바뀐다. apply_delta 는 단일 도큐먼트 조건부 갱신이며
    조건(최소 잔액, ref 미적용)이 맞지 않으면 아무것도 바꾸지 않고 None 을 돌려준다.
    """

    def insert(self, account: Account) -> Account | None:  # pragma: no cover - Protocol
        """username/referral_code 중복이면 None."""
        ...

    def find_by_id(self, account_id: str) -> Account | None:  # pragma: no cover - Protocol
        ...

    def find_by_username(self, username: str) -> Account | None:  # pragma: no cover - Protocol
        ...

    def find_by_referral_code(
        self, referral_code: str
    ) -> Account | None:  # pragma: no cover - Protocol
        ...

    def apply_delta(
        self,
        account_id: str,
        field: str,
        delta: Decimal,
        *,
        ref: str,
        require_min: Decimal | None = None,
    ) -> Account | None:  # pragma: no cover - Protocol
        ...

    def has_ledger_ref(self, account_id: str, ref: str) -> bool:  # pragma: no cover - Protocol
        ...

    def set_membership_level(
        self, account_id: str, level: MembershipLevel
    ) -> Account | None:  # pragma: no cover - Protocol
        ...

    def list(
        self, page: int, page_size: int
    ) -> tuple[list[Account], int]:  # pragma: no cover - Protocol
        ...


class ProductRepositoryInterface(Protocol):
    def insert(self, product: Product) -> Product | None:  # pragma: no cover - Protocol
        """같은 이름의 상품이 있으면 None."""
        ...

    def find_by_id(self, product_id: str) -> Product | None:  # pragma: no cover - Protocol
        ...

    def find_by_name(self, name: str) -> Product | None:  # pragma: no cover - Protocol
        ...

    def list(self, *, active_only: bool) -> list[Product]:  # pragma: no cover - Protocol
        ...

    def update_fields(
        self, product_id: str, fields: dict[str, Any]
    ) -> Product | None:  # pragma: no cover - Protocol
        ...


class MembershipRepositoryInterface(Protocol):
    """(account_id, product_id) 당 활성 멤버십은 하나뿐이라는 제약을 저장소가 보장한다."""

    def insert_active(
        self, membership: Membership
    ) -> Membership | None:  # pragma: no cover - Protocol
        """같은 상품의 활성 멤버십이 이미 있으면 None."""
        ...

    def delete_reservation(self, membership_id: str) -> bool:  # pragma: no cover - Protocol
        ...

    def find_by_id(self, membership_id: str) -> Membership | None:  # pragma: no cover - Protocol
        ...

    def find_active(
        self, account_id: str, product_id: str
    ) -> Membership | None:  # pragma: no cover - Protocol
        ...

    def list_active(self, account_id: str) -> list[Membership]:  # pragma: no cover - Protocol
        ...

    def list_by_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[Membership], int]:  # pragma: no cover - Protocol
        ...

    def list_due(
        self, now: datetime, limit: int
    ) -> list[Membership]:  # pragma: no cover - Protocol
        ...

    def deactivate(
        self, membership_id: str, reason: DeactivationReason, at: datetime
    ) -> Membership | None:  # pragma: no cover - Protocol
        """활성 상태일 때만 비활성화한다. 이미 비활성이면 None."""
        ...

    def relabel_deactivation(
        self,
        membership_id: str,
        expected: DeactivationReason,
        reason: DeactivationReason,
        at: datetime,
    ) -> Membership | None:  # pragma: no cover - Protocol
        """비활성 사유가 expected 일 때만 reason 으로 바꾼다."""
        ...

    def mark_income(
        self, membership_id: str, income_date: str
    ) -> bool:  # pragma: no cover - Protocol
        ...


class TransactionRepositoryInterface(Protocol):
    """거래 상태 전이는 모두 조건부 갱신이다 (pending 이고 claim 상태가 기대와 같을 때만)."""

    def insert(self, tx: Transaction) -> Transaction | None:  # pragma: no cover - Protocol
        """idempotency_key 가 중복이면 None."""
        ...

    def find_by_id(self, tx_id: str) -> Transaction | None:  # pragma: no cover - Protocol
        ...

    def find_by_idempotency_key(
        self, key: str
    ) -> Transaction | None:  # pragma: no cover - Protocol
        ...

    def claim_pending(
        self, tx_id: str, token: str, claimed_by: str, at: datetime
    ) -> Transaction | None:  # pragma: no cover - Protocol
        ...

    def complete_claimed(
        self,
        tx_id: str,
        token: str,
        *,
        approved_by: str,
        admin_notes: str | None,
        at: datetime,
    ) -> Transaction | None:  # pragma: no cover - Protocol
        ...

    def reject_claimed(
        self, tx_id: str, token: str, *, reason: str, at: datetime
    ) -> Transaction | None:  # pragma: no cover - Protocol
        ...

    def release_claim(self, tx_id: str, token: str) -> bool:  # pragma: no cover - Protocol
        ...

    def reject_pending(
        self, tx_id: str, *, rejected_by: str, reason: str, at: datetime
    ) -> Transaction | None:  # pragma: no cover - Protocol
        ...

    def list_by_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[Transaction], int]:  # pragma: no cover - Protocol
        ...

    def list_by_status(
        self, status: TransactionStatus, page: int, page_size: int
    ) -> tuple[list[Transaction], int]:  # pragma: no cover - Protocol
        ...

    def list_stale_claims(
        self, claimed_before: datetime, limit: int
    ) -> list[Transaction]:  # pragma: no cover - Protocol
        ...


class ReferralRepositoryInterface(Protocol):
    def reserve(self, referral: Referral) -> Referral | None:  # pragma: no cover - Protocol
        """피추천 계정의 추천 기록이 이미 있으면 None."""
        ...

    def find_by_referred(self, referred_id: str) -> Referral | None:  # pragma: no cover - Protocol
        ...

    def mark_paid(self, referral_id: str, at: datetime) -> Referral | None:  # pragma: no cover - Protocol
        ...

    def list_by_referrer(
        self, referrer_id: str, page: int, page_size: int
    ) -> tuple[list[Referral], int]:  # pragma: no cover - Protocol
        ...


class ExchangeRateRepositoryInterface(Protocol):
    """환율 도큐먼트. rate_to_usd 와 usd_per_unit 은 항상 한 번의 갱신으로 함께 바뀐다."""

    def insert(self, rate: ExchangeRate) -> ExchangeRate | None:  # pragma: no cover - Protocol
        ...

    def find_by_code(self, code: str) -> ExchangeRate | None:  # pragma: no cover - Protocol
        ...

    def list(self, *, include_disabled: bool) -> list[ExchangeRate]:  # pragma: no cover - Protocol
        ...

    def set_override(
        self,
        code: str,
        *,
        rate: Decimal,
        usd_per_unit: Decimal,
        set_by: str,
        reason: str,
        at: datetime,
    ) -> ExchangeRate | None:  # pragma: no cover - Protocol
        ...

    def clear_override(self, code: str, at: datetime) -> ExchangeRate | None:  # pragma: no cover - Protocol
        """feed_rate 가 기록된 경우에만 feed 소스로 되돌린다. 아니면 None."""
        ...

    def record_feed_rate(
        self, code: str, *, rate: Decimal, usd_per_unit: Decimal, at: datetime
    ) -> ExchangeRate | None:  # pragma: no cover - Protocol
        ...

    def set_enabled(
        self, code: str, enabled: bool, at: datetime
    ) -> ExchangeRate | None:  # pragma: no cover - Protocol
        ...
