from __future__ import annotations

import uuid
from decimal import Decimal

import pytest

from common.events.ledger import LedgerEventType
from ledger_service.app.exceptions import (
    InsufficientFunds,
    NotFound,
    NotPending,
    ValidationFailed,
)
from ledger_service.app.models.money import Currency, Money
from ledger_service.app.models.transaction import TransactionStatus, TransactionType
from ledger_service.app.services.transaction_service import SYSTEM_ACTOR
from ledger_service.tests.fakes import build_ledger_fixture, stale_time


def _nsl(amount: str) -> Money:
    return Money(currency=Currency.NSL, amount=Decimal(amount))


def test_create_request_does_not_touch_balance() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="10")

    tx = fx.transactions.create(
        str(account.id),
        TransactionType.RECHARGE,
        _nsl("50"),
        metadata={"payment_method": "bank"},
    )

    assert tx.status == TransactionStatus.PENDING
    assert tx.amount_primary == Decimal("50")
    assert tx.amount_secondary == Decimal("0")
    assert fx.balance(str(account.id)) == Decimal("10")


def test_create_rejects_system_types_and_bad_amounts() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice")

    with pytest.raises(ValidationFailed):
        fx.transactions.create(str(account.id), TransactionType.INCOME, _nsl("5"))
    with pytest.raises(ValidationFailed):
        fx.transactions.create(str(account.id), TransactionType.RECHARGE, _nsl("0"))
    with pytest.raises(NotFound):
        fx.transactions.create("missing", TransactionType.RECHARGE, _nsl("5"))


def test_approve_recharge_credits_once() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="10")
    tx = fx.transactions.create(str(account.id), TransactionType.RECHARGE, _nsl("50"))

    approved = fx.transactions.approve(str(tx.id), "admin-1", "checked")

    assert approved.status == TransactionStatus.APPROVED
    assert approved.approved_by == "admin-1"
    assert approved.admin_notes == "checked"
    assert approved.completed_at is not None
    assert fx.balance(str(account.id)) == Decimal("60")

    with pytest.raises(NotPending):
        fx.transactions.approve(str(tx.id), "admin-2")
    with pytest.raises(NotPending):
        fx.transactions.reject(str(tx.id), "admin-2", "too late")
    assert fx.balance(str(account.id)) == Decimal("60")
    assert LedgerEventType.TRANSACTION_APPROVED in fx.bus.event_types()


def test_approve_withdrawal_with_insufficient_funds_stays_pending() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="20")
    tx = fx.transactions.create(str(account.id), TransactionType.WITHDRAWAL, _nsl("50"))

    with pytest.raises(InsufficientFunds):
        fx.transactions.approve(str(tx.id), "admin-1")

    current = fx.transactions.get(str(tx.id))
    assert current.status == TransactionStatus.PENDING
    assert current.claim_token is None
    assert fx.balance(str(account.id)) == Decimal("20")

    # 입금 후 다시 승인할 수 있다
    fx.account_repo.set_balance(str(account.id), primary=Decimal("80"))
    approved = fx.transactions.approve(str(tx.id), "admin-1")
    assert approved.status == TransactionStatus.APPROVED
    assert fx.balance(str(account.id)) == Decimal("30")


def test_reject_requires_reason_and_is_terminal() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="20")
    tx = fx.transactions.create(str(account.id), TransactionType.WITHDRAWAL, _nsl("5"))

    with pytest.raises(ValidationFailed):
        fx.transactions.reject(str(tx.id), "admin-1", "  ")

    rejected = fx.transactions.reject(str(tx.id), "admin-1", "address mismatch")
    assert rejected.status == TransactionStatus.REJECTED
    assert rejected.rejection_reason == "address mismatch"
    assert rejected.rejected_at is not None

    with pytest.raises(NotPending):
        fx.transactions.approve(str(tx.id), "admin-1")
    assert fx.balance(str(account.id)) == Decimal("20")
    assert LedgerEventType.TRANSACTION_REJECTED in fx.bus.event_types()


def test_claimed_request_cannot_be_rejected_concurrently() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="20")
    tx = fx.transactions.create(str(account.id), TransactionType.RECHARGE, _nsl("5"))
    fx.transaction_repo.claim_pending(str(tx.id), uuid.uuid4().hex, "admin-1", tx.created_at)

    with pytest.raises(NotPending) as exc_info:
        fx.transactions.reject(str(tx.id), "admin-2", "duplicate")

    assert exc_info.value.in_progress is True


def test_post_is_idempotent_per_key() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="0")

    first = fx.transactions.post(
        str(account.id), TransactionType.INCOME, _nsl("3"), idempotency_key="k-1", reason="test"
    )
    second = fx.transactions.post(
        str(account.id), TransactionType.INCOME, _nsl("3"), idempotency_key="k-1", reason="test"
    )

    assert first.applied is True
    assert first.transaction.status == TransactionStatus.APPROVED
    assert first.transaction.approved_by == SYSTEM_ACTOR
    assert second.applied is False
    assert second.transaction.id == first.transaction.id
    assert fx.balance(str(account.id)) == Decimal("3")
    assert len(fx.transaction_repo.of_account(str(account.id))) == 1


def test_post_debit_failure_records_rejected_transaction() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="1")

    with pytest.raises(InsufficientFunds):
        fx.transactions.post(
            str(account.id),
            TransactionType.PURCHASE,
            _nsl("5"),
            idempotency_key="purchase:m-1",
            reason="test",
        )

    [tx] = fx.transaction_repo.of_account(str(account.id))
    assert tx.status == TransactionStatus.REJECTED
    assert tx.rejection_reason == "insufficient funds"
    assert fx.balance(str(account.id)) == Decimal("1")

    # 같은 키로 다시 시도하면 이미 종료된 거래라서 NotPending
    with pytest.raises(NotPending):
        fx.transactions.post(
            str(account.id),
            TransactionType.PURCHASE,
            _nsl("5"),
            idempotency_key="purchase:m-1",
            reason="test",
        )


def test_reconcile_completes_claim_when_ledger_was_applied() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="10")
    tx = fx.transactions.create(str(account.id), TransactionType.RECHARGE, _nsl("50"))

    # 원장 반영 직후 프로세스가 죽은 상황: 점유 + ref 반영, 승인 미완료
    token = uuid.uuid4().hex
    claimed = fx.transaction_repo.claim_pending(str(tx.id), token, "admin-1", tx.created_at)
    assert claimed is not None
    fx.ledger.credit(str(account.id), Currency.NSL, Decimal("50"), "test", ref=claimed.ledger_ref)

    # 아직 오래되지 않은 점유는 건드리지 않는다
    untouched = fx.transactions.reconcile(str(tx.id))
    assert untouched.claim_token == token

    [resolved] = fx.transactions.reconcile_stale(now=stale_time())

    assert resolved.status == TransactionStatus.APPROVED
    assert resolved.approved_by == "admin-1"
    assert fx.balance(str(account.id)) == Decimal("60")


def test_reconcile_releases_claim_when_ledger_was_not_applied() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="10")
    tx = fx.transactions.create(str(account.id), TransactionType.RECHARGE, _nsl("50"))
    fx.transaction_repo.claim_pending(str(tx.id), uuid.uuid4().hex, "admin-1", tx.created_at)

    released = fx.transactions.reconcile(str(tx.id), now=stale_time())

    assert released.status == TransactionStatus.PENDING
    assert released.claim_token is None

    approved = fx.transactions.approve(str(tx.id), "admin-2")
    assert approved.status == TransactionStatus.APPROVED
    assert fx.balance(str(account.id)) == Decimal("60")


def test_reconcile_rejects_unapplied_membership_payment() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="100")

    def _crash(account_id: str, ref: str) -> None:
        raise RuntimeError("process died")

    fx.account_repo.before_apply = _crash
    with pytest.raises(RuntimeError):
        fx.transactions.post(
            str(account.id),
            TransactionType.RENEWAL,
            _nsl("40"),
            idempotency_key="renewal:m-1",
            reason="t",
            membership_id="m-1",
        )
    fx.account_repo.before_apply = None

    [stuck] = fx.transaction_repo.of_account(str(account.id))
    rejected = fx.transactions.reconcile(str(stuck.id), now=stale_time())

    assert rejected.status == TransactionStatus.REJECTED
    assert rejected.rejection_reason == "payment not applied"
    assert rejected.claim_token is None
    assert fx.transactions.find_posting("renewal:m-1").status == TransactionStatus.REJECTED
    assert fx.transactions.is_posted(str(account.id), "renewal:m-1") is False
    assert fx.balance(str(account.id)) == Decimal("100")


def test_interrupted_posting_resumes_without_double_apply() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="0")

    def _crash(account_id: str, ref: str) -> None:
        raise RuntimeError("process died")

    fx.account_repo.before_apply = _crash
    with pytest.raises(RuntimeError):
        fx.transactions.post(
            str(account.id), TransactionType.INCOME, _nsl("3"), idempotency_key="k-1", reason="t"
        )
    fx.account_repo.before_apply = None

    [stuck] = fx.transaction_repo.of_account(str(account.id))
    assert stuck.status == TransactionStatus.PENDING
    assert stuck.claim_token is not None

    # 점유가 살아있는 동안의 재시도는 진행 중으로 거절된다
    with pytest.raises(NotPending) as exc_info:
        fx.transactions.post(
            str(account.id), TransactionType.INCOME, _nsl("3"), idempotency_key="k-1", reason="t"
        )
    assert exc_info.value.in_progress is True

    fx.transactions.reconcile_stale(now=stale_time())
    resumed = fx.transactions.post(
        str(account.id), TransactionType.INCOME, _nsl("3"), idempotency_key="k-1", reason="t"
    )

    assert resumed.applied is True
    assert resumed.transaction.status == TransactionStatus.APPROVED
    assert fx.balance(str(account.id)) == Decimal("3")


def test_list_pending_only_returns_pending_requests() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="10")
    kept = fx.transactions.create(str(account.id), TransactionType.RECHARGE, _nsl("1"))
    done = fx.transactions.create(str(account.id), TransactionType.RECHARGE, _nsl("2"))
    fx.transactions.approve(str(done.id), "admin-1")

    items, total = fx.transactions.list_pending(1, 20)

    assert total == 1
    assert [t.id for t in items] == [kept.id]
