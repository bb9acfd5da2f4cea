from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from ledger_service.app.exceptions import ValidationFailed
from ledger_service.app.models.batch import BatchOperation
from ledger_service.app.models.money import Currency, Money
from ledger_service.app.models.transaction import TransactionStatus, TransactionType
from ledger_service.tests.fakes import LedgerFixture, build_ledger_fixture


def _build_fixture() -> LedgerFixture:
    fx = build_ledger_fixture()
    fx.add_product("VIP1", "5000", "450")
    return fx


def _recharge(fx: LedgerFixture, account_id: str, amount: str) -> str:
    tx = fx.transactions.create(
        account_id,
        TransactionType.RECHARGE,
        Money(currency=Currency.NSL, amount=Decimal(amount)),
    )
    return str(tx.id)


def test_batch_approve_reports_partial_failure() -> None:
    fx = _build_fixture()
    account = fx.open_account("alice")
    tx_ids = [_recharge(fx, str(account.id), "10") for _ in range(5)]
    fx.transactions.reject(tx_ids[2], "admin-1", "duplicate slip")

    report = fx.batch.apply("approve_transactions", tx_ids, {}, "admin-2")

    assert report.operation == BatchOperation.APPROVE_TRANSACTIONS
    assert report.succeeded == [tx_ids[0], tx_ids[1], tx_ids[3], tx_ids[4]]
    [failure] = report.failed
    assert failure.id == tx_ids[2]
    assert failure.code == "not_pending"
    assert report.total == 5
    assert fx.balance(str(account.id)) == Decimal("40")


def test_batch_dedupes_targets() -> None:
    fx = _build_fixture()
    account = fx.open_account("alice")
    tx_id = _recharge(fx, str(account.id), "10")

    report = fx.batch.apply("approve_transactions", [tx_id, tx_id, " "], None, "admin-1")

    assert report.succeeded == [tx_id]
    assert report.failed == []
    assert fx.balance(str(account.id)) == Decimal("10")


def test_batch_reject_requires_reason() -> None:
    fx = _build_fixture()
    account = fx.open_account("alice")
    tx_id = _recharge(fx, str(account.id), "10")

    with pytest.raises(ValidationFailed):
        fx.batch.apply("reject_transactions", [tx_id], {}, "admin-1")

    report = fx.batch.apply("reject_transactions", [tx_id, "missing"], {"reason": "fake"}, "admin-1")
    assert report.succeeded == [tx_id]
    assert [f.code for f in report.failed] == ["not_found"]
    assert fx.transactions.get(tx_id).status == TransactionStatus.REJECTED


@pytest.mark.parametrize(
    "operation,targets",
    [("unknown_op", ["x"]), ("approve_transactions", []), ("approve_transactions", [" "])],
)
def test_batch_top_level_validation(operation: str, targets: list[str]) -> None:
    fx = _build_fixture()

    with pytest.raises(ValidationFailed):
        fx.batch.apply(operation, targets, {}, "admin-1")


def test_batch_add_currency_posts_one_recharge_per_currency() -> None:
    fx = _build_fixture()
    alice = fx.open_account("alice")
    bob = fx.open_account("bob")
    params = {
        "amount_primary": "100",
        "amount_secondary": "2.5",
        "reason": "promo compensation",
        "batch_id": "b-1",
    }

    report = fx.batch.apply("add_currency", [str(alice.id), str(bob.id), "missing"], params, "admin-1")
    # 같은 batch_id 로 다시 실행해도 두 번 지급되지 않는다
    replay = fx.batch.apply("add_currency", [str(alice.id)], params, "admin-1")

    assert report.succeeded == [str(alice.id), str(bob.id)]
    assert [f.code for f in report.failed] == ["not_found"]
    assert replay.succeeded == [str(alice.id)]
    balances = fx.ledger.get_balance(str(alice.id))
    assert balances.balance_primary == Decimal("100")
    assert balances.balance_secondary == Decimal("2.5")

    txs = fx.transaction_repo.of_account(str(alice.id))
    assert len(txs) == 2
    assert all(t.type == TransactionType.RECHARGE for t in txs)
    assert all(t.status == TransactionStatus.APPROVED and t.approved_by == "admin-1" for t in txs)
    assert {t.idempotency_key for t in txs} == {
        f"batch:b-1:{alice.id}:NSL",
        f"batch:b-1:{alice.id}:USDT",
    }


@pytest.mark.parametrize(
    "params",
    [
        {"reason": "promo compensation"},
        {"amount_primary": "100", "reason": "bad"},
        {"amount_primary": "-5", "reason": "promo compensation"},
        {"amount_primary": "0", "amount_secondary": "0", "reason": "promo compensation"},
    ],
)
def test_batch_add_currency_param_validation(params: dict[str, str]) -> None:
    fx = _build_fixture()
    account = fx.open_account("alice")

    with pytest.raises(ValidationFailed):
        fx.batch.apply("add_currency", [str(account.id)], params, "admin-1")


def test_batch_expire_and_daily_income() -> None:
    fx = _build_fixture()
    account = fx.open_account("alice", primary="10000")
    product_id = str(fx.products["VIP1"].id)
    membership = fx.memberships.purchase(str(account.id), product_id).membership
    membership_id = str(membership.id)

    income = fx.batch.apply(
        "credit_daily_income", [membership_id, "missing"], {"on_date": "2026-02-01"}, "system"
    )
    assert income.succeeded == [membership_id]
    assert [f.code for f in income.failed] == ["not_found"]
    assert fx.balance(str(account.id)) == Decimal("5450")

    expired = fx.batch.apply("expire_memberships", [membership_id], {}, "admin-1")
    assert expired.succeeded == [membership_id]
    assert fx.memberships.get(membership_id).active is False

    # 만료된 멤버십에는 수익이 지급되지 않지만 실패로 보지 않는다
    late = fx.memberships.credit_daily_income(membership_id, date(2026, 2, 2))
    assert late is None
