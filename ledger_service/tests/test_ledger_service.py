from __future__ import annotations

from decimal import Decimal

import pytest

from ledger_service.app.exceptions import InsufficientFunds, NotFound, ValidationFailed
from ledger_service.app.models.money import Currency
from ledger_service.app.services.ledger_service import validate_amount
from ledger_service.tests.fakes import build_ledger_fixture


def test_credit_applies_once_per_ref() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="100")

    first = fx.ledger.credit(str(account.id), Currency.NSL, Decimal("50"), "test", ref="r-1")
    second = fx.ledger.credit(str(account.id), Currency.NSL, Decimal("50"), "test", ref="r-1")

    assert first.applied is True
    assert first.balance == Decimal("150")
    assert second.applied is False
    assert second.balance == Decimal("150")
    assert fx.balance(str(account.id)) == Decimal("150")


def test_credit_secondary_currency_only_touches_secondary_balance() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="10", secondary="1")

    fx.ledger.credit(str(account.id), Currency.USDT, Decimal("2.5"), "test", ref="r-1")

    balances = fx.ledger.get_balance(str(account.id))
    assert balances.balance_primary == Decimal("10")
    assert balances.balance_secondary == Decimal("3.5")


def test_debit_insufficient_funds_leaves_balance_untouched() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="30")

    with pytest.raises(InsufficientFunds) as exc_info:
        fx.ledger.debit(str(account.id), Currency.NSL, Decimal("30.00000001"), "test", ref="d-1")

    assert exc_info.value.balance == Decimal("30")
    assert exc_info.value.required == Decimal("30.00000001")
    assert fx.balance(str(account.id)) == Decimal("30")
    assert fx.ledger.has_applied(str(account.id), "d-1") is False


def test_debit_exact_balance_reaches_zero() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="30")

    result = fx.ledger.debit(str(account.id), Currency.NSL, Decimal("30"), "test", ref="d-1")

    assert result.balance == Decimal("0")


def test_debit_replay_does_not_double_spend() -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="100")

    fx.ledger.debit(str(account.id), Currency.NSL, Decimal("60"), "test", ref="d-1")
    replay = fx.ledger.debit(str(account.id), Currency.NSL, Decimal("60"), "test", ref="d-1")

    # 잔액이 부족해도 이미 반영된 ref 면 InsufficientFunds 가 아니라 applied=False
    assert replay.applied is False
    assert replay.balance == Decimal("40")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), Decimal("NaN")])
def test_non_positive_amounts_are_rejected(amount: Decimal) -> None:
    fx = build_ledger_fixture()
    account = fx.open_account("alice", primary="100")

    with pytest.raises(ValidationFailed):
        fx.ledger.credit(str(account.id), Currency.NSL, amount, "test", ref="r-1")
    with pytest.raises(ValidationFailed):
        fx.ledger.debit(str(account.id), Currency.NSL, amount, "test", ref="d-1")


def test_amounts_are_quantized_to_eight_places() -> None:
    assert validate_amount(Decimal("1.123456789")) == Decimal("1.12345679")


def test_unknown_account_raises_not_found() -> None:
    fx = build_ledger_fixture()

    with pytest.raises(NotFound):
        fx.ledger.credit("missing", Currency.NSL, Decimal("1"), "test", ref="r-1")
    with pytest.raises(NotFound):
        fx.ledger.debit("missing", Currency.NSL, Decimal("1"), "test", ref="d-1")
    with pytest.raises(NotFound):
        fx.ledger.get_balance("missing")


def test_ref_window_keeps_only_recent_refs() -> None:
    fx = build_ledger_fixture(ref_window=2)
    account = fx.open_account("alice")
    account_id = str(account.id)

    for ref in ("r-1", "r-2", "r-3"):
        fx.ledger.credit(account_id, Currency.NSL, Decimal("1"), "test", ref=ref)

    assert fx.ledger.has_applied(account_id, "r-1") is False
    assert fx.ledger.has_applied(account_id, "r-2") is True
    assert fx.ledger.has_applied(account_id, "r-3") is True
