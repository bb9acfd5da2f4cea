from __future__ import annotations

from decimal import Decimal
from typing import Any

from common.eventbus.core import Event
from common.eventbus.topics import TOPIC_LEDGER
from common.events.ledger import LedgerEventType
from ledger_service.app.event_handlers.notification_handler import _handle_ledger_event
from ledger_service.app.models.money import Currency, Money
from ledger_service.app.models.transaction import TransactionType
from ledger_service.app.notifications.connection_registry import ConnectionRegistry
from ledger_service.app.notifications.dispatcher import (
    NotificationDispatcher,
    build_notification,
)
from ledger_service.tests.fakes import build_ledger_fixture


class RecordingSender:
    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    def __call__(self, message: dict[str, Any]) -> None:
        self.messages.append(message)


def _failing_sender(message: dict[str, Any]) -> None:
    raise ConnectionError("socket closed")


def test_registry_register_and_unregister() -> None:
    registry = ConnectionRegistry()
    sender = RecordingSender()

    registry.register("acc-1", "conn-1", sender)
    registry.register("acc-1", "conn-2", sender)

    assert registry.is_online("acc-1") is True
    assert registry.online_count() == 1
    assert registry.unregister("acc-1", "conn-1") is True
    assert registry.unregister("acc-1", "conn-1") is False
    assert registry.unregister("acc-1", "conn-2") is True
    assert registry.is_online("acc-1") is False
    assert registry.senders_for("acc-1") == []


def test_dispatch_drops_failing_connections() -> None:
    registry = ConnectionRegistry()
    good = RecordingSender()
    registry.register("acc-1", "good", good)
    registry.register("acc-1", "broken", _failing_sender)
    dispatcher = NotificationDispatcher(registry)
    notification = build_notification(
        {
            "type": LedgerEventType.INCOME_CREDITED,
            "account_id": "acc-1",
            "membership_id": "m-1",
            "amount": "450",
        }
    )
    assert notification is not None

    delivered = dispatcher.dispatch(notification)

    assert delivered == 1
    assert good.messages[0]["type"] == "income"
    assert good.messages[0]["message"] == "You received 450 NSL"
    assert [cid for cid, _ in registry.senders_for("acc-1")] == ["good"]


def test_build_notification_ignores_unknown_or_anonymous_events() -> None:
    assert build_notification({"type": "something.else", "account_id": "acc-1"}) is None
    assert build_notification({"type": LedgerEventType.INCOME_CREDITED}) is None


def test_ledger_events_reach_online_users() -> None:
    fx = build_ledger_fixture()
    product = fx.add_product("VIP1", "300", "10")
    referrer = fx.open_account("bob")
    buyer = fx.open_account("alice", primary="500", referred_by=referrer.referral_code)
    tx = fx.transactions.create(
        str(buyer.id), TransactionType.WITHDRAWAL, Money(currency=Currency.NSL, amount=Decimal("50"))
    )
    fx.memberships.purchase(str(buyer.id), str(product.id))
    fx.transactions.reject(str(tx.id), "admin-1", "wrong address")

    registry = ConnectionRegistry()
    buyer_inbox = RecordingSender()
    referrer_inbox = RecordingSender()
    registry.register(str(buyer.id), "c-1", buyer_inbox)
    registry.register(str(referrer.id), "c-2", referrer_inbox)
    dispatcher = NotificationDispatcher(registry)

    fx.bus.subscribe(
        "test",
        TOPIC_LEDGER,
        lambda evt: _handle_ledger_event(evt, dispatcher=dispatcher),
    )

    assert [m["title"] for m in buyer_inbox.messages] == [
        "Product purchased",
        "Withdrawal rejected",
    ]
    assert "wrong address" in buyer_inbox.messages[1]["message"]
    assert [m["type"] for m in referrer_inbox.messages] == ["referral"]
    assert "alice" in referrer_inbox.messages[0]["message"]


def test_handler_ignores_non_dict_payload() -> None:
    registry = ConnectionRegistry()
    inbox = RecordingSender()
    registry.register("acc-1", "c-1", inbox)

    _handle_ledger_event(Event(id="e-1", payload="garbage"), dispatcher=NotificationDispatcher(registry))

    assert inbox.messages == []


def test_handler_drops_undecodable_ledger_event() -> None:
    registry = ConnectionRegistry()
    inbox = RecordingSender()
    registry.register("acc-1", "c-1", inbox)

    # membership_id / amount 가 빠진 수익 이벤트
    evt = Event(
        id="e-2",
        payload={"type": LedgerEventType.INCOME_CREDITED, "account_id": "acc-1", "id": "e-2"},
    )
    _handle_ledger_event(evt, dispatcher=NotificationDispatcher(registry))

    assert inbox.messages == []


def test_published_ledger_events_are_keyed_by_account() -> None:
    fx = build_ledger_fixture()
    product = fx.add_product("VIP1", "300", "10")
    buyer = fx.open_account("alice", primary="500")

    fx.memberships.purchase(str(buyer.id), str(product.id))

    ledger_events = [e for topic, e in fx.bus.published if topic == TOPIC_LEDGER.base]
    assert ledger_events
    assert all(e.key == str(buyer.id) for e in ledger_events)
