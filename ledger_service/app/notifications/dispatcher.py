from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from common.events.ledger import LedgerEventType

from .connection_registry import ConnectionRegistry


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Notification:
    account_id: str
    type: str
    title: str
    message: str
    priority: str = "medium"
    data: dict[str, Any] = field(default_factory=dict)


def build_notification(payload: dict[str, Any]) -> Notification | None:
    """원장 이벤트 페이로드를 사용자 알림으로 바꾼다. 알림 대상이 아닌 이벤트는 None."""

    event_type = str(payload.get("type", ""))
    account_id = str(payload.get("account_id") or "")
    if not account_id:
        return None

    if event_type in (LedgerEventType.PRODUCT_PURCHASED, LedgerEventType.MEMBERSHIP_RENEWED):
        renewed = event_type == LedgerEventType.MEMBERSHIP_RENEWED
        return Notification(
            account_id=account_id,
            type="product",
            title="Membership renewed" if renewed else "Product purchased",
            message=(
                f"{payload.get('product_name')} is active until {payload.get('expires_at')}"
            ),
            data={"membership_id": payload.get("membership_id"), "amount": payload.get("amount")},
        )
    if event_type == LedgerEventType.MEMBERSHIP_EXPIRED:
        return Notification(
            account_id=account_id,
            type="product",
            title="Membership ended",
            message=f"{payload.get('product_name')} is no longer active ({payload.get('reason')})",
            data={"membership_id": payload.get("membership_id")},
        )
    if event_type == LedgerEventType.INCOME_CREDITED:
        return Notification(
            account_id=account_id,
            type="income",
            title="Daily income credited",
            message=f"You received {payload.get('amount')} NSL",
            priority="low",
            data={"membership_id": payload.get("membership_id")},
        )
    if event_type == LedgerEventType.REFERRAL_BONUS_PAID:
        return Notification(
            account_id=account_id,
            type="referral",
            title="Referral bonus",
            message=(
                f"You earned {payload.get('amount')} NSL from "
                f"{payload.get('referred_username') or 'your referral'}"
            ),
            priority="high",
            data={"referral_id": payload.get("referral_id")},
        )
    if event_type in (
        LedgerEventType.TRANSACTION_APPROVED,
        LedgerEventType.TRANSACTION_REJECTED,
    ):
        approved = event_type == LedgerEventType.TRANSACTION_APPROVED
        tx_type = payload.get("transaction_type")
        message = f"Your {tx_type} of {payload.get('amount')} {payload.get('currency')} was "
        message += "approved" if approved else f"rejected: {payload.get('reason')}"
        return Notification(
            account_id=account_id,
            type="transaction",
            title=f"{str(tx_type).capitalize()} {'approved' if approved else 'rejected'}",
            message=message,
            priority="high",
            data={"transaction_id": payload.get("transaction_id")},
        )
    return None


class NotificationDispatcher:
    """알림을 해당 계정의 열린 연결로 보낸다. 전송에 실패한 연결은 레지스트리에서 뺀다."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def dispatch(self, notification: Notification) -> int:
        message = asdict(notification)
        delivered = 0
        for connection_id, sender in self._registry.senders_for(notification.account_id):
            try:
                sender(message)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "failed to deliver notification connection_id=%s",
                    connection_id,
                    extra={"account_id": notification.account_id},
                )
                self._registry.unregister(notification.account_id, connection_id)
                continue
            delivered += 1
        return delivered
