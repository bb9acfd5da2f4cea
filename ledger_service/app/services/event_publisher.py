"""원장 도메인 이벤트 발행기.

발행은 fire-and-forget 이다. 이미 커밋된 잔액 변경은 이벤트 발행 실패로 되돌리지 않으며,
실패는 로그로만 남긴다. bus 가 None 이면(EVENT_BUS_ENABLED=false) 로그만 남긴다.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from common.eventbus.core import EventBus
from common.eventbus.helpers import wrap_domain_event
from common.eventbus.topics import TOPIC_LEDGER, TOPIC_RATES
from common.events.ledger import (
    IncomeCreditedEvent,
    LedgerEventType,
    MembershipExpiredEvent,
    ProductPurchasedEvent,
    RateEventType,
    RateSourceChangedEvent,
    ReferralBonusPaidEvent,
    TransactionStatusEvent,
)
from common.types.datetime import serialize_datetime_to_utc_iso8601, utc_now

from ..models.account import MembershipLevel
from ..models.exchange_rate import ExchangeRate
from ..models.membership import Membership
from ..models.referral import Referral
from ..models.transaction import Transaction, TransactionStatus


logger = logging.getLogger(__name__)

EVENT_SOURCE = "ledger-service"
EVENT_VERSION = "1.0"


def _envelope(event_type: str) -> dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "type": event_type,
        "timestamp": serialize_datetime_to_utc_iso8601(utc_now()),
        "source": EVENT_SOURCE,
        "version": EVENT_VERSION,
    }


class LedgerEventPublisher:
    def __init__(self, bus: EventBus | None) -> None:
        self._bus = bus

    def product_purchased(self, membership: Membership, *, renewal: bool = False) -> None:
        event_type = (
            LedgerEventType.MEMBERSHIP_RENEWED if renewal else LedgerEventType.PRODUCT_PURCHASED
        )
        self._publish(
            TOPIC_LEDGER.base,
            ProductPurchasedEvent(
                **_envelope(event_type),
                account_id=membership.account_id,
                membership_id=str(membership.id),
                product_name=str(membership.product_name),
                amount=str(membership.price_paid),
                expires_at=serialize_datetime_to_utc_iso8601(membership.expires_at),
            ),
        )

    def membership_expired(self, membership: Membership, level: MembershipLevel) -> None:
        self._publish(
            TOPIC_LEDGER.base,
            MembershipExpiredEvent(
                **_envelope(LedgerEventType.MEMBERSHIP_EXPIRED),
                account_id=membership.account_id,
                membership_id=str(membership.id),
                product_name=str(membership.product_name),
                reason=str(membership.deactivation_reason or "expired"),
                membership_level=str(level),
            ),
        )

    def income_credited(self, tx: Transaction, income_date: str) -> None:
        self._publish(
            TOPIC_LEDGER.base,
            IncomeCreditedEvent(
                **_envelope(LedgerEventType.INCOME_CREDITED),
                account_id=tx.account_id,
                membership_id=str(tx.membership_id),
                amount=str(tx.amount),
                income_date=income_date,
            ),
        )

    def referral_bonus_paid(self, referral: Referral, referred_username: str) -> None:
        self._publish(
            TOPIC_LEDGER.base,
            ReferralBonusPaidEvent(
                **_envelope(LedgerEventType.REFERRAL_BONUS_PAID),
                account_id=referral.referrer_id,
                referral_id=str(referral.id),
                referred_id=referral.referred_id,
                referred_username=referred_username,
                amount=str(referral.bonus_amount),
            ),
        )

    def transaction_status(self, tx: Transaction) -> None:
        event_type = (
            LedgerEventType.TRANSACTION_APPROVED
            if tx.status == TransactionStatus.APPROVED
            else LedgerEventType.TRANSACTION_REJECTED
        )
        self._publish(
            TOPIC_LEDGER.base,
            TransactionStatusEvent(
                **_envelope(event_type),
                account_id=tx.account_id,
                transaction_id=str(tx.id),
                transaction_type=str(tx.type),
                currency=str(tx.currency),
                amount=str(tx.amount),
                reason=tx.rejection_reason,
            ),
        )

    def rate_source_changed(
        self, rate: ExchangeRate, *, changed_by: str | None, reason: str | None
    ) -> None:
        self._publish(
            TOPIC_RATES.base,
            RateSourceChangedEvent(
                **_envelope(RateEventType.RATE_SOURCE_CHANGED),
                currency_code=rate.currency_code,
                active_rate_source=str(rate.active_rate_source),
                rate_to_usd=str(rate.rate_to_usd),
                changed_by=changed_by,
                reason=reason,
            ),
        )

    def _publish(self, topic: str, domain_event: Any) -> None:
        if self._bus is None:
            logger.info(
                "event bus disabled, skipping publish type=%s id=%s",
                domain_event.type,
                domain_event.id,
            )
            return
        try:
            self._bus.publish(topic, wrap_domain_event(domain_event))
        except Exception:  # noqa: BLE001
            logger.exception(
                "failed to publish event type=%s id=%s topic=%s",
                domain_event.type,
                domain_event.id,
                topic,
            )
