"""원장 이벤트 -> 사용자 알림 핸들러.

Kafka 에서 원장 이벤트를 소비해 연결 레지스트리에 등록된 사용자 연결로 알림을 보낸다.
오프라인 사용자에게는 보내지 않는다 (알림 저장은 이 서비스의 범위가 아니다).
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from common.eventbus.config import get_brokers, get_group_id
from common.eventbus.core import Event
from common.eventbus.kafka import KafkaEventBus
from common.eventbus.topics import TOPIC_LEDGER
from common.events.ledger import LEDGER_EVENT_CLASSES

from ..notifications.connection_registry import ConnectionRegistry
from ..notifications.dispatcher import NotificationDispatcher, build_notification


logger = logging.getLogger(__name__)


def _handle_ledger_event(evt: Event, *, dispatcher: NotificationDispatcher) -> None:
    payload = evt.payload
    if not isinstance(payload, dict):
        logger.error("unexpected payload type for event %s: %r", evt.id, type(payload))
        return

    event_type = str(payload.get("type", ""))
    event_cls = LEDGER_EVENT_CLASSES.get(event_type)
    if event_cls is None:
        logger.debug("ignoring event type=%s id=%s", event_type, evt.id)
        return
    try:
        event = event_cls.from_dict(payload)
    except (KeyError, TypeError, ValueError):
        logger.exception("failed to decode %s payload=%r", event_cls.__name__, payload)
        return

    notification = build_notification(asdict(event))
    if notification is None:
        logger.debug("no notification for event type=%s id=%s", event_type, evt.id)
        return

    delivered = dispatcher.dispatch(notification)
    logger.info(
        "notification dispatched type=%s delivered=%d",
        event_type,
        delivered,
        extra={"account_id": notification.account_id},
    )


def run_notification_consumer(stop_flag: list[bool], registry: ConnectionRegistry) -> None:
    """원장 이벤트를 소비하는 구독 루프를 실행한다."""
    logger.info("notification-consumer starting up")

    brokers = get_brokers()
    group_id = get_group_id() + "-notification"

    bus = KafkaEventBus(brokers)
    dispatcher = NotificationDispatcher(registry)

    try:
        logger.info("subscribing to topic=%s group_id=%s", TOPIC_LEDGER.base, group_id)
        bus.subscribe(
            group_id=group_id,
            topic=TOPIC_LEDGER,
            handler=lambda evt: _handle_ledger_event(evt, dispatcher=dispatcher),
            stop_flag=stop_flag,
        )
    finally:
        bus.close()
        logger.info("notification-consumer stopped")
