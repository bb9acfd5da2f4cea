from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict
from typing import Any, Callable, Optional

from confluent_kafka import Consumer, KafkaError, Producer

from .config import get_brokers, get_message_max_bytes, is_producer_idempotent
from .core import Event, MaxRetryExceededError, Topic, RetryDelays

logger = logging.getLogger(__name__)


class KafkaEventBus:
    """Kafka 기반 EventBus 구현.

    - 발행은 비동기(produce + poll(0))이며 전달 실패는 콜백에서 로그로만 남긴다.
    - 구독 핸들러가 실패하면 재시도 토픽(<base>.retry.N)으로, 한도를 넘으면 DLQ 로 보낸다.
    """

    def __init__(
        self,
        brokers: str,
        *,
        message_max_bytes: int | None = None,
        idempotent: bool = True,
    ) -> None:
        producer_conf: dict[str, Any] = {"bootstrap.servers": brokers}
        if idempotent:
            # 재전송으로 같은 원장 이벤트가 중복 기록되지 않게 한다
            producer_conf["enable.idempotence"] = True
            producer_conf["acks"] = "all"
        if message_max_bytes is not None:
            producer_conf["message.max.bytes"] = message_max_bytes
        self._producer = Producer(producer_conf)
        self._brokers = brokers

    def close(self) -> None:
        self._producer.flush()

    # 발행 -----------------------------------------------------------------
    def publish(self, topic: str, event: Event) -> None:
        payload = json.dumps(asdict(event), ensure_ascii=False).encode("utf-8")

        def _delivery_callback(err, msg) -> None:  # type: ignore[no-untyped-def]
            if err is not None:
                logger.error("failed to deliver message to %s: %s", msg.topic(), err)

        self._producer.produce(
            topic=topic,
            value=payload,
            key=(event.key or event.id).encode("utf-8"),
            callback=_delivery_callback,
        )
        self._producer.poll(0)

    # 구독 -----------------------------------------------------------------
    def subscribe(
        self,
        group_id: str,
        topic: Topic,
        handler: Callable[[Event], None],
        *,
        poll_timeout: float = 0.1,
        stop_flag: list[bool] | None = None,
    ) -> None:
        consumer = Consumer(
            {
                "bootstrap.servers": self._brokers,
                "group.id": group_id,
                "auto.offset.reset": "earliest",
                "enable.auto.commit": False,
            }
        )
        consumer.subscribe([topic.base, *topic.get_retry_topics()])

        try:
            logger.info(
                "Kafka consumer started. group_id=%s topic=%s", group_id, topic.base
            )
            while True:
                if stop_flag and stop_flag[0]:
                    break

                msg = consumer.poll(poll_timeout)
                if msg is None:
                    continue
                if msg.error():
                    if msg.error().code() == KafkaError._PARTITION_EOF:
                        continue
                    logger.error("consumer error: %s", msg.error())
                    continue

                try:
                    raw = json.loads(msg.value())
                except Exception as exc:  # noqa: BLE001
                    logger.error(
                        "invalid event payload on topic %s: %s", msg.topic(), exc
                    )
                    consumer.commit(message=msg, asynchronous=False)
                    continue

                evt = self._decode_event(raw)

                try:
                    handler(evt)
                except Exception as exc:  # noqa: BLE001
                    if not self._route_failure(topic, evt, exc):
                        continue  # 커밋하지 않음 -> 다시 처리 시도

                # 성공 또는 재시도/DLQ 발행 성공 시 오프셋 커밋
                try:
                    consumer.commit(message=msg, asynchronous=False)
                except Exception as exc:  # noqa: BLE001
                    logger.error("offset commit error: %s", exc)
        finally:
            consumer.close()

    # 내부 util -------------------------------------------------------------
    def _route_failure(self, topic: Topic, evt: Event, exc: Exception) -> bool:
        """실패한 이벤트를 재시도 토픽 또는 DLQ 로 보낸다. 발행에 성공하면 True."""

        evt.last_error = str(exc)
        next_retry = evt.retry + 1
        try:
            if next_retry > evt.max_retry:
                raise MaxRetryExceededError()
            next_topic = topic.get_retry_topic(next_retry)
        except MaxRetryExceededError:
            logger.error(
                "event %s exceeded max retry, sending to DLQ %s: %s",
                evt.id,
                topic.dlq(),
                exc,
            )
            try:
                self.publish(topic.dlq(), evt)
            except Exception as pub_exc:  # noqa: BLE001
                logger.error("failed to publish event %s to DLQ: %s", evt.id, pub_exc)
                return False
            return True

        evt.retry = next_retry
        logger.warning(
            "event %s failed, scheduling retry %d/%d to %s",
            evt.id,
            evt.retry,
            evt.max_retry,
            next_topic,
        )
        try:
            self.publish(next_topic, evt)
        except Exception as pub_exc:  # noqa: BLE001
            logger.error(
                "failed to publish retry event %s to %s: %s",
                evt.id,
                next_topic,
                pub_exc,
            )
            return False
        return True

    @staticmethod
    def _decode_event(raw: dict) -> Event:
        evt = Event(
            id=str(raw.get("id", "")),
            payload=raw.get("payload"),
            retry=int(raw.get("retry", 0)),
            max_retry=int(raw.get("max_retry", 0)),
            last_error=raw.get("last_error"),
            key=raw.get("key"),
        )
        if evt.max_retry <= 0 or evt.max_retry > len(RetryDelays):
            evt.max_retry = len(RetryDelays)
        return evt


_bus: Optional[KafkaEventBus] = None
_bus_lock = threading.Lock()


def get_kafka_event_bus() -> KafkaEventBus:
    """프로세스 전역 발행용 KafkaEventBus 싱글톤."""

    global _bus

    if _bus is not None:
        return _bus

    with _bus_lock:
        if _bus is None:
            _bus = KafkaEventBus(
                get_brokers(),
                message_max_bytes=get_message_max_bytes(),
                idempotent=is_producer_idempotent(),
            )
        return _bus


def close_kafka_event_bus() -> None:
    global _bus

    with _bus_lock:
        if _bus is not None:
            _bus.close()
        _bus = None
