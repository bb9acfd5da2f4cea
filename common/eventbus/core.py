from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol


# 재시도 토픽 순서별 대기 시간(초). 길이가 곧 최대 재시도 횟수다.
RetryDelays: list[float] = [
    30.0,
    120.0,
    600.0,
    1800.0,
    3600.0,
]


class MaxRetryExceededError(Exception):
    """최대 재시도 횟수를 초과한 경우 사용되는 예외."""


@dataclass(slots=True)
class Event:
    """Kafka 메시지의 메타데이터와 페이로드를 표현하는 이벤트.

    payload는 직렬화 직전/직후 형태(예: dict)를 저장하는 용도로 사용하고,
    실제 Kafka I/O 레이어에서 JSON 인코딩/디코딩을 담당한다.
    key 는 파티션 키다. 같은 계정 이벤트가 순서대로 소비되도록 account_id 를 넣는다.
    """

    id: str
    payload: Any
    retry: int = 0
    max_retry: int = 0
    last_error: str | None = None
    key: str | None = None

    def __post_init__(self) -> None:
        if self.max_retry <= 0 or self.max_retry > len(RetryDelays):
            self.max_retry = len(RetryDelays)


@dataclass(frozen=True, slots=True)
class Topic:
    base: str

    def dlq(self) -> str:
        return f"{self.base}.dlq"

    def get_retry_topics(self) -> list[str]:
        return [
            f"{self.base}.retry.{index}" for index in range(1, len(RetryDelays) + 1)
        ]

    def get_retry_topic(self, retry_count: int) -> str:
        if retry_count <= 0 or retry_count > len(RetryDelays):
            raise MaxRetryExceededError()
        return f"{self.base}.retry.{retry_count}"


class EventBus(Protocol):
    """발행/구독 계약. 서비스 레이어는 Kafka 구현체 대신 이 인터페이스에 의존한다."""

    def publish(self, topic: str, event: Event) -> None:  # pragma: no cover - Protocol
        ...

    def subscribe(
        self,
        group_id: str,
        topic: Topic,
        handler: Callable[[Event], None],
        *,
        poll_timeout: float = 0.1,
        stop_flag: list[bool] | None = None,
    ) -> None:  # pragma: no cover - Protocol
        ...

    def close(self) -> None:  # pragma: no cover - Protocol
        ...
