from __future__ import annotations

import time
from dataclasses import asdict, is_dataclass
from decimal import Decimal
from typing import Any, Mapping

from .core import Event, RetryDelays


def new_json_event(
    payload: Mapping[str, Any],
    *,
    max_retry: int | None = None,
    event_id: str | None = None,
    key: str | None = None,
) -> Event:
    """JSON 페이로드를 Event 로 감싼다.

    - id가 비어 있으면 고해상도 타임스탬프 기반 문자열을 생성한다.
    - max_retry가 1~len(RetryDelays) 범위를 벗어나면 기본값(len(RetryDelays))을 사용한다.
    """
    if max_retry is None or max_retry <= 0 or max_retry > len(RetryDelays):
        max_retry = len(RetryDelays)

    if not event_id:
        event_id = str(time.time_ns())

    return Event(
        id=event_id,
        payload=_jsonable(dict(payload)),
        retry=0,
        max_retry=max_retry,
        key=key,
    )


def wrap_domain_event(domain_event: Any) -> Event:
    """dataclass 도메인 이벤트를 Event 로 감싼다.

    account_id (환율 이벤트는 currency_code) 를 파티션 키로 쓰고, 둘 다 없으면 이벤트 id 를 쓴다.
    """

    if not is_dataclass(domain_event):
        raise TypeError(f"domain event must be a dataclass, got {type(domain_event)!r}")
    payload = asdict(domain_event)
    key = payload.get("account_id") or payload.get("currency_code")
    return new_json_event(
        payload,
        event_id=str(payload.get("id") or ""),
        key=str(key) if key else None,
    )


def _jsonable(value: Any) -> Any:
    # 금액은 정밀도 손실 없이 문자열로 보낸다.
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value
