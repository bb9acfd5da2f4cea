"""실시간 연결 레지스트리.

account_id 별로 현재 열린 연결(전송 함수)을 보관한다. 연결 시 register,
해제 시 unregister 를 호출하는 것이 유일한 변경 경로다.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any


logger = logging.getLogger(__name__)

Sender = Callable[[dict[str, Any]], None]


class ConnectionRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connections: dict[str, dict[str, Sender]] = {}

    def register(self, account_id: str, connection_id: str, sender: Sender) -> None:
        with self._lock:
            self._connections.setdefault(account_id, {})[connection_id] = sender
        logger.info("connection registered connection_id=%s", connection_id, extra={"account_id": account_id})

    def unregister(self, account_id: str, connection_id: str) -> bool:
        with self._lock:
            conns = self._connections.get(account_id)
            if not conns or connection_id not in conns:
                return False
            del conns[connection_id]
            if not conns:
                del self._connections[account_id]
        logger.info("connection unregistered connection_id=%s", connection_id, extra={"account_id": account_id})
        return True

    def senders_for(self, account_id: str) -> list[tuple[str, Sender]]:
        with self._lock:
            return list(self._connections.get(account_id, {}).items())

    def is_online(self, account_id: str) -> bool:
        with self._lock:
            return bool(self._connections.get(account_id))

    def online_count(self) -> int:
        with self._lock:
            return len(self._connections)
