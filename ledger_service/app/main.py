from __future__ import annotations

import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI

from common.eventbus.config import is_event_bus_enabled
from common.eventbus.kafka import close_kafka_event_bus
from common.logger import setup_logger
from common.middleware.request_trace import RequestTraceMiddleware
from common.mongo.client import close_client

from .api.errors import ledger_error_handler
from .api.health import router as health_router
from .api.v1 import api_router
from .config import get_port
from .event_handlers import run_notification_consumer
from .exceptions import LedgerServiceError
from .notifications.connection_registry import ConnectionRegistry


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - framework hook
    """애플리케이션 생명주기 동안 백그라운드 작업을 관리한다.

    - 원장 이벤트를 소비해 접속 중인 사용자에게 알림을 보내는 Kafka 컨슈머 스레드
    - 종료 시 Kafka producer flush 와 Mongo 클라이언트 정리
    """

    registry = ConnectionRegistry()
    app.state.connection_registry = registry

    stop_flag = [False]
    consumer_thread: threading.Thread | None = None
    if is_event_bus_enabled():
        consumer_thread = threading.Thread(
            target=run_notification_consumer,
            args=(stop_flag, registry),
            name="notification-consumer",
            daemon=True,
        )
        consumer_thread.start()

    try:
        yield
    finally:
        stop_flag[0] = True
        if consumer_thread is not None:
            consumer_thread.join(timeout=10.0)
        close_kafka_event_bus()
        close_client()


def create_app() -> FastAPI:
    setup_logger()
    app = FastAPI(
        title="NSL Ledger Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 공통 Request/Span ID 로그 미들웨어
    app.add_middleware(RequestTraceMiddleware)
    app.add_exception_handler(LedgerServiceError, ledger_error_handler)  # type: ignore[arg-type]

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def main() -> None:
    import uvicorn

    uvicorn.run(
        "ledger_service.app.main:app",
        host="0.0.0.0",
        port=get_port(),
        reload=False,
        access_log=False,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
