from __future__ import annotations

import os


MONGO_URI_ENV = "MONGO_URI"
MONGO_DB_NAME_ENV = "MONGO_DB_NAME"
MONGO_APP_NAME_ENV = "SERVICE_NAME"
MONGO_WRITE_CONCERN_ENV = "MONGO_WRITE_CONCERN"
MONGO_SERVER_SELECTION_TIMEOUT_ENV = "MONGO_SERVER_SELECTION_TIMEOUT_MS"


def get_mongo_uri() -> str:
    """MongoDB 연결에 사용할 URI를 반환한다.

    환경 변수에서만 읽고, 설정되지 않은 경우에는 애플리케이션이 즉시 실패하도록
    RuntimeError를 발생시킨다.
    """

    value = os.getenv(MONGO_URI_ENV)
    if not value:
        raise RuntimeError(
            f"{MONGO_URI_ENV} environment variable is required for MongoDB",
        )
    return value


def get_mongo_db_name() -> str | None:
    """MongoDB에서 사용할 기본 데이터베이스 이름을 반환한다.

    - MONGO_DB_NAME 이 설정되어 있으면 해당 값을 사용한다.
    - 설정되어 있지 않으면 None 을 반환하고, 클라이언트는 URI의 기본 DB를 사용한다.
    """

    value = os.getenv(MONGO_DB_NAME_ENV, "").strip()
    return value or None


def get_mongo_app_name() -> str:
    """서버 로그/커넥션 목록에서 식별할 수 있도록 appname 을 넘긴다."""

    return os.getenv(MONGO_APP_NAME_ENV, "").strip() or "nsl-ledger"


def get_mongo_write_concern() -> str | int:
    """잔액 변경 쓰기에 사용할 write concern. 기본값은 majority.

    숫자 문자열이면 노드 수(w=1 등)로, 그 외에는 태그 이름 그대로 넘긴다.
    """

    raw = os.getenv(MONGO_WRITE_CONCERN_ENV, "").strip() or "majority"
    return int(raw) if raw.isdigit() else raw


def get_mongo_server_selection_timeout_ms() -> int:
    raw = os.getenv(MONGO_SERVER_SELECTION_TIMEOUT_ENV, "").strip()
    if not raw:
        return 5000
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(
            f"{MONGO_SERVER_SELECTION_TIMEOUT_ENV} must be an integer, got: {raw!r}"
        ) from exc
    if value <= 0:
        raise RuntimeError(f"{MONGO_SERVER_SELECTION_TIMEOUT_ENV} must be positive, got: {value}")
    return value
