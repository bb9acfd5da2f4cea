import json
import logging
import os
import sys
from contextvars import ContextVar


# 요청 단위 추적 정보. RequestTraceMiddleware 가 요청마다 설정한다.
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
actor_id_var: ContextVar[str | None] = ContextVar("actor_id", default=None)


def setup_logger(name: str = "nsl-ledger", level: str | None = None) -> logging.Logger:
    """애플리케이션 전역 로거를 설정하고 반환한다.

    Args:
        name: 로거 이름 (기본값: nsl-ledger)
        level: 로그 레벨 (기본값: None -> 환경변수 LOG_LEVEL 또는 INFO 사용)

    Returns:
        설정된 logging.Logger 인스턴스
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")

    # 문자열 레벨을 logging 상수(int)로 변환
    log_level = getattr(logging, level.upper(), logging.INFO)

    service_name = os.getenv("SERVICE_NAME", name)
    logger = logging.getLogger(service_name)
    logger.setLevel(log_level)

    # 이미 핸들러가 있다면 제거 (중복 출력 방지)
    if logger.handlers:
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestContextFilter())

    logger.addHandler(handler)

    # 루트 로거에도 동일한 핸들러를 붙여 서비스 모듈(__name__ 로거) 로그도 JSON 으로 남긴다.
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.addHandler(handler)
        root_logger.setLevel(log_level)

    return logger


# extra 로 넘어오면 JSON 필드로 그대로 옮기는 키 목록
EXTRA_KEYS: tuple[str, ...] = (
    # HTTP 요청 추적
    "request_id",
    "span_id",
    "method",
    "path",
    "query_params",
    "status",
    "body",
    "duration",
    "actor_id",
    # 원장 도메인 식별자
    "account_id",
    "transaction_id",
    "membership_id",
    "referral_id",
    "currency",
    "amount",
    "operation",
)


class JsonFormatter(logging.Formatter):
    """구조화 로그 수집을 위한 간단한 JSON 포맷터.

    - datetime, level, logger, message 필드를 기본으로 포함한다.
    - EXTRA_KEYS 에 해당하는 extra 값은 문자열화해서 포함한다 (Decimal 등).
    - 예외 정보가 있으면 exc_info 필드에 문자열로 추가한다.
    """

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_record: dict[str, object] = {
            "datetime": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in EXTRA_KEYS:
            if hasattr(record, key):
                log_record[key] = getattr(record, key)

        service_name = getattr(record, "service_name", None) or os.getenv(
            "SERVICE_NAME"
        )
        if service_name:
            log_record["service_name"] = service_name

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_record, ensure_ascii=False, default=str)


class RequestContextFilter(logging.Filter):
    """현재 요청의 request_id / actor_id 를 레코드에 채운다.

    서비스 레이어 로그에도 요청 추적 정보가 붙도록 extra 로 넘어오지 않은 경우에만 채운다.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            request_id = request_id_var.get()
            if request_id:
                record.request_id = request_id
        if not hasattr(record, "actor_id"):
            actor_id = actor_id_var.get()
            if actor_id:
                record.actor_id = actor_id
        return True
