import json
import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from urllib.parse import parse_qs

from common.logger import actor_id_var, request_id_var


REQUEST_ID_HEADER = "X-Request-Id"
SPAN_ID_HEADER = "X-Span-Id"
ACTOR_ID_HEADER = "X-Actor-Id"

# 노이즈를 줄이기 위해 로그에서 제외할 엔드포인트 경로 목록
IGNORED_LOG_PATHS: set[str] = {"/health"}

# 로그 바디에서 가리는 필드 (출금 주소, 입금 증빙 등)
REDACTED_BODY_KEYS: frozenset[str] = frozenset(
    {"withdrawal_address", "address", "proof_url", "payment_proof", "password", "token"}
)
MAX_LOGGED_BODY_LENGTH = 1024


def _redact(value: object) -> object:
    if isinstance(value, dict):
        return {
            key: "***" if key in REDACTED_BODY_KEYS else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


def redact_body(text: str) -> str:
    """JSON 바디면 민감 필드를 가리고, 아니면 그대로 돌려준다."""

    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    return json.dumps(_redact(parsed), ensure_ascii=False)


class RequestTraceMiddleware(BaseHTTPMiddleware):
    """공통 Request/Span ID 로그 미들웨어.

    - X-Request-Id, X-Span-Id 를 읽고 없으면 request_id 만 새로 생성한다.
    - 게이트웨이가 넘긴 X-Actor-Id 와 request_id 를 contextvar 에 넣어 서비스 로그에도 붙게 한다.
    - 변경 요청의 바디는 민감 필드를 가린 뒤 잘라서 로그에 남긴다.
    """

    def __init__(self, app, logger: logging.Logger | None = None) -> None:  # type: ignore[override]
        super().__init__(app)
        self._logger = logger or logging.getLogger("request_trace")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        span_id = request.headers.get(SPAN_ID_HEADER) or "0"
        actor_id = request.headers.get(ACTOR_ID_HEADER)

        request.state.request_id = request_id
        request.state.span_id = span_id
        request_token = request_id_var.set(request_id)
        actor_token = actor_id_var.set(actor_id)

        try:
            request.state.request_body = await self._read_body(request)
            should_log = request.url.path not in IGNORED_LOG_PATHS
            start = time.monotonic()

            try:
                response = await call_next(request)
            except Exception:
                if should_log:
                    self._logger.exception(
                        "request failed",
                        extra=self._build_log_extra(
                            request, span_id, duration=time.monotonic() - start
                        ),
                    )
                raise

            response.headers.setdefault(REQUEST_ID_HEADER, request_id)
            response.headers.setdefault(SPAN_ID_HEADER, span_id)

            if should_log:
                self._logger.info(
                    "completed request",
                    extra=self._build_log_extra(
                        request,
                        span_id,
                        status=response.status_code,
                        duration=time.monotonic() - start,
                    ),
                )
            return response
        finally:
            request_id_var.reset(request_token)
            actor_id_var.reset(actor_token)

    async def _read_body(self, request: Request) -> str | None:
        if request.method not in {"POST", "PUT", "PATCH", "DELETE"}:
            return None
        try:
            body_bytes = await request.body()
        except Exception:  # noqa: BLE001
            return None
        if not body_bytes:
            return None
        text = redact_body(body_bytes.decode("utf-8", errors="replace"))
        return text[:MAX_LOGGED_BODY_LENGTH]

    def _build_log_extra(
        self,
        request: Request,
        span_id: str,
        status: int | None = None,
        duration: float | None = None,
    ) -> dict[str, object]:
        extra: dict[str, object] = {
            "span_id": span_id,
            "method": request.method,
            "path": request.url.path,
        }

        query = request.url.query
        if query:
            parsed = parse_qs(query, keep_blank_values=True)
            if parsed:
                extra["query_params"] = {
                    key: values[0] if len(values) == 1 else values
                    for key, values in parsed.items()
                }

        body = getattr(request.state, "request_body", None)
        if body:
            extra["body"] = body
        if status is not None:
            extra["status"] = status
        if duration is not None:
            extra["duration"] = f"{duration * 1000:.3f}ms"
        return extra
