"""도메인 예외 -> HTTP 응답 매핑."""

from __future__ import annotations

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ..exceptions import (
    AlreadyOwned,
    CurrencyNotFound,
    InsufficientFunds,
    LedgerServiceError,
    NotFound,
    NotPending,
    ProductInactive,
    RateSourceUnavailable,
    ValidationFailed,
)


logger = logging.getLogger(__name__)


STATUS_BY_ERROR: dict[type[LedgerServiceError], int] = {
    InsufficientFunds: status.HTTP_402_PAYMENT_REQUIRED,
    AlreadyOwned: status.HTTP_409_CONFLICT,
    NotPending: status.HTTP_409_CONFLICT,
    ProductInactive: status.HTTP_409_CONFLICT,
    NotFound: status.HTTP_404_NOT_FOUND,
    CurrencyNotFound: status.HTTP_404_NOT_FOUND,
    ValidationFailed: status.HTTP_400_BAD_REQUEST,
    RateSourceUnavailable: 422,
}


def status_for(exc: LedgerServiceError) -> int:
    for error_type in type(exc).__mro__:
        code = STATUS_BY_ERROR.get(error_type)  # type: ignore[arg-type]
        if code is not None:
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def ledger_error_handler(request: Request, exc: LedgerServiceError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info(
        "request rejected code=%s status=%d path=%s",
        exc.code,
        status_code,
        request.url.path,
    )
    return JSONResponse(status_code=status_code, content={"detail": exc.to_detail()})
