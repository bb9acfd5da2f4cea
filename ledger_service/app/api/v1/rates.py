from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from ...dependencies import get_actor_id, get_rate_feed_client, get_rate_service
from ...services.rate_feed_client import RateFeedClient
from ...services.rate_service import RateService
from ..schemas.rates import (
    AddCurrencyRequest,
    ConvertRequest,
    ConvertResponse,
    ExchangeRateResponse,
    OverrideRequest,
    RefreshResponse,
    SetEnabledRequest,
)


router = APIRouter(prefix="/rates", tags=["rates"])


@router.get("")
def list_rates(
    rate_service: Annotated[RateService, Depends(get_rate_service)],
    include_disabled: bool = Query(False),
) -> list[ExchangeRateResponse]:
    return [
        ExchangeRateResponse.from_domain(r)
        for r in rate_service.list_rates(include_disabled=include_disabled)
    ]


@router.post("", status_code=status.HTTP_201_CREATED)
def add_currency(
    req: AddCurrencyRequest,
    rate_service: Annotated[RateService, Depends(get_rate_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> ExchangeRateResponse:
    rate = rate_service.add_currency(
        req.currency_code,
        req.currency_name,
        req.rate_to_usd,
        symbol=req.currency_symbol,
        country=req.country,
        notes=req.notes,
    )
    return ExchangeRateResponse.from_domain(rate)


@router.post("/convert")
def convert(
    req: ConvertRequest,
    rate_service: Annotated[RateService, Depends(get_rate_service)],
) -> ConvertResponse:
    converted = rate_service.convert(req.amount, req.from_code, req.to_code)
    return ConvertResponse(
        amount=req.amount,
        from_code=req.from_code.upper(),
        to_code=req.to_code.upper(),
        converted=converted,
    )


@router.post("/refresh")
def refresh_feed_rates(
    rate_service: Annotated[RateService, Depends(get_rate_service)],
    client: Annotated[RateFeedClient, Depends(get_rate_feed_client)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> RefreshResponse:
    return RefreshResponse(updated=rate_service.refresh_feed_rates(client))


@router.get("/{code}")
def get_rate(
    code: str,
    rate_service: Annotated[RateService, Depends(get_rate_service)],
) -> ExchangeRateResponse:
    return ExchangeRateResponse.from_domain(rate_service.get_rate(code))


@router.put("/{code}/override")
def set_override(
    code: str,
    req: OverrideRequest,
    rate_service: Annotated[RateService, Depends(get_rate_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> ExchangeRateResponse:
    rate = rate_service.set_override(code, req.rate, req.reason, actor_id)
    return ExchangeRateResponse.from_domain(rate)


@router.delete("/{code}/override")
def clear_override(
    code: str,
    rate_service: Annotated[RateService, Depends(get_rate_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> ExchangeRateResponse:
    """피드 환율로 되돌린다. 피드 환율이 없으면 422."""
    return ExchangeRateResponse.from_domain(rate_service.clear_override(code, actor_id))


@router.patch("/{code}")
def set_enabled(
    code: str,
    req: SetEnabledRequest,
    rate_service: Annotated[RateService, Depends(get_rate_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> ExchangeRateResponse:
    return ExchangeRateResponse.from_domain(rate_service.set_enabled(code, req.enabled))
