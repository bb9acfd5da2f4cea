"""멤버십 API 라우터. expire/renew/income 은 스케줄러와 관리자가 호출한다."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ...dependencies import get_actor_id, get_membership_service
from ...services.membership_service import MembershipService
from ..schemas.memberships import (
    DailyIncomeRequest,
    DailyIncomeResponse,
    DeactivateRequest,
    MembershipResponse,
    ProcessDueResponse,
)
from ..schemas.transactions import TransactionResponse


router = APIRouter(prefix="/memberships", tags=["memberships"])


@router.post("/process-due")
def process_due(
    membership_service: Annotated[MembershipService, Depends(get_membership_service)],
    limit: int = Query(100, gt=0, le=1000),
) -> ProcessDueResponse:
    return ProcessDueResponse(processed=membership_service.process_due(limit=limit))


@router.get("/{membership_id}")
def get_membership(
    membership_id: str,
    membership_service: Annotated[MembershipService, Depends(get_membership_service)],
) -> MembershipResponse:
    return MembershipResponse.from_domain(membership_service.get(membership_id))


@router.post("/{membership_id}/expire")
def expire_membership(
    membership_id: str,
    membership_service: Annotated[MembershipService, Depends(get_membership_service)],
) -> MembershipResponse:
    return MembershipResponse.from_domain(membership_service.expire(membership_id))


@router.post("/{membership_id}/renew")
def renew_membership(
    membership_id: str,
    membership_service: Annotated[MembershipService, Depends(get_membership_service)],
) -> MembershipResponse | None:
    """자동 갱신. 갱신되지 않고 만료되면 null."""
    renewed = membership_service.renew(membership_id)
    return MembershipResponse.from_domain(renewed) if renewed else None


@router.post("/{membership_id}/deactivate")
def deactivate_membership(
    membership_id: str,
    req: DeactivateRequest,
    membership_service: Annotated[MembershipService, Depends(get_membership_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> MembershipResponse:
    membership = membership_service.deactivate(membership_id, actor_id, req.reason)
    return MembershipResponse.from_domain(membership)


@router.post("/{membership_id}/income")
def credit_daily_income(
    membership_id: str,
    req: DailyIncomeRequest,
    membership_service: Annotated[MembershipService, Depends(get_membership_service)],
) -> DailyIncomeResponse:
    tx = membership_service.credit_daily_income(membership_id, req.on_date)
    if tx is None:
        return DailyIncomeResponse(credited=False)
    return DailyIncomeResponse(credited=True, transaction=TransactionResponse.from_domain(tx))
