"""입출금 요청/승인 API 라우터."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from common.schemas.pagination import PaginatedResponse, normalize_page

from ...dependencies import get_actor_id, get_membership_service, get_transaction_service
from ...models.money import Money
from ...services.membership_service import MembershipService
from ...services.transaction_service import TransactionService
from ..schemas.transactions import (
    ApproveRequest,
    CreateTransactionRequest,
    RejectRequest,
    TransactionResponse,
)


router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_transaction(
    req: CreateTransactionRequest,
    transaction_service: Annotated[TransactionService, Depends(get_transaction_service)],
) -> TransactionResponse:
    tx = transaction_service.create(
        req.account_id,
        req.type,
        Money(currency=req.currency, amount=req.amount),
        metadata=req.metadata,
        notes=req.notes,
    )
    return TransactionResponse.from_domain(tx)


@router.get("/pending")
def list_pending(
    transaction_service: Annotated[TransactionService, Depends(get_transaction_service)],
    page: int = Query(1),
    page_size: int = Query(20),
) -> PaginatedResponse[TransactionResponse]:
    page, page_size = normalize_page(page, page_size)
    items, total = transaction_service.list_pending(page, page_size)
    return PaginatedResponse[TransactionResponse](
        items=[TransactionResponse.from_domain(tx) for tx in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("/reconcile-stale")
def reconcile_stale(
    membership_service: Annotated[MembershipService, Depends(get_membership_service)],
    limit: int = Query(100, gt=0, le=1000),
) -> list[TransactionResponse]:
    """오래 점유된 거래 정리. 결제되지 않은 멤버십 예약은 함께 지운다."""
    return [
        TransactionResponse.from_domain(tx)
        for tx in membership_service.reconcile_stale(limit=limit)
    ]


@router.get("/{transaction_id}")
def get_transaction(
    transaction_id: str,
    transaction_service: Annotated[TransactionService, Depends(get_transaction_service)],
) -> TransactionResponse:
    return TransactionResponse.from_domain(transaction_service.get(transaction_id))


@router.post("/{transaction_id}/approve")
def approve_transaction(
    transaction_id: str,
    req: ApproveRequest,
    transaction_service: Annotated[TransactionService, Depends(get_transaction_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> TransactionResponse:
    """승인. 이미 처리된 거래 409, 출금 잔액 부족 402 (거래는 pending 유지)."""
    tx = transaction_service.approve(transaction_id, actor_id, req.notes)
    return TransactionResponse.from_domain(tx)


@router.post("/{transaction_id}/reject")
def reject_transaction(
    transaction_id: str,
    req: RejectRequest,
    transaction_service: Annotated[TransactionService, Depends(get_transaction_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> TransactionResponse:
    tx = transaction_service.reject(transaction_id, actor_id, req.reason)
    return TransactionResponse.from_domain(tx)


@router.post("/{transaction_id}/reconcile")
def reconcile_transaction(
    transaction_id: str,
    membership_service: Annotated[MembershipService, Depends(get_membership_service)],
) -> TransactionResponse:
    return TransactionResponse.from_domain(membership_service.reconcile(transaction_id))
