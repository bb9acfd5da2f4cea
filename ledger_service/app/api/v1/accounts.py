"""계정 API 라우터.

Gateway 에서 호출하는 내부 API. 호출자 인증은 Gateway 책임이다.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from common.schemas.pagination import PaginatedResponse, normalize_page

from ...dependencies import (
    get_account_service,
    get_ledger_service,
    get_membership_service,
    get_referral_service,
    get_transaction_service,
)
from ...services.account_service import AccountService
from ...services.ledger_service import LedgerService
from ...services.membership_service import MembershipService
from ...services.referral_service import ReferralService
from ...services.transaction_service import TransactionService
from ..schemas.accounts import (
    AccountResponse,
    BalanceResponse,
    OpenAccountRequest,
    PurchaseRequest,
)
from ..schemas.memberships import MembershipResponse, PurchaseResponse, ReferralResponse
from ..schemas.transactions import TransactionResponse


router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.post("", status_code=status.HTTP_201_CREATED)
def open_account(
    req: OpenAccountRequest,
    account_service: Annotated[AccountService, Depends(get_account_service)],
) -> AccountResponse:
    account = account_service.open_account(req.username, req.referral_code)
    return AccountResponse.from_domain(account)


@router.get("")
def list_accounts(
    account_service: Annotated[AccountService, Depends(get_account_service)],
    page: int = Query(1),
    page_size: int = Query(20),
) -> PaginatedResponse[AccountResponse]:
    page, page_size = normalize_page(page, page_size)
    items, total = account_service.list_accounts(page, page_size)
    return PaginatedResponse[AccountResponse](
        items=[AccountResponse.from_domain(a) for a in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{account_id}")
def get_account(
    account_id: str,
    account_service: Annotated[AccountService, Depends(get_account_service)],
) -> AccountResponse:
    return AccountResponse.from_domain(account_service.get_account(account_id))


@router.get("/{account_id}/balance")
def get_balance(
    account_id: str,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
) -> BalanceResponse:
    balances = ledger.get_balance(account_id)
    return BalanceResponse(
        account_id=balances.account_id,
        balance_primary=balances.balance_primary,
        balance_secondary=balances.balance_secondary,
    )


@router.post("/{account_id}/purchases", status_code=status.HTTP_201_CREATED)
def purchase_product(
    account_id: str,
    req: PurchaseRequest,
    membership_service: Annotated[MembershipService, Depends(get_membership_service)],
) -> PurchaseResponse:
    """상품 구매. 잔액 부족 402, 이미 보유/비활성 상품 409."""
    result = membership_service.purchase(account_id, req.product_id)
    return PurchaseResponse.from_domain(result)


@router.get("/{account_id}/memberships")
def list_memberships(
    account_id: str,
    membership_service: Annotated[MembershipService, Depends(get_membership_service)],
    active_only: bool = Query(False),
    page: int = Query(1),
    page_size: int = Query(20),
) -> PaginatedResponse[MembershipResponse]:
    page, page_size = normalize_page(page, page_size)
    if active_only:
        active = membership_service.list_active(account_id)
        return PaginatedResponse[MembershipResponse](
            items=[MembershipResponse.from_domain(m) for m in active],
            total=len(active),
            page=1,
            page_size=max(len(active), 1),
        )
    items, total = membership_service.list_for_account(account_id, page, page_size)
    return PaginatedResponse[MembershipResponse](
        items=[MembershipResponse.from_domain(m) for m in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{account_id}/transactions")
def list_transactions(
    account_id: str,
    transaction_service: Annotated[TransactionService, Depends(get_transaction_service)],
    page: int = Query(1),
    page_size: int = Query(20),
) -> PaginatedResponse[TransactionResponse]:
    page, page_size = normalize_page(page, page_size)
    items, total = transaction_service.list_for_account(account_id, page, page_size)
    return PaginatedResponse[TransactionResponse](
        items=[TransactionResponse.from_domain(tx) for tx in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{account_id}/referrals")
def list_referrals(
    account_id: str,
    referral_service: Annotated[ReferralService, Depends(get_referral_service)],
    page: int = Query(1),
    page_size: int = Query(20),
) -> PaginatedResponse[ReferralResponse]:
    """이 계정이 추천한 기록 목록."""
    page, page_size = normalize_page(page, page_size)
    items, total = referral_service.list_for_referrer(account_id, page, page_size)
    return PaginatedResponse[ReferralResponse](
        items=[ReferralResponse.from_domain(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )
