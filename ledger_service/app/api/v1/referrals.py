from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from common.schemas.pagination import PaginatedResponse, normalize_page

from ...dependencies import get_referral_service
from ...services.referral_service import ReferralService
from ..schemas.memberships import ReferralResponse


router = APIRouter(prefix="/referrals", tags=["referrals"])


@router.get("")
def list_referrals(
    referral_service: Annotated[ReferralService, Depends(get_referral_service)],
    referrer_id: str = Query(...),
    page: int = Query(1),
    page_size: int = Query(20),
) -> PaginatedResponse[ReferralResponse]:
    page, page_size = normalize_page(page, page_size)
    items, total = referral_service.list_for_referrer(referrer_id, page, page_size)
    return PaginatedResponse[ReferralResponse](
        items=[ReferralResponse.from_domain(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )
