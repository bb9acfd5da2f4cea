from fastapi import APIRouter

from .accounts import router as accounts_router
from .batch import router as batch_router
from .memberships import router as memberships_router
from .products import router as products_router
from .rates import router as rates_router
from .referrals import router as referrals_router
from .transactions import router as transactions_router

# prefix 는 각 router 파일 내부에서 정의되어 있음
api_router = APIRouter()
api_router.include_router(accounts_router)
api_router.include_router(products_router)
api_router.include_router(memberships_router)
api_router.include_router(transactions_router)
api_router.include_router(referrals_router)
api_router.include_router(batch_router)
api_router.include_router(rates_router)
