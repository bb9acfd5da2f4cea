from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from common.types.datetime import utc_now

from ...dependencies import get_actor_id, get_catalog_service
from ...models.product import Product, ProductUpdate
from ...services.catalog_service import CatalogService
from ..schemas.products import CreateProductRequest, ProductResponse, UpdateProductRequest


router = APIRouter(prefix="/products", tags=["products"])


@router.get("")
def list_products(
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
    active_only: bool = Query(True),
) -> list[ProductResponse]:
    return [ProductResponse.from_domain(p) for p in catalog.list_products(active_only=active_only)]


@router.get("/{product_id}")
def get_product(
    product_id: str,
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
) -> ProductResponse:
    return ProductResponse.from_domain(catalog.get_product(product_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_product(
    req: CreateProductRequest,
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> ProductResponse:
    now = utc_now()
    product = catalog.create_product(
        Product(**req.model_dump(), created_at=now, updated_at=now)
    )
    return ProductResponse.from_domain(product)


@router.patch("/{product_id}")
def update_product(
    product_id: str,
    req: UpdateProductRequest,
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> ProductResponse:
    """가격/일일 지급액/활성 여부 변경. 이미 구매된 멤버십에는 영향이 없다."""
    updated = catalog.update_product(product_id, ProductUpdate(**req.model_dump()))
    return ProductResponse.from_domain(updated)
