"""상품 카탈로그 서비스.

등급 순위(ranking)는 config.yaml 의 정적 테이블이고, 상품 레코드는 DB 에 있다.
관리자는 가격/일일 지급액/활성 여부/설명만 바꿀 수 있다. 기존 멤버십은 구매 당시 가격을 유지한다.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from common.types.datetime import utc_now

from ..config import ProductSeedConfig
from ..exceptions import NotFound, ValidationFailed
from ..models.account import MembershipLevel
from ..models.product import Product, ProductUpdate
from ..repositories.interfaces import ProductRepositoryInterface


logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(
        self, product_repo: ProductRepositoryInterface, *, ranking: list[str]
    ) -> None:
        self._product_repo = product_repo
        self._ranking = [MembershipLevel(name) for name in ranking]

    @property
    def ranking(self) -> list[MembershipLevel]:
        return list(self._ranking)

    def rank_of(self, name: MembershipLevel) -> int:
        """등급 순위 (높을수록 상위). 순위표에 없으면 -1."""

        try:
            return self._ranking.index(MembershipLevel(name))
        except ValueError:
            return -1

    def get_product(self, product_id: str) -> Product:
        product = self._product_repo.find_by_id(product_id)
        if product is None:
            raise NotFound("product", product_id)
        return product

    def list_products(self, *, active_only: bool = True) -> list[Product]:
        products = self._product_repo.list(active_only=active_only)
        return sorted(products, key=lambda p: self.rank_of(p.name))

    def create_product(self, product: Product) -> Product:
        if self.rank_of(product.name) < 0:
            raise ValidationFailed(f"product name is not a ranked tier: {product.name}")
        self._validate_prices(product.price_primary, product.daily_credit_primary)
        if product.validity_days <= 0:
            raise ValidationFailed("validity_days must be positive")
        created = self._product_repo.insert(product)
        if created is None:
            raise ValidationFailed(f"product already exists: {product.name}")
        logger.info("product created name=%s id=%s", created.name, created.id)
        return created

    def update_product(self, product_id: str, update: ProductUpdate) -> Product:
        fields: dict[str, Any] = update.model_dump(exclude_none=True)
        if not fields:
            raise ValidationFailed("no fields to update")
        for key in ("price_primary", "price_secondary", "daily_credit_primary"):
            if key in fields and fields[key] < 0:
                raise ValidationFailed(f"{key} must not be negative")
        if fields.get("price_primary") == 0:
            raise ValidationFailed("price_primary must be positive")

        updated = self._product_repo.update_fields(product_id, fields)
        if updated is None:
            raise NotFound("product", product_id)
        logger.info("product updated id=%s fields=%s", product_id, sorted(fields))
        return updated

    def seed_products(self, seeds: list[ProductSeedConfig]) -> list[Product]:
        """config.yaml 의 기본 상품 중 DB 에 없는 것만 추가한다."""

        created: list[Product] = []
        for seed in seeds:
            if self._product_repo.find_by_name(seed.name) is not None:
                continue
            now = utc_now()
            product = self._product_repo.insert(
                Product(
                    name=MembershipLevel(seed.name),
                    price_primary=seed.price_primary,
                    price_secondary=seed.price_secondary,
                    daily_credit_primary=seed.daily_credit_primary,
                    validity_days=seed.validity_days,
                    description=seed.description,
                    benefits=list(seed.benefits),
                    created_at=now,
                    updated_at=now,
                )
            )
            if product is not None:
                created.append(product)
        logger.info("seeded %d products", len(created))
        return created

    @staticmethod
    def _validate_prices(price: Decimal, daily_credit: Decimal) -> None:
        if price <= 0:
            raise ValidationFailed("price_primary must be positive")
        if daily_credit < 0:
            raise ValidationFailed("daily_credit_primary must not be negative")
