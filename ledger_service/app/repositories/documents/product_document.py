from __future__ import annotations

from pydantic import Field

from common.mongo.types import (
    BaseDocument,
    MongoDecimal,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.account import MembershipLevel
from ...models.product import Product


class ProductDocument(BaseDocument):
    """MongoDB products 컬렉션 도큐먼트 모델."""

    name: MembershipLevel
    price_primary: MongoDecimal
    price_secondary: MongoDecimal
    daily_credit_primary: MongoDecimal
    validity_days: int
    active: bool = True
    description: str = ""
    benefits: list[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, product: Product) -> "ProductDocument":
        data = build_document_data_from_domain(product)
        return cls.model_validate(data)

    def to_domain(self) -> Product:
        return Product(
            id=from_object_id(self.id),
            **self.model_dump(exclude={"id"}),
        )
