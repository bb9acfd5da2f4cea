from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from common.types.money import DecimalStr

from ...models.account import MembershipLevel
from ...models.product import Product


class CreateProductRequest(BaseModel):
    name: MembershipLevel
    price_primary: DecimalStr
    price_secondary: DecimalStr = Decimal("0")
    daily_credit_primary: DecimalStr
    validity_days: int = Field(default=60, gt=0)
    active: bool = True
    description: str = ""
    benefits: list[str] = Field(default_factory=list)


class UpdateProductRequest(BaseModel):
    price_primary: DecimalStr | None = None
    price_secondary: DecimalStr | None = None
    daily_credit_primary: DecimalStr | None = None
    active: bool | None = None
    description: str | None = None
    benefits: list[str] | None = None


class ProductResponse(BaseModel):
    id: str
    name: MembershipLevel
    price_primary: DecimalStr
    price_secondary: DecimalStr
    daily_credit_primary: DecimalStr
    validity_days: int
    active: bool
    description: str
    benefits: list[str]
    created_at: datetime

    @classmethod
    def from_domain(cls, product: Product) -> "ProductResponse":
        return cls(
            id=str(product.id),
            **product.model_dump(exclude={"id", "updated_at"}),
        )
