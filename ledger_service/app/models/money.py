"""통화/금액 도메인 모델.

계정 잔액은 두 통화(NSL=primary, USDT=secondary)로만 관리된다.
금액은 통화와 함께 다니는 `Money` 값으로 표현해 두 필드 중 하나만 채우는 실수를 막는다.
"""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from common.types.money import DecimalStr, quantize_money


class Currency(StrEnum):
    NSL = "NSL"  # primary
    USDT = "USDT"  # secondary


# 통화별 계정 잔액 필드명
BALANCE_FIELDS: dict[Currency, str] = {
    Currency.NSL: "balance_primary",
    Currency.USDT: "balance_secondary",
}


def balance_field(currency: Currency) -> str:
    return BALANCE_FIELDS[Currency(currency)]


class Money(BaseModel):
    """통화가 명시된 금액."""

    model_config = ConfigDict(frozen=True)

    currency: Currency
    amount: DecimalStr

    @property
    def quantized(self) -> Decimal:
        return quantize_money(self.amount)

    @property
    def amount_primary(self) -> Decimal:
        return self.amount if self.currency == Currency.NSL else Decimal("0")

    @property
    def amount_secondary(self) -> Decimal:
        return self.amount if self.currency == Currency.USDT else Decimal("0")
