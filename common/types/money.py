from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Any

from pydantic.functional_serializers import PlainSerializer
from pydantic.functional_validators import BeforeValidator


# 원장 금액은 소수점 8자리까지 저장한다.
MONEY_QUANTUM = Decimal("0.00000001")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def _parse_decimal(value: Any) -> Any:
    # float 입력(JSON 숫자)은 str 을 거쳐 이진 오차 없이 변환한다.
    if isinstance(value, float):
        return Decimal(str(value))
    return value


# API 응답에서는 금액을 문자열로 직렬화한다 (JSON number 정밀도 손실 방지).
DecimalStr = Annotated[
    Decimal,
    BeforeValidator(_parse_decimal),
    PlainSerializer(lambda v: str(v), return_type=str, when_used="json"),
]
