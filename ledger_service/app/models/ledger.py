"""원장 연산 결과 모델."""

from __future__ import annotations

from pydantic import BaseModel

from common.types.money import DecimalStr

from .money import Currency


class LedgerResult(BaseModel):
    """credit/debit 결과. applied=False 는 같은 ref 가 이미 반영되어 아무것도 바꾸지 않았다는 뜻이다."""

    account_id: str
    currency: Currency
    balance: DecimalStr
    applied: bool = True
