"""거래 기록 도메인 모델.

모든 잔액 변경은 정확히 하나의 Transaction 으로 남는다.
recharge/withdrawal 은 사용자가 요청하고 관리자가 승인/거절하며,
나머지 타입은 시스템이 approved 상태로 기록한다.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from common.types.money import DecimalStr

from .money import Currency, Money


class TransactionType(StrEnum):
    RECHARGE = "recharge"  # 입금
    WITHDRAWAL = "withdrawal"  # 출금
    INCOME = "income"  # 일일 수익
    REFERRAL_BONUS = "referral_bonus"
    PURCHASE = "purchase"
    RENEWAL = "renewal"


# 사용자가 생성하고 관리자가 처리하는 요청 타입
REQUEST_TYPES = frozenset({TransactionType.RECHARGE, TransactionType.WITHDRAWAL})

# 잔액을 줄이는 타입
DEBIT_TYPES = frozenset(
    {TransactionType.WITHDRAWAL, TransactionType.PURCHASE, TransactionType.RENEWAL}
)

# 멤버십 예약에 대한 결제. 결제가 반영되지 않으면 예약도 무효다
RESERVATION_TYPES = frozenset({TransactionType.PURCHASE, TransactionType.RENEWAL})


class TransactionStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Transaction(BaseModel):
    id: str | None = None
    account_id: str
    type: TransactionType
    currency: Currency
    amount: DecimalStr
    status: TransactionStatus = TransactionStatus.PENDING
    membership_id: str | None = None
    product_id: str | None = None
    referral_id: str | None = None
    # 시스템 거래의 중복 기록 방지 키 (예: "income:<membership_id>:<date>")
    idempotency_key: str | None = None
    approved_by: str | None = None
    notes: str | None = None
    admin_notes: str | None = None
    rejection_reason: str | None = None
    metadata: dict[str, Any] | None = None
    # 승인 처리 중 표시 (claim_token 이 있는 동안 다른 승인/거절은 실패한다)
    claim_token: str | None = None
    claimed_by: str | None = None
    claimed_at: datetime | None = None
    completed_at: datetime | None = None
    rejected_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def money(self) -> Money:
        return Money(currency=self.currency, amount=self.amount)

    @property
    def amount_primary(self) -> Decimal:
        return self.money.amount_primary

    @property
    def amount_secondary(self) -> Decimal:
        return self.money.amount_secondary

    @property
    def is_debit(self) -> bool:
        return self.type in DEBIT_TYPES

    @property
    def ledger_ref(self) -> str:
        """원장 멱등 ref. 시스템 거래는 idempotency_key 를, 요청 거래는 tx:<id> 를 쓴다."""
        return self.idempotency_key or f"tx:{self.id}"


class Posting(BaseModel):
    """시스템 거래 기록 결과. applied=False 면 이미 처리된 거래를 돌려준 것이다."""

    transaction: Transaction
    applied: bool
