"""배치 작업 결과 모델."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class BatchOperation(StrEnum):
    APPROVE_TRANSACTIONS = "approve_transactions"
    REJECT_TRANSACTIONS = "reject_transactions"
    ADD_CURRENCY = "add_currency"
    EXPIRE_MEMBERSHIPS = "expire_memberships"
    CREDIT_DAILY_INCOME = "credit_daily_income"


class BatchFailure(BaseModel):
    id: str
    code: str
    error: str


class BatchReport(BaseModel):
    """대상별 처리 결과. 배치는 트랜잭션이 아니며 부분 성공이 정상이다."""

    operation: BatchOperation
    succeeded: list[str] = Field(default_factory=list)
    failed: list[BatchFailure] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)
