"""원장(잔액 변경) 서비스.

모든 잔액 변경의 유일한 진입점이다. 거래 기록(Transaction)은 남기지 않으며,
호출자가 반영된 변경마다 정확히 하나의 거래를 기록해야 한다.

ref 는 변경의 멱등 키다. 같은 ref 로 두 번 호출하면 두 번째 호출은 아무것도 바꾸지 않고
현재 잔액을 돌려준다 (applied=False).
"""

from __future__ import annotations

import logging
from decimal import Decimal

from common.types.money import quantize_money

from ..exceptions import InsufficientFunds, NotFound, ValidationFailed
from ..models.account import Balances
from ..models.ledger import LedgerResult
from ..models.money import Currency, balance_field
from ..repositories.interfaces import AccountRepositoryInterface


logger = logging.getLogger(__name__)


def validate_amount(amount: Decimal) -> Decimal:
    """금액이 양수인지 확인하고 소수점 8자리로 맞춘다."""

    try:
        value = quantize_money(Decimal(amount))
    except (TypeError, ArithmeticError) as exc:
        raise ValidationFailed(f"invalid amount: {amount!r}") from exc
    if not value.is_finite() or value <= 0:
        raise ValidationFailed(f"amount must be positive: {amount}")
    return value


class LedgerService:
    def __init__(self, account_repo: AccountRepositoryInterface) -> None:
        self._account_repo = account_repo

    def credit(
        self,
        account_id: str,
        currency: Currency,
        amount: Decimal,
        reason: str,
        *,
        ref: str,
    ) -> LedgerResult:
        value = validate_amount(amount)
        field = balance_field(currency)

        updated = self._account_repo.apply_delta(account_id, field, value, ref=ref)
        if updated is not None:
            logger.info(
                "ledger credit applied",
                extra={
                    "account_id": account_id,
                    "currency": str(currency),
                    "amount": str(value),
                    "operation": reason,
                },
            )
            return LedgerResult(
                account_id=account_id,
                currency=currency,
                balance=updated.balance_of(currency),
            )

        account = self._account_repo.find_by_id(account_id)
        if account is None:
            raise NotFound("account", account_id)
        logger.info("ledger credit already applied ref=%s account_id=%s", ref, account_id)
        return LedgerResult(
            account_id=account_id,
            currency=currency,
            balance=account.balance_of(currency),
            applied=False,
        )

    def debit(
        self,
        account_id: str,
        currency: Currency,
        amount: Decimal,
        reason: str,
        *,
        ref: str,
    ) -> LedgerResult:
        """잔액이 충분할 때만 차감한다. 부족하면 아무것도 바꾸지 않고 InsufficientFunds."""

        value = validate_amount(amount)
        field = balance_field(currency)

        updated = self._account_repo.apply_delta(
            account_id, field, -value, ref=ref, require_min=value
        )
        if updated is not None:
            logger.info(
                "ledger debit applied",
                extra={
                    "account_id": account_id,
                    "currency": str(currency),
                    "amount": str(value),
                    "operation": reason,
                },
            )
            return LedgerResult(
                account_id=account_id,
                currency=currency,
                balance=updated.balance_of(currency),
            )

        # 매칭 실패 원인: 계정 없음 / ref 이미 반영 / 잔액 부족
        account = self._account_repo.find_by_id(account_id)
        if account is None:
            raise NotFound("account", account_id)
        if self._account_repo.has_ledger_ref(account_id, ref):
            logger.info("ledger debit already applied ref=%s account_id=%s", ref, account_id)
            return LedgerResult(
                account_id=account_id,
                currency=currency,
                balance=account.balance_of(currency),
                applied=False,
            )

        balance = account.balance_of(currency)
        logger.warning(
            "ledger debit rejected: insufficient funds",
            extra={
                "account_id": account_id,
                "currency": str(currency),
                "amount": str(value),
                "operation": reason,
            },
        )
        raise InsufficientFunds(str(currency), balance, value)

    def get_balance(self, account_id: str) -> Balances:
        account = self._account_repo.find_by_id(account_id)
        if account is None:
            raise NotFound("account", account_id)
        return Balances(
            account_id=account_id,
            balance_primary=account.balance_primary,
            balance_secondary=account.balance_secondary,
        )

    def has_applied(self, account_id: str, ref: str) -> bool:
        return self._account_repo.has_ledger_ref(account_id, ref)
