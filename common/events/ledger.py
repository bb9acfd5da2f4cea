"""원장/멤버십 도메인 이벤트 정의.

금액은 정밀도 유지를 위해 문자열(Decimal 표기)로 주고받는다.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Self


class LedgerEventType:
    """원장 이벤트 타입 상수."""

    PRODUCT_PURCHASED = "membership.purchased"
    MEMBERSHIP_RENEWED = "membership.renewed"
    MEMBERSHIP_EXPIRED = "membership.expired"
    INCOME_CREDITED = "membership.income_credited"
    REFERRAL_BONUS_PAID = "referral.bonus_paid"
    TRANSACTION_APPROVED = "transaction.approved"
    TRANSACTION_REJECTED = "transaction.rejected"


class RateEventType:
    RATE_SOURCE_CHANGED = "rate.source_changed"


@dataclass(slots=True)
class ProductPurchasedEvent:
    """상품 구매(또는 자동 갱신) 이벤트. 구매자에게 알림을 보낸다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    account_id: str
    membership_id: str
    product_name: str
    amount: str
    expires_at: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            account_id=str(data["account_id"]),
            membership_id=str(data["membership_id"]),
            product_name=str(data["product_name"]),
            amount=str(data["amount"]),
            expires_at=str(data["expires_at"]),
        )


@dataclass(slots=True)
class MembershipExpiredEvent:
    """멤버십 만료/관리자 비활성화 이벤트."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    account_id: str
    membership_id: str
    product_name: str
    reason: str
    membership_level: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            account_id=str(data["account_id"]),
            membership_id=str(data["membership_id"]),
            product_name=str(data["product_name"]),
            reason=str(data.get("reason", "expired")),
            membership_level=str(data.get("membership_level", "none")),
        )


@dataclass(slots=True)
class IncomeCreditedEvent:
    """일일 수익 지급 이벤트."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    account_id: str
    membership_id: str
    amount: str
    income_date: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            account_id=str(data["account_id"]),
            membership_id=str(data["membership_id"]),
            amount=str(data["amount"]),
            income_date=str(data["income_date"]),
        )


@dataclass(slots=True)
class ReferralBonusPaidEvent:
    """추천 보너스 지급 이벤트. account_id 는 보너스를 받은 추천인이다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    account_id: str
    referral_id: str
    referred_id: str
    referred_username: str
    amount: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            account_id=str(data["account_id"]),
            referral_id=str(data["referral_id"]),
            referred_id=str(data["referred_id"]),
            referred_username=str(data.get("referred_username", "")),
            amount=str(data["amount"]),
        )


@dataclass(slots=True)
class TransactionStatusEvent:
    """입출금 요청 승인/거절 이벤트."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    account_id: str
    transaction_id: str
    transaction_type: str
    currency: str
    amount: str
    reason: str | None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            account_id=str(data["account_id"]),
            transaction_id=str(data["transaction_id"]),
            transaction_type=str(data["transaction_type"]),
            currency=str(data["currency"]),
            amount=str(data["amount"]),
            reason=data.get("reason"),
        )


@dataclass(slots=True)
class RateSourceChangedEvent:
    """환율 소스 전환(관리자 오버라이드 설정/해제) 이벤트."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    currency_code: str
    active_rate_source: str
    rate_to_usd: str
    changed_by: str | None
    reason: str | None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            currency_code=str(data["currency_code"]),
            active_rate_source=str(data["active_rate_source"]),
            rate_to_usd=str(data["rate_to_usd"]),
            changed_by=data.get("changed_by"),
            reason=data.get("reason"),
        )


# 원장 토픽 이벤트 타입 -> 디코딩 클래스
LEDGER_EVENT_CLASSES: dict[str, type[Any]] = {
    LedgerEventType.PRODUCT_PURCHASED: ProductPurchasedEvent,
    LedgerEventType.MEMBERSHIP_RENEWED: ProductPurchasedEvent,
    LedgerEventType.MEMBERSHIP_EXPIRED: MembershipExpiredEvent,
    LedgerEventType.INCOME_CREDITED: IncomeCreditedEvent,
    LedgerEventType.REFERRAL_BONUS_PAID: ReferralBonusPaidEvent,
    LedgerEventType.TRANSACTION_APPROVED: TransactionStatusEvent,
    LedgerEventType.TRANSACTION_REJECTED: TransactionStatusEvent,
}
