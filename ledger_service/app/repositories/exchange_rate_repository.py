"""환율 레포지토리 구현체.

활성 환율 두 필드(rate_to_usd, usd_per_unit)는 항상 같은 갱신 안에서 함께 바뀐다.
피드 갱신과 오버라이드 해제는 aggregation pipeline update 로 도큐먼트의 현재
active_rate_source / feed_rate 를 기준으로 서버에서 계산하므로 읽고-쓰기 경쟁이 없다.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pymongo import ASCENDING, IndexModel, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .documents.exchange_rate_document import ExchangeRateDocument
from .interfaces import ExchangeRateRepositoryInterface
from ..models.exchange_rate import ExchangeRate, RateSource


class ExchangeRateRepository(ExchangeRateRepositoryInterface):
    """exchange_rates 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["exchange_rates"]
        self._col.create_indexes(
            [IndexModel([("currency_code", ASCENDING)], unique=True, name="uniq_currency_code")]
        )

    def _find_and_update(self, query: dict[str, Any], update: Any) -> ExchangeRate | None:
        doc = self._col.find_one_and_update(
            query, update, return_document=ReturnDocument.AFTER
        )
        if not doc:
            return None
        return ExchangeRateDocument.model_validate(doc).to_domain()

    def insert(self, rate: ExchangeRate) -> ExchangeRate | None:
        doc = ExchangeRateDocument.from_domain(rate)
        try:
            result = self._col.insert_one(doc.to_mongo_record())
        except DuplicateKeyError:
            return None
        doc.id = result.inserted_id
        return doc.to_domain()

    def find_by_code(self, code: str) -> ExchangeRate | None:
        doc = self._col.find_one({"currency_code": code})
        if not doc:
            return None
        return ExchangeRateDocument.model_validate(doc).to_domain()

    def list(self, *, include_disabled: bool) -> list[ExchangeRate]:
        query: dict[str, Any] = {} if include_disabled else {"enabled": True}
        cursor = self._col.find(query).sort("currency_code", ASCENDING)
        return [ExchangeRateDocument.model_validate(doc).to_domain() for doc in cursor]

    def set_override(
        self,
        code: str,
        *,
        rate: Decimal,
        usd_per_unit: Decimal,
        set_by: str,
        reason: str,
        at: datetime,
    ) -> ExchangeRate | None:
        return self._find_and_update(
            {"currency_code": code},
            {
                "$set": {
                    "admin_override_rate": rate,
                    "rate_to_usd": rate,
                    "usd_per_unit": usd_per_unit,
                    "active_rate_source": str(RateSource.ADMIN),
                    "override_set_by": set_by,
                    "override_reason": reason,
                    "override_set_at": at,
                    "updated_at": at,
                }
            },
        )

    def clear_override(self, code: str, at: datetime) -> ExchangeRate | None:
        return self._find_and_update(
            {"currency_code": code, "feed_rate": {"$gt": 0}},
            [
                {
                    "$set": {
                        "active_rate_source": str(RateSource.FEED),
                        "rate_to_usd": "$feed_rate",
                        "usd_per_unit": {"$divide": [{"$toDecimal": 1}, "$feed_rate"]},
                        "admin_override_rate": None,
                        "override_set_by": None,
                        "override_reason": None,
                        "override_set_at": None,
                        "updated_at": {"$literal": at},
                    }
                }
            ],
        )

    def record_feed_rate(
        self, code: str, *, rate: Decimal, usd_per_unit: Decimal, at: datetime
    ) -> ExchangeRate | None:
        is_feed = {"$eq": ["$active_rate_source", str(RateSource.FEED)]}
        return self._find_and_update(
            {"currency_code": code},
            [
                {
                    "$set": {
                        "feed_rate": {"$literal": rate},
                        "last_feed_update": {"$literal": at},
                        "rate_to_usd": {
                            "$cond": [is_feed, {"$literal": rate}, "$rate_to_usd"]
                        },
                        "usd_per_unit": {
                            "$cond": [is_feed, {"$literal": usd_per_unit}, "$usd_per_unit"]
                        },
                        "updated_at": {"$literal": at},
                    }
                }
            ],
        )

    def set_enabled(self, code: str, enabled: bool, at: datetime) -> ExchangeRate | None:
        return self._find_and_update(
            {"currency_code": code},
            {"$set": {"enabled": enabled, "updated_at": at}},
        )
