"""계정 레포지토리 구현체.

잔액 변경은 전부 apply_delta 한 곳을 거친다. 하나의 find_one_and_update 안에
전제 조건(잔액 >= 차감액)과 멱등 조건(ledger_refs 에 ref 없음)을 함께 담아
같은 계정에 대한 동시 요청을 MongoDB 의 단일 도큐먼트 원자성으로 직렬화한다.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pymongo import ASCENDING, IndexModel, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from common.mongo.types import is_object_id, to_object_id

from .documents.account_document import AccountDocument
from .interfaces import AccountRepositoryInterface
from ..models.account import Account, MembershipLevel


# 조회 시 ledger_refs 는 돌려받지 않는다 (크기가 큼)
_WITHOUT_REFS: dict[str, Any] = {"ledger_refs": 0}


class AccountRepository(AccountRepositoryInterface):
    """accounts 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database, *, ref_window: int) -> None:
        self._db = database
        self._col = database["accounts"]
        self._ref_window = ref_window
        self._col.create_indexes(
            [
                IndexModel([("username", ASCENDING)], unique=True, name="uniq_username"),
                IndexModel(
                    [("referral_code", ASCENDING)], unique=True, name="uniq_referral_code"
                ),
                IndexModel([("referred_by", ASCENDING)], name="idx_referred_by"),
            ]
        )

    def insert(self, account: Account) -> Account | None:
        doc = AccountDocument.from_domain(account)
        record = doc.to_mongo_record()
        record["ledger_refs"] = []
        try:
            result = self._col.insert_one(record)
        except DuplicateKeyError:
            return None
        doc.id = result.inserted_id
        return doc.to_domain()

    def find_by_id(self, account_id: str) -> Account | None:
        if not is_object_id(account_id):
            return None
        doc = self._col.find_one({"_id": to_object_id(account_id)}, _WITHOUT_REFS)
        if not doc:
            return None
        return AccountDocument.model_validate(doc).to_domain()

    def find_by_username(self, username: str) -> Account | None:
        doc = self._col.find_one({"username": username}, _WITHOUT_REFS)
        if not doc:
            return None
        return AccountDocument.model_validate(doc).to_domain()

    def find_by_referral_code(self, referral_code: str) -> Account | None:
        doc = self._col.find_one({"referral_code": referral_code}, _WITHOUT_REFS)
        if not doc:
            return None
        return AccountDocument.model_validate(doc).to_domain()

    def apply_delta(
        self,
        account_id: str,
        field: str,
        delta: Decimal,
        *,
        ref: str,
        require_min: Decimal | None = None,
    ) -> Account | None:
        """잔액 필드에 delta 를 원자적으로 더한다.

        - require_min 이 주어지면 현재 잔액이 그 이상일 때만 반영한다 (차감).
        - ref 가 이미 ledger_refs 에 있으면 반영하지 않는다.
        - 조건이 맞지 않으면 도큐먼트를 전혀 바꾸지 않고 None 을 반환한다.
        """

        if not is_object_id(account_id):
            return None

        query: dict[str, Any] = {
            "_id": to_object_id(account_id),
            "ledger_refs": {"$ne": ref},
        }
        if require_min is not None:
            query[field] = {"$gte": require_min}

        doc = self._col.find_one_and_update(
            query,
            {
                "$inc": {field: delta},
                "$push": {"ledger_refs": {"$each": [ref], "$slice": -self._ref_window}},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
            projection=_WITHOUT_REFS,
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            return None
        return AccountDocument.model_validate(doc).to_domain()

    def has_ledger_ref(self, account_id: str, ref: str) -> bool:
        if not is_object_id(account_id):
            return False
        return (
            self._col.count_documents(
                {"_id": to_object_id(account_id), "ledger_refs": ref}, limit=1
            )
            > 0
        )

    def set_membership_level(
        self, account_id: str, level: MembershipLevel
    ) -> Account | None:
        if not is_object_id(account_id):
            return None
        doc = self._col.find_one_and_update(
            {"_id": to_object_id(account_id)},
            {
                "$set": {
                    "membership_level": str(level),
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            projection=_WITHOUT_REFS,
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            return None
        return AccountDocument.model_validate(doc).to_domain()

    def list(self, page: int, page_size: int) -> tuple[list[Account], int]:
        skip = (page - 1) * page_size
        total = self._col.count_documents({})
        cursor = (
            self._col.find({}, _WITHOUT_REFS)
            .sort("created_at", -1)
            .skip(skip)
            .limit(page_size)
        )
        return [AccountDocument.model_validate(doc).to_domain() for doc in cursor], total
