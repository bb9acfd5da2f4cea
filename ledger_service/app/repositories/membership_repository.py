"""멤버십 레포지토리 구현체.

(account_id, product_id) 부분 유니크 인덱스(active=true)로 같은 상품의 활성 멤버십이
동시에 두 개 생기는 것을 막는다. 동시 구매 중 늦은 쪽의 insert 는 DuplicateKeyError 가 된다.
"""

from __future__ import annotations

from datetime import datetime

from pymongo import ASCENDING, DESCENDING, IndexModel, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from common.mongo.types import is_object_id, to_object_id

from .documents.membership_document import MembershipDocument
from .interfaces import MembershipRepositoryInterface
from ..models.membership import DeactivationReason, Membership


class MembershipRepository(MembershipRepositoryInterface):
    """memberships 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["memberships"]
        self._col.create_indexes(
            [
                IndexModel(
                    [("account_id", ASCENDING), ("product_id", ASCENDING)],
                    unique=True,
                    partialFilterExpression={"active": True},
                    name="uniq_active_membership",
                ),
                IndexModel(
                    [("account_id", ASCENDING), ("purchased_at", DESCENDING)],
                    name="idx_account_purchased",
                ),
                IndexModel(
                    [("active", ASCENDING), ("expires_at", ASCENDING)],
                    name="idx_active_expires",
                ),
            ]
        )

    def insert_active(self, membership: Membership) -> Membership | None:
        doc = MembershipDocument.from_domain(membership)
        try:
            result = self._col.insert_one(doc.to_mongo_record())
        except DuplicateKeyError:
            return None
        doc.id = result.inserted_id
        return doc.to_domain()

    def delete_reservation(self, membership_id: str) -> bool:
        if not is_object_id(membership_id):
            return False
        result = self._col.delete_one({"_id": to_object_id(membership_id)})
        return result.deleted_count == 1

    def find_by_id(self, membership_id: str) -> Membership | None:
        if not is_object_id(membership_id):
            return None
        doc = self._col.find_one({"_id": to_object_id(membership_id)})
        if not doc:
            return None
        return MembershipDocument.model_validate(doc).to_domain()

    def find_active(self, account_id: str, product_id: str) -> Membership | None:
        doc = self._col.find_one(
            {"account_id": account_id, "product_id": product_id, "active": True}
        )
        if not doc:
            return None
        return MembershipDocument.model_validate(doc).to_domain()

    def list_active(self, account_id: str) -> list[Membership]:
        cursor = self._col.find({"account_id": account_id, "active": True})
        return [MembershipDocument.model_validate(doc).to_domain() for doc in cursor]

    def list_by_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[Membership], int]:
        query = {"account_id": account_id}
        skip = (page - 1) * page_size
        total = self._col.count_documents(query)
        cursor = (
            self._col.find(query)
            .sort("purchased_at", DESCENDING)
            .skip(skip)
            .limit(page_size)
        )
        return [MembershipDocument.model_validate(doc).to_domain() for doc in cursor], total

    def list_due(self, now: datetime, limit: int) -> list[Membership]:
        """만료 시각이 지났지만 아직 활성인 멤버십 (만료 스윕 대상)."""
        cursor = (
            self._col.find({"active": True, "expires_at": {"$lte": now}})
            .sort("expires_at", ASCENDING)
            .limit(limit)
        )
        return [MembershipDocument.model_validate(doc).to_domain() for doc in cursor]

    def deactivate(
        self, membership_id: str, reason: DeactivationReason, at: datetime
    ) -> Membership | None:
        if not is_object_id(membership_id):
            return None
        doc = self._col.find_one_and_update(
            {"_id": to_object_id(membership_id), "active": True},
            {
                "$set": {
                    "active": False,
                    "deactivated_at": at,
                    "deactivation_reason": str(reason),
                    "updated_at": at,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            return None
        return MembershipDocument.model_validate(doc).to_domain()

    def relabel_deactivation(
        self,
        membership_id: str,
        expected: DeactivationReason,
        reason: DeactivationReason,
        at: datetime,
    ) -> Membership | None:
        if not is_object_id(membership_id):
            return None
        doc = self._col.find_one_and_update(
            {
                "_id": to_object_id(membership_id),
                "active": False,
                "deactivation_reason": str(expected),
            },
            {"$set": {"deactivation_reason": str(reason), "updated_at": at}},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            return None
        return MembershipDocument.model_validate(doc).to_domain()

    def mark_income(self, membership_id: str, income_date: str) -> bool:
        if not is_object_id(membership_id):
            return False
        # 날짜 문자열(YYYY-MM-DD)은 사전순 비교가 시간순과 같다
        result = self._col.update_one(
            {
                "_id": to_object_id(membership_id),
                "$or": [
                    {"last_income_on": None},
                    {"last_income_on": {"$lt": income_date}},
                ],
            },
            {"$set": {"last_income_on": income_date}},
        )
        return result.modified_count == 1
