from __future__ import annotations

from datetime import datetime

from pymongo import ASCENDING, DESCENDING, IndexModel, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from common.mongo.types import is_object_id, to_object_id

from .documents.referral_document import ReferralDocument
from .interfaces import ReferralRepositoryInterface
from ..models.referral import Referral, ReferralStatus


class ReferralRepository(ReferralRepositoryInterface):
    """referrals 컬렉션에 대한 MongoDB 접근 레이어.

    referred_id 유니크 인덱스가 "피추천 계정당 보너스 1회"를 보장한다.
    """

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["referrals"]
        self._col.create_indexes(
            [
                IndexModel([("referred_id", ASCENDING)], unique=True, name="uniq_referred"),
                IndexModel(
                    [("referrer_id", ASCENDING), ("created_at", DESCENDING)],
                    name="idx_referrer_created",
                ),
            ]
        )

    def reserve(self, referral: Referral) -> Referral | None:
        doc = ReferralDocument.from_domain(referral)
        try:
            result = self._col.insert_one(doc.to_mongo_record())
        except DuplicateKeyError:
            return None
        doc.id = result.inserted_id
        return doc.to_domain()

    def find_by_referred(self, referred_id: str) -> Referral | None:
        doc = self._col.find_one({"referred_id": referred_id})
        if not doc:
            return None
        return ReferralDocument.model_validate(doc).to_domain()

    def mark_paid(self, referral_id: str, at: datetime) -> Referral | None:
        if not is_object_id(referral_id):
            return None
        doc = self._col.find_one_and_update(
            {
                "_id": to_object_id(referral_id),
                "status": {"$ne": str(ReferralStatus.PAID)},
            },
            {
                "$set": {
                    "status": str(ReferralStatus.PAID),
                    "paid_at": at,
                    "updated_at": at,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            return None
        return ReferralDocument.model_validate(doc).to_domain()

    def list_by_referrer(
        self, referrer_id: str, page: int, page_size: int
    ) -> tuple[list[Referral], int]:
        query = {"referrer_id": referrer_id}
        skip = (page - 1) * page_size
        total = self._col.count_documents(query)
        cursor = (
            self._col.find(query)
            .sort("created_at", DESCENDING)
            .skip(skip)
            .limit(page_size)
        )
        return [ReferralDocument.model_validate(doc).to_domain() for doc in cursor], total
