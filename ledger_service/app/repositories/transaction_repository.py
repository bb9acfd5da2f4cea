"""거래 레포지토리 구현체.

상태 전이는 모두 `status` 와 `claim_token` 을 조건으로 건 find_one_and_update 다.
승인은 claim(점유) -> 원장 반영 -> complete 순서로 진행되고, 점유 중인 거래는
다른 승인/거절 요청에서 매칭되지 않으므로 승인과 거절은 서로 배타적이다.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pymongo import ASCENDING, DESCENDING, IndexModel, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from common.mongo.types import is_object_id, to_object_id

from .documents.transaction_document import TransactionDocument
from .interfaces import TransactionRepositoryInterface
from ..models.transaction import Transaction, TransactionStatus


class TransactionRepository(TransactionRepositoryInterface):
    """transactions 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["transactions"]
        self._col.create_indexes(
            [
                IndexModel(
                    [("idempotency_key", ASCENDING)],
                    unique=True,
                    partialFilterExpression={"idempotency_key": {"$type": "string"}},
                    name="uniq_idempotency_key",
                ),
                IndexModel(
                    [("account_id", ASCENDING), ("created_at", DESCENDING)],
                    name="idx_account_created",
                ),
                IndexModel(
                    [("status", ASCENDING), ("created_at", DESCENDING)],
                    name="idx_status_created",
                ),
                IndexModel([("claimed_at", ASCENDING)], sparse=True, name="idx_claimed_at"),
            ]
        )

    def _find_and_update(
        self, query: dict[str, Any], update: dict[str, Any]
    ) -> Transaction | None:
        doc = self._col.find_one_and_update(
            query, update, return_document=ReturnDocument.AFTER
        )
        if not doc:
            return None
        return TransactionDocument.model_validate(doc).to_domain()

    def insert(self, tx: Transaction) -> Transaction | None:
        doc = TransactionDocument.from_domain(tx)
        try:
            result = self._col.insert_one(doc.to_mongo_record())
        except DuplicateKeyError:
            return None
        doc.id = result.inserted_id
        return doc.to_domain()

    def find_by_id(self, tx_id: str) -> Transaction | None:
        if not is_object_id(tx_id):
            return None
        doc = self._col.find_one({"_id": to_object_id(tx_id)})
        if not doc:
            return None
        return TransactionDocument.model_validate(doc).to_domain()

    def find_by_idempotency_key(self, key: str) -> Transaction | None:
        doc = self._col.find_one({"idempotency_key": key})
        if not doc:
            return None
        return TransactionDocument.model_validate(doc).to_domain()

    def claim_pending(
        self, tx_id: str, token: str, claimed_by: str, at: datetime
    ) -> Transaction | None:
        if not is_object_id(tx_id):
            return None
        return self._find_and_update(
            {
                "_id": to_object_id(tx_id),
                "status": str(TransactionStatus.PENDING),
                "claim_token": None,
            },
            {
                "$set": {
                    "claim_token": token,
                    "claimed_by": claimed_by,
                    "claimed_at": at,
                    "updated_at": at,
                }
            },
        )

    def complete_claimed(
        self,
        tx_id: str,
        token: str,
        *,
        approved_by: str,
        admin_notes: str | None,
        at: datetime,
    ) -> Transaction | None:
        if not is_object_id(tx_id):
            return None
        fields: dict[str, Any] = {
            "status": str(TransactionStatus.APPROVED),
            "approved_by": approved_by,
            "completed_at": at,
            "updated_at": at,
        }
        if admin_notes:
            fields["admin_notes"] = admin_notes
        return self._find_and_update(
            {
                "_id": to_object_id(tx_id),
                "status": str(TransactionStatus.PENDING),
                "claim_token": token,
            },
            {"$set": fields, "$unset": {"claim_token": "", "claimed_at": ""}},
        )

    def reject_claimed(
        self, tx_id: str, token: str, *, reason: str, at: datetime
    ) -> Transaction | None:
        if not is_object_id(tx_id):
            return None
        return self._find_and_update(
            {
                "_id": to_object_id(tx_id),
                "status": str(TransactionStatus.PENDING),
                "claim_token": token,
            },
            {
                "$set": {
                    "status": str(TransactionStatus.REJECTED),
                    "rejection_reason": reason,
                    "rejected_at": at,
                    "updated_at": at,
                },
                "$unset": {"claim_token": "", "claimed_at": ""},
            },
        )

    def release_claim(self, tx_id: str, token: str) -> bool:
        if not is_object_id(tx_id):
            return False
        result = self._col.update_one(
            {
                "_id": to_object_id(tx_id),
                "status": str(TransactionStatus.PENDING),
                "claim_token": token,
            },
            {"$unset": {"claim_token": "", "claimed_by": "", "claimed_at": ""}},
        )
        return result.modified_count == 1

    def reject_pending(
        self, tx_id: str, *, rejected_by: str, reason: str, at: datetime
    ) -> Transaction | None:
        if not is_object_id(tx_id):
            return None
        return self._find_and_update(
            {
                "_id": to_object_id(tx_id),
                "status": str(TransactionStatus.PENDING),
                "claim_token": None,
            },
            {
                "$set": {
                    "status": str(TransactionStatus.REJECTED),
                    "approved_by": rejected_by,
                    "rejection_reason": reason,
                    "rejected_at": at,
                    "updated_at": at,
                }
            },
        )

    def _list(
        self, query: dict[str, Any], page: int, page_size: int
    ) -> tuple[list[Transaction], int]:
        skip = (page - 1) * page_size
        total = self._col.count_documents(query)
        cursor = (
            self._col.find(query)
            .sort("created_at", DESCENDING)
            .skip(skip)
            .limit(page_size)
        )
        return [TransactionDocument.model_validate(doc).to_domain() for doc in cursor], total

    def list_by_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[Transaction], int]:
        return self._list({"account_id": account_id}, page, page_size)

    def list_by_status(
        self, status: TransactionStatus, page: int, page_size: int
    ) -> tuple[list[Transaction], int]:
        return self._list({"status": str(status)}, page, page_size)

    def list_stale_claims(self, claimed_before: datetime, limit: int) -> list[Transaction]:
        cursor = (
            self._col.find(
                {
                    "status": str(TransactionStatus.PENDING),
                    "claimed_at": {"$lte": claimed_before},
                }
            )
            .sort("claimed_at", ASCENDING)
            .limit(limit)
        )
        return [TransactionDocument.model_validate(doc).to_domain() for doc in cursor]
