from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pymongo import ASCENDING, IndexModel, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from common.mongo.types import is_object_id, to_object_id

from .documents.product_document import ProductDocument
from .interfaces import ProductRepositoryInterface
from ..models.product import Product


class ProductRepository(ProductRepositoryInterface):
    """products 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["products"]
        self._col.create_indexes(
            [IndexModel([("name", ASCENDING)], unique=True, name="uniq_product_name")]
        )

    def insert(self, product: Product) -> Product | None:
        doc = ProductDocument.from_domain(product)
        try:
            result = self._col.insert_one(doc.to_mongo_record())
        except DuplicateKeyError:
            return None
        doc.id = result.inserted_id
        return doc.to_domain()

    def find_by_id(self, product_id: str) -> Product | None:
        if not is_object_id(product_id):
            return None
        doc = self._col.find_one({"_id": to_object_id(product_id)})
        if not doc:
            return None
        return ProductDocument.model_validate(doc).to_domain()

    def find_by_name(self, name: str) -> Product | None:
        doc = self._col.find_one({"name": name})
        if not doc:
            return None
        return ProductDocument.model_validate(doc).to_domain()

    def list(self, *, active_only: bool) -> list[Product]:
        query: dict[str, Any] = {"active": True} if active_only else {}
        cursor = self._col.find(query).sort("price_primary", ASCENDING)
        return [ProductDocument.model_validate(doc).to_domain() for doc in cursor]

    def update_fields(self, product_id: str, fields: dict[str, Any]) -> Product | None:
        if not is_object_id(product_id):
            return None
        doc = self._col.find_one_and_update(
            {"_id": to_object_id(product_id)},
            {"$set": {**fields, "updated_at": datetime.now(timezone.utc)}},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            return None
        return ProductDocument.model_validate(doc).to_domain()
