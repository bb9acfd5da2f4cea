from __future__ import annotations

import decimal
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from bson import ObjectId
from bson.codec_options import TypeCodec, TypeRegistry
from bson.decimal128 import Decimal128, create_decimal128_context
from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


def ensure_utc_datetime(value: datetime) -> datetime:
    """datetime 값을 UTC 기준으로 정규화한다.

    - tzinfo 가 없으면 UTC 로 간주해 tzinfo=UTC 를 부여
    - tzinfo 가 있으면 UTC 로 변환
    """

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_object_id(value: Any) -> ObjectId:
    """여러 타입(str, ObjectId 등)을 MongoDB ObjectId 로 변환한다."""

    if isinstance(value, ObjectId):
        return value
    if value is None:
        raise TypeError("ObjectId cannot be None")
    return ObjectId(str(value))


def from_object_id(value: Optional[ObjectId]) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def is_object_id(value: str) -> bool:
    return ObjectId.is_valid(value)


def to_decimal(value: Any) -> Decimal:
    """Decimal128/str/int/float 값을 Decimal 로 변환한다.

    float 은 이진 오차를 피하기 위해 str 을 거쳐 변환한다.
    """

    if isinstance(value, Decimal):
        return value
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


_DECIMAL128_CTX = create_decimal128_context()


def to_decimal128(value: Decimal) -> Decimal128:
    with decimal.localcontext(_DECIMAL128_CTX) as ctx:
        return Decimal128(ctx.create_decimal(value))


class DecimalCodec(TypeCodec):
    """Python Decimal <-> BSON Decimal128 변환 코덱.

    pymongo 는 Decimal 을 직접 인코딩하지 못하므로 Database 에 TypeRegistry 로 등록해서 사용한다.
    필터/업데이트($inc 포함)에 Decimal 을 그대로 넘겨도 Decimal128 로 저장된다.
    """

    python_type = Decimal  # type: ignore[assignment]
    bson_type = Decimal128  # type: ignore[assignment]

    def transform_python(self, value: Decimal) -> Decimal128:
        return to_decimal128(value)

    def transform_bson(self, value: Decimal128) -> Decimal:
        return value.to_decimal()


def build_type_registry() -> TypeRegistry:
    return TypeRegistry([DecimalCodec()])


PyObjectId = Annotated[ObjectId, BeforeValidator(to_object_id)]
MongoDateTime = Annotated[datetime, BeforeValidator(ensure_utc_datetime)]
MongoDecimal = Annotated[Decimal, BeforeValidator(to_decimal)]


class BaseDocument(BaseModel):
    """MongoDB 도큐먼트용 공통 베이스 모델.

    - ObjectId 같은 임의 타입을 허용
    - alias 기반 직렬화(by_alias)를 사용할 수 있도록 한다.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    # Mongo 공통 필드
    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    created_at: MongoDateTime
    updated_at: MongoDateTime

    def to_mongo_record(self) -> dict[str, Any]:
        """MongoDB 저장에 사용할 표준 레코드(dict) 직렬화.

        - by_alias=True 로 id -> _id 등의 Mongo 필드 이름과 일치시킨다.
        - exclude_none=True 로 _id=None 같은 필드를 제거해 Mongo가 ObjectId 를 생성하도록 한다.
        - Decimal 값은 Database 에 등록된 DecimalCodec 이 Decimal128 로 인코딩한다.
        """

        return self.model_dump(by_alias=True, exclude_none=True)


def build_document_data_from_domain(domain_model: BaseModel) -> dict[str, Any]:
    """도메인 Pydantic 모델을 Mongo 도큐먼트 dict 로 변환하는 공통 유틸.

    - 도메인 모델의 문자열 id 는 ObjectId 로 바꿔 `_id` 에 넣는다.
    - created_at / updated_at 은 도메인 모델에 모두 존재한다는 전제를 따른다.
    """

    data = domain_model.model_dump(by_alias=True)
    raw_id = data.pop("id", None)
    if raw_id is not None:
        data["_id"] = to_object_id(raw_id)
    return data
