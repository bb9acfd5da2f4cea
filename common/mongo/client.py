from __future__ import annotations

import logging
import threading
from datetime import timezone
from typing import Any, Optional, cast

from bson.codec_options import CodecOptions
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from .config import (
    get_mongo_app_name,
    get_mongo_db_name,
    get_mongo_server_selection_timeout_ms,
    get_mongo_uri,
    get_mongo_write_concern,
)
from .types import build_type_registry


logger = logging.getLogger(__name__)


_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


def build_codec_options() -> CodecOptions:
    """Decimal128 <-> Decimal 변환과 UTC aware datetime 을 쓰는 코덱 옵션."""

    return CodecOptions(
        tz_aware=True,
        tzinfo=timezone.utc,
        type_registry=build_type_registry(),
    )


def get_client() -> MongoClient:
    """전역 MongoClient 싱글톤을 반환한다.

    - MONGO_URI 에서 URI 를 읽어온다.
    - ping 으로 연결을 검증한다.
    - URI 에 기본 데이터베이스가 포함되어 있지 않으면 에러를 발생시킨다.
    - 인덱스는 각 Repository 생성 시점에 보장한다.
    """

    global _client, _db

    if _client is not None:
        return _client

    with _lock:
        if _client is not None:
            return _client

        uri = get_mongo_uri()
        client: MongoClient = MongoClient(
            uri,
            appname=get_mongo_app_name(),
            serverSelectionTimeoutMS=get_mongo_server_selection_timeout_ms(),
            retryWrites=True,
        )

        try:
            client.admin.command("ping")
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

        # 사용할 DB 이름 결정: MONGO_DB_NAME 우선, 없으면 URI의 기본 DB 사용
        db_name = get_mongo_db_name()
        # 잔액 갱신은 과반 노드에 기록된 뒤에만 성공으로 본다
        db_options: dict[str, Any] = {
            "codec_options": build_codec_options(),
            "write_concern": WriteConcern(w=get_mongo_write_concern()),
            "read_concern": ReadConcern("majority"),
        }
        try:
            if db_name:
                db = client.get_database(db_name, **db_options)
            else:
                db = client.get_default_database(**db_options)
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(
                "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
            ) from exc

        _client = client
        _db = db

        safe_db = cast(Database, _db)
        logger.info(
            "MongoDB connected (db=%s write_concern=%s)",
            safe_db.name,
            safe_db.write_concern.document,
        )
        return _client


def get_database() -> Database:
    """전역 기본 Database 객체를 반환한다."""

    global _db

    if _db is None:
        get_client()
    assert (
        _db is not None
    )  # get_client 에서 _db 를 초기화하지 못했다면 예외가 이미 발생했어야 한다.
    return _db


def close_client() -> None:
    """애플리케이션 종료 시 커넥션 풀을 정리한다."""

    global _client, _db

    with _lock:
        if _client is not None:
            _client.close()
        _client = None
        _db = None
