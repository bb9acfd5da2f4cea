from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel


T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """목록 API 공통 페이지네이션 응답."""

    items: list[T]
    total: int
    page: int
    page_size: int


def normalize_page(page: int, page_size: int, *, max_page_size: int = 100) -> tuple[int, int]:
    """잘못된 page/page_size 를 기본값으로 보정한다."""

    if page <= 0:
        page = 1
    if page_size <= 0 or page_size > max_page_size:
        page_size = 20
    return page, page_size
