from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class BatchRequest(BaseModel):
    target_ids: list[str] = Field(default_factory=list)
    params: dict[str, Any] = Field(default_factory=dict)
