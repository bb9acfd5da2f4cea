from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from ...dependencies import get_actor_id, get_batch_service
from ...models.batch import BatchReport
from ...services.batch_service import BatchService
from ..schemas.batch import BatchRequest


router = APIRouter(prefix="/batch", tags=["batch"])


@router.post("/{operation}")
def apply_batch(
    operation: str,
    req: BatchRequest,
    batch_service: Annotated[BatchService, Depends(get_batch_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> BatchReport:
    """대상별 결과 리포트를 돌려준다. 일부 실패해도 200 이다."""
    return batch_service.apply(operation, req.target_ids, req.params, actor_id)
