"""Queue inspection endpoints."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from contract_assistant.api.deps import get_queue
from contract_assistant.core.auth import get_current_user_id
from contract_assistant.queue.base import QueueBackend

router = APIRouter(prefix="/queues", tags=["queues"])


class QueueStatsResponse(BaseModel):
    """Entry counts per state for one queue."""

    queue_name: str = Field(alias="queueName")
    waiting: int
    active: int
    completed: int
    failed: int
    delayed: int
    total: int


@router.get("/stats", response_model=QueueStatsResponse)
def get_queue_stats(
    user_id: str = Depends(get_current_user_id),
    queue: QueueBackend = Depends(get_queue),
) -> QueueStatsResponse:
    return QueueStatsResponse.model_validate(queue.stats())
