"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from batchq.constants import TaskStatus
from batchq.types.task import QueueOptions


class CreateQueueRequest(BaseModel):
    """Request body for creating a queue, optionally with its tasks."""

    type: str = Field(..., min_length=1, max_length=255, description="Queue type tag")
    options: QueueOptions = Field(default_factory=QueueOptions)
    tasks: dict[str, Any] | None = Field(
        default=None, description="Mapping of task id to task parameters"
    )


class CreateQueueResponse(BaseModel):
    """Response body after creating a queue."""

    queue_id: int
    task_count: int = 0
    message: str = "Queue created successfully"


class EnqueueRequest(BaseModel):
    """Request body for adding tasks to an existing queue."""

    tasks: dict[str, Any] = Field(..., description="Mapping of task id to task parameters")
    options: QueueOptions | None = None


class EnqueueResponse(BaseModel):
    """Response body after adding tasks."""

    queue_id: int
    task_count: int


class QueueResponse(BaseModel):
    """Queue details with task counts."""

    id: int
    type: str
    options: dict[str, Any]
    created_at: datetime
    completed_at: datetime | None
    stats: dict[str, int]
    complete: bool


class TaskResponse(BaseModel):
    """Full task details response."""

    id: int
    task_id: str
    queue_id: int
    params: Any
    status: TaskStatus
    attempts: int
    expiry_time: datetime | None
    start_time: datetime | None
    end_time: datetime | None
    result: dict[str, Any] | None


class SubmitResultRequest(BaseModel):
    """Request body for reporting a task outcome."""

    result: Any = None
    error: Any = None


class SubmitResultResponse(BaseModel):
    """Response body after reporting a task outcome."""

    id: int
    queue_id: int
    status: TaskStatus
    queue_completed: bool


class ResultsResponse(BaseModel):
    """Aggregated results of a queue, keyed by task id."""

    results: dict[str, dict[str, Any] | None]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    timestamp: datetime

