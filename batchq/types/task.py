"""
Task and queue type definitions for internal use.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from batchq.constants import TaskStatus


class QueueOptions(BaseModel):
    """
    Recognized keys of a queue's options bag.

    Unknown keys are allowed and kept; the bag is stored as submitted.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    callback: str | None = None
    expiry_time: int | None = Field(default=None, alias="expiryTime", gt=0)

    @field_validator("callback")
    @classmethod
    def _callback_is_http(cls, value: str | None) -> str | None:
        if value is not None and not value.startswith(("http://", "https://")):
            raise ValueError("callback must be an http(s) URL")
        return value


@dataclass(frozen=True)
class ClaimSelector:
    """Which tasks a claim may pick from: one queue, or every queue of a type."""

    queue_id: int | None = None
    queue_type: str | None = None

    def __post_init__(self) -> None:
        if (self.queue_id is None) == (self.queue_type is None):
            raise ValueError("ClaimSelector needs exactly one of queue_id or queue_type")

    @classmethod
    def by_queue(cls, queue_id: int) -> "ClaimSelector":
        return cls(queue_id=queue_id)

    @classmethod
    def by_type(cls, queue_type: str) -> "ClaimSelector":
        return cls(queue_type=queue_type)

    @property
    def label(self) -> str:
        """Low-cardinality label for metrics."""
        return "queue" if self.queue_id is not None else "type"


@dataclass
class IngestionReport:
    """Throughput figures for one ingestion."""

    task_count: int
    batch_count: int
    duration_seconds: float


@dataclass
class QueueCreated:
    """Outcome of creating a queue together with its tasks."""

    queue_id: int
    task_count: int


@dataclass
class SubmissionReceipt:
    """Outcome of recording a task result."""

    task_id: int
    queue_id: int
    status: TaskStatus
    queue_completed: bool = False


@dataclass
class TaskContext:
    """
    Context passed to task handlers during execution.
    Contains the claimed task's identity, input and lease.
    """

    id: int
    task_id: str
    queue_id: int
    queue_type: str | None
    params: Any
    attempt: int
    expiry_time: datetime | None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_retry(self) -> bool:
        """Check if an earlier lease on this task expired without a result."""
        return self.attempt > 1


class TaskOutcome(BaseModel):
    """
    Result of task execution.
    Returned by task handlers; exactly one of result/error is meaningful.
    """

    result: Any = None
    error: Any = None

    @property
    def success(self) -> bool:
        return not has_value(self.error)


class CompletionPayload(BaseModel):
    """Body POSTed to a queue's callback endpoint once it drains."""

    results: dict[str, dict[str, Any] | None]


def has_value(value: Any) -> bool:
    """None and the empty string count as "no value"."""
    return value is not None and value != ""
