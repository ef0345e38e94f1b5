"""
Type definitions for the queue engine.
Contains input/output type definitions for services and the HTTP API.
"""

from batchq.types.api import (
    CreateQueueRequest,
    CreateQueueResponse,
    EnqueueRequest,
    EnqueueResponse,
    HealthResponse,
    QueueResponse,
    ResultsResponse,
    SubmitResultRequest,
    SubmitResultResponse,
    TaskResponse,
)
from batchq.types.task import (
    ClaimSelector,
    CompletionPayload,
    IngestionReport,
    QueueCreated,
    QueueOptions,
    SubmissionReceipt,
    TaskContext,
    TaskOutcome,
)

__all__ = [
    # API types
    "CreateQueueRequest",
    "CreateQueueResponse",
    "EnqueueRequest",
    "EnqueueResponse",
    "QueueResponse",
    "TaskResponse",
    "SubmitResultRequest",
    "SubmitResultResponse",
    "ResultsResponse",
    "HealthResponse",
    # Engine types
    "QueueOptions",
    "ClaimSelector",
    "IngestionReport",
    "QueueCreated",
    "SubmissionReceipt",
    "TaskContext",
    "TaskOutcome",
    "CompletionPayload",
]
