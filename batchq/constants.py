"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Task lifecycle states.

    State transitions:
    - AVAILABLE -> PROCESSING (lease acquired)
    - PROCESSING -> COMPLETED (result submitted)
    - PROCESSING -> ERROR (error submitted)
    - PROCESSING (lease expired) -> PROCESSING (reclaimed by another worker)

    An expired lease is not written back as AVAILABLE; it is simply
    eligible for the next claim.
    """

    AVAILABLE = "available"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES: tuple[TaskStatus, ...] = (TaskStatus.COMPLETED, TaskStatus.ERROR)

# Queue option keys
OPTION_CALLBACK = "callback"
OPTION_EXPIRY_TIME = "expiryTime"

# Default values
DEFAULT_EXPIRY_TIME_MS = 120_000
DEFAULT_BATCH_SIZE = 1000

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_TASKS_INGESTED = "batchq_tasks_ingested_total"
METRIC_INGESTION_BATCHES = "batchq_ingestion_batches_total"
METRIC_INGESTION_DURATION = "batchq_ingestion_duration_seconds"
METRIC_LEASE_ACQUIRED = "batchq_lease_acquired_total"
METRIC_LEASE_RECLAIMED = "batchq_lease_reclaimed_total"
METRIC_RESULTS_SUBMITTED = "batchq_results_submitted_total"
METRIC_QUEUES_COMPLETED = "batchq_queues_completed_total"
METRIC_CALLBACKS = "batchq_callbacks_total"
METRIC_API_REQUESTS = "batchq_api_requests_total"
METRIC_API_LATENCY = "batchq_api_request_latency_seconds"

# Trace span names
SPAN_INGEST_TASKS = "ingest_tasks"
SPAN_CLAIM_TASK = "claim_task"
SPAN_SUBMIT_RESULT = "submit_result"
SPAN_NOTIFY_COMPLETION = "notify_completion"
SPAN_EXECUTE_TASK = "execute_task"
