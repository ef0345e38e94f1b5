"""
Exception hierarchy for the queue engine.

Store failures are wrapped in the error type of the component that hit them,
with the underlying SQLAlchemy error chained as ``__cause__``.
"""


class BatchQueueError(Exception):
    """Base class for all queue engine errors."""


class StoreError(BatchQueueError):
    """Connectivity or constraint failure from the persistence layer."""


class QueueNotFoundError(BatchQueueError):
    """The referenced queue does not exist."""

    def __init__(self, queue_id: int):
        super().__init__(f"Queue {queue_id} not found")
        self.queue_id = queue_id


class IngestionError(BatchQueueError):
    """Malformed or empty task mapping, or a failed ingestion batch."""


class ClaimError(BatchQueueError):
    """Transaction failure while claiming a task.

    Not raised when there is simply no task to claim.
    """


class SubmissionError(BatchQueueError):
    """A task outcome could not be recorded."""


class TaskNotFoundError(SubmissionError):
    """The referenced task does not exist."""

    def __init__(self, task_id: int):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class TaskAlreadyFinishedError(SubmissionError):
    """The task already reached a terminal status; its result is kept."""

    def __init__(self, task_id: int, status: str):
        super().__init__(f"Task {task_id} already finished with status '{status}'")
        self.task_id = task_id
        self.status = status


class NotificationError(BatchQueueError):
    """The completion callback could not be delivered."""
