"""
Batched task ingestion.

A task mapping is split into fixed-size batches, each written with one
multi-row INSERT. Batches are applied one after another inside the caller's
transaction, which bounds statement size and lock time and keeps the order
of duplicate-key failures deterministic.
"""

import logging
import time
from collections.abc import Iterator, Mapping, Sequence
from datetime import timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from batchq.config import get_settings
from batchq.constants import SPAN_INGEST_TASKS
from batchq.db.models import Queue, lease_duration_from_options, utcnow
from batchq.db.repository import QueueRepository, TaskRepository
from batchq.exceptions import BatchQueueError, IngestionError, QueueNotFoundError, StoreError
from batchq.observability.metrics import get_metrics
from batchq.observability.tracing import get_tracer
from batchq.types.task import IngestionReport

logger = logging.getLogger(__name__)

MAX_TASK_ID_LENGTH = 255


def validate_tasks(tasks: Any) -> None:
    """
    Check that ``tasks`` is a non-empty mapping of task id to params.

    Raises:
        IngestionError: If the mapping is empty or malformed.
    """
    if not isinstance(tasks, Mapping):
        raise IngestionError(
            f"tasks must be a mapping of task id to params, got {type(tasks).__name__}"
        )
    if not tasks:
        raise IngestionError("tasks must not be empty")

    for task_id in tasks:
        if not isinstance(task_id, str) or not task_id:
            raise IngestionError(f"Invalid task id {task_id!r}: must be a non-empty string")
        if len(task_id) > MAX_TASK_ID_LENGTH:
            raise IngestionError(
                f"Task id {task_id[:32]!r}... exceeds {MAX_TASK_ID_LENGTH} characters"
            )


def iter_batches(
    entries: Sequence[tuple[str, Any]],
    batch_size: int,
) -> Iterator[Sequence[tuple[str, Any]]]:
    for start in range(0, len(entries), batch_size):
        yield entries[start:start + batch_size]


class TaskIngestor:
    """
    Ingestion batcher.

    ``enqueue`` is a complete unit of work (one transaction per call);
    ``ingest`` only writes and is shared with queue creation so that a queue
    and its tasks can be committed together.
    """

    def __init__(self, session: AsyncSession, batch_size: int | None = None):
        """
        Initialize the ingestor.

        Args:
            session: The async database session.
            batch_size: Rows per INSERT. Defaults to the configured size.
        """
        settings = get_settings()
        self._session = session
        self._queues = QueueRepository(session)
        self._tasks = TaskRepository(session)
        self._default_expiry_ms = settings.default_expiry_time_ms
        self.batch_size = batch_size or settings.ingestion_batch_size
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._metrics = get_metrics()

    async def enqueue(
        self,
        queue_id: int,
        tasks: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> int:
        """
        Add tasks to an existing queue and commit.

        Args:
            queue_id: The target queue.
            tasks: Mapping of task id to params.
            options: Optional options; ``expiryTime`` overrides the queue's.

        Returns:
            Number of tasks ingested.

        Raises:
            QueueNotFoundError: If the queue does not exist.
            IngestionError: If the tasks are malformed, the queue already
                completed, or a batch fails. Nothing from the call is kept.
        """
        validate_tasks(tasks)

        try:
            queue = await self._queues.get(queue_id)
            if queue is None:
                raise QueueNotFoundError(queue_id)
            if queue.completed_at is not None:
                raise IngestionError(
                    f"Queue {queue_id} already completed; create a new queue for more tasks"
                )

            report = await self.ingest(queue, tasks, options)
            await self._session.commit()
        except BatchQueueError:
            await self._session.rollback()
            raise
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StoreError(f"Failed to enqueue tasks into queue {queue_id}: {exc}") from exc

        return report.task_count

    async def ingest(
        self,
        queue: Queue,
        tasks: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> IngestionReport:
        """
        Write ``tasks`` into ``queue`` in batches without committing.

        All rows share one placeholder ``expiry_time`` snapshot; the real
        lease deadline is stamped when a task is claimed.

        Returns:
            IngestionReport with task count, batch count and duration.

        Raises:
            IngestionError: On malformed input or any failed batch.
        """
        validate_tasks(tasks)

        queue_default = lease_duration_from_options(queue.options, self._default_expiry_ms)
        lease_ms = lease_duration_from_options(dict(options or {}), queue_default)
        expiry_time = utcnow() + timedelta(milliseconds=lease_ms)

        entries = list(tasks.items())
        batch_count = 0
        started = time.perf_counter()

        with get_tracer().start_as_current_span(SPAN_INGEST_TASKS) as span:
            span.set_attribute("queue_id", queue.id)
            span.set_attribute("task_count", len(entries))

            for batch in iter_batches(entries, self.batch_size):
                rows = [
                    {
                        "task_id": task_id,
                        "params": params,
                        "expiry_time": expiry_time,
                        "queue_id": queue.id,
                    }
                    for task_id, params in batch
                ]
                try:
                    await self._tasks.insert_batch(rows)
                except SQLAlchemyError as exc:
                    logger.error(
                        "Ingestion batch failed",
                        extra={
                            "queue_id": queue.id,
                            "batch": batch_count + 1,
                            "first_task_id": batch[0][0],
                        },
                    )
                    raise IngestionError(
                        f"Batch {batch_count + 1} for queue {queue.id} failed: {exc}"
                    ) from exc
                batch_count += 1

            span.set_attribute("batch_count", batch_count)

        duration = time.perf_counter() - started

        logger.info(
            "Ingested tasks",
            extra={
                "queue_id": queue.id,
                "task_count": len(entries),
                "batch_count": batch_count,
                "batch_size": self.batch_size,
                "duration": f"{duration:.3f}s",
            },
        )
        self._metrics.record_ingestion(
            queue_type=queue.type,
            task_count=len(entries),
            batch_count=batch_count,
            duration_seconds=duration,
        )

        return IngestionReport(
            task_count=len(entries),
            batch_count=batch_count,
            duration_seconds=duration,
        )
