"""
Queue registry: queue creation, alone or together with its tasks.
"""

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from batchq.db.models import Queue
from batchq.db.repository import QueueRepository
from batchq.exceptions import IngestionError, QueueNotFoundError, StoreError
from batchq.services.ingestion import TaskIngestor, validate_tasks
from batchq.types.task import QueueCreated

logger = logging.getLogger(__name__)


class QueueRegistry:
    """Creates and looks up queues."""

    def __init__(self, session: AsyncSession, ingestor: TaskIngestor | None = None):
        self._session = session
        self._queues = QueueRepository(session)
        self._ingestor = ingestor or TaskIngestor(session)

    async def create_queue(
        self,
        queue_type: str,
        options: Mapping[str, Any] | None = None,
    ) -> int:
        """
        Create a queue and commit.

        Args:
            queue_type: Any string; used for type-based claiming.
            options: Options bag (``callback``, ``expiryTime``, anything else).

        Returns:
            The new queue id.

        Raises:
            StoreError: If the insert fails.
        """
        try:
            queue = await self._queues.create(queue_type, dict(options or {}))
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StoreError(f"Failed to create queue of type {queue_type!r}: {exc}") from exc
        return queue.id

    async def create_queue_and_enqueue(
        self,
        queue_type: str,
        options: Mapping[str, Any] | None,
        tasks: Mapping[str, Any],
    ) -> QueueCreated:
        """
        Create a queue and ingest its tasks in a single transaction.

        Either the queue and all of its tasks are committed, or nothing is:
        a failed ingestion never leaves an empty queue behind.

        Raises:
            IngestionError: If ``tasks`` is empty or malformed, or a batch fails.
            StoreError: If the queue insert fails.
        """
        validate_tasks(tasks)

        try:
            queue = await self._queues.create(queue_type, dict(options or {}))
            report = await self._ingestor.ingest(queue, tasks, options)
            await self._session.commit()
        except IngestionError:
            await self._session.rollback()
            raise
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StoreError(f"Failed to create queue of type {queue_type!r}: {exc}") from exc

        logger.info(
            "Created queue with tasks",
            extra={
                "queue_id": queue.id,
                "queue_type": queue_type,
                "task_count": report.task_count,
            },
        )
        return QueueCreated(queue_id=queue.id, task_count=report.task_count)

    async def get_queue(self, queue_id: int) -> Queue:
        """
        Raises:
            QueueNotFoundError: If no such queue exists.
            StoreError: If the lookup fails.
        """
        try:
            queue = await self._queues.get(queue_id)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StoreError(f"Failed to load queue {queue_id}: {exc}") from exc
        if queue is None:
            raise QueueNotFoundError(queue_id)
        return queue
