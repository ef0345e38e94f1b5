"""
Queue and task repositories.

Data access for the queue engine. Repository methods never commit: the
service that owns the unit of work decides where the transaction ends.
Every statement is built from SQLAlchemy expressions and therefore
parameterized.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import and_, case, exists, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from batchq.constants import TERMINAL_STATUSES, TaskStatus
from batchq.db.models import Queue, Task, utcnow

logger = logging.getLogger(__name__)


class QueueRepository:
    """Repository for queue rows."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, queue_type: str, options: dict[str, Any] | None) -> Queue:
        """
        Insert a new queue.

        Args:
            queue_type: Type tag used by type-based claiming.
            options: Options bag stored verbatim.

        Returns:
            The created Queue with its store-generated id.
        """
        stmt = (
            insert(Queue)
            .values(type=queue_type, options=options or {})
            .returning(Queue)
        )
        result = await self._session.execute(stmt)
        queue = result.scalar_one()

        logger.info(
            "Created queue",
            extra={"queue_id": queue.id, "queue_type": queue_type},
        )
        return queue

    async def get(self, queue_id: int) -> Queue | None:
        stmt = select(Queue).where(Queue.id == queue_id).execution_options(
            populate_existing=True
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_completed(self, queue_id: int, now: datetime) -> bool:
        """
        Set ``completed_at`` if it is unset and no task is left unfinished.

        The emptiness check and the marker write are one statement, so two
        concurrent callers cannot both succeed.

        Returns:
            True if this call set the marker.
        """
        unfinished = exists().where(
            and_(
                Task.queue_id == queue_id,
                Task.status.not_in(TERMINAL_STATUSES),
            )
        )
        stmt = (
            update(Queue)
            .where(
                and_(
                    Queue.id == queue_id,
                    Queue.completed_at.is_(None),
                    ~unfinished,
                )
            )
            .values(completed_at=now)
            .returning(Queue.id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None


class TaskRepository:
    """
    Repository for task rows.

    Implements the lease protocol primitives:
    - Candidate selection with FOR UPDATE SKIP LOCKED
    - Lease stamping
    - Write-once terminal transitions
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def insert_batch(self, rows: Sequence[dict[str, Any]]) -> int:
        """
        Insert one batch of tasks as a single multi-row INSERT.

        Args:
            rows: Dicts with task_id, params, expiry_time and queue_id.

        Returns:
            Number of rows inserted.
        """
        if not rows:
            return 0
        stmt = insert(Task.__table__).values(
            [{**row, "status": TaskStatus.AVAILABLE, "attempts": 0} for row in rows]
        )
        await self._session.execute(stmt)
        return len(rows)

    async def get(self, task_pk: int) -> Task | None:
        stmt = select(Task).where(Task.id == task_pk).execution_options(
            populate_existing=True
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def select_claimable(
        self,
        now: datetime,
        queue_id: int | None = None,
        queue_type: str | None = None,
    ) -> tuple[int, dict[str, Any]] | None:
        """
        Lock one claimable task and return its id with its queue's options.

        Claimable means AVAILABLE, or PROCESSING with an elapsed lease.
        Rows locked by another in-flight claim are skipped rather than
        waited on. Expired leases are handed out before never-claimed
        tasks, then insertion order.

        Args:
            now: The claim timestamp.
            queue_id: Restrict to one queue.
            queue_type: Restrict to queues of this type.

        Returns:
            (task primary key, queue options) or None if nothing qualifies.
        """
        filters = [
            or_(
                Task.status == TaskStatus.AVAILABLE,
                and_(
                    Task.status == TaskStatus.PROCESSING,
                    Task.expiry_time < now,
                ),
            )
        ]
        if queue_id is not None:
            filters.append(Task.queue_id == queue_id)
        if queue_type is not None:
            filters.append(Queue.type == queue_type)

        stmt = (
            select(Task.id, Queue.options)
            .join(Queue, Task.queue_id == Queue.id)
            .where(and_(*filters))
            .order_by(
                case((Task.status == TaskStatus.PROCESSING, 0), else_=1),
                Task.id,
            )
            .limit(1)
            # Lock only the task row; locking the joined queue row would make
            # every other claimant on the queue skip all of its tasks.
            .with_for_update(skip_locked=True, of=Task)
        )
        result = await self._session.execute(stmt)
        row = result.first()
        if row is None:
            return None
        return row.id, row.options

    async def lease(
        self,
        task_pk: int,
        start_time: datetime,
        expiry_time: datetime,
    ) -> Task:
        """Stamp a fresh lease on a locked task and return the updated row."""
        stmt = (
            update(Task)
            .where(Task.id == task_pk)
            .values(
                status=TaskStatus.PROCESSING,
                start_time=start_time,
                expiry_time=expiry_time,
                attempts=Task.attempts + 1,
            )
            .returning(Task)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def finish(
        self,
        task_pk: int,
        status: TaskStatus,
        payload: dict[str, Any],
    ) -> int | None:
        """
        Record a terminal outcome unless one is already recorded.

        Returns:
            The owning queue id, or None if the task is missing or terminal.
        """
        stmt = (
            update(Task)
            .where(
                and_(
                    Task.id == task_pk,
                    Task.status.not_in(TERMINAL_STATUSES),
                )
            )
            .values(
                status=status,
                end_time=utcnow(),
                result=payload,
            )
            .returning(Task.queue_id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def count(self, queue_id: int) -> int:
        stmt = select(func.count()).select_from(Task).where(Task.queue_id == queue_id)
        result = await self._session.execute(stmt)
        return result.scalar() or 0

    async def count_terminal(self, queue_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(Task)
            .where(
                and_(
                    Task.queue_id == queue_id,
                    Task.status.in_(TERMINAL_STATUSES),
                )
            )
        )
        result = await self._session.execute(stmt)
        return result.scalar() or 0

    async def terminal_results(self, queue_id: int) -> dict[str, Any]:
        """Map logical task id to stored result payload for finished tasks."""
        stmt = (
            select(Task.task_id, Task.result)
            .where(
                and_(
                    Task.queue_id == queue_id,
                    Task.status.in_(TERMINAL_STATUSES),
                )
            )
            .order_by(Task.id)
        )
        result = await self._session.execute(stmt)
        return {row.task_id: row.result for row in result.all()}

    async def stats(self, queue_id: int) -> dict[str, int]:
        """
        Get task counts by status for a queue.

        Returns:
            Dictionary of status -> count, with every status present.
        """
        stmt = (
            select(Task.status, func.count())
            .where(Task.queue_id == queue_id)
            .group_by(Task.status)
        )
        result = await self._session.execute(stmt)
        stats = {status.value: 0 for status in TaskStatus}
        stats.update({status.value: count for status, count in result.all()})
        return stats
