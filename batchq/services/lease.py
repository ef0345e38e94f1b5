"""
Lease manager: the claim protocol.

A claim locks one eligible task row (AVAILABLE, or PROCESSING with an
elapsed lease) with FOR UPDATE SKIP LOCKED, stamps a fresh lease on it and
commits. Concurrent claimants skip each other's locked rows instead of
waiting, so no two of them can lease the same task and a slow claimant
never stalls the rest.
"""

import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from batchq.config import get_settings
from batchq.constants import SPAN_CLAIM_TASK
from batchq.db.models import Task, lease_duration_from_options, utcnow
from batchq.db.repository import TaskRepository
from batchq.exceptions import ClaimError, StoreError
from batchq.observability.metrics import get_metrics
from batchq.observability.tracing import get_tracer
from batchq.types.task import ClaimSelector

logger = logging.getLogger(__name__)


class LeaseManager:
    """
    Hands out task leases to workers.

    A task whose worker crashed or hung becomes claimable again once its
    ``expiry_time`` passes; there is no separate recovery process. Claims
    are at-least-once: nothing caps how often a task is reclaimed, but
    ``attempts`` records it.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the lease manager.

        Args:
            session: The async database session.
        """
        self._session = session
        self._tasks = TaskRepository(session)
        self._default_expiry_ms = get_settings().default_expiry_time_ms
        self._metrics = get_metrics()

    async def claim_next(self, selector: ClaimSelector) -> Task | None:
        """
        Claim one eligible task and commit the lease.

        Args:
            selector: Claim from one queue, or from every queue of a type.

        Returns:
            The leased task, or None when no task is eligible right now.

        Raises:
            ClaimError: If the claim transaction fails. It is rolled back.
        """
        now = utcnow()

        with get_tracer().start_as_current_span(SPAN_CLAIM_TASK) as span:
            span.set_attribute("selector", selector.label)

            try:
                candidate = await self._tasks.select_claimable(
                    now,
                    queue_id=selector.queue_id,
                    queue_type=selector.queue_type,
                )
                if candidate is None:
                    await self._session.commit()
                    logger.debug(
                        "No tasks available",
                        extra={
                            "queue_id": selector.queue_id,
                            "queue_type": selector.queue_type,
                        },
                    )
                    return None

                task_pk, options = candidate
                lease_ms = lease_duration_from_options(options, self._default_expiry_ms)
                task = await self._tasks.lease(
                    task_pk,
                    start_time=now,
                    expiry_time=now + timedelta(milliseconds=lease_ms),
                )
                await self._session.commit()

            except SQLAlchemyError as exc:
                await self._session.rollback()
                logger.error(
                    "Claim transaction failed",
                    extra={
                        "queue_id": selector.queue_id,
                        "queue_type": selector.queue_type,
                        "error": str(exc),
                    },
                )
                raise ClaimError(f"Failed to claim a task: {exc}") from exc

            span.set_attribute("task_id", task.id)
            span.set_attribute("attempt", task.attempts)

        reclaimed = task.attempts > 1
        self._metrics.record_lease_acquired(selector.label, reclaimed=reclaimed)

        logger.info(
            "Reclaimed expired task" if reclaimed else "Claimed task",
            extra={
                "id": task.id,
                "task_id": task.task_id,
                "queue_id": task.queue_id,
                "attempt": task.attempts,
                "lease_ms": lease_ms,
            },
        )
        return task

    async def claim_by_queue(self, queue_id: int) -> Task | None:
        """Claim the next eligible task of one queue."""
        return await self.claim_next(ClaimSelector.by_queue(queue_id))

    async def claim_by_type(self, queue_type: str) -> Task | None:
        """Claim the next eligible task from any queue of ``queue_type``."""
        return await self.claim_next(ClaimSelector.by_type(queue_type))

    async def get_task(self, task_pk: int) -> Task | None:
        try:
            return await self._tasks.get(task_pk)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StoreError(f"Failed to load task {task_pk}: {exc}") from exc
