"""
Worker process for executing tasks.

The worker claims one task at a time from a queue (or from every queue of a
type), runs the handler registered for the queue type and submits the
outcome. Crash recovery needs nothing from the worker: an unfinished task is
reclaimed by whoever claims after its lease expires.
"""

import asyncio
import logging
import os
import signal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from batchq.config import get_settings
from batchq.constants import SPAN_EXECUTE_TASK
from batchq.db import close_db, get_session_factory, init_db
from batchq.db.models import Task
from batchq.db.repository import QueueRepository
from batchq.exceptions import QueueNotFoundError, TaskAlreadyFinishedError
from batchq.observability.logging import bind_context, clear_context, setup_logging
from batchq.observability.metrics import setup_metrics
from batchq.observability.tracing import get_tracer, setup_tracing
from batchq.services import LeaseManager, ResultCollector
from batchq.types.task import ClaimSelector, TaskContext
from batchq.worker.handlers import execute_task

logger = logging.getLogger(__name__)


class Worker:
    """
    Task worker that polls for and executes tasks.

    Features:
    - Lease-based claiming with FOR UPDATE SKIP LOCKED
    - Configurable number of concurrent claim loops
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        queue_type: str | None = None,
        queue_id: int | None = None,
        worker_id: str | None = None,
        poll_interval: float | None = None,
        concurrency: int | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        """
        Initialize the worker.

        Args:
            queue_type: Claim from every queue of this type.
            queue_id: Claim from this queue only.
            worker_id: Worker identifier for logs. Defaults to hostname + PID.
            poll_interval: Seconds to wait when no task is available.
            concurrency: Number of claim loops run side by side.
            session_factory: Session factory; the process-wide one by default.
        """
        settings = get_settings()

        if queue_type is None and queue_id is None:
            queue_type = settings.worker_queue_type
            queue_id = settings.worker_queue_id
        self.selector = ClaimSelector(queue_id=queue_id, queue_type=queue_type)

        self.worker_id = worker_id or settings.worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds
        self.concurrency = concurrency or settings.worker_concurrency

        self._session_factory = session_factory
        # Known up front for type claims; looked up once for a single-queue worker
        self._queue_type_name: str | None = self.selector.queue_type
        self._running = False

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    async def start(self) -> None:
        """Run claim loops until ``stop`` is called."""
        logger.info(
            "Worker starting",
            extra={
                "worker_id": self.worker_id,
                "queue_id": self.selector.queue_id,
                "queue_type": self.selector.queue_type,
                "concurrency": self.concurrency,
            },
        )
        self._running = True

        await asyncio.gather(*(self._claim_loop() for _ in range(self.concurrency)))

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def stop(self) -> None:
        """Stop the worker after in-flight tasks finish."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._running = False

    async def _claim_loop(self) -> None:
        while self._running:
            try:
                processed = await self.run_once()
                if not processed:
                    await asyncio.sleep(self.poll_interval)
            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.worker_id},
                )
                await asyncio.sleep(self.poll_interval)

    async def run_once(self) -> bool:
        """
        Claim, execute and report a single task.

        Returns:
            True if a task was processed, False if none was available.
        """
        async with self.session_factory() as session:
            task = await LeaseManager(session).claim_next(self.selector)
            if task is None:
                return False
            queue_type = await self._queue_type(session, task)

        context = TaskContext(
            id=task.id,
            task_id=task.task_id,
            queue_id=task.queue_id,
            queue_type=queue_type,
            params=task.params,
            attempt=task.attempts,
            expiry_time=task.expiry_time,
            metadata={"worker_id": self.worker_id},
        )

        with get_tracer().start_as_current_span(SPAN_EXECUTE_TASK) as span:
            span.set_attribute("task_id", task.id)
            span.set_attribute("queue_id", task.queue_id)
            span.set_attribute("attempt", task.attempts)

            outcome = await execute_task(context)

        async with self.session_factory() as session:
            try:
                receipt = await ResultCollector(session).submit_result(
                    task.id,
                    result=outcome.result,
                    error=outcome.error,
                )
            except TaskAlreadyFinishedError:
                # Our lease expired and another worker finished the task first
                logger.warning(
                    "Discarding outcome of task finished elsewhere",
                    extra={"id": task.id, "worker_id": self.worker_id},
                )
                return True

        logger.info(
            "Task processed",
            extra={
                "id": task.id,
                "task_id": task.task_id,
                "status": receipt.status.value,
                "queue_completed": receipt.queue_completed,
            },
        )
        return True

    async def _queue_type(self, session: AsyncSession, task: Task) -> str:
        if self._queue_type_name is None:
            queue = await QueueRepository(session).get(task.queue_id)
            if queue is None:
                raise QueueNotFoundError(task.queue_id)
            self._queue_type_name = queue.type
        return self._queue_type_name


async def run_async() -> None:
    """Run the worker asynchronously."""
    setup_logging()
    setup_metrics()
    setup_tracing()
    await init_db()

    worker = Worker()
    bind_context(worker_id=worker.worker_id)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    try:
        await worker.start()
    finally:
        clear_context()
        await close_db()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
