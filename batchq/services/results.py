"""
Result collector: records terminal task outcomes.
"""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from batchq.constants import SPAN_SUBMIT_RESULT, TaskStatus
from batchq.db.repository import QueueRepository, TaskRepository
from batchq.exceptions import StoreError, TaskAlreadyFinishedError, TaskNotFoundError
from batchq.observability.metrics import get_metrics
from batchq.observability.tracing import get_tracer
from batchq.services.completion import CompletionNotifier
from batchq.types.task import SubmissionReceipt, has_value

logger = logging.getLogger(__name__)


def build_result_payload(result: Any, error: Any) -> tuple[TaskStatus, dict[str, Any]]:
    """
    Pick the terminal status and stored payload for an outcome.

    An error wins over a result when both are given.
    """
    if has_value(error):
        return TaskStatus.ERROR, {"error": error}
    return TaskStatus.COMPLETED, {"result": result}


class ResultCollector:
    """
    Records task outcomes and triggers completion handling.

    A task's result is written once. Submitting again for a finished task
    is rejected with TaskAlreadyFinishedError and leaves the stored result
    untouched.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: CompletionNotifier | None = None,
    ):
        self._session = session
        self._queues = QueueRepository(session)
        self._tasks = TaskRepository(session)
        self._notifier = notifier or CompletionNotifier(session)
        self._metrics = get_metrics()

    async def submit_result(
        self,
        task_id: int,
        result: Any = None,
        error: Any = None,
    ) -> SubmissionReceipt:
        """
        Record a task's terminal outcome, commit, then evaluate queue completion.

        Args:
            task_id: The task's store id.
            result: Success value.
            error: Error value; takes precedence over ``result``.

        Returns:
            SubmissionReceipt with the new status and whether the queue is complete.

        Raises:
            TaskNotFoundError: If the task does not exist.
            TaskAlreadyFinishedError: If the task already has a result.
            StoreError: If the result cannot be recorded. A failed completion
                check after the commit is logged, not raised.
        """
        status, payload = build_result_payload(result, error)

        with get_tracer().start_as_current_span(SPAN_SUBMIT_RESULT) as span:
            span.set_attribute("task_id", task_id)
            span.set_attribute("status", status.value)

            rejected_status: TaskStatus | None = None
            try:
                queue_id = await self._tasks.finish(task_id, status, payload)
                if queue_id is None:
                    existing = await self._tasks.get(task_id)
                    if existing is None:
                        await self._session.rollback()
                        raise TaskNotFoundError(task_id)
                    queue_id = existing.queue_id
                    rejected_status = existing.status

                queue = await self._queues.get(queue_id)
                callback_url = queue.callback_url if queue is not None else None
                if rejected_status is None:
                    await self._session.commit()
                else:
                    await self._session.rollback()
            except SQLAlchemyError as exc:
                await self._session.rollback()
                raise StoreError(f"Failed to record result for task {task_id}: {exc}") from exc

        if rejected_status is not None:
            logger.warning(
                "Rejected result for finished task",
                extra={"id": task_id, "status": rejected_status.value},
            )
            # Completion may not have been evaluated when the task finished
            await self._settle_completion(queue_id, callback_url)
            raise TaskAlreadyFinishedError(task_id, rejected_status.value)

        self._metrics.record_result_submitted(status.value)
        logger.info(
            "Recorded task result",
            extra={"id": task_id, "queue_id": queue_id, "status": status.value},
        )

        queue_completed = await self._settle_completion(queue_id, callback_url)

        return SubmissionReceipt(
            task_id=task_id,
            queue_id=queue_id,
            status=status,
            queue_completed=queue_completed,
        )

    async def _settle_completion(self, queue_id: int, callback_url: str | None) -> bool:
        """
        Run the completion hook without failing an already committed result.

        A failed check is retried by the next submission for the queue,
        including a rejected resubmission of the same task.
        """
        try:
            return await self._notifier.on_task_finished(queue_id, callback_url)
        except StoreError:
            logger.exception(
                "Completion check failed",
                extra={"queue_id": queue_id},
            )
            return False
