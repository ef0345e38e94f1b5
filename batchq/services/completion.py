"""
Completion detection and callback delivery.

A queue is complete when every task that belongs to it is in a terminal
status. That is recomputed from current rows each time. The counts are an
advisory snapshot, so the dispatch itself is guarded by a conditional write
of ``queues.completed_at``: only the submission whose write lands sends the
callback.
"""

import logging
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from batchq.config import get_settings
from batchq.constants import SPAN_NOTIFY_COMPLETION
from batchq.db.models import utcnow
from batchq.db.repository import QueueRepository, TaskRepository
from batchq.exceptions import NotificationError, StoreError
from batchq.observability.metrics import get_metrics
from batchq.observability.tracing import get_tracer
from batchq.types.task import CompletionPayload

logger = logging.getLogger(__name__)


class CompletionNotifier:
    """
    Detects drained queues and delivers their aggregated results.

    Delivery is best effort: one POST, no retries, and a failure never
    touches task state. Results stay queryable through ``collect_results``.
    """

    def __init__(
        self,
        session: AsyncSession,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        """
        Initialize the notifier.

        Args:
            session: The async database session.
            http_client: Client used for callbacks. A short-lived client is
                created per delivery when omitted.
            timeout: Callback timeout in seconds.
        """
        self._session = session
        self._queues = QueueRepository(session)
        self._tasks = TaskRepository(session)
        self._http_client = http_client
        self._timeout = timeout or get_settings().callback_timeout_seconds
        self._metrics = get_metrics()

    async def is_queue_complete(self, queue_id: int) -> bool:
        """
        Check whether every task of the queue is completed or errored.

        The two counts are separate queries and may straddle a concurrent
        write; trust the answer only once ingestion for the queue finished.
        """
        total = await self._tasks.count(queue_id)
        terminal = await self._tasks.count_terminal(queue_id)
        return total == terminal

    async def collect_results(self, queue_id: int) -> dict[str, Any]:
        """
        Get stored results of the queue's finished tasks.

        Returns:
            Mapping of task id to ``{"result": ...}`` or ``{"error": ...}``.
        """
        return await self._tasks.terminal_results(queue_id)

    async def get_stats(self, queue_id: int) -> dict[str, int]:
        return await self._tasks.stats(queue_id)

    async def summarize(self, queue_id: int) -> tuple[dict[str, int], bool]:
        """
        Read per-status counts and the completion flag for display.

        Raises:
            StoreError: If the queries fail.
        """
        try:
            return await self.get_stats(queue_id), await self.is_queue_complete(queue_id)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StoreError(f"Failed to read status of queue {queue_id}: {exc}") from exc

    async def stored_results(self, queue_id: int) -> dict[str, Any]:
        """
        ``collect_results`` for API readers.

        Raises:
            StoreError: If the query fails.
        """
        try:
            return await self.collect_results(queue_id)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StoreError(f"Failed to read results of queue {queue_id}: {exc}") from exc

    async def mark_completed(self, queue_id: int) -> bool:
        """
        Record that the queue's completion is being dispatched.

        Returns:
            True for exactly one caller per queue, and only once no task is
            left unfinished.
        """
        return await self._queues.mark_completed(queue_id, utcnow())

    async def notify(self, url: str, payload: dict[str, Any]) -> None:
        """
        POST the aggregated results to a callback endpoint.

        Args:
            url: The callback URL.
            payload: JSON body, ``{"results": {...}}``.

        Raises:
            NotificationError: On transport failure or a non-2xx response.
        """
        with get_tracer().start_as_current_span(SPAN_NOTIFY_COMPLETION) as span:
            span.set_attribute("callback_url", url)
            try:
                if self._http_client is not None:
                    response = await self._http_client.post(url, json=payload, timeout=self._timeout)
                else:
                    async with httpx.AsyncClient() as client:
                        response = await client.post(url, json=payload, timeout=self._timeout)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                self._metrics.record_callback("failed")
                raise NotificationError(f"Callback to {url} failed: {exc}") from exc

        self._metrics.record_callback("delivered")
        logger.info(
            "Delivered completion callback",
            extra={"url": url, "task_count": len(payload.get("results", {}))},
        )

    async def on_task_finished(self, queue_id: int, callback_url: str | None) -> bool:
        """
        Post-commit hook run after a task of ``queue_id`` reached a terminal status.

        Checks completion, claims the dispatch marker and, if this call won
        it and a callback is configured, delivers the results. Delivery
        failures are logged and swallowed.

        Returns:
            Whether the queue was observed complete.

        Raises:
            StoreError: If the completion queries fail.
        """
        dispatch = False
        results: dict[str, Any] | None = None

        try:
            complete = await self.is_queue_complete(queue_id)
            if complete:
                dispatch = await self.mark_completed(queue_id)
            if dispatch and callback_url:
                results = await self.collect_results(queue_id)
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StoreError(f"Failed to evaluate completion of queue {queue_id}: {exc}") from exc

        if not dispatch:
            if complete:
                logger.debug(
                    "Queue completion already dispatched",
                    extra={"queue_id": queue_id},
                )
            return complete

        self._metrics.record_queue_completed()
        logger.info("All tasks finished", extra={"queue_id": queue_id})

        if results is not None:
            try:
                await self.notify(callback_url, CompletionPayload(results=results).model_dump())
            except NotificationError:
                logger.exception(
                    "Completion callback failed",
                    extra={"queue_id": queue_id, "url": callback_url},
                )

        return True
