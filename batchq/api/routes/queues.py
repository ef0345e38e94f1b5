"""
Queue management routes: creation, ingestion, status and results.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from batchq.api.errors import to_http_exception
from batchq.constants import API_V1_PREFIX
from batchq.db import get_async_session
from batchq.exceptions import BatchQueueError
from batchq.services import CompletionNotifier, QueueRegistry, TaskIngestor
from batchq.types.api import (
    CreateQueueRequest,
    CreateQueueResponse,
    EnqueueRequest,
    EnqueueResponse,
    QueueResponse,
    ResultsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/queues", tags=["Queues"])


@router.post(
    "",
    response_model=CreateQueueResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a queue",
    description="Create a queue, optionally ingesting its tasks in the same transaction.",
)
async def create_queue(
    request: CreateQueueRequest,
    session: AsyncSession = Depends(get_async_session),
) -> CreateQueueResponse:
    """
    Create a new queue.

    When ``tasks`` is given the queue and all its tasks are committed
    together; a failed ingestion leaves no queue behind.
    """
    registry = QueueRegistry(session)
    options = request.options.model_dump(by_alias=True, exclude_none=True)

    try:
        if request.tasks is None:
            queue_id = await registry.create_queue(request.type, options)
            return CreateQueueResponse(queue_id=queue_id)

        created = await registry.create_queue_and_enqueue(request.type, options, request.tasks)
    except BatchQueueError as exc:
        raise to_http_exception(exc) from exc

    return CreateQueueResponse(
        queue_id=created.queue_id,
        task_count=created.task_count,
        message="Queue created with tasks",
    )


@router.get(
    "/{queue_id}",
    response_model=QueueResponse,
    summary="Get queue details",
    description="Get a queue with per-status task counts and its completion state.",
)
async def get_queue(
    queue_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> QueueResponse:
    try:
        queue = await QueueRegistry(session).get_queue(queue_id)
        stats, complete = await CompletionNotifier(session).summarize(queue_id)
    except BatchQueueError as exc:
        raise to_http_exception(exc) from exc

    return QueueResponse(
        id=queue.id,
        type=queue.type,
        options=queue.options,
        created_at=queue.created_at,
        completed_at=queue.completed_at,
        stats=stats,
        complete=complete,
    )


@router.post(
    "/{queue_id}/tasks",
    response_model=EnqueueResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enqueue tasks",
    description="Add a mapping of task id to params to an existing queue.",
)
async def enqueue_tasks(
    queue_id: int,
    request: EnqueueRequest,
    session: AsyncSession = Depends(get_async_session),
) -> EnqueueResponse:
    options = (
        request.options.model_dump(by_alias=True, exclude_none=True)
        if request.options is not None
        else None
    )
    try:
        count = await TaskIngestor(session).enqueue(queue_id, request.tasks, options)
    except BatchQueueError as exc:
        raise to_http_exception(exc) from exc

    return EnqueueResponse(queue_id=queue_id, task_count=count)


@router.get(
    "/{queue_id}/results",
    response_model=ResultsResponse,
    summary="Get queue results",
    description="Get stored results of every finished task, keyed by task id.",
)
async def get_results(
    queue_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> ResultsResponse:
    try:
        await QueueRegistry(session).get_queue(queue_id)
        results = await CompletionNotifier(session).stored_results(queue_id)
    except BatchQueueError as exc:
        raise to_http_exception(exc) from exc

    return ResultsResponse(results=results)
