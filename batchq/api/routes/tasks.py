"""
Worker-facing task routes: claiming and result submission.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from batchq.api.errors import to_http_exception
from batchq.constants import API_V1_PREFIX
from batchq.db import get_async_session
from batchq.db.models import Task
from batchq.exceptions import BatchQueueError
from batchq.services import LeaseManager, ResultCollector
from batchq.types.api import SubmitResultRequest, SubmitResultResponse, TaskResponse
from batchq.types.task import ClaimSelector

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/tasks", tags=["Tasks"])


def _task_to_response(task: Task) -> TaskResponse:
    """Convert a Task model to a TaskResponse."""
    return TaskResponse(
        id=task.id,
        task_id=task.task_id,
        queue_id=task.queue_id,
        params=task.params,
        status=task.status,
        attempts=task.attempts,
        expiry_time=task.expiry_time,
        start_time=task.start_time,
        end_time=task.end_time,
        result=task.result,
    )


@router.post(
    "/claim",
    response_model=TaskResponse,
    responses={204: {"description": "No task available"}},
    summary="Claim the next task",
    description="Lease the next eligible task of a queue (queue_id) or of any queue of a type (type).",
)
async def claim_task(
    queue_id: int | None = Query(default=None),
    queue_type: str | None = Query(default=None, alias="type"),
    session: AsyncSession = Depends(get_async_session),
) -> TaskResponse | Response:
    """
    Claim a task.

    Returns 204 when nothing is eligible; that is not an error.
    """
    try:
        selector = ClaimSelector(queue_id=queue_id, queue_type=queue_type)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide exactly one of 'queue_id' or 'type'",
        ) from exc

    try:
        task = await LeaseManager(session).claim_next(selector)
    except BatchQueueError as exc:
        raise to_http_exception(exc) from exc

    if task is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return _task_to_response(task)


@router.get(
    "/{task_pk}",
    response_model=TaskResponse,
    summary="Get task details",
)
async def get_task(
    task_pk: int,
    session: AsyncSession = Depends(get_async_session),
) -> TaskResponse:
    try:
        task = await LeaseManager(session).get_task(task_pk)
    except BatchQueueError as exc:
        raise to_http_exception(exc) from exc
    if task is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found",
        )
    return _task_to_response(task)


@router.post(
    "/{task_pk}/result",
    response_model=SubmitResultResponse,
    summary="Submit a task result",
    description="Record a task's result or error. An error takes precedence over a result.",
)
async def submit_result(
    task_pk: int,
    request: SubmitResultRequest,
    session: AsyncSession = Depends(get_async_session),
) -> SubmitResultResponse:
    """
    Submit a task outcome.

    Completion callbacks triggered by this submission are delivered before
    the response; their failures are logged and do not affect it.
    """
    try:
        receipt = await ResultCollector(session).submit_result(
            task_pk,
            result=request.result,
            error=request.error,
        )
    except BatchQueueError as exc:
        raise to_http_exception(exc) from exc

    return SubmitResultResponse(
        id=receipt.task_id,
        queue_id=receipt.queue_id,
        status=receipt.status,
        queue_completed=receipt.queue_completed,
    )
