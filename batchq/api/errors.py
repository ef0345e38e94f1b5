"""
Mapping of queue engine errors to HTTP errors.
"""

from fastapi import HTTPException, status

from batchq.exceptions import (
    BatchQueueError,
    ClaimError,
    IngestionError,
    NotificationError,
    QueueNotFoundError,
    StoreError,
    SubmissionError,
    TaskAlreadyFinishedError,
    TaskNotFoundError,
)

_STATUS_CODES: list[tuple[type[BatchQueueError], int]] = [
    (QueueNotFoundError, status.HTTP_404_NOT_FOUND),
    (TaskNotFoundError, status.HTTP_404_NOT_FOUND),
    (TaskAlreadyFinishedError, status.HTTP_409_CONFLICT),
    (IngestionError, 422),
    (SubmissionError, status.HTTP_400_BAD_REQUEST),
    (ClaimError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (NotificationError, status.HTTP_502_BAD_GATEWAY),
]


def to_http_exception(exc: BatchQueueError) -> HTTPException:
    """
    Convert an engine error into the HTTPException a route should raise.

    Args:
        exc: The engine error.

    Returns:
        HTTPException with a status code matching the error type.
    """
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc),
    )
