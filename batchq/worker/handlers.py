"""
Task handler registry and built-in handlers.

Handlers are registered per queue type. They must be idempotent: a task
whose lease expires before its result is submitted is handed to another
worker and runs again.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from batchq.types.task import TaskContext, TaskOutcome

logger = logging.getLogger(__name__)

# Type alias for task handler functions
TaskHandler = Callable[[TaskContext], Awaitable[TaskOutcome]]

# Handler registry
_handlers: dict[str, TaskHandler] = {}


def register_handler(queue_type: str) -> Callable[[TaskHandler], TaskHandler]:
    """
    Decorator to register the handler for a queue type.

    Example:
        @register_handler("thumbnail")
        async def handle_thumbnail(context: TaskContext) -> TaskOutcome:
            ...
    """
    def decorator(handler: TaskHandler) -> TaskHandler:
        _handlers[queue_type] = handler
        logger.debug(f"Registered handler for queue type: {queue_type}")
        return handler
    return decorator


def get_handler(queue_type: str) -> TaskHandler | None:
    return _handlers.get(queue_type)


def list_handlers() -> list[str]:
    """List all queue types with a registered handler."""
    return list(_handlers.keys())


def _param(context: TaskContext, key: str, default: Any) -> Any:
    if isinstance(context.params, dict):
        return context.params.get(key, default)
    return default


# ============================================================================
# Built-in handlers
# ============================================================================


@register_handler("echo")
async def handle_echo(context: TaskContext) -> TaskOutcome:
    """Return the task params unchanged."""
    return TaskOutcome(result=context.params)


@register_handler("sleep")
async def handle_sleep(context: TaskContext) -> TaskOutcome:
    """
    Sleep for ``params.duration_seconds`` (default 1).
    """
    duration = _param(context, "duration_seconds", 1)
    await asyncio.sleep(duration)
    return TaskOutcome(result={"slept_for": duration})


@register_handler("failing")
async def handle_failing(context: TaskContext) -> TaskOutcome:
    """Always report an error."""
    return TaskOutcome(error=f"Intentional failure on attempt {context.attempt}")


@register_handler("http_request")
async def handle_http_request(context: TaskContext) -> TaskOutcome:
    """
    Make an HTTP request.

    Params:
    - url: The URL to request
    - method: HTTP method (default GET)
    - headers: Optional headers
    - body: Optional JSON body for POST/PUT/PATCH
    """
    url = _param(context, "url", None)
    method = str(_param(context, "method", "GET")).upper()

    if not url:
        return TaskOutcome(error="Missing 'url' in params")

    try:
        async with httpx.AsyncClient() as client:
            response = await client.request(
                method=method,
                url=url,
                headers=_param(context, "headers", None),
                json=_param(context, "body", None) if method in ("POST", "PUT", "PATCH") else None,
                timeout=30.0,
            )
    except httpx.HTTPError as e:
        return TaskOutcome(error=f"HTTP request failed: {e}")

    if not response.is_success:
        return TaskOutcome(error=f"HTTP {response.status_code}")

    return TaskOutcome(
        result={
            "status_code": response.status_code,
            "body": response.text[:1000],
        }
    )


async def execute_task(context: TaskContext) -> TaskOutcome:
    """
    Run the handler registered for the task's queue type.

    Handler exceptions become error outcomes.
    """
    handler = get_handler(context.queue_type) if context.queue_type else None

    if handler is None:
        logger.error(
            f"No handler for queue type: {context.queue_type}",
            extra={"id": context.id},
        )
        return TaskOutcome(error=f"No handler registered for queue type: {context.queue_type}")

    try:
        return await handler(context)
    except Exception as e:
        logger.exception(
            "Handler raised exception",
            extra={"id": context.id, "error": str(e)},
        )
        return TaskOutcome(error=f"Handler exception: {e}")
