"""
Unit tests for task handlers.
"""

import pytest

from batchq.db.models import utcnow
from batchq.types.task import TaskContext, TaskOutcome
from batchq.worker.handlers import (
    execute_task,
    get_handler,
    handle_echo,
    handle_failing,
    handle_http_request,
    list_handlers,
    register_handler,
)


def make_context(queue_type: str | None = "echo", params=None, attempt: int = 1) -> TaskContext:
    return TaskContext(
        id=1,
        task_id="task-1",
        queue_id=1,
        queue_type=queue_type,
        params={"message": "test"} if params is None else params,
        attempt=attempt,
        expiry_time=utcnow(),
    )


class TestTaskHandlers:
    """Tests for task handlers."""

    def test_list_handlers(self):
        handlers = list_handlers()

        assert "echo" in handlers
        assert "sleep" in handlers
        assert "failing" in handlers
        assert "http_request" in handlers

    def test_get_handler(self):
        assert get_handler("echo") is handle_echo
        assert get_handler("nonexistent") is None

    async def test_echo_handler(self):
        outcome = await handle_echo(make_context(params={"a": [1, 2]}))

        assert outcome.success is True
        assert outcome.result == {"a": [1, 2]}

    async def test_sleep_handler(self):
        outcome = await get_handler("sleep")(make_context(params={"duration_seconds": 0}))

        assert outcome.result == {"slept_for": 0}

    async def test_failing_handler(self):
        outcome = await handle_failing(make_context(attempt=3))

        assert outcome.success is False
        assert outcome.error == "Intentional failure on attempt 3"

    async def test_http_request_requires_url(self):
        outcome = await handle_http_request(make_context(params={}))

        assert outcome.error == "Missing 'url' in params"

    async def test_execute_task_dispatches_by_queue_type(self):
        outcome = await execute_task(make_context(queue_type="echo", params="hi"))

        assert outcome.result == "hi"

    async def test_execute_task_unknown_type(self):
        outcome = await execute_task(make_context(queue_type="nonexistent"))

        assert outcome.success is False
        assert "No handler registered" in outcome.error

    async def test_execute_task_handler_exception(self):
        @register_handler("test_exploding")
        async def explode(context: TaskContext) -> TaskOutcome:
            raise RuntimeError("kaboom")

        outcome = await execute_task(make_context(queue_type="test_exploding"))

        assert outcome.error == "Handler exception: kaboom"


class TestTaskContext:
    """Tests for TaskContext."""

    @pytest.mark.parametrize(("attempt", "expected"), [(1, False), (2, True)])
    def test_is_retry(self, attempt, expected):
        assert make_context(attempt=attempt).is_retry is expected
