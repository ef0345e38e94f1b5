"""
Unit tests for the queue and task repositories.
"""

from datetime import timedelta

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from batchq.constants import TaskStatus
from batchq.db.models import as_utc, utcnow
from batchq.db.repository import QueueRepository, TaskRepository


def _rows(queue_id: int, *task_ids: str, expiry_ms: int = 60_000) -> list[dict]:
    expiry_time = utcnow() + timedelta(milliseconds=expiry_ms)
    return [
        {"task_id": task_id, "params": {"id": task_id}, "expiry_time": expiry_time, "queue_id": queue_id}
        for task_id in task_ids
    ]


class TestQueueRepository:
    """Tests for QueueRepository."""

    @pytest_asyncio.fixture
    async def repo(self, db_session: AsyncSession) -> QueueRepository:
        return QueueRepository(db_session)

    async def test_create_queue(self, repo: QueueRepository, db_session: AsyncSession):
        """Test queue creation stores type and options verbatim."""
        options = {"callback": "http://example.test/done", "expiryTime": 5000, "team": "ml"}

        queue = await repo.create("thumbnail", options)
        await db_session.commit()

        assert queue.id is not None
        assert queue.type == "thumbnail"
        assert queue.options == options
        assert queue.completed_at is None
        assert queue.callback_url == "http://example.test/done"
        assert queue.lease_duration_ms == 5000

    async def test_queue_ids_are_unique(self, repo: QueueRepository, db_session: AsyncSession):
        first = await repo.create("a", {})
        second = await repo.create("a", {})
        await db_session.commit()

        assert first.id != second.id

    async def test_get_missing_queue(self, repo: QueueRepository):
        assert await repo.get(999_999) is None

    async def test_mark_completed_only_once(
        self,
        repo: QueueRepository,
        db_session: AsyncSession,
    ):
        """Test the completion marker is set by exactly one call."""
        queue = await repo.create("a", {})
        await db_session.commit()

        assert await repo.mark_completed(queue.id, utcnow()) is True
        assert await repo.mark_completed(queue.id, utcnow()) is False
        await db_session.commit()

        stored = await repo.get(queue.id)
        assert stored.completed_at is not None

    async def test_mark_completed_refused_with_unfinished_tasks(
        self,
        repo: QueueRepository,
        db_session: AsyncSession,
    ):
        queue = await repo.create("a", {})
        await TaskRepository(db_session).insert_batch(_rows(queue.id, "t1"))
        await db_session.commit()

        assert await repo.mark_completed(queue.id, utcnow()) is False


class TestTaskRepository:
    """Tests for TaskRepository."""

    @pytest_asyncio.fixture
    async def queue_id(self, db_session: AsyncSession) -> int:
        queue = await QueueRepository(db_session).create("echo", {"expiryTime": 1000})
        await db_session.commit()
        return queue.id

    @pytest_asyncio.fixture
    async def repo(self, db_session: AsyncSession) -> TaskRepository:
        return TaskRepository(db_session)

    async def test_insert_batch(self, repo: TaskRepository, db_session: AsyncSession, queue_id: int):
        """Test inserted tasks start AVAILABLE with no attempts."""
        inserted = await repo.insert_batch(_rows(queue_id, "a", "b", "c"))
        await db_session.commit()

        assert inserted == 3
        assert await repo.count(queue_id) == 3
        stats = await repo.stats(queue_id)
        assert stats == {
            "available": 3,
            "processing": 0,
            "completed": 0,
            "error": 0,
        }

    async def test_insert_empty_batch(self, repo: TaskRepository):
        assert await repo.insert_batch([]) == 0

    async def test_select_claimable_in_insertion_order(
        self,
        repo: TaskRepository,
        db_session: AsyncSession,
        queue_id: int,
    ):
        await repo.insert_batch(_rows(queue_id, "first", "second"))
        await db_session.commit()

        candidate = await repo.select_claimable(utcnow(), queue_id=queue_id)

        assert candidate is not None
        task_pk, options = candidate
        task = await repo.get(task_pk)
        assert task.task_id == "first"
        assert options == {"expiryTime": 1000}
        await db_session.rollback()

    async def test_select_claimable_by_type(
        self,
        repo: TaskRepository,
        db_session: AsyncSession,
        queue_id: int,
    ):
        await repo.insert_batch(_rows(queue_id, "a"))
        await db_session.commit()

        assert await repo.select_claimable(utcnow(), queue_type="echo") is not None
        assert await repo.select_claimable(utcnow(), queue_type="other") is None
        await db_session.rollback()

    async def test_lease_stamps_processing(
        self,
        repo: TaskRepository,
        db_session: AsyncSession,
        queue_id: int,
    ):
        """Test leasing moves a task to PROCESSING and counts the attempt."""
        await repo.insert_batch(_rows(queue_id, "a"))
        await db_session.commit()

        now = utcnow()
        task_pk, _ = await repo.select_claimable(now, queue_id=queue_id)
        task = await repo.lease(task_pk, start_time=now, expiry_time=now + timedelta(seconds=1))
        await db_session.commit()

        assert task.status == TaskStatus.PROCESSING
        assert task.attempts == 1
        assert as_utc(task.start_time) == now
        assert as_utc(task.expiry_time) == now + timedelta(seconds=1)

    async def test_unexpired_lease_not_claimable(
        self,
        repo: TaskRepository,
        db_session: AsyncSession,
        queue_id: int,
    ):
        await repo.insert_batch(_rows(queue_id, "a"))
        await db_session.commit()

        now = utcnow()
        task_pk, _ = await repo.select_claimable(now, queue_id=queue_id)
        await repo.lease(task_pk, start_time=now, expiry_time=now + timedelta(minutes=5))
        await db_session.commit()

        assert await repo.select_claimable(utcnow(), queue_id=queue_id) is None
        # Once the deadline has passed the task is offered again
        later = now + timedelta(minutes=6)
        assert await repo.select_claimable(later, queue_id=queue_id) == (task_pk, {"expiryTime": 1000})
        await db_session.rollback()

    async def test_finish_is_write_once(
        self,
        repo: TaskRepository,
        db_session: AsyncSession,
        queue_id: int,
    ):
        """Test a second terminal transition is refused and the first result kept."""
        await repo.insert_batch(_rows(queue_id, "a"))
        await db_session.commit()
        task_pk, _ = await repo.select_claimable(utcnow(), queue_id=queue_id)

        assert await repo.finish(task_pk, TaskStatus.COMPLETED, {"result": 1}) == queue_id
        assert await repo.finish(task_pk, TaskStatus.ERROR, {"error": "late"}) is None
        await db_session.commit()

        task = await repo.get(task_pk)
        assert task.status == TaskStatus.COMPLETED
        assert task.result == {"result": 1}
        assert task.end_time is not None

    async def test_finish_missing_task(self, repo: TaskRepository, db_session: AsyncSession):
        assert await repo.finish(999_999, TaskStatus.COMPLETED, {"result": None}) is None
        await db_session.rollback()

    async def test_terminal_results(
        self,
        repo: TaskRepository,
        db_session: AsyncSession,
        queue_id: int,
    ):
        """Test only finished tasks appear in the results mapping."""
        await repo.insert_batch(_rows(queue_id, "ok", "bad", "pending"))
        await db_session.commit()

        ok = await repo.select_claimable(utcnow(), queue_id=queue_id)
        await repo.finish(ok[0], TaskStatus.COMPLETED, {"result": "done"})
        bad = await repo.select_claimable(utcnow(), queue_id=queue_id)
        await repo.finish(bad[0], TaskStatus.ERROR, {"error": "boom"})
        await db_session.commit()

        assert await repo.terminal_results(queue_id) == {
            "ok": {"result": "done"},
            "bad": {"error": "boom"},
        }
        assert await repo.count_terminal(queue_id) == 2
        assert await repo.count(queue_id) == 3
