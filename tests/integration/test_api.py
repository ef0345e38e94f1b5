"""
Integration tests for the API endpoints.
"""

from unittest.mock import patch

import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from batchq.api.errors import to_http_exception
from batchq.db.repository import TaskRepository
from batchq.exceptions import IngestionError, QueueNotFoundError, StoreError

LOCKED = OperationalError("SELECT", {}, Exception("database is locked"))


class TestQueueAPI:
    """Integration tests for queue endpoints."""

    @pytest_asyncio.fixture
    async def created_queue(self, client: AsyncClient, sample_tasks: dict) -> dict:
        """Create a queue with three tasks."""
        response = await client.post(
            "/v1/queues",
            json={"type": "echo", "options": {"expiryTime": 60000}, "tasks": sample_tasks},
        )
        return response.json()

    async def test_create_queue_with_tasks(self, client: AsyncClient, sample_tasks: dict):
        response = await client.post(
            "/v1/queues",
            json={"type": "echo", "tasks": sample_tasks},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["queue_id"] > 0
        assert data["task_count"] == 3

    async def test_create_empty_queue(self, client: AsyncClient):
        response = await client.post(
            "/v1/queues",
            json={"type": "echo", "options": {"callback": "http://cb.test/", "team": "ml"}},
        )

        assert response.status_code == 201
        queue_id = response.json()["queue_id"]

        response = await client.get(f"/v1/queues/{queue_id}")
        data = response.json()
        assert data["options"] == {"callback": "http://cb.test/", "team": "ml"}
        assert data["complete"] is True

    async def test_create_queue_with_empty_tasks(self, client: AsyncClient):
        """Test an empty task mapping is rejected and no queue is left behind."""
        response = await client.post("/v1/queues", json={"type": "echo", "tasks": {}})

        assert response.status_code == 422

    async def test_create_queue_invalid_options(self, client: AsyncClient):
        response = await client.post(
            "/v1/queues",
            json={"type": "echo", "options": {"callback": "ftp://nope", "expiryTime": 0}},
        )

        assert response.status_code == 422

    async def test_get_queue(self, client: AsyncClient, created_queue: dict):
        response = await client.get(f"/v1/queues/{created_queue['queue_id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["type"] == "echo"
        assert data["stats"]["available"] == 3
        assert data["complete"] is False
        assert data["completed_at"] is None

    async def test_get_queue_not_found(self, client: AsyncClient):
        response = await client.get("/v1/queues/999999")

        assert response.status_code == 404

    async def test_enqueue_tasks(self, client: AsyncClient, created_queue: dict):
        queue_id = created_queue["queue_id"]

        response = await client.post(
            f"/v1/queues/{queue_id}/tasks",
            json={"tasks": {"d": 4, "e": 5}},
        )

        assert response.status_code == 201
        assert response.json() == {"queue_id": queue_id, "task_count": 2}

    async def test_enqueue_duplicate_task_id(self, client: AsyncClient, created_queue: dict):
        response = await client.post(
            f"/v1/queues/{created_queue['queue_id']}/tasks",
            json={"tasks": {"a": "again"}},
        )

        assert response.status_code == 422

    async def test_enqueue_unknown_queue(self, client: AsyncClient):
        response = await client.post("/v1/queues/999999/tasks", json={"tasks": {"a": 1}})

        assert response.status_code == 404

    async def test_get_queue_store_failure(self, client: AsyncClient, created_queue: dict):
        with patch.object(TaskRepository, "stats", side_effect=LOCKED):
            response = await client.get(f"/v1/queues/{created_queue['queue_id']}")

        assert response.status_code == 503

    async def test_get_results_store_failure(self, client: AsyncClient, created_queue: dict):
        with patch.object(TaskRepository, "terminal_results", side_effect=LOCKED):
            response = await client.get(f"/v1/queues/{created_queue['queue_id']}/results")

        assert response.status_code == 503


class TestTaskAPI:
    """Integration tests for claim and result endpoints."""

    @pytest_asyncio.fixture
    async def queue_id(self, client: AsyncClient) -> int:
        response = await client.post(
            "/v1/queues",
            json={"type": "api-test", "tasks": {"a": {"n": 1}, "b": {"n": 2}}},
        )
        return response.json()["queue_id"]

    async def test_claim_by_queue(self, client: AsyncClient, queue_id: int):
        response = await client.post("/v1/tasks/claim", params={"queue_id": queue_id})

        assert response.status_code == 200
        data = response.json()
        assert data["task_id"] == "a"
        assert data["params"] == {"n": 1}
        assert data["status"] == "processing"
        assert data["attempts"] == 1

    async def test_claim_by_type(self, client: AsyncClient, queue_id: int):
        response = await client.post("/v1/tasks/claim", params={"type": "api-test"})

        assert response.status_code == 200
        assert response.json()["queue_id"] == queue_id

    async def test_claim_when_drained(self, client: AsyncClient, queue_id: int):
        """Test a drained queue answers 204 rather than an error."""
        for _ in range(2):
            await client.post("/v1/tasks/claim", params={"queue_id": queue_id})

        response = await client.post("/v1/tasks/claim", params={"queue_id": queue_id})

        assert response.status_code == 204

    async def test_claim_needs_one_selector(self, client: AsyncClient, queue_id: int):
        response = await client.post("/v1/tasks/claim")
        assert response.status_code == 400

        response = await client.post(
            "/v1/tasks/claim",
            params={"queue_id": queue_id, "type": "api-test"},
        )
        assert response.status_code == 400

    async def test_submit_results_until_complete(self, client: AsyncClient, queue_id: int):
        """Test the full claim/submit cycle through to queue completion."""
        first = (await client.post("/v1/tasks/claim", params={"queue_id": queue_id})).json()
        second = (await client.post("/v1/tasks/claim", params={"queue_id": queue_id})).json()

        response = await client.post(f"/v1/tasks/{first['id']}/result", json={"result": {"ok": True}})
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["queue_completed"] is False

        response = await client.post(
            f"/v1/tasks/{second['id']}/result",
            json={"result": "ignored", "error": "failed"},
        )
        assert response.json()["status"] == "error"
        assert response.json()["queue_completed"] is True

        response = await client.get(f"/v1/queues/{queue_id}/results")
        assert response.json() == {
            "results": {"a": {"result": {"ok": True}}, "b": {"error": "failed"}}
        }

        queue = (await client.get(f"/v1/queues/{queue_id}")).json()
        assert queue["complete"] is True
        assert queue["completed_at"] is not None

    async def test_resubmit_conflicts(self, client: AsyncClient, queue_id: int):
        task = (await client.post("/v1/tasks/claim", params={"queue_id": queue_id})).json()
        await client.post(f"/v1/tasks/{task['id']}/result", json={"result": 1})

        response = await client.post(f"/v1/tasks/{task['id']}/result", json={"result": 2})

        assert response.status_code == 409
        stored = (await client.get(f"/v1/tasks/{task['id']}")).json()
        assert stored["result"] == {"result": 1}

    async def test_submit_unknown_task(self, client: AsyncClient):
        response = await client.post("/v1/tasks/999999/result", json={"result": 1})

        assert response.status_code == 404

    async def test_get_task_not_found(self, client: AsyncClient):
        response = await client.get("/v1/tasks/999999")

        assert response.status_code == 404

    async def test_get_task_store_failure(self, client: AsyncClient, queue_id: int):
        with patch.object(TaskRepository, "get", side_effect=LOCKED):
            response = await client.get("/v1/tasks/1")

        assert response.status_code == 503

    async def test_enqueue_after_completion_rejected(self, client: AsyncClient, queue_id: int):
        for _ in range(2):
            task = (await client.post("/v1/tasks/claim", params={"queue_id": queue_id})).json()
            await client.post(f"/v1/tasks/{task['id']}/result", json={"result": None})

        response = await client.post(f"/v1/queues/{queue_id}/tasks", json={"tasks": {"c": 3}})

        assert response.status_code == 422


class TestErrorMapping:
    """Domain errors map onto HTTP status codes."""

    def test_ingestion_error_is_unprocessable(self):
        assert to_http_exception(IngestionError("duplicate task id")).status_code == 422

    def test_store_error_is_unavailable(self):
        assert to_http_exception(StoreError("locked")).status_code == 503

    def test_missing_queue_is_not_found(self):
        assert to_http_exception(QueueNotFoundError(1)).status_code == 404


class TestHealthEndpoints:
    """Integration tests for health endpoints."""

    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"

    async def test_liveness(self, client: AsyncClient):
        response = await client.get("/live")

        assert response.status_code == 200
        assert response.json()["alive"] is True

    async def test_readiness(self, client: AsyncClient):
        response = await client.get("/ready")

        assert response.status_code == 200
        assert response.json()["ready"] is True

    async def test_metrics(self, client: AsyncClient):
        await client.get("/live")

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers.get("content-type", "")
        assert "batchq_api_requests_total" in response.text
