"""
Locust load testing for the batch queue API.

Run with:
    locust -f tests/load/locustfile.py --host=http://localhost:8000

Or headless:
    locust -f tests/load/locustfile.py --host=http://localhost:8000 \
        --headless -u 100 -r 10 --run-time 5m
"""

import random
import uuid

from locust import HttpUser, between, task

QUEUE_TYPES = [f"load-test-{i}" for i in range(3)]


class ProducerUser(HttpUser):
    """
    Simulated producer.

    Creates queues with large task mappings, tops them up and polls
    their progress.
    """

    wait_time = between(1, 3)

    def on_start(self):
        """Called when a user starts."""
        self.queue_ids: list[int] = []

    @task(3)
    def create_queue(self):
        """Create a queue with a few thousand tasks in one request."""
        task_count = random.randint(500, 5000)
        tasks = {f"{uuid.uuid4().hex[:12]}-{i}": {"n": i} for i in range(task_count)}

        response = self.client.post(
            "/v1/queues",
            json={
                "type": random.choice(QUEUE_TYPES),
                "options": {"expiryTime": 30000},
                "tasks": tasks,
            },
            name="/v1/queues [POST]",
        )

        if response.status_code == 201:
            self.queue_ids.append(response.json()["queue_id"])
            # Keep only recent queue ids
            if len(self.queue_ids) > 20:
                self.queue_ids = self.queue_ids[-20:]

    @task(2)
    def enqueue_more(self):
        """Top up a known queue. A completed queue answers 422."""
        if not self.queue_ids:
            return

        queue_id = random.choice(self.queue_ids)
        tasks = {uuid.uuid4().hex: {"extra": True} for _ in range(100)}

        with self.client.post(
            f"/v1/queues/{queue_id}/tasks",
            json={"tasks": tasks},
            name="/v1/queues/{queue_id}/tasks [POST]",
            catch_response=True,
        ) as response:
            if response.status_code in (201, 422):
                response.success()

    @task(5)
    def get_queue(self):
        """Check progress of a known queue."""
        if not self.queue_ids:
            return

        queue_id = random.choice(self.queue_ids)
        self.client.get(
            f"/v1/queues/{queue_id}",
            name="/v1/queues/{queue_id} [GET]",
        )

    @task(1)
    def health_check(self):
        """Check API health."""
        self.client.get("/health", name="/health [GET]")


class ConsumerUser(HttpUser):
    """
    Simulated remote worker.

    Claims tasks by type and reports outcomes, failing a small share of
    them and abandoning a few so their leases expire.
    """

    wait_time = between(0.05, 0.2)

    @task
    def claim_and_submit(self):
        """Claim one task and submit its outcome."""
        with self.client.post(
            "/v1/tasks/claim",
            params={"type": random.choice(QUEUE_TYPES)},
            name="/v1/tasks/claim [POST]",
            catch_response=True,
        ) as response:
            if response.status_code == 204:
                response.success()
                return
            if response.status_code != 200:
                response.failure(f"Claim failed: {response.status_code}")
                return
            claimed = response.json()

        roll = random.random()
        if roll < 0.02:
            # Simulate a crashed worker
            return

        body = {"error": "simulated failure"} if roll < 0.1 else {"result": claimed["params"]}

        with self.client.post(
            f"/v1/tasks/{claimed['id']}/result",
            json=body,
            name="/v1/tasks/{task_id}/result [POST]",
            catch_response=True,
        ) as response:
            # A lease may have expired and been finished by another consumer
            if response.status_code in (200, 409):
                response.success()
