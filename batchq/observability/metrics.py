"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from batchq.constants import (
    METRIC_API_LATENCY,
    METRIC_API_REQUESTS,
    METRIC_CALLBACKS,
    METRIC_INGESTION_BATCHES,
    METRIC_INGESTION_DURATION,
    METRIC_LEASE_ACQUIRED,
    METRIC_LEASE_RECLAIMED,
    METRIC_QUEUES_COMPLETED,
    METRIC_RESULTS_SUBMITTED,
    METRIC_TASKS_INGESTED,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the queue engine.

    Collects metrics for:
    - Ingestion throughput (tasks, batches, duration)
    - Lease acquisition and reclamation
    - Result submissions and queue completions
    - Callback deliveries
    - API requests
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.tasks_ingested = Counter(
            METRIC_TASKS_INGESTED,
            "Total number of tasks ingested",
            ["queue_type"],
            registry=self._registry,
        )

        self.ingestion_batches = Counter(
            METRIC_INGESTION_BATCHES,
            "Total number of ingestion batches inserted",
            ["queue_type"],
            registry=self._registry,
        )

        self.ingestion_duration = Histogram(
            METRIC_INGESTION_DURATION,
            "Time spent ingesting one task mapping in seconds",
            ["queue_type"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=self._registry,
        )

        self.lease_acquired = Counter(
            METRIC_LEASE_ACQUIRED,
            "Total number of task leases acquired",
            ["selector"],
            registry=self._registry,
        )

        self.lease_reclaimed = Counter(
            METRIC_LEASE_RECLAIMED,
            "Total number of leases acquired on tasks whose previous lease expired",
            ["selector"],
            registry=self._registry,
        )

        self.results_submitted = Counter(
            METRIC_RESULTS_SUBMITTED,
            "Total number of terminal task outcomes recorded",
            ["status"],
            registry=self._registry,
        )

        self.queues_completed = Counter(
            METRIC_QUEUES_COMPLETED,
            "Total number of queues fully drained",
            registry=self._registry,
        )

        self.callbacks = Counter(
            METRIC_CALLBACKS,
            "Total number of completion callback deliveries",
            ["outcome"],
            registry=self._registry,
        )

        self.api_requests = Counter(
            METRIC_API_REQUESTS,
            "Total number of API requests",
            ["method", "endpoint", "status"],
            registry=self._registry,
        )

        self.api_latency = Histogram(
            METRIC_API_LATENCY,
            "API request latency in seconds",
            ["method", "endpoint"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self._registry,
        )

    def record_ingestion(
        self,
        queue_type: str,
        task_count: int,
        batch_count: int,
        duration_seconds: float,
    ) -> None:
        """Record one completed ingestion."""
        self.tasks_ingested.labels(queue_type=queue_type).inc(task_count)
        self.ingestion_batches.labels(queue_type=queue_type).inc(batch_count)
        self.ingestion_duration.labels(queue_type=queue_type).observe(duration_seconds)

    def record_lease_acquired(self, selector: str, reclaimed: bool = False) -> None:
        """Record a lease acquisition."""
        self.lease_acquired.labels(selector=selector).inc()
        if reclaimed:
            self.lease_reclaimed.labels(selector=selector).inc()

    def record_result_submitted(self, status: str) -> None:
        self.results_submitted.labels(status=status).inc()

    def record_queue_completed(self) -> None:
        self.queues_completed.inc()

    def record_callback(self, outcome: str) -> None:
        """Record a callback delivery outcome ("delivered" or "failed")."""
        self.callbacks.labels(outcome=outcome).inc()

    def record_api_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration_seconds: float,
    ) -> None:
        """Record an API request."""
        self.api_requests.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        self.api_latency.labels(method=method, endpoint=endpoint).observe(
            duration_seconds
        )

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
