"""
Queue engine services.

Each service is constructed with the AsyncSession it works on and owns the
transaction boundaries of its public operations.
"""

from batchq.services.completion import CompletionNotifier
from batchq.services.ingestion import TaskIngestor
from batchq.services.lease import LeaseManager
from batchq.services.registry import QueueRegistry
from batchq.services.results import ResultCollector

__all__ = [
    "QueueRegistry",
    "TaskIngestor",
    "LeaseManager",
    "ResultCollector",
    "CompletionNotifier",
]
