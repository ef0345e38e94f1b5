"""
Worker module.
Contains the task worker and the handler registry.
"""

from batchq.worker.main import Worker, run

__all__ = ["Worker", "run"]
