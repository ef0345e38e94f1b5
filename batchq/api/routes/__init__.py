"""
API routes module.
"""

from batchq.api.routes.health import router as health_router
from batchq.api.routes.queues import router as queues_router
from batchq.api.routes.tasks import router as tasks_router

__all__ = ["queues_router", "tasks_router", "health_router"]
