"""
Batch Task Queue

A durable task queue: producers enqueue batches of tasks into queues, workers
claim them one at a time under expiring leases, and a completion callback is
fired once every task in a queue has reached a terminal state.
"""

__version__ = "1.0.0"
