"""
SQLAlchemy database models.
Defines the Queue and Task tables.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from batchq.constants import (
    DEFAULT_EXPIRY_TIME_MS,
    OPTION_CALLBACK,
    OPTION_EXPIRY_TIME,
    TERMINAL_STATUSES,
    TaskStatus,
)

# BIGSERIAL on PostgreSQL, INTEGER PRIMARY KEY (rowid alias) on SQLite
Identifier = BigInteger().with_variant(Integer(), "sqlite")
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Queue(Base):
    """
    A named grouping of tasks sharing a type and an options bag.

    ``type`` and ``options`` are never modified after creation.
    ``completed_at`` is written once, by the first result submission that
    observes every task of the queue in a terminal status.
    """

    __tablename__ = "queues"

    id: Mapped[int] = mapped_column(Identifier, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    options: Mapped[dict[str, Any]] = mapped_column(
        JsonDocument,
        nullable=False,
        default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def callback_url(self) -> str | None:
        """The completion callback endpoint, if one was configured."""
        return callback_url_from_options(self.options)

    @property
    def lease_duration_ms(self) -> int:
        """Lease duration for claims on this queue's tasks."""
        return lease_duration_from_options(self.options)

    def __repr__(self) -> str:
        return f"Queue(id={self.id}, type={self.type!r})"


class Task(Base):
    """
    A unit of work belonging to exactly one queue.

    Key constraints:
    - (queue_id, task_id) is unique: task ids key the aggregated results
    - ``expiry_time`` is the lease deadline while status is PROCESSING
    - ``result`` is written once, on the terminal transition
    """

    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Identifier, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(String(255), nullable=False)
    queue_id: Mapped[int] = mapped_column(
        Identifier,
        ForeignKey("queues.id", ondelete="CASCADE"),
        nullable=False,
    )
    params: Mapped[Any] = mapped_column(JsonDocument, nullable=True)

    status: Mapped[TaskStatus] = mapped_column(
        Enum(
            TaskStatus,
            name="task_status",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=TaskStatus.AVAILABLE,
    )

    # Lease management
    expiry_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    result: Mapped[dict[str, Any] | None] = mapped_column(JsonDocument, nullable=True)

    __table_args__ = (
        UniqueConstraint("queue_id", "task_id", name="uq_tasks_queue_task_id"),
        # Claim by queue and completion counts
        Index("ix_tasks_queue_status", "queue_id", "status"),
        # Reclaim of expired leases
        Index("ix_tasks_status_expiry", "status", "expiry_time"),
    )

    @property
    def is_terminal(self) -> bool:
        """Check if the task reached a terminal status."""
        return self.status in TERMINAL_STATUSES

    @property
    def is_lease_expired(self) -> bool:
        """Check if a PROCESSING task's lease has elapsed."""
        if self.status != TaskStatus.PROCESSING or self.expiry_time is None:
            return False
        return utcnow() > as_utc(self.expiry_time)

    def __repr__(self) -> str:
        return (
            f"Task(id={self.id}, task_id={self.task_id!r}, queue={self.queue_id}, "
            f"status={self.status}, attempts={self.attempts})"
        )


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes read back from SQLite as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def callback_url_from_options(options: dict[str, Any] | None) -> str | None:
    if not options:
        return None
    return options.get(OPTION_CALLBACK) or None


def lease_duration_from_options(
    options: dict[str, Any] | None,
    default: int = DEFAULT_EXPIRY_TIME_MS,
) -> int:
    """
    Resolve the lease duration in milliseconds from a queue options bag.

    Args:
        options: The queue (or enqueue call) options.
        default: Fallback when ``expiryTime`` is absent or not a positive integer.

    Returns:
        The lease duration in milliseconds.
    """
    if not options:
        return default
    value = options.get(OPTION_EXPIRY_TIME)
    # bool is an int subclass; a stored "true" is not a duration
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return default
    return value
