"""SQLAlchemy async database models for OrderTrack.

Each logical partition of the document store is one table:
``orders`` / ``archived_orders`` and ``processes`` / ``archived_processes``.
Archived tables repeat the active columns plus ``archived_at`` and
``original_id``.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class OrderColumns:
    """Columns shared by active and archived orders."""

    order_number: Mapped[str] = mapped_column(Text, primary_key=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    part_number: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime)

    priority: Mapped[str] = mapped_column(Text, nullable=False, default="Medium")
    customer: Mapped[str] = mapped_column(Text, nullable=False, default="")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    state: Mapped[str] = mapped_column(Text, nullable=False, default="")

    updated: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    finished_date: Mapped[datetime | None] = mapped_column(DateTime)
    removed_date: Mapped[datetime | None] = mapped_column(DateTime)


class ProcessColumns:
    """Columns shared by active and archived processes."""

    process_id: Mapped[str] = mapped_column(Text, primary_key=True)
    work_order_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    assigned_resource: Mapped[str | None] = mapped_column(Text)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class OrderModel(OrderColumns, Base):
    """Active work order."""

    __tablename__ = "orders"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_order_quantity_positive"),
        CheckConstraint('start <= "end"', name="check_order_window"),
    )


class ArchivedOrderModel(OrderColumns, Base):
    """Work order moved out of the active partition (Finished/Done)."""

    __tablename__ = "archived_orders"

    archived_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    original_id: Mapped[str] = mapped_column(Text, nullable=False)


class ProcessModel(ProcessColumns, Base):
    """Active production step."""

    __tablename__ = "processes"

    __table_args__ = (
        CheckConstraint("sequence >= 1", name="check_process_sequence_positive"),
        CheckConstraint(
            "progress >= 0 AND progress <= 100", name="check_process_progress_range"
        ),
        Index("idx_processes_order_sequence", "work_order_id", "sequence", unique=True),
    )


class ArchivedProcessModel(ProcessColumns, Base):
    """Production step archived together with its order."""

    __tablename__ = "archived_processes"

    archived_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    original_id: Mapped[str] = mapped_column(Text, nullable=False)


class ImportRunLogModel(Base):
    """One row per bulk order import run.

    Mirrors the run result contract so operators can audit what each import
    created, updated, archived and removed.
    """

    __tablename__ = "import_run_log"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    run_timestamp: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, index=True
    )
    source_name: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    archived: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    removed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    auto_removed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_messages: Mapped[list | None] = mapped_column(JSON)
    duration_seconds: Mapped[float | None] = mapped_column()

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('SUCCESS', 'FAILED', 'PARTIAL_SUCCESS')",
            name="check_import_status_valid",
        ),
        CheckConstraint("errors >= 0", name="check_import_errors_non_negative"),
    )
