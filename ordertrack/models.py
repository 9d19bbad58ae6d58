"""OrderTrack Pydantic models for type-safe order and process documents.

Active and archived documents share one shape; archived copies add
``archived_at`` and ``original_id``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    """Naive UTC timestamp, the form every stored timestamp uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class OrderStatus(str, Enum):
    """Order status vocabulary (input and stored)."""

    OPEN = "Open"
    RELEASED = "Released"
    IN_PROGRESS = "In Progress"
    DELAYED = "Delayed"
    FIRM_PLANNED = "Firm Planned"
    FINISHED = "Finished"
    DONE = "Done"
    REMOVED = "Removed"

    @classmethod
    def parse(cls, value: str | None) -> OrderStatus | None:
        """Case-insensitive lookup; None for values outside the vocabulary."""
        if value is None:
            return None
        wanted = " ".join(str(value).split()).casefold()
        for status in cls:
            if status.value.casefold() == wanted:
                return status
        return None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.FINISHED, OrderStatus.DONE})


def is_terminal_status(status: str | OrderStatus | None) -> bool:
    """True for Finished/Done. Removed is not terminal for archival."""
    parsed = status if isinstance(status, OrderStatus) else OrderStatus.parse(status)
    return parsed is not None and parsed.is_terminal


class ProcessStatus(str, Enum):
    PENDING = "Pending"
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class ProcessType(str, Enum):
    """Fixed vocabulary of production process types."""

    SETUP = "Setup"
    ASSEMBLY = "Assembly"
    TESTING = "Testing"
    QUALITY_CHECK = "Quality Check"
    PACKAGING = "Packaging"
    SHIPPING = "Shipping"


def priority_for_state(state: str | None) -> str:
    """Map the free-form state tag to a scheduling priority."""
    tag = (state or "").strip().upper()
    if tag == "URGENT":
        return "High"
    if tag == "HIGH":
        return "Medium-High"
    return "Medium"


class Order(BaseModel):
    """Active work order document."""

    model_config = ConfigDict(use_enum_values=True)

    order_number: str = Field(min_length=1)
    description: str
    part_number: str
    quantity: int = Field(gt=0)
    status: str  # raw values are tolerated when imported with a warning
    start: datetime
    end: datetime
    due_date: datetime | None = None
    priority: str = "Medium"
    customer: str = ""
    notes: str = ""
    state: str = ""
    updated: datetime = Field(default_factory=utc_now)
    finished_date: datetime | None = None
    removed_date: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_value(cls, value: Any) -> Any:
        if isinstance(value, OrderStatus):
            return value.value
        return value

    @model_validator(mode="after")
    def _check_window(self) -> Order:
        if self.start > self.end:
            raise ValueError(
                f"Order {self.order_number}: start {self.start:%Y-%m-%d} "
                f"is after end {self.end:%Y-%m-%d}"
            )
        if self.due_date is None:
            self.due_date = self.end
        return self

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)

    @property
    def is_removed(self) -> bool:
        return OrderStatus.parse(self.status) == OrderStatus.REMOVED


class ArchivedOrder(Order):
    """Order copy held in the archived partition."""

    archived_at: datetime
    original_id: str

    def to_active(self) -> Order:
        data = self.model_dump(exclude={"archived_at", "original_id"})
        data["updated"] = utc_now()
        return Order(**data)

    @classmethod
    def from_active(
        cls, order: Order, archived_at: datetime, status: str | None = None
    ) -> ArchivedOrder:
        data = order.model_dump()
        if status is not None:
            data["status"] = status
        data["updated"] = archived_at
        return cls(**data, archived_at=archived_at, original_id=order.order_number)


class Process(BaseModel):
    """Production step belonging to exactly one order."""

    model_config = ConfigDict(use_enum_values=True)

    process_id: str
    work_order_id: str
    type: str
    name: str
    sequence: int = Field(ge=1)
    status: str = ProcessStatus.NOT_STARTED.value
    start: datetime
    end: datetime
    assigned_resource: str | None = None
    progress: int = Field(default=0, ge=0, le=100)
    created_at: datetime = Field(default_factory=utc_now)

    @staticmethod
    def make_id(order_number: str, sequence: int) -> str:
        return f"{order_number}-step-{sequence}"


class ArchivedProcess(Process):
    archived_at: datetime
    original_id: str

    def to_active(self) -> Process:
        return Process(**self.model_dump(exclude={"archived_at", "original_id"}))

    @classmethod
    def from_active(cls, process: Process, archived_at: datetime) -> ArchivedProcess:
        return cls(
            **process.model_dump(),
            archived_at=archived_at,
            original_id=process.process_id,
        )
