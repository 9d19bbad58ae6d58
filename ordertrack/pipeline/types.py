"""Type definitions for the order import pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """A problem found in one import row (row 0 is the header)."""

    row: int
    field: str
    message: str
    severity: Severity

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def __str__(self) -> str:
        return f"Row {self.row} [{self.field}] {self.severity.value}: {self.message}"


@dataclass
class ImportRow:
    """Raw values of one CSV data line, keyed by logical field name."""

    index: int
    values: dict[str, str]
    issues: list[ValidationIssue] = field(default_factory=list)

    def get(self, logical_field: str, default: str = "") -> str:
        return self.values.get(logical_field, default) or default


@dataclass(frozen=True)
class OrderRecord:
    """Normalized, error-free order data from one import row.

    This is the canonical format the reconciliation engine consumes.
    """

    order_number: str
    description: str
    part_number: str
    quantity: int
    start: datetime
    end: datetime
    status: str
    notes: str = ""
    state: str = ""
    finished_date: datetime | None = None
    row: int = 0


@dataclass(frozen=True)
class RowAccepted:
    row: int
    record: OrderRecord
    warnings: tuple[ValidationIssue, ...] = ()


@dataclass(frozen=True)
class RowRejected:
    row: int
    errors: tuple[ValidationIssue, ...]
    warnings: tuple[ValidationIssue, ...] = ()
    order_number: str = ""  # blank when the row has no usable order number


RowOutcome = Union[RowAccepted, RowRejected]


@dataclass
class ValidationReport:
    """Validation outcome for a whole import file."""

    outcomes: list[RowOutcome] = field(default_factory=list)

    @property
    def records(self) -> list[OrderRecord]:
        """Accepted records for the first row of each order number.

        The first row wins even when it was rejected; later rows with the same
        number are ignored (they carry a duplicate warning).
        """
        seen: set[str] = set()
        records = []
        for outcome in self.outcomes:
            order_number = _order_number(outcome)
            if order_number:
                if order_number in seen:
                    continue
                seen.add(order_number)
            if isinstance(outcome, RowAccepted):
                records.append(outcome.record)
        return records

    @property
    def order_numbers(self) -> set[str]:
        """Every order number present in the file, rejected rows included."""
        return {n for n in map(_order_number, self.outcomes) if n}

    @property
    def errors(self) -> list[ValidationIssue]:
        return [
            issue
            for outcome in self.outcomes
            if isinstance(outcome, RowRejected)
            for issue in outcome.errors
        ]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for outcome in self.outcomes for issue in outcome.warnings]

    @property
    def rejected_rows(self) -> list[int]:
        return [o.row for o in self.outcomes if isinstance(o, RowRejected)]

    @property
    def valid(self) -> bool:
        return not self.errors


def _order_number(outcome: RowOutcome) -> str:
    if isinstance(outcome, RowAccepted):
        return outcome.record.order_number
    return outcome.order_number


class ReconciliationAction(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    SKIP = "Skip"
    MARK_REMOVED = "MarkRemoved"
    AUTO_REMOVE = "AutoRemove"


@dataclass(frozen=True)
class ReconciliationDecision:
    """What the import will do with one order number."""

    order_number: str
    action: ReconciliationAction
    changed_fields: frozenset[str] = frozenset()
    record: OrderRecord | None = None
    reason: str = ""


class ImportStatus(str, Enum):
    """Status of an import run."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"


@dataclass
class RunResult:
    """Result of an import run.

    ``to_dict`` is the only shape presentation layers should depend on.
    """

    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    archived: int = 0
    removed: int = 0
    auto_removed: int = 0
    errors: int = 0
    error_messages: list[str] = field(default_factory=list)

    # Not part of the external contract
    warnings: list[ValidationIssue] = field(default_factory=list)
    validation_errors: list[ValidationIssue] = field(default_factory=list)
    decisions: list[ReconciliationDecision] = field(default_factory=list)
    incomplete_orders: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def record_error(self, order_number: str | None, message: str) -> None:
        self.errors += 1
        prefix = f"Error importing order {order_number}: " if order_number else ""
        self.error_messages.append(f"{prefix}{message}")

    @property
    def status(self) -> ImportStatus:
        if self.errors == 0:
            return ImportStatus.SUCCESS
        if self.created or self.updated or self.archived or self.removed or self.auto_removed:
            return ImportStatus.PARTIAL_SUCCESS
        return ImportStatus.FAILED

    @property
    def success(self) -> bool:
        return self.status in (ImportStatus.SUCCESS, ImportStatus.PARTIAL_SUCCESS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "archived": self.archived,
            "removed": self.removed,
            "autoRemoved": self.auto_removed,
            "errors": self.errors,
            "errorMessages": list(self.error_messages),
        }
