"""Row validation and normalization for order imports.

Each ``ImportRow`` becomes either a ``RowAccepted`` carrying an
``OrderRecord`` or a ``RowRejected`` carrying its blocking errors. Warnings
never block a row.
"""

from __future__ import annotations

import re
from datetime import datetime

from ordertrack.ingestion.mapping import REQUIRED_FIELDS, LogicalField
from ordertrack.models import OrderStatus, is_terminal_status
from ordertrack.pipeline.types import (
    ImportRow,
    OrderRecord,
    RowAccepted,
    RowOutcome,
    RowRejected,
    Severity,
    ValidationIssue,
    ValidationReport,
)

# DD-MM-YYYY, DD/MM/YYYY and the 2-digit year forms; one separator per value
_DATE_RE = re.compile(r"^(\d{2})([-/])(\d{2})\2(\d{4}|\d{2})$")

DATE_FORMAT_MESSAGE = "Invalid date. Use DD-MM-YYYY or DD/MM/YYYY"


def parse_import_date(value: str) -> datetime | None:
    """Parse an import date, expanding 2-digit years to 20YY.

    Returns None for anything that is not a real calendar date.
    """
    match = _DATE_RE.match(value.strip())
    if not match:
        return None

    day, _, month, year = match.groups()
    year_value = int(year) if len(year) == 4 else 2000 + int(year)
    try:
        return datetime(year_value, int(month), int(day))
    except ValueError:
        return None


def parse_quantity(value: str) -> int | None:
    """Strip every non-digit and read a positive integer ("1,000 pcs" -> 1000)."""
    digits = re.sub(r"\D", "", value)
    if not digits:
        return None
    quantity = int(digits)
    return quantity if quantity > 0 else None


class RowValidator:
    """Validate rows of one import file.

    Duplicate detection spans the whole file, so use one instance per file.
    """

    def __init__(self) -> None:
        self._seen_numbers: dict[str, int] = {}

    def validate(self, row: ImportRow) -> RowOutcome:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        def error(field: LogicalField, message: str) -> None:
            errors.append(ValidationIssue(row.index, field.value, message, Severity.ERROR))

        def warn(field: LogicalField, message: str) -> None:
            warnings.append(ValidationIssue(row.index, field.value, message, Severity.WARNING))

        for required in REQUIRED_FIELDS:
            if not row.get(required.value):
                error(required, f"Missing {required.value}")

        order_number = row.get(LogicalField.ORDER_NUMBER.value)
        if order_number:
            first_row = self._seen_numbers.get(order_number)
            if first_row is None:
                self._seen_numbers[order_number] = row.index
            else:
                warn(
                    LogicalField.ORDER_NUMBER,
                    f"Duplicate order number {order_number} (first seen on row {first_row}); row ignored",
                )

        start = self._date(row, LogicalField.START, error)
        end = self._date(row, LogicalField.END, error)
        finished_date = self._date(row, LogicalField.FINISHED_DATE, error)
        if start and end and start > end:
            error(LogicalField.END, "End date is before start date")

        quantity = None
        raw_quantity = row.get(LogicalField.QUANTITY.value)
        if raw_quantity:
            quantity = parse_quantity(raw_quantity)
            if quantity is None:
                error(LogicalField.QUANTITY, f"Quantity must be a positive number, got '{raw_quantity}'")

        status = row.get(LogicalField.STATUS.value)
        if status:
            canonical = OrderStatus.parse(status)
            if canonical is None:
                expected = ", ".join(s.value for s in OrderStatus)
                warn(LogicalField.STATUS, f"Unrecognized status '{status}'. Expected: {expected}")
            else:
                status = canonical.value

        if finished_date and status and not is_terminal_status(status):
            warn(
                LogicalField.FINISHED_DATE,
                f"Finished date supplied but status is '{status}'",
            )

        row.issues = errors + warnings

        if errors:
            return RowRejected(
                row=row.index,
                errors=tuple(errors),
                warnings=tuple(warnings),
                order_number=order_number,
            )

        record = OrderRecord(
            order_number=order_number,
            description=row.get(LogicalField.DESCRIPTION.value),
            part_number=row.get(LogicalField.PART_NUMBER.value),
            quantity=quantity,
            start=start,
            end=end,
            status=status,
            notes=row.get(LogicalField.NOTES.value),
            state=row.get(LogicalField.STATE.value),
            finished_date=finished_date,
            row=row.index,
        )
        return RowAccepted(row=row.index, record=record, warnings=tuple(warnings))

    @staticmethod
    def _date(row: ImportRow, field: LogicalField, error) -> datetime | None:
        raw = row.get(field.value)
        if not raw:
            return None
        parsed = parse_import_date(raw)
        if parsed is None:
            error(field, f"{DATE_FORMAT_MESSAGE}, got '{raw}'")
        return parsed


def validate_rows(rows: list[ImportRow]) -> ValidationReport:
    """Validate every row of one import file."""
    validator = RowValidator()
    return ValidationReport(outcomes=[validator.validate(row) for row in rows])
