"""Column mapping from arbitrary source headers to logical import fields.

The mapping is a dict of ``source header -> logical field``, the same
direction used by the pricing importers' ``column_mapping`` configs:

    {
        "Order No": "No",
        "Item Description": "Description",
        "Part": "SourceNo",
        "Qty": "Quantity",
        "Start": "StartingDateTime",
        "End": "EndingDateTime",
        "Order Status": "Status",
    }
"""

from __future__ import annotations

import logging
import re
from enum import Enum

from ordertrack.ingestion.parser import ParsedTable
from ordertrack.pipeline.types import ImportRow

logger = logging.getLogger(__name__)


class LogicalField(str, Enum):
    ORDER_NUMBER = "No"
    DESCRIPTION = "Description"
    PART_NUMBER = "SourceNo"
    QUANTITY = "Quantity"
    START = "StartingDateTime"
    END = "EndingDateTime"
    STATUS = "Status"
    NOTES = "Notes"
    STATE = "State"
    FINISHED_DATE = "FinishedDate"


REQUIRED_FIELDS: tuple[LogicalField, ...] = (
    LogicalField.ORDER_NUMBER,
    LogicalField.DESCRIPTION,
    LogicalField.PART_NUMBER,
    LogicalField.QUANTITY,
    LogicalField.START,
    LogicalField.END,
    LogicalField.STATUS,
)

OPTIONAL_FIELDS: tuple[LogicalField, ...] = (
    LogicalField.NOTES,
    LogicalField.STATE,
    LogicalField.FINISHED_DATE,
)

# Normalized header spellings seen in ERP exports
_ALIASES: dict[LogicalField, tuple[str, ...]] = {
    LogicalField.ORDER_NUMBER: ("no", "orderno", "ordernumber", "order", "workorder", "wo"),
    LogicalField.DESCRIPTION: ("description", "desc", "itemdescription"),
    LogicalField.PART_NUMBER: ("sourceno", "partno", "partnumber", "part", "itemno", "sku"),
    LogicalField.QUANTITY: ("quantity", "qty", "amount"),
    LogicalField.START: ("startingdatetime", "startdate", "start", "startingdate"),
    LogicalField.END: ("endingdatetime", "enddate", "end", "endingdate", "duedate"),
    LogicalField.STATUS: ("status", "orderstatus"),
    LogicalField.NOTES: ("notes", "note", "comments", "remarks"),
    LogicalField.STATE: ("state", "prioritystate", "urgency"),
    LogicalField.FINISHED_DATE: ("finisheddate", "finishdate", "completeddate"),
}


class ColumnMappingError(ValueError):
    """Required logical fields are not mapped; no row can be processed."""

    def __init__(self, missing: list[str], unknown_headers: list[str] | None = None):
        self.missing = missing
        self.unknown_headers = unknown_headers or []
        message = f"Missing required columns: {', '.join(missing)}"
        if self.unknown_headers:
            message += f" (mapped headers not in file: {', '.join(self.unknown_headers)})"
        super().__init__(message)


def _normalize_header(header: str) -> str:
    return re.sub(r"[^a-z0-9]", "", header.lower())


def suggest_mapping(headers: list[str]) -> dict[str, str]:
    """Propose a source->logical mapping from header aliases.

    Each logical field is claimed by at most one header; the first header
    (in file order) that matches wins.
    """
    mapping: dict[str, str] = {}
    claimed: set[LogicalField] = set()

    for header in headers:
        normalized = _normalize_header(header)
        for logical, aliases in _ALIASES.items():
            if logical in claimed:
                continue
            if normalized in aliases:
                mapping[header] = logical.value
                claimed.add(logical)
                break

    return mapping


class ColumnMapper:
    """Resolve a caller-supplied mapping against a parsed table."""

    def __init__(self, column_mapping: dict[str, str] | None = None):
        self.column_mapping = dict(column_mapping) if column_mapping else None

    def resolve(self, headers: list[str]) -> dict[LogicalField, str]:
        """Return ``logical field -> source header`` for every mapped field.

        Without an explicit mapping, headers are matched by alias.

        Raises:
            ColumnMappingError: If a required field is unmapped or a mapped
                header is absent from the file
        """
        mapping = self.column_mapping
        if mapping is None:
            mapping = suggest_mapping(headers)
            logger.debug(f"Suggested column mapping: {mapping}")

        resolved: dict[LogicalField, str] = {}
        unknown_headers: list[str] = []
        for source, logical_name in mapping.items():
            try:
                logical = LogicalField(logical_name)
            except ValueError:
                logger.warning(f"Ignoring mapping to unknown field '{logical_name}'")
                continue
            if source not in headers:
                unknown_headers.append(source)
                continue
            resolved.setdefault(logical, source)

        missing = [f.value for f in REQUIRED_FIELDS if f not in resolved]
        if missing:
            raise ColumnMappingError(missing, unknown_headers)

        return resolved

    def apply(self, table: ParsedTable) -> list[ImportRow]:
        """Map every parsed row onto logical fields."""
        resolved = self.resolve(table.headers)

        rows = []
        for index, raw in enumerate(table.rows, start=1):
            values = {
                logical.value: raw.get(source, "").strip()
                for logical, source in resolved.items()
            }
            rows.append(ImportRow(index=index, values=values))
        return rows
