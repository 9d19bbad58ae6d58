"""Delimited text parsing for order imports.

Turns raw CSV (or an Excel sheet) into header-keyed rows of strings. No
domain knowledge lives here: every cell stays a string and blanks become "".
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)


class CSVParseError(ValueError):
    """Malformed input; fatal to the whole import run."""


@dataclass
class ParsedTable:
    """Header row plus one dict per data line, in file order."""

    headers: list[str]
    rows: list[dict[str, str]] = field(default_factory=list)
    source_name: str = "<text>"

    def __len__(self) -> int:
        return len(self.rows)


def parse_csv_text(
    text: str,
    delimiter: str = ",",
    source_name: str = "<text>",
    max_rows: int | None = None,
) -> ParsedTable:
    """Parse delimited text with a mandatory header row.

    Raises:
        CSVParseError: If the text has no header or cannot be tokenized
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    if not text.strip():
        raise CSVParseError("CSV is empty: a header row is required")

    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep=delimiter,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            skipinitialspace=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeError) as e:
        raise CSVParseError(f"Error parsing CSV: {e}") from e

    return _frame_to_table(df, source_name, max_rows)


def parse_file(
    file_path: Path,
    delimiter: str = ",",
    max_file_size_mb: int = 50,
    max_rows: int | None = 50000,
) -> ParsedTable:
    """Read a CSV or XLSX order export.

    Raises:
        FileNotFoundError: If file doesn't exist
        CSVParseError: If the file is too large or malformed
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Order file not found: {file_path}")

    file_size_mb = file_path.stat().st_size / (1024 * 1024)
    if file_size_mb > max_file_size_mb:
        raise CSVParseError(
            f"File too large ({file_size_mb:.1f}MB). Maximum allowed: {max_file_size_mb}MB"
        )

    suffix = file_path.suffix.lower()
    if suffix in (".csv", ".txt"):
        try:
            text = file_path.read_text(encoding="utf-8-sig")
        except UnicodeDecodeError as e:
            raise CSVParseError(f"File is not valid UTF-8: {e}") from e
        return parse_csv_text(text, delimiter, source_name=file_path.name, max_rows=max_rows)

    if suffix in (".xlsx", ".xls"):
        try:
            df = pd.read_excel(file_path, header=None, dtype=str, keep_default_na=False)
        except ValueError as e:
            raise CSVParseError(f"Error reading spreadsheet: {e}") from e
        return _frame_to_table(df, file_path.name, max_rows)

    raise CSVParseError(f"Unsupported file format: {file_path.suffix}. Use CSV or XLSX.")


def _frame_to_table(df: pd.DataFrame, source_name: str, max_rows: int | None) -> ParsedTable:
    # Frames are read with header=None so repeated headers are not renamed
    df = df.fillna("")
    if df.empty:
        raise CSVParseError("CSV has no header row")

    raw_headers = [str(value).strip() for value in df.iloc[0]]
    if not any(raw_headers):
        raise CSVParseError("CSV has no header row")

    duplicates = sorted({h for h in raw_headers if h and raw_headers.count(h) > 1})
    if duplicates:
        raise CSVParseError(f"Duplicate column headers: {', '.join(duplicates)}")

    headers = [h or f"Unnamed: {i}" for i, h in enumerate(raw_headers)]
    df = df.iloc[1:]

    if max_rows is not None and len(df) > max_rows:
        raise CSVParseError(f"Too many rows ({len(df):,}). Maximum allowed: {max_rows:,}")

    df.columns = headers

    rows = []
    for record in df.to_dict(orient="records"):
        row = {key: str(value).strip() for key, value in record.items()}
        if any(row.values()):
            rows.append(row)

    logger.info(f"Parsed {len(rows)} rows with {len(headers)} columns from {source_name}")
    return ParsedTable(headers=headers, rows=rows, source_name=source_name)
