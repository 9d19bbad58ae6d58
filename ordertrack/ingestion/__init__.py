"""Order file ingestion: parsing, column mapping and row validation."""

from ordertrack.ingestion.mapping import ColumnMapper, ColumnMappingError, suggest_mapping
from ordertrack.ingestion.parser import CSVParseError, parse_csv_text, parse_file
from ordertrack.ingestion.validator import validate_rows

__all__ = [
    "CSVParseError",
    "ColumnMapper",
    "ColumnMappingError",
    "parse_csv_text",
    "parse_file",
    "suggest_mapping",
    "validate_rows",
]
