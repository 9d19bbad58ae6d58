"""Unit tests for CSV/XLSX parsing of order exports."""

from __future__ import annotations

import pandas as pd
import pytest

from ordertrack.ingestion.parser import CSVParseError, parse_csv_text, parse_file


class TestParseCsvText:
    def test_headers_and_rows(self):
        table = parse_csv_text("No,Description,Quantity\nWO-1,Widget,5\nWO-2,Bracket,7\n")

        assert table.headers == ["No", "Description", "Quantity"]
        assert len(table) == 2
        assert table.rows[0] == {"No": "WO-1", "Description": "Widget", "Quantity": "5"}

    def test_values_stay_strings(self):
        table = parse_csv_text("No,Quantity\n00123,0010\n")

        assert table.rows[0] == {"No": "00123", "Quantity": "0010"}

    def test_quoted_field_with_delimiter(self):
        table = parse_csv_text('No,Description\nWO-1,"Widget, large"\n')

        assert table.rows[0]["Description"] == "Widget, large"

    def test_cells_are_trimmed(self):
        table = parse_csv_text("No, Description\n WO-1 ,  Widget  \n")

        assert table.headers == ["No", "Description"]
        assert table.rows[0] == {"No": "WO-1", "Description": "Widget"}

    def test_byte_order_mark_is_ignored(self):
        table = parse_csv_text("\ufeffNo,Description\nWO-1,Widget\n")

        assert table.headers[0] == "No"

    def test_blank_rows_are_dropped(self):
        table = parse_csv_text("No,Description\nWO-1,Widget\n,\n\nWO-2,Bracket\n")

        assert [row["No"] for row in table.rows] == ["WO-1", "WO-2"]

    def test_missing_cells_become_empty_strings(self):
        table = parse_csv_text("No,Description,Notes\nWO-1,Widget,\n")

        assert table.rows[0]["Notes"] == ""

    def test_header_only(self):
        table = parse_csv_text("No,Description\n")

        assert table.headers == ["No", "Description"]
        assert table.rows == []

    def test_semicolon_delimiter(self):
        table = parse_csv_text("No;Description\nWO-1;Widget\n", delimiter=";")

        assert table.rows[0] == {"No": "WO-1", "Description": "Widget"}

    @pytest.mark.parametrize("text", ["", "   \n\n"])
    def test_empty_input_is_fatal(self, text):
        with pytest.raises(CSVParseError, match="header row is required"):
            parse_csv_text(text)

    def test_duplicate_headers_are_fatal(self):
        with pytest.raises(CSVParseError, match="Duplicate column headers: No"):
            parse_csv_text("No,Description,No\nWO-1,Widget,WO-2\n")

    def test_blank_header_cells_are_not_duplicates(self):
        table = parse_csv_text("No,,\nWO-1,x,y\n")

        assert table.headers == ["No", "Unnamed: 1", "Unnamed: 2"]

    def test_ragged_row_is_fatal(self):
        with pytest.raises(CSVParseError):
            parse_csv_text("a,b\n1,2\n3,4,5,6\n")

    def test_row_limit(self):
        text = "No\n" + "\n".join(f"WO-{i}" for i in range(5)) + "\n"

        with pytest.raises(CSVParseError, match="Too many rows"):
            parse_csv_text(text, max_rows=3)

    def test_source_name_is_kept(self):
        table = parse_csv_text("No\nWO-1\n", source_name="erp_export.csv")

        assert table.source_name == "erp_export.csv"


class TestParseFile:
    def test_csv_file(self, tmp_path):
        path = tmp_path / "orders.csv"
        path.write_text("No,Description\nWO-1,Widget\n", encoding="utf-8")

        table = parse_file(path)

        assert table.source_name == "orders.csv"
        assert table.rows == [{"No": "WO-1", "Description": "Widget"}]

    def test_xlsx_file(self, tmp_path):
        path = tmp_path / "orders.xlsx"
        pd.DataFrame(
            {"No": ["WO-1", "WO-2"], "Quantity": ["5", "1,000 pcs"]}
        ).to_excel(path, index=False)

        table = parse_file(path)

        assert table.headers == ["No", "Quantity"]
        assert table.rows[1] == {"No": "WO-2", "Quantity": "1,000 pcs"}

    def test_xlsx_duplicate_headers_are_fatal(self, tmp_path):
        path = tmp_path / "orders.xlsx"
        pd.DataFrame([["No", "Status", "Status"], ["WO-1", "Open", "Done"]]).to_excel(
            path, index=False, header=False
        )

        with pytest.raises(CSVParseError, match="Duplicate column headers: Status"):
            parse_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            parse_file(tmp_path / "missing.csv")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "orders.json"
        path.write_text("[]")

        with pytest.raises(CSVParseError, match="Unsupported file format"):
            parse_file(path)

    def test_size_limit(self, tmp_path):
        path = tmp_path / "orders.csv"
        path.write_text("No\n" + "WO-1\n" * 300_000)

        with pytest.raises(CSVParseError, match="File too large"):
            parse_file(path, max_file_size_mb=1)
