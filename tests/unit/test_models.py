"""Unit tests for order/process documents and the run result contract."""

from __future__ import annotations

from datetime import datetime

import pytest
from pydantic import ValidationError

from ordertrack.models import (
    ArchivedOrder,
    ArchivedProcess,
    OrderStatus,
    Process,
    is_terminal_status,
)
from ordertrack.pipeline.types import ImportStatus, RunResult


class TestOrderStatus:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Open", OrderStatus.OPEN),
            ("in progress", OrderStatus.IN_PROGRESS),
            ("FIRM  PLANNED", OrderStatus.FIRM_PLANNED),
            (" done ", OrderStatus.DONE),
        ],
    )
    def test_parse_is_case_insensitive(self, raw, expected):
        assert OrderStatus.parse(raw) is expected

    def test_parse_unknown(self):
        assert OrderStatus.parse("On Hold") is None
        assert OrderStatus.parse(None) is None

    def test_terminal_statuses(self):
        assert is_terminal_status("Finished")
        assert is_terminal_status(OrderStatus.DONE)
        assert not is_terminal_status("Removed")
        assert not is_terminal_status("On Hold")


class TestOrder:
    def test_due_date_defaults_to_end(self, make_order):
        order = make_order()

        assert order.due_date == datetime(2025, 3, 10)
        assert order.priority == "Medium"

    def test_start_after_end_is_invalid(self, make_order):
        with pytest.raises(ValidationError):
            make_order(start=datetime(2025, 4, 1))

    def test_quantity_must_be_positive(self, make_order):
        with pytest.raises(ValidationError):
            make_order(quantity=0)

    def test_enum_status_is_stored_as_value(self, make_order):
        assert make_order(status=OrderStatus.DELAYED).status == "Delayed"

    def test_flags(self, make_order):
        assert make_order(status="Done").is_terminal
        assert make_order(status="removed").is_removed
        assert not make_order().is_terminal


class TestArchivedDocuments:
    def test_archived_order_round_trip(self, make_order):
        order = make_order(notes="keep me")
        archived_at = datetime(2025, 3, 11, 8, 0)

        archived = ArchivedOrder.from_active(order, archived_at, status="Finished")
        active = archived.to_active()

        assert archived.status == "Finished"
        assert archived.original_id == "WO-1001"
        assert archived.archived_at == archived_at
        assert active.notes == "keep me"
        assert not hasattr(active, "archived_at")

    def test_archived_process_round_trip(self):
        process = Process(
            process_id="WO-1001-step-1",
            work_order_id="WO-1001",
            type="Setup",
            name="Initial Setup",
            sequence=1,
            start=datetime(2025, 3, 1),
            end=datetime(2025, 3, 2),
        )

        archived = ArchivedProcess.from_active(process, datetime(2025, 3, 11))

        assert archived.original_id == process.process_id
        assert archived.to_active() == process

    def test_process_progress_range(self):
        with pytest.raises(ValidationError):
            Process(
                process_id="x",
                work_order_id="WO-1",
                type="Setup",
                name="Setup",
                sequence=1,
                start=datetime(2025, 3, 1),
                end=datetime(2025, 3, 2),
                progress=101,
            )


class TestRunResult:
    def test_contract_keys(self):
        assert list(RunResult().to_dict()) == [
            "total",
            "created",
            "updated",
            "skipped",
            "archived",
            "removed",
            "autoRemoved",
            "errors",
            "errorMessages",
        ]

    def test_record_error(self):
        result = RunResult()

        result.record_error("WO-1", "boom")
        result.record_error(None, "Row 3: Missing Quantity")

        assert result.errors == 2
        assert result.error_messages == [
            "Error importing order WO-1: boom",
            "Row 3: Missing Quantity",
        ]

    def test_status(self):
        assert RunResult(created=1).status is ImportStatus.SUCCESS

        partial = RunResult(created=1)
        partial.record_error("WO-2", "boom")
        assert partial.status is ImportStatus.PARTIAL_SUCCESS
        assert partial.success

        failed = RunResult()
        failed.record_error("WO-2", "boom")
        assert failed.status is ImportStatus.FAILED
        assert not failed.success
