"""Import run coordinator.

Runs one bulk order import end to end:

1. Parse the file (malformed input is fatal)
2. Resolve the column mapping (an incomplete mapping is fatal)
3. Validate and normalize every row
4. Snapshot the active partition once, before any write
5. Reconcile records against the snapshot
6. Apply decisions in order: creates (with their processes), updates,
   auto-removals
7. Hand terminal-status orders to the status controller for archival

Per-order write failures are counted and reported; they never abort the run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ordertrack.core.logging import bind_run_context, clear_run_context
from ordertrack.db.repository import (
    OrderRepository,
    Partition,
    ProcessRepository,
    WriteBatch,
    WriteOperation,
    OperationKind,
    chunk_operation_groups,
)
from ordertrack.db.run_log import record_import_run
from ordertrack.ingestion.mapping import ColumnMapper
from ordertrack.ingestion.parser import ParsedTable, parse_csv_text, parse_file
from ordertrack.ingestion.validator import validate_rows
from ordertrack.lifecycle.archive import ArchiveManager
from ordertrack.lifecycle.processes import ProcessGenerator, add_processes
from ordertrack.lifecycle.status import StatusTransitionController
from ordertrack.models import Order, OrderStatus, is_terminal_status, utc_now
from ordertrack.pipeline.reconciler import build_order, reconcile, update_payload
from ordertrack.pipeline.types import (
    ReconciliationAction,
    ReconciliationDecision,
    RowRejected,
    RunResult,
)

logger = logging.getLogger(__name__)


class OrderImportOrchestrator:
    """Canonical order import engine.

    Optional behaviour (auto-removal, column mapping) is selected through
    constructor arguments rather than separate code paths.
    """

    def __init__(
        self,
        orders: OrderRepository,
        processes: ProcessRepository,
        column_mapping: dict[str, str] | None = None,
        auto_detect_removed: bool = False,
        process_generator: ProcessGenerator | None = None,
        controller: StatusTransitionController | None = None,
        delimiter: str = ",",
        max_rows: int | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        """Initialize orchestrator.

        Args:
            orders: Order repository (active + archived partitions)
            processes: Process repository
            column_mapping: Source header -> logical field; None matches
                headers by alias
            auto_detect_removed: Mark active orders absent from the import
                as Removed
            process_generator: Scheduler for new orders' processes
            controller: Status controller used to archive terminal orders
            delimiter: CSV delimiter for text input
            max_rows: Row limit for text input
            session_factory: When given, each run is written to
                ``import_run_log``
        """
        self.orders = orders
        self.processes = processes
        self.mapper = ColumnMapper(column_mapping)
        self.auto_detect_removed = auto_detect_removed
        self.process_generator = process_generator or ProcessGenerator()
        self.controller = controller or StatusTransitionController(
            orders, ArchiveManager(orders, processes)
        )
        self.delimiter = delimiter
        self.max_rows = max_rows
        self.session_factory = session_factory

    async def run_text(self, text: str, source_name: str = "<text>") -> RunResult:
        """Import orders from CSV text.

        Raises:
            CSVParseError: If the text is malformed
            ColumnMappingError: If required columns are not mapped
        """
        table = parse_csv_text(
            text, delimiter=self.delimiter, source_name=source_name, max_rows=self.max_rows
        )
        return await self.run_table(table)

    async def run_file(self, file_path: Path, max_file_size_mb: int = 50) -> RunResult:
        table = parse_file(
            file_path,
            delimiter=self.delimiter,
            max_file_size_mb=max_file_size_mb,
            max_rows=self.max_rows,
        )
        return await self.run_table(table)

    async def run_table(self, table: ParsedTable) -> RunResult:
        run_timestamp = utc_now()
        started = time.time()
        bind_run_context(run_id=uuid4().hex[:12], source=table.source_name)

        try:
            logger.info(f"Starting order import from {table.source_name}")

            rows = self.mapper.apply(table)
            report = validate_rows(rows)

            result = RunResult(total=len(rows))
            result.warnings = report.warnings
            result.validation_errors = report.errors
            for outcome in report.outcomes:
                if isinstance(outcome, RowRejected):
                    result.record_error(
                        None,
                        f"Row {outcome.row}: " + "; ".join(e.message for e in outcome.errors),
                    )

            records = report.records
            logger.info(
                f"Validated {len(rows)} rows: {len(records)} orders accepted, "
                f"{len(report.rejected_rows)} rows rejected, {len(report.warnings)} warnings"
            )

            # Snapshot before any write; auto-removal is computed from it
            snapshot = {order.order_number: order for order in await self.orders.list_active()}
            archived_keys = await self.orders.archived_numbers(
                [r.order_number for r in records if r.order_number not in snapshot]
            )

            decisions = reconcile(
                records,
                snapshot,
                archived_keys=archived_keys,
                auto_detect_removed=self.auto_detect_removed,
                import_keys=report.order_numbers,
            )
            result.decisions = decisions

            await self._apply(decisions, snapshot, result)

        finally:
            clear_run_context("run_id", "source")

        result.duration_seconds = time.time() - started

        logger.info(
            f"Import finished: {result.created} created, {result.updated} updated, "
            f"{result.skipped} skipped, {result.archived} archived, {result.removed} removed, "
            f"{result.auto_removed} auto-removed, {result.errors} errors"
        )

        if self.session_factory is not None:
            await self._log_result(result, table.source_name, run_timestamp)

        return result

    async def _apply(
        self,
        decisions: Sequence[ReconciliationDecision],
        snapshot: dict[str, Order],
        result: RunResult,
    ) -> None:
        now = utc_now()
        terminal_keys: list[str] = []
        auto_removals: list[ReconciliationDecision] = []

        for decision in decisions:
            action = decision.action
            record = decision.record

            if action is ReconciliationAction.AUTO_REMOVE:
                auto_removals.append(decision)
                continue

            if action is ReconciliationAction.SKIP:
                result.skipped += 1
                current = snapshot.get(decision.order_number)
                # Terminal order left active by an earlier interrupted run
                if current is not None and current.is_terminal:
                    terminal_keys.append(decision.order_number)
                continue

            if action is ReconciliationAction.CREATE:
                if not await self._create(decision, result, now):
                    continue
                result.created += 1
            else:
                try:
                    await self.orders.update_fields(
                        decision.order_number, update_payload(decision, now)
                    )
                except Exception as e:
                    logger.error(f"Failed to update order {decision.order_number}: {e}")
                    result.record_error(decision.order_number, str(e))
                    continue
                result.updated += 1

            if OrderStatus.parse(record.status) == OrderStatus.REMOVED:
                result.removed += 1
            if is_terminal_status(record.status):
                terminal_keys.append(decision.order_number)

        if auto_removals:
            await self._apply_auto_removals(auto_removals, result, now)

        if terminal_keys:
            archive_result = await self.controller.finalize_terminal(terminal_keys)
            result.archived += archive_result.archived
            for order_number, message in archive_result.failures.items():
                result.record_error(order_number, f"Archive failed: {message}")

    async def _create(
        self, decision: ReconciliationDecision, result: RunResult, now: datetime
    ) -> bool:
        """Write a new order together with its processes.

        Returns True when the order document was committed. If the processes
        did not fit in the same batch and a later batch failed, the order is
        reported as created-but-incomplete.
        """
        record = decision.record
        order = build_order(record, now)
        processes = self.process_generator.generate(
            record.order_number, record.start, record.state, now
        )

        # Staged in full, then committed in slices of the store's batch limit
        staged = WriteBatch(len(processes) + 1)
        staged.set(Partition.ORDERS, order.order_number, order)
        add_processes(staged, processes)
        operations = staged.operations

        size = self.orders.max_batch_operations
        slices = [operations[i : i + size] for i in range(0, len(operations), size)]

        for index, operations_slice in enumerate(slices):
            batch = WriteBatch(size)
            batch.extend(operations_slice)
            try:
                await self.orders.commit(batch)
            except Exception as e:
                if index == 0:
                    logger.error(f"Failed to create order {record.order_number}: {e}")
                    result.record_error(record.order_number, str(e))
                    return False

                logger.error(
                    f"Order {record.order_number} created but process generation incomplete: {e}"
                )
                result.incomplete_orders.append(record.order_number)
                result.record_error(
                    record.order_number,
                    f"Order created but process generation incomplete: {e}",
                )
                return True

        logger.debug(f"Created order {record.order_number} with {len(processes)} processes")
        return True

    async def _apply_auto_removals(
        self,
        decisions: list[ReconciliationDecision],
        result: RunResult,
        now: datetime,
    ) -> None:
        groups = [
            [
                WriteOperation(
                    OperationKind.UPDATE,
                    Partition.ORDERS,
                    decision.order_number,
                    update_payload(decision, now),
                )
            ]
            for decision in decisions
        ]
        size = self.orders.max_batch_operations

        for indexes in chunk_operation_groups(groups, size):
            batch = WriteBatch(size)
            for i in indexes:
                batch.extend(groups[i])
            try:
                await self.orders.commit(batch)
            except Exception as e:
                logger.error(f"Error detecting removed orders: {e}")
                for i in indexes:
                    result.record_error(
                        decisions[i].order_number, f"Auto-remove failed: {e}"
                    )
                continue
            result.auto_removed += len(indexes)

    async def _log_result(
        self, result: RunResult, source_name: str, run_timestamp: datetime
    ) -> None:
        try:
            async with self.session_factory() as session:
                await record_import_run(session, result, source_name, run_timestamp)
                await session.commit()
        except Exception as e:
            logger.warning(f"Could not write import run log: {e}")


async def run_import(
    text: str,
    orders: OrderRepository,
    processes: ProcessRepository,
    column_mapping: dict[str, str] | None = None,
    auto_detect_removed: bool = False,
) -> RunResult:
    """Convenience function to run one import from CSV text."""
    orchestrator = OrderImportOrchestrator(
        orders,
        processes,
        column_mapping=column_mapping,
        auto_detect_removed=auto_detect_removed,
    )
    return await orchestrator.run_text(text)
