"""Archive/restore transactions between the active and archived partitions.

An order and its processes always move together. Per order the operations
are: copy each process, delete it; then copy the order, delete it. The order
document is always written last so that an interrupted move leaves the order
in its source partition, where a retry picks it up again.

Bulk moves pack whole orders into chunks of at most ``max_batch_operations``
and commit chunk by chunk. A failing chunk is recorded and does not roll back
earlier chunks or stop later ones.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ordertrack.db.repository import (
    OrderRepository,
    Partition,
    ProcessRepository,
    WriteBatch,
    WriteOperation,
    OperationKind,
    chunk_operation_groups,
)
from ordertrack.models import (
    ArchivedOrder,
    ArchivedProcess,
    OrderStatus,
    TERMINAL_STATUSES,
    is_terminal_status,
    utc_now,
)

logger = logging.getLogger(__name__)


class TransferStatus(str, Enum):
    ARCHIVED = "archived"
    RESTORED = "restored"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class TransferOutcome:
    """Result of moving one order."""

    order_number: str
    status: TransferStatus
    message: str = ""
    process_count: int = 0

    @property
    def ok(self) -> bool:
        return self.status in (
            TransferStatus.ARCHIVED,
            TransferStatus.RESTORED,
            TransferStatus.SKIPPED,
        )


@dataclass
class BulkTransferResult:
    """Per-order outcomes of a bulk archive or restore."""

    outcomes: list[TransferOutcome] = field(default_factory=list)
    chunks_committed: int = 0
    chunks_failed: int = 0

    def _count(self, status: TransferStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def archived(self) -> int:
        return self._count(TransferStatus.ARCHIVED)

    @property
    def restored(self) -> int:
        return self._count(TransferStatus.RESTORED)

    @property
    def skipped(self) -> int:
        return self._count(TransferStatus.SKIPPED)

    @property
    def not_found(self) -> int:
        return self._count(TransferStatus.NOT_FOUND)

    @property
    def failed(self) -> int:
        return self._count(TransferStatus.FAILED)

    @property
    def failures(self) -> dict[str, str]:
        """Soft and hard failures keyed by order number."""
        return {
            o.order_number: o.message
            for o in self.outcomes
            if o.status in (TransferStatus.FAILED, TransferStatus.NOT_FOUND)
        }

    def outcome_for(self, order_number: str) -> TransferOutcome | None:
        for outcome in self.outcomes:
            if outcome.order_number == order_number:
                return outcome
        return None


@dataclass
class _TransferPlan:
    order_number: str
    operations: list[WriteOperation]
    success_status: TransferStatus
    success_message: str
    process_count: int = 0


class ArchiveManager:
    """Move orders and their processes between partitions atomically."""

    def __init__(
        self,
        orders: OrderRepository,
        processes: ProcessRepository,
        max_batch_operations: int | None = None,
    ):
        self.orders = orders
        self.processes = processes
        limit = orders.max_batch_operations
        self.max_batch_operations = min(max_batch_operations or limit, limit)

    async def archive(
        self, order_number: str, final_status: str | None = None
    ) -> TransferOutcome:
        """Archive one order. Calling it again for an archived key is a no-op."""
        result = await self.archive_many([order_number], final_status=final_status)
        return result.outcomes[0]

    async def restore(self, order_number: str) -> TransferOutcome:
        """Move an archived order and its processes back to active."""
        result = await self.restore_many([order_number])
        return result.outcomes[0]

    async def archive_many(
        self, order_numbers: Iterable[str], final_status: str | None = None
    ) -> BulkTransferResult:
        """Archive many orders in size-bounded chunks.

        Args:
            order_numbers: Orders to archive (duplicates are ignored)
            final_status: Terminal status to store; defaults to the order's
                own status when terminal, otherwise Finished
        """
        if final_status is not None and not is_terminal_status(final_status):
            raise ValueError(f"'{final_status}' is not a terminal status")

        keys = list(dict.fromkeys(order_numbers))
        result = BulkTransferResult()
        if not keys:
            return result

        now = utc_now()
        active_processes = await self.processes.list_for_orders(keys)
        plans: list[_TransferPlan] = []

        for key in keys:
            processes = active_processes.get(key, [])
            process_ops = self._archive_process_ops(processes, now)
            order = await self.orders.get(key)

            if order is None:
                if await self.orders.get_archived(key) is None:
                    result.outcomes.append(
                        TransferOutcome(key, TransferStatus.NOT_FOUND, f"Order {key} not found")
                    )
                elif processes:
                    plans.append(
                        _TransferPlan(
                            key,
                            process_ops,
                            TransferStatus.SKIPPED,
                            f"Order {key} already archived; moved {len(processes)} remaining processes",
                            len(processes),
                        )
                    )
                else:
                    result.outcomes.append(
                        TransferOutcome(key, TransferStatus.SKIPPED, f"Order {key} already archived")
                    )
                continue

            status = _terminal_status(order.status, final_status)
            archived = ArchivedOrder.from_active(order, now, status)
            operations = process_ops + [
                WriteOperation(
                    OperationKind.SET, Partition.ARCHIVED_ORDERS, key, archived.model_dump()
                ),
                WriteOperation(OperationKind.DELETE, Partition.ORDERS, key),
            ]
            plans.append(
                _TransferPlan(
                    key,
                    operations,
                    TransferStatus.ARCHIVED,
                    f"Order {key} archived successfully with {len(processes)} related processes",
                    len(processes),
                )
            )

        await self._commit_plans(plans, result)

        logger.info(
            f"Archive run: {result.archived} archived, {result.skipped} skipped, "
            f"{result.not_found} not found, {result.failed} failed"
        )
        return result

    async def restore_many(self, order_numbers: Iterable[str]) -> BulkTransferResult:
        keys = list(dict.fromkeys(order_numbers))
        result = BulkTransferResult()
        if not keys:
            return result

        archived_processes = await self.processes.list_archived_for_orders(keys)
        plans: list[_TransferPlan] = []

        for key in keys:
            archived = await self.orders.get_archived(key)
            if archived is None:
                if await self.orders.get(key) is not None:
                    result.outcomes.append(
                        TransferOutcome(key, TransferStatus.SKIPPED, f"Order {key} is already active")
                    )
                else:
                    result.outcomes.append(
                        TransferOutcome(
                            key, TransferStatus.NOT_FOUND, f"Archived order {key} not found"
                        )
                    )
                continue

            processes = archived_processes.get(key, [])
            operations = self._restore_process_ops(processes) + [
                WriteOperation(
                    OperationKind.SET, Partition.ORDERS, key, archived.to_active().model_dump()
                ),
                WriteOperation(OperationKind.DELETE, Partition.ARCHIVED_ORDERS, key),
            ]
            plans.append(
                _TransferPlan(
                    key,
                    operations,
                    TransferStatus.RESTORED,
                    f"Order {key} restored successfully with {len(processes)} related processes",
                    len(processes),
                )
            )

        await self._commit_plans(plans, result)

        logger.info(
            f"Restore run: {result.restored} restored, {result.skipped} skipped, "
            f"{result.not_found} not found, {result.failed} failed"
        )
        return result

    async def sweep_terminal(self) -> BulkTransferResult:
        """Archive every active order that already carries a terminal status."""
        terminal = await self.orders.list_active(
            statuses=[status.value for status in TERMINAL_STATUSES]
        )
        logger.info(f"Found {len(terminal)} finished orders still in the active partition")
        return await self.archive_many(order.order_number for order in terminal)

    async def list_archived(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = 50,
    ) -> list[ArchivedOrder]:
        return await self.orders.list_archived(since=since, until=until, limit=limit)

    @staticmethod
    def _archive_process_ops(processes, now: datetime) -> list[WriteOperation]:
        operations = []
        for process in processes:
            archived = ArchivedProcess.from_active(process, now)
            operations.append(
                WriteOperation(
                    OperationKind.SET,
                    Partition.ARCHIVED_PROCESSES,
                    process.process_id,
                    archived.model_dump(),
                )
            )
            operations.append(
                WriteOperation(OperationKind.DELETE, Partition.PROCESSES, process.process_id)
            )
        return operations

    @staticmethod
    def _restore_process_ops(processes) -> list[WriteOperation]:
        operations = []
        for archived in processes:
            active = archived.to_active()
            operations.append(
                WriteOperation(
                    OperationKind.SET, Partition.PROCESSES, active.process_id, active.model_dump()
                )
            )
            operations.append(
                WriteOperation(
                    OperationKind.DELETE, Partition.ARCHIVED_PROCESSES, archived.process_id
                )
            )
        return operations

    async def _commit_plans(
        self, plans: list[_TransferPlan], result: BulkTransferResult
    ) -> None:
        chunks = chunk_operation_groups([p.operations for p in plans], self.max_batch_operations)

        for chunk_number, indexes in enumerate(chunks, start=1):
            chunk_plans = [plans[i] for i in indexes]

            if len(chunk_plans) == 1 and len(chunk_plans[0].operations) > self.max_batch_operations:
                await self._commit_oversized(chunk_plans[0], result)
                continue

            batch = WriteBatch(self.max_batch_operations)
            for plan in chunk_plans:
                batch.extend(plan.operations)

            try:
                await self.orders.commit(batch)
            except Exception as e:
                result.chunks_failed += 1
                logger.error(
                    f"Chunk {chunk_number}/{len(chunks)} failed to commit "
                    f"({len(chunk_plans)} orders): {e}"
                )
                for plan in chunk_plans:
                    result.outcomes.append(
                        TransferOutcome(
                            plan.order_number,
                            TransferStatus.FAILED,
                            f"Batch commit failed: {e}",
                            plan.process_count,
                        )
                    )
                continue

            result.chunks_committed += 1
            logger.debug(f"Committed chunk {chunk_number}/{len(chunks)}")
            for plan in chunk_plans:
                result.outcomes.append(
                    TransferOutcome(
                        plan.order_number,
                        plan.success_status,
                        plan.success_message,
                        plan.process_count,
                    )
                )

    async def _commit_oversized(self, plan: _TransferPlan, result: BulkTransferResult) -> None:
        """Commit one order whose operations exceed a single batch.

        Slices run in order and stop at the first failure; the order document
        sits in the last slice, so a failure leaves it in its source partition.
        """
        size = self.max_batch_operations
        slices = [plan.operations[i : i + size] for i in range(0, len(plan.operations), size)]

        for slice_number, operations in enumerate(slices, start=1):
            batch = WriteBatch(size)
            batch.extend(operations)
            try:
                await self.orders.commit(batch)
            except Exception as e:
                result.chunks_failed += 1
                logger.error(
                    f"Order {plan.order_number}: slice {slice_number}/{len(slices)} failed: {e}"
                )
                result.outcomes.append(
                    TransferOutcome(
                        plan.order_number,
                        TransferStatus.FAILED,
                        f"Partially moved ({slice_number - 1}/{len(slices)} slices committed): {e}",
                        plan.process_count,
                    )
                )
                return
            result.chunks_committed += 1

        result.outcomes.append(
            TransferOutcome(
                plan.order_number, plan.success_status, plan.success_message, plan.process_count
            )
        )


def _terminal_status(current: str, final_status: str | None) -> str:
    if final_status is not None:
        return OrderStatus.parse(final_status).value
    if is_terminal_status(current):
        return OrderStatus.parse(current).value
    return OrderStatus.FINISHED.value
