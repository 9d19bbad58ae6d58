"""Integration tests for archive/restore transactions.

An order and its processes must live in exactly one of the active or archived
partitions, including after partial failures of a bulk move.
"""

from __future__ import annotations

from datetime import datetime

import pytest

from ordertrack.lifecycle.archive import ArchiveManager, TransferStatus
from ordertrack.lifecycle.processes import ProcessGenerator, add_processes

ORDERS_PER_CHUNK = 2
OPS_PER_ORDER = 12  # 5 processes x (copy + delete) + order copy + delete


async def partition_of(order_repo, process_repo, order_number: str) -> str:
    """Where the order lives; fails if it is in both or split from its processes."""
    active = await order_repo.get(order_number)
    archived = await order_repo.get_archived(order_number)
    assert not (active and archived), f"{order_number} is in both partitions"

    active_processes = await process_repo.list_for_order(order_number)
    archived_processes = await process_repo.list_archived_for_order(order_number)
    if active:
        assert archived_processes == []
        return "active"
    if archived:
        assert active_processes == []
        return "archived"
    return "missing"


@pytest.fixture
def archive_manager(order_repo, process_repo) -> ArchiveManager:
    return ArchiveManager(order_repo, process_repo)


@pytest.mark.asyncio
async def test_archive_moves_order_and_processes(
    archive_manager, order_repo, process_repo, seed_orders, make_order
):
    await seed_orders(make_order("WO-1", status="In Progress"))

    outcome = await archive_manager.archive("WO-1", final_status="Finished")

    assert outcome.status is TransferStatus.ARCHIVED
    assert outcome.process_count == 5
    assert await partition_of(order_repo, process_repo, "WO-1") == "archived"

    archived = await order_repo.get_archived("WO-1")
    assert archived.status == "Finished"
    assert archived.original_id == "WO-1"
    processes = await process_repo.list_archived_for_order("WO-1")
    assert [p.original_id for p in processes] == [f"WO-1-step-{i}" for i in range(1, 6)]


@pytest.mark.asyncio
async def test_archive_keeps_terminal_status(archive_manager, order_repo, seed_orders, make_order):
    await seed_orders(make_order("WO-1", status="Done"))

    await archive_manager.archive("WO-1")

    assert (await order_repo.get_archived("WO-1")).status == "Done"


@pytest.mark.asyncio
async def test_archive_defaults_non_terminal_to_finished(
    archive_manager, order_repo, seed_orders, make_order
):
    await seed_orders(make_order("WO-1", status="Released"))

    await archive_manager.archive("WO-1")

    assert (await order_repo.get_archived("WO-1")).status == "Finished"


@pytest.mark.asyncio
async def test_archive_rejects_non_terminal_final_status(archive_manager):
    with pytest.raises(ValueError, match="not a terminal status"):
        await archive_manager.archive("WO-1", final_status="Open")


@pytest.mark.asyncio
async def test_rearchive_is_a_noop(archive_manager, order_repo, process_repo, seed_orders, make_order):
    await seed_orders(make_order("WO-1"))
    await archive_manager.archive("WO-1")
    before = await order_repo.get_archived("WO-1")

    outcome = await archive_manager.archive("WO-1")

    assert outcome.status is TransferStatus.SKIPPED
    assert outcome.ok
    assert await order_repo.get_archived("WO-1") == before
    assert await partition_of(order_repo, process_repo, "WO-1") == "archived"


@pytest.mark.asyncio
async def test_rearchive_moves_stray_processes(
    archive_manager, order_repo, process_repo, seed_orders, make_order
):
    await seed_orders(make_order("WO-1"))
    await archive_manager.archive("WO-1")
    # Active processes left behind for an archived order
    batch = process_repo.new_batch()
    add_processes(batch, ProcessGenerator().generate("WO-1", datetime(2025, 3, 1)))
    await process_repo.commit(batch)

    outcome = await archive_manager.archive("WO-1")

    assert outcome.status is TransferStatus.SKIPPED
    assert outcome.process_count == 5
    assert await process_repo.list_for_order("WO-1") == []


@pytest.mark.asyncio
async def test_archive_unknown_order(archive_manager):
    outcome = await archive_manager.archive("WO-404")

    assert outcome.status is TransferStatus.NOT_FOUND
    assert not outcome.ok


@pytest.mark.asyncio
async def test_restore_round_trip(archive_manager, order_repo, process_repo, seed_orders, make_order):
    original = make_order("WO-1", status="In Progress", notes="keep")
    await seed_orders(original)
    await archive_manager.archive("WO-1", final_status="Finished")

    outcome = await archive_manager.restore("WO-1")

    assert outcome.status is TransferStatus.RESTORED
    assert await partition_of(order_repo, process_repo, "WO-1") == "active"
    restored = await order_repo.get("WO-1")
    assert restored.status == "Finished"
    assert restored.notes == "keep"
    assert [p.sequence for p in await process_repo.list_for_order("WO-1")] == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_restore_active_order_is_skipped(archive_manager, seed_orders, make_order):
    await seed_orders(make_order("WO-1"))

    outcome = await archive_manager.restore("WO-1")

    assert outcome.status is TransferStatus.SKIPPED


@pytest.mark.asyncio
async def test_restore_unknown_order(archive_manager):
    outcome = await archive_manager.restore("WO-404")

    assert outcome.status is TransferStatus.NOT_FOUND


@pytest.mark.asyncio
async def test_bulk_archive_is_chunked(order_repo, process_repo, store, seed_orders, make_order):
    keys = [f"WO-{i}" for i in range(1, 6)]
    await seed_orders(*(make_order(key) for key in keys))
    manager = ArchiveManager(
        order_repo, process_repo, max_batch_operations=ORDERS_PER_CHUNK * OPS_PER_ORDER
    )
    calls_before = store.calls

    result = await manager.archive_many(keys)

    assert result.archived == 5
    assert result.chunks_committed == 3
    assert store.calls - calls_before == 3


@pytest.mark.asyncio
async def test_failed_middle_chunk_is_counted_not_rolled_back(
    order_repo, process_repo, store, seed_orders, make_order
):
    keys = [f"WO-{i}" for i in range(1, 7)]
    await seed_orders(*(make_order(key) for key in keys))
    manager = ArchiveManager(
        order_repo, process_repo, max_batch_operations=ORDERS_PER_CHUNK * OPS_PER_ORDER
    )
    store.fail_next(2)

    result = await manager.archive_many(keys)

    assert result.chunks_committed == 2
    assert result.chunks_failed == 1
    assert result.archived == 4
    assert result.failed == 2
    assert set(result.failures) == {"WO-3", "WO-4"}
    assert result.outcome_for("WO-3").status is TransferStatus.FAILED
    assert result.outcome_for("WO-1").status is TransferStatus.ARCHIVED
    for key in ("WO-1", "WO-2", "WO-5", "WO-6"):
        assert await partition_of(order_repo, process_repo, key) == "archived"
    for key in ("WO-3", "WO-4"):
        assert await partition_of(order_repo, process_repo, key) == "active"

    # A retry picks up exactly the failed orders
    retry = await manager.archive_many(keys)
    assert retry.archived == 2
    assert retry.skipped == 4


@pytest.mark.asyncio
async def test_order_larger_than_one_batch(order_repo, process_repo, seed_orders, make_order):
    await seed_orders(make_order("WO-1"))
    manager = ArchiveManager(order_repo, process_repo, max_batch_operations=4)

    result = await manager.archive_many(["WO-1"])

    assert result.archived == 1
    assert result.chunks_committed == 3
    assert await partition_of(order_repo, process_repo, "WO-1") == "archived"


@pytest.mark.asyncio
async def test_oversized_order_failure_leaves_order_active(
    order_repo, process_repo, store, seed_orders, make_order
):
    await seed_orders(make_order("WO-1"))
    manager = ArchiveManager(order_repo, process_repo, max_batch_operations=4)
    store.fail_next(3)

    result = await manager.archive_many(["WO-1"])

    assert result.failed == 1
    assert "2/3 slices committed" in result.failures["WO-1"]
    assert await order_repo.get("WO-1") is not None
    assert await order_repo.get_archived("WO-1") is None

    retry = await manager.archive_many(["WO-1"])
    assert retry.archived == 1
    assert await partition_of(order_repo, process_repo, "WO-1") == "archived"


@pytest.mark.asyncio
async def test_sweep_terminal(archive_manager, order_repo, seed_orders, make_order):
    await seed_orders(
        make_order("A", status="Finished"),
        make_order("B", status="Open"),
        make_order("C", status="Done"),
    )

    result = await archive_manager.sweep_terminal()

    assert result.archived == 2
    assert [o.order_number for o in await order_repo.list_active()] == ["B"]
    assert {o.order_number for o in await archive_manager.list_archived()} == {"A", "C"}
