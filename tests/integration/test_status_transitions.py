"""Integration tests for the status transition controller."""

from __future__ import annotations

import pytest

from ordertrack.lifecycle.archive import ArchiveManager, TransferStatus
from ordertrack.lifecycle.status import (
    InvalidStatusError,
    InvalidTransitionError,
    StatusTransitionController,
)


@pytest.fixture
def controller(order_repo, process_repo) -> StatusTransitionController:
    return StatusTransitionController(order_repo, ArchiveManager(order_repo, process_repo))


@pytest.mark.asyncio
async def test_non_terminal_change_is_a_field_update(controller, order_repo, seed_orders, make_order):
    await seed_orders(make_order("WO-1"))

    result = await controller.set_status("WO-1", "in progress")

    assert result.success
    assert not result.archived
    assert result.previous_status == "Open"
    assert result.new_status == "In Progress"
    assert (await order_repo.get("WO-1")).status == "In Progress"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["Finished", "Done"])
async def test_terminal_status_archives(controller, order_repo, process_repo, seed_orders, make_order, status):
    await seed_orders(make_order("WO-1", status="In Progress"))

    result = await controller.set_status("WO-1", status)

    assert result.success
    assert result.archived
    assert await order_repo.get("WO-1") is None
    assert (await order_repo.get_archived("WO-1")).status == status
    assert await process_repo.list_for_order("WO-1") == []
    assert len(await process_repo.list_archived_for_order("WO-1")) == 5


@pytest.mark.asyncio
async def test_removed_stamps_date_and_does_not_archive(
    controller, order_repo, seed_orders, make_order
):
    await seed_orders(make_order("WO-1"))

    result = await controller.set_status("WO-1", "Removed")

    order = await order_repo.get("WO-1")
    assert result.success
    assert not result.archived
    assert order.status == "Removed"
    assert order.removed_date is not None


@pytest.mark.asyncio
async def test_leaving_removed_clears_date(controller, order_repo, seed_orders, make_order):
    await seed_orders(make_order("WO-1"))
    await controller.set_status("WO-1", "Removed")

    await controller.set_status("WO-1", "Delayed")

    order = await order_repo.get("WO-1")
    assert order.status == "Delayed"
    assert order.removed_date is None


@pytest.mark.asyncio
async def test_unknown_status(controller, seed_orders, make_order):
    await seed_orders(make_order("WO-1"))

    with pytest.raises(InvalidStatusError, match="Unknown status 'Paused'"):
        await controller.set_status("WO-1", "Paused")


@pytest.mark.asyncio
async def test_archived_order_cannot_be_reopened_by_status(controller, seed_orders, make_order):
    await seed_orders(make_order("WO-1"))
    await controller.set_status("WO-1", "Finished")

    with pytest.raises(InvalidTransitionError, match="restore"):
        await controller.set_status("WO-1", "Open")


@pytest.mark.asyncio
async def test_unknown_order_is_a_soft_failure(controller):
    result = await controller.set_status("WO-404", "Open")

    assert not result.success
    assert "not found" in result.message


@pytest.mark.asyncio
async def test_restore_then_status_write(controller, order_repo, seed_orders, make_order):
    await seed_orders(make_order("WO-1"))
    await controller.set_status("WO-1", "Finished")

    outcome = await controller.restore("WO-1")
    result = await controller.set_status("WO-1", "In Progress")

    assert outcome.status is TransferStatus.RESTORED
    assert result.success
    assert (await order_repo.get("WO-1")).status == "In Progress"


@pytest.mark.asyncio
async def test_reinstate_removed_order(controller, order_repo, seed_orders, make_order):
    await seed_orders(make_order("WO-1"))
    await controller.set_status("WO-1", "Removed")

    result = await controller.reinstate("WO-1")

    order = await order_repo.get("WO-1")
    assert result.success
    assert order.status == "Open"
    assert order.removed_date is None


@pytest.mark.asyncio
async def test_reinstate_requires_removed(controller, seed_orders, make_order):
    await seed_orders(make_order("WO-1", status="Delayed"))

    with pytest.raises(InvalidTransitionError, match="only Removed orders"):
        await controller.reinstate("WO-1")


@pytest.mark.asyncio
async def test_finalize_terminal(controller, order_repo, seed_orders, make_order):
    await seed_orders(make_order("A", status="Finished"), make_order("B", status="Done"))

    result = await controller.finalize_terminal(["A", "B", "A"])

    assert result.archived == 2
    assert await order_repo.list_active() == []
