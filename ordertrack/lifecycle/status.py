"""Order status transitions.

- non-terminal -> Finished/Done: archive the order with that status
- any -> Removed: plain field update, stamps removed_date, never archives
- Removed -> anything else: plain update, clears removed_date
- leaving Finished/Done: only through ``restore``; archived orders are not in
  the active partition, so a plain status write cannot reach them
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from ordertrack.db.repository import OrderRepository
from ordertrack.lifecycle.archive import (
    ArchiveManager,
    BulkTransferResult,
    TransferOutcome,
    TransferStatus,
)
from ordertrack.models import OrderStatus, utc_now

logger = logging.getLogger(__name__)


class InvalidStatusError(ValueError):
    """Status outside the order status vocabulary."""


class InvalidTransitionError(ValueError):
    """Transition not reachable through a plain status write."""


@dataclass
class TransitionResult:
    order_number: str
    success: bool
    message: str
    previous_status: str | None = None
    new_status: str | None = None
    archived: bool = False


class StatusTransitionController:
    """Decide whether a status write is a field update or an archive."""

    def __init__(self, orders: OrderRepository, archive_manager: ArchiveManager):
        self.orders = orders
        self.archive_manager = archive_manager

    async def set_status(self, order_number: str, new_status: str) -> TransitionResult:
        """Write a new status for an active order.

        Raises:
            InvalidStatusError: If ``new_status`` is not in the vocabulary
            InvalidTransitionError: If the order is archived
        """
        target = OrderStatus.parse(new_status)
        if target is None:
            expected = ", ".join(s.value for s in OrderStatus)
            raise InvalidStatusError(f"Unknown status '{new_status}'. Expected: {expected}")

        order = await self.orders.get(order_number)
        if order is None:
            if await self.orders.get_archived(order_number) is not None:
                raise InvalidTransitionError(
                    f"Order {order_number} is archived; restore it before changing its status"
                )
            return TransitionResult(order_number, False, f"Order {order_number} not found")

        previous = order.status

        if target.is_terminal:
            outcome = await self.archive_manager.archive(order_number, final_status=target.value)
            return TransitionResult(
                order_number,
                outcome.ok,
                (
                    f"Order {order_number} updated to {target.value} and moved to archive"
                    if outcome.status is TransferStatus.ARCHIVED
                    else outcome.message
                ),
                previous_status=previous,
                new_status=target.value if outcome.ok else previous,
                archived=outcome.status is TransferStatus.ARCHIVED,
            )

        now = utc_now()
        fields: dict = {"status": target.value, "updated": now}
        if target is OrderStatus.REMOVED:
            fields["removed_date"] = now
        elif order.is_removed:
            fields["removed_date"] = None

        await self.orders.update_fields(order_number, fields)
        logger.info(f"Order {order_number} status {previous} -> {target.value}")

        return TransitionResult(
            order_number,
            True,
            f"Order {order_number} updated to {target.value}",
            previous_status=previous,
            new_status=target.value,
        )

    async def finalize_terminal(self, order_numbers: Iterable[str]) -> BulkTransferResult:
        """Archive orders whose written status is terminal (import hook)."""
        return await self.archive_manager.archive_many(order_numbers)

    async def restore(self, order_number: str) -> TransferOutcome:
        """Reopen an archived order by moving it back to the active partition."""
        return await self.archive_manager.restore(order_number)

    async def reinstate(self, order_number: str) -> TransitionResult:
        """Bring a Removed order back as Open."""
        order = await self.orders.get(order_number)
        if order is None:
            return TransitionResult(order_number, False, f"Order {order_number} not found")
        if not order.is_removed:
            raise InvalidTransitionError(
                f"Order {order_number} is {order.status}, only Removed orders can be reinstated"
            )
        return await self.set_status(order_number, OrderStatus.OPEN.value)
