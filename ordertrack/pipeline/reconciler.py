"""Reconciliation of import records against the active partition.

Compares each incoming record with the current active order:
- not active                -> Create
- active, tracked field changed -> Update (MarkRemoved when the new status is Removed)
- active, nothing changed    -> Skip
- already archived          -> Skip (archived orders are never re-imported)

With auto-detection enabled, every active order whose number appears nowhere
in the import file (rejected rows count as present) and whose status is
neither terminal nor Removed gets an AutoRemove decision. The function
is pure: it works on a snapshot of the active partition taken before any
write of the run.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable, Mapping
from datetime import datetime
from typing import Any

from ordertrack.models import Order, OrderStatus, priority_for_state, utc_now
from ordertrack.pipeline.types import (
    OrderRecord,
    ReconciliationAction,
    ReconciliationDecision,
)

logger = logging.getLogger(__name__)

# Fields whose difference makes an existing order an Update
TRACKED_FIELDS = ("status", "start", "end", "quantity")


def reconcile(
    records: Iterable[OrderRecord],
    active: Mapping[str, Order],
    archived_keys: Collection[str] = frozenset(),
    auto_detect_removed: bool = False,
    import_keys: Collection[str] | None = None,
) -> list[ReconciliationDecision]:
    """Decide Create/Update/Skip/MarkRemoved/AutoRemove per order number.

    Args:
        records: Validated records; only the first record per order number
            is considered
        active: Snapshot of active orders keyed by order number
        archived_keys: Order numbers currently in the archived partition
        auto_detect_removed: Flag active orders absent from the import
        import_keys: Order numbers present in the file, including rows that
            failed validation; defaults to the records' order numbers

    Returns:
        One decision per distinct imported order number, followed by one
        AutoRemove decision per detected removal
    """
    decisions: list[ReconciliationDecision] = []
    seen: set[str] = set()

    for record in records:
        if record.order_number in seen:
            continue
        seen.add(record.order_number)
        decisions.append(_decide(record, active.get(record.order_number), archived_keys))

    if auto_detect_removed:
        present = seen if import_keys is None else seen | set(import_keys)
        decisions.extend(detect_removed(active, present))

    return decisions


def detect_removed(
    active: Mapping[str, Order], import_keys: Collection[str]
) -> list[ReconciliationDecision]:
    """AutoRemove decisions for ``active keys - import keys``."""
    removed = []
    for order_number in sorted(set(active) - set(import_keys)):
        order = active[order_number]
        if order.is_terminal or order.is_removed:
            continue
        removed.append(
            ReconciliationDecision(
                order_number=order_number,
                action=ReconciliationAction.AUTO_REMOVE,
                changed_fields=frozenset({"status", "removed_date"}),
                reason="absent from import",
            )
        )

    if removed:
        logger.info(f"Detected {len(removed)} active orders missing from the import")
    return removed


def _decide(
    record: OrderRecord, current: Order | None, archived_keys: Collection[str]
) -> ReconciliationDecision:
    if current is None:
        if record.order_number in archived_keys:
            return ReconciliationDecision(
                order_number=record.order_number,
                action=ReconciliationAction.SKIP,
                record=record,
                reason="archived",
            )
        return ReconciliationDecision(
            order_number=record.order_number,
            action=ReconciliationAction.CREATE,
            changed_fields=frozenset(TRACKED_FIELDS),
            record=record,
        )

    changed = changed_fields(current, record)
    if not changed:
        return ReconciliationDecision(
            order_number=record.order_number,
            action=ReconciliationAction.SKIP,
            record=record,
            reason="unchanged",
        )

    action = ReconciliationAction.UPDATE
    if "status" in changed and _is_removed(record.status):
        action = ReconciliationAction.MARK_REMOVED

    return ReconciliationDecision(
        order_number=record.order_number,
        action=action,
        changed_fields=changed,
        record=record,
    )


def changed_fields(current: Order, record: OrderRecord) -> frozenset[str]:
    """Tracked fields whose imported value differs from the stored order."""
    return frozenset(
        name for name in TRACKED_FIELDS if getattr(current, name) != getattr(record, name)
    )


def _is_removed(status: str) -> bool:
    return OrderStatus.parse(status) == OrderStatus.REMOVED


def build_order(record: OrderRecord, now: datetime | None = None) -> Order:
    """New active order document for a Create decision."""
    now = now or utc_now()
    return Order(
        order_number=record.order_number,
        description=record.description,
        part_number=record.part_number,
        quantity=record.quantity,
        status=record.status,
        start=record.start,
        end=record.end,
        due_date=record.end,
        priority=priority_for_state(record.state),
        notes=record.notes,
        state=record.state,
        updated=now,
        finished_date=record.finished_date,
        removed_date=now if _is_removed(record.status) else None,
    )


def update_payload(
    decision: ReconciliationDecision, now: datetime | None = None
) -> dict[str, Any]:
    """Field updates to write for an Update, MarkRemoved or AutoRemove decision."""
    now = now or utc_now()

    if decision.action is ReconciliationAction.AUTO_REMOVE:
        return {"status": OrderStatus.REMOVED.value, "removed_date": now, "updated": now}

    if decision.action not in (ReconciliationAction.UPDATE, ReconciliationAction.MARK_REMOVED):
        raise ValueError(f"{decision.action.value} decisions do not update fields")

    record = decision.record
    fields: dict[str, Any] = {name: getattr(record, name) for name in decision.changed_fields}
    if "end" in fields:
        fields["due_date"] = record.end
    if record.finished_date is not None:
        fields["finished_date"] = record.finished_date
    if _is_removed(record.status):
        fields["removed_date"] = now
    elif "status" in decision.changed_fields:
        fields["removed_date"] = None
    fields["updated"] = now
    return fields
