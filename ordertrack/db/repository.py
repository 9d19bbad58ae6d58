"""Storage contract for the order lifecycle engine.

The engine treats storage as a document store with four partitions, point
reads, simple filtered queries and batched atomic writes capped at a maximum
operation count. ``OrderRepository`` and ``ProcessRepository`` are the only
storage handles components receive; ``SqlDocumentStore`` implements the
contract on top of async SQLAlchemy sessions.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ordertrack.db.models import (
    ArchivedOrderModel,
    ArchivedProcessModel,
    OrderModel,
    ProcessModel,
)
from ordertrack.models import ArchivedOrder, ArchivedProcess, Order, Process

logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_OPERATIONS = 400

# Bound on the size of an "in" filter sent in one query.
IN_QUERY_CHUNK = 500


class Partition(str, Enum):
    ORDERS = "orders"
    ARCHIVED_ORDERS = "archived_orders"
    PROCESSES = "processes"
    ARCHIVED_PROCESSES = "archived_processes"


class OperationKind(str, Enum):
    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


class BatchLimitExceeded(ValueError):
    """Raised when a batch would exceed the store's atomic operation limit."""


class DocumentNotFoundError(LookupError):
    """Raised by an update operation whose target document does not exist."""

    def __init__(self, partition: Partition, key: str):
        super().__init__(f"{partition.value}/{key} does not exist")
        self.partition = partition
        self.key = key


@dataclass(frozen=True, slots=True)
class WriteOperation:
    kind: OperationKind
    partition: Partition
    key: str
    data: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class Filter:
    """Query predicate in the store's vocabulary.

    ``op`` is one of ``==``, ``!=``, ``in``, ``not-in``, ``>=``, ``<=``.
    """

    field: str
    op: str
    value: Any


class WriteBatch:
    """Ordered set/update/delete operations committed as one atomic unit."""

    def __init__(self, max_operations: int = DEFAULT_MAX_BATCH_OPERATIONS):
        if max_operations < 1:
            raise ValueError("max_operations must be positive")
        self.max_operations = max_operations
        self._operations: list[WriteOperation] = []

    def __len__(self) -> int:
        return len(self._operations)

    def __bool__(self) -> bool:
        return bool(self._operations)

    @property
    def operations(self) -> tuple[WriteOperation, ...]:
        return tuple(self._operations)

    @property
    def remaining(self) -> int:
        return self.max_operations - len(self._operations)

    def set(self, partition: Partition, key: str, document: BaseModel | dict) -> WriteBatch:
        data = document.model_dump() if isinstance(document, BaseModel) else dict(document)
        return self._add(WriteOperation(OperationKind.SET, partition, key, data))

    def update(self, partition: Partition, key: str, fields: dict[str, Any]) -> WriteBatch:
        if not fields:
            raise ValueError("update requires at least one field")
        return self._add(WriteOperation(OperationKind.UPDATE, partition, key, dict(fields)))

    def delete(self, partition: Partition, key: str) -> WriteBatch:
        return self._add(WriteOperation(OperationKind.DELETE, partition, key))

    def extend(self, operations: Iterable[WriteOperation]) -> WriteBatch:
        for operation in operations:
            self._add(operation)
        return self

    def _add(self, operation: WriteOperation) -> WriteBatch:
        if len(self._operations) >= self.max_operations:
            raise BatchLimitExceeded(
                f"Batch already holds {self.max_operations} operations"
            )
        self._operations.append(operation)
        return self


def chunk_operation_groups(
    groups: Sequence[Sequence[WriteOperation]], max_operations: int
) -> list[list[int]]:
    """Pack operation groups into chunks without splitting a group.

    Returns the group indexes of each chunk, in order. A group larger than
    ``max_operations`` gets a chunk of its own; callers split it further.
    """
    chunks: list[list[int]] = []
    current: list[int] = []
    used = 0

    for index, group in enumerate(groups):
        size = len(group)
        if current and used + size > max_operations:
            chunks.append(current)
            current, used = [], 0
        current.append(index)
        used += size
        if used >= max_operations:
            chunks.append(current)
            current, used = [], 0

    if current:
        chunks.append(current)
    return chunks


class BatchWriter(ABC):
    """Shared batch API of the repositories."""

    @property
    @abstractmethod
    def max_batch_operations(self) -> int:
        ...

    def new_batch(self) -> WriteBatch:
        return WriteBatch(self.max_batch_operations)

    @abstractmethod
    async def commit(self, batch: WriteBatch) -> None:
        """Apply every operation of ``batch`` atomically, or none of them."""


class OrderRepository(BatchWriter):
    """Order documents in the active and archived partitions."""

    @abstractmethod
    async def get(self, order_number: str) -> Order | None:
        ...

    @abstractmethod
    async def get_archived(self, order_number: str) -> ArchivedOrder | None:
        ...

    @abstractmethod
    async def list_active(
        self,
        statuses: Collection[str] | None = None,
        exclude_statuses: Collection[str] | None = None,
    ) -> list[Order]:
        ...

    @abstractmethod
    async def list_archived(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[ArchivedOrder]:
        ...

    @abstractmethod
    async def archived_numbers(self, order_numbers: Collection[str]) -> set[str]:
        """Subset of ``order_numbers`` present in the archived partition."""

    async def update_fields(self, order_number: str, fields: dict[str, Any]) -> None:
        batch = self.new_batch()
        batch.update(Partition.ORDERS, order_number, fields)
        await self.commit(batch)


class ProcessRepository(BatchWriter):
    """Process documents in the active and archived partitions."""

    @abstractmethod
    async def get(self, process_id: str) -> Process | None:
        ...

    @abstractmethod
    async def list_for_orders(
        self, order_numbers: Collection[str]
    ) -> dict[str, list[Process]]:
        ...

    @abstractmethod
    async def list_archived_for_orders(
        self, order_numbers: Collection[str]
    ) -> dict[str, list[ArchivedProcess]]:
        ...

    async def list_for_order(self, order_number: str) -> list[Process]:
        return (await self.list_for_orders([order_number])).get(order_number, [])

    async def list_archived_for_order(self, order_number: str) -> list[ArchivedProcess]:
        found = await self.list_archived_for_orders([order_number])
        return found.get(order_number, [])


_PARTITION_MODELS = {
    Partition.ORDERS: OrderModel,
    Partition.ARCHIVED_ORDERS: ArchivedOrderModel,
    Partition.PROCESSES: ProcessModel,
    Partition.ARCHIVED_PROCESSES: ArchivedProcessModel,
}

_PARTITION_KEYS = {
    Partition.ORDERS: "order_number",
    Partition.ARCHIVED_ORDERS: "order_number",
    Partition.PROCESSES: "process_id",
    Partition.ARCHIVED_PROCESSES: "process_id",
}


class SqlDocumentStore:
    """Document-store contract implemented with one table per partition."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_batch_operations: int = DEFAULT_MAX_BATCH_OPERATIONS,
    ):
        self._session_factory = session_factory
        self.max_batch_operations = max_batch_operations

    def new_batch(self) -> WriteBatch:
        return WriteBatch(self.max_batch_operations)

    async def commit(self, batch: WriteBatch) -> None:
        if not batch:
            return
        if len(batch) > self.max_batch_operations:
            raise BatchLimitExceeded(
                f"Batch of {len(batch)} operations exceeds limit of "
                f"{self.max_batch_operations}"
            )

        async with self._session_factory() as session:
            async with session.begin():
                for operation in batch.operations:
                    await self._apply(session, operation)

        logger.debug(f"Committed batch of {len(batch)} operations")

    async def get(self, partition: Partition, key: str) -> dict[str, Any] | None:
        model = _PARTITION_MODELS[partition]
        async with self._session_factory() as session:
            row = await session.get(model, key)
            return _row_to_dict(row) if row is not None else None

    async def find(
        self,
        partition: Partition,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        model = _PARTITION_MODELS[partition]
        stmt = select(model)
        for item in filters:
            stmt = stmt.where(_predicate(model, item))
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._session_factory() as session:
            rows = await session.execute(stmt)
            return [_row_to_dict(row) for row in rows.scalars()]

    async def find_in(
        self, partition: Partition, field: str, values: Collection[str]
    ) -> list[dict[str, Any]]:
        """``field in values`` query, split into bounded chunks."""
        values = list(dict.fromkeys(values))
        documents: list[dict[str, Any]] = []
        for start in range(0, len(values), IN_QUERY_CHUNK):
            chunk = values[start : start + IN_QUERY_CHUNK]
            documents.extend(await self.find(partition, [Filter(field, "in", chunk)]))
        return documents

    async def _apply(self, session: AsyncSession, operation: WriteOperation) -> None:
        model = _PARTITION_MODELS[operation.partition]
        key_column = getattr(model, _PARTITION_KEYS[operation.partition])

        if operation.kind is OperationKind.SET:
            await session.merge(model(**operation.data))
        elif operation.kind is OperationKind.UPDATE:
            result = await session.execute(
                update(model).where(key_column == operation.key).values(**operation.data)
            )
            if result.rowcount == 0:
                raise DocumentNotFoundError(operation.partition, operation.key)
        elif operation.kind is OperationKind.DELETE:
            await session.execute(delete(model).where(key_column == operation.key))
        else:
            raise ValueError(f"Unknown operation kind: {operation.kind}")


class SqlOrderRepository(OrderRepository):
    def __init__(self, store: SqlDocumentStore):
        self.store = store

    @property
    def max_batch_operations(self) -> int:
        return self.store.max_batch_operations

    async def commit(self, batch: WriteBatch) -> None:
        await self.store.commit(batch)

    async def get(self, order_number: str) -> Order | None:
        data = await self.store.get(Partition.ORDERS, order_number)
        return Order(**data) if data else None

    async def get_archived(self, order_number: str) -> ArchivedOrder | None:
        data = await self.store.get(Partition.ARCHIVED_ORDERS, order_number)
        return ArchivedOrder(**data) if data else None

    async def list_active(
        self,
        statuses: Collection[str] | None = None,
        exclude_statuses: Collection[str] | None = None,
    ) -> list[Order]:
        filters = []
        if statuses is not None:
            filters.append(Filter("status", "in", list(statuses)))
        if exclude_statuses:
            filters.append(Filter("status", "not-in", list(exclude_statuses)))
        documents = await self.store.find(Partition.ORDERS, filters, order_by="order_number")
        return [Order(**data) for data in documents]

    async def list_archived(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[ArchivedOrder]:
        filters = []
        if since is not None:
            filters.append(Filter("archived_at", ">=", since))
        if until is not None:
            filters.append(Filter("archived_at", "<=", until))
        documents = await self.store.find(
            Partition.ARCHIVED_ORDERS,
            filters,
            order_by="archived_at",
            descending=True,
            limit=limit,
        )
        return [ArchivedOrder(**data) for data in documents]

    async def archived_numbers(self, order_numbers: Collection[str]) -> set[str]:
        documents = await self.store.find_in(
            Partition.ARCHIVED_ORDERS, "order_number", order_numbers
        )
        return {data["order_number"] for data in documents}


class SqlProcessRepository(ProcessRepository):
    def __init__(self, store: SqlDocumentStore):
        self.store = store

    @property
    def max_batch_operations(self) -> int:
        return self.store.max_batch_operations

    async def commit(self, batch: WriteBatch) -> None:
        await self.store.commit(batch)

    async def get(self, process_id: str) -> Process | None:
        data = await self.store.get(Partition.PROCESSES, process_id)
        return Process(**data) if data else None

    async def list_for_orders(
        self, order_numbers: Collection[str]
    ) -> dict[str, list[Process]]:
        documents = await self.store.find_in(
            Partition.PROCESSES, "work_order_id", order_numbers
        )
        return _group_by_order([Process(**data) for data in documents])

    async def list_archived_for_orders(
        self, order_numbers: Collection[str]
    ) -> dict[str, list[ArchivedProcess]]:
        documents = await self.store.find_in(
            Partition.ARCHIVED_PROCESSES, "work_order_id", order_numbers
        )
        return _group_by_order([ArchivedProcess(**data) for data in documents])


def build_repositories(
    session_factory: async_sessionmaker[AsyncSession],
    max_batch_operations: int = DEFAULT_MAX_BATCH_OPERATIONS,
) -> tuple[SqlOrderRepository, SqlProcessRepository]:
    """Create order and process repositories sharing one document store."""
    store = SqlDocumentStore(session_factory, max_batch_operations)
    return SqlOrderRepository(store), SqlProcessRepository(store)


def _group_by_order(processes: list) -> dict[str, list]:
    grouped: dict[str, list] = {}
    for process in sorted(processes, key=lambda p: (p.work_order_id, p.sequence)):
        grouped.setdefault(process.work_order_id, []).append(process)
    return grouped


def _predicate(model, item: Filter):
    column = getattr(model, item.field)
    if item.op == "==":
        return column == item.value
    if item.op == "!=":
        return column != item.value
    if item.op == "in":
        return column.in_(list(item.value))
    if item.op == "not-in":
        return column.not_in(list(item.value))
    if item.op == ">=":
        return column >= item.value
    if item.op == "<=":
        return column <= item.value
    raise ValueError(f"Unsupported filter operator: {item.op}")


def _row_to_dict(row) -> dict[str, Any]:
    return {column.key: getattr(row, column.key) for column in row.__table__.columns}
