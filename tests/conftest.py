"""Pytest configuration and fixtures for OrderTrack tests.

Provides environment isolation, an in-memory SQLite document store and
factories for order documents and import files.
"""

from __future__ import annotations

from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ordertrack.config import reset_config
from ordertrack.db.models import Base
from ordertrack.db.repository import (
    Partition,
    SqlDocumentStore,
    SqlOrderRepository,
    SqlProcessRepository,
)
from ordertrack.lifecycle.processes import ProcessGenerator
from ordertrack.models import Order

CSV_HEADER = "No,Description,SourceNo,Quantity,StartingDateTime,EndingDateTime,Status"

_IMPORT_ENV = (
    "IMPORT_MAX_BATCH_OPERATIONS",
    "IMPORT_AUTO_DETECT_REMOVED",
    "IMPORT_MAX_FILE_SIZE_MB",
    "IMPORT_MAX_ROWS",
    "IMPORT_DELIMITER",
    "PROCESS_TEMPLATE_PATH",
)


class FlakyDocumentStore(SqlDocumentStore):
    """Document store whose Nth commit calls raise."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = 0
        self.fail_on: set[int] = set()

    def fail_next(self, *offsets: int) -> None:
        """Fail the commits ``offsets`` calls from now (1 = next commit)."""
        self.fail_on = {self.calls + offset for offset in offsets}

    async def commit(self, batch) -> None:
        self.calls += 1
        if self.calls in self.fail_on:
            raise RuntimeError(f"simulated commit failure #{self.calls}")
        await super().commit(batch)


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    for name in _IMPORT_ENV:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture()
async def session_factory():
    """In-memory database shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
def store(session_factory) -> FlakyDocumentStore:
    return FlakyDocumentStore(session_factory, max_batch_operations=400)


@pytest.fixture
def make_store(session_factory):
    """Factory for extra flaky stores over the same database."""

    def _make(max_batch_operations: int = 400) -> FlakyDocumentStore:
        return FlakyDocumentStore(session_factory, max_batch_operations=max_batch_operations)

    return _make


@pytest.fixture
def order_repo(store) -> SqlOrderRepository:
    return SqlOrderRepository(store)


@pytest.fixture
def process_repo(store) -> SqlProcessRepository:
    return SqlProcessRepository(store)


@pytest.fixture
def make_order():
    """Factory for active order documents."""

    def _make(order_number: str = "WO-1001", **overrides) -> Order:
        data = {
            "order_number": order_number,
            "description": "Gearbox housing",
            "part_number": "P-100",
            "quantity": 10,
            "status": "Open",
            "start": datetime(2025, 3, 1),
            "end": datetime(2025, 3, 10),
        }
        data.update(overrides)
        return Order(**data)

    return _make


@pytest.fixture
def seed_orders(order_repo, process_repo):
    """Write orders (and, by default, their generated processes) to the store."""

    async def _seed(*orders: Order, with_processes: bool = True) -> None:
        generator = ProcessGenerator()
        for order in orders:
            batch = order_repo.new_batch()
            batch.set(Partition.ORDERS, order.order_number, order)
            if with_processes:
                for process in generator.generate(order.order_number, order.start):
                    batch.set(Partition.PROCESSES, process.process_id, process)
            await order_repo.commit(batch)

    return _seed


@pytest.fixture
def csv_text():
    """Build an import file from data lines using the standard header."""

    def _build(*lines: str, header: str = CSV_HEADER) -> str:
        return "\n".join([header, *lines]) + "\n"

    return _build
