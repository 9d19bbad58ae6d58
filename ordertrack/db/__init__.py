"""Database layer for OrderTrack with async SQLAlchemy."""

from ordertrack.db.connection import get_session, get_session_factory, init_db
from ordertrack.db.models import (
    ArchivedOrderModel,
    ArchivedProcessModel,
    Base,
    ImportRunLogModel,
    OrderModel,
    ProcessModel,
)
from ordertrack.db.repository import (
    OrderRepository,
    Partition,
    ProcessRepository,
    SqlDocumentStore,
    WriteBatch,
    build_repositories,
)

__all__ = [
    "ArchivedOrderModel",
    "ArchivedProcessModel",
    "Base",
    "ImportRunLogModel",
    "OrderModel",
    "OrderRepository",
    "Partition",
    "ProcessModel",
    "ProcessRepository",
    "SqlDocumentStore",
    "WriteBatch",
    "build_repositories",
    "get_session",
    "get_session_factory",
    "init_db",
]
