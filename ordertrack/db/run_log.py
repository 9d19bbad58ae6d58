"""Helpers for persisting and reading the import run audit log."""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ordertrack.db.models import ImportRunLogModel
from ordertrack.pipeline.types import RunResult

# Keep stored message lists bounded; the full list is returned to the caller.
MAX_STORED_MESSAGES = 200


async def record_import_run(
    session: AsyncSession,
    result: RunResult,
    source_name: str,
    run_timestamp: datetime,
) -> ImportRunLogModel:
    """Add one ``import_run_log`` row for a finished run (caller commits)."""

    entry = ImportRunLogModel(
        id=uuid4(),
        run_timestamp=run_timestamp,
        source_name=source_name,
        status=result.status.value,
        total=result.total,
        created=result.created,
        updated=result.updated,
        skipped=result.skipped,
        archived=result.archived,
        removed=result.removed,
        auto_removed=result.auto_removed,
        errors=result.errors,
        error_messages=result.error_messages[:MAX_STORED_MESSAGES] or None,
        duration_seconds=result.duration_seconds,
    )

    session.add(entry)
    await session.flush()
    return entry


async def fetch_recent_runs(session: AsyncSession, limit: int = 20) -> list[ImportRunLogModel]:
    stmt = (
        select(ImportRunLogModel)
        .order_by(ImportRunLogModel.run_timestamp.desc())
        .limit(limit)
    )
    rows = await session.execute(stmt)
    return list(rows.scalars())
