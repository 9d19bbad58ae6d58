"""Request/response models for the OrderTrack web API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class StatusUpdateRequest(BaseModel):
    """Used by: POST /orders/{order_number}/status"""

    status: str = Field(..., min_length=1)


class TransitionResponse(BaseModel):
    order_number: str
    success: bool
    message: str
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    archived: bool = False


class TransferResponse(BaseModel):
    order_number: str
    status: str
    message: str
    process_count: int = 0


class SweepResponse(BaseModel):
    archived: int
    skipped: int
    failed: int
    failures: dict[str, str] = {}


class ImportResponse(BaseModel):
    """Run result; field names follow the run result contract."""

    success: bool
    total: int
    created: int
    updated: int
    skipped: int
    archived: int
    removed: int
    autoRemoved: int
    errors: int
    errorMessages: list[str]
    warnings: list[str] = []


class ArchivedOrderSummary(BaseModel):
    order_number: str
    description: str
    part_number: str
    quantity: int
    status: str
    customer: Optional[str] = None
    archived_at: datetime
    finished_date: Optional[datetime] = None
