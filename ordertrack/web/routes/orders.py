"""Order routes.

Routes:
- POST /orders/import                     - Upload and import an order file (CSV/XLSX)
- POST /orders/{order_number}/status      - Change an order's status
- POST /orders/{order_number}/restore     - Move an archived order back to active
- POST /orders/{order_number}/reinstate   - Bring a Removed order back as Open
- POST /orders/archive/sweep              - Archive terminal orders left active
- GET  /orders/archived                   - List archived orders
"""

from __future__ import annotations

import json
import logging
import tempfile
from datetime import datetime
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse

from ordertrack.ingestion.mapping import ColumnMappingError
from ordertrack.ingestion.parser import CSVParseError
from ordertrack.lifecycle.archive import ArchiveManager, TransferStatus
from ordertrack.lifecycle.status import (
    InvalidStatusError,
    InvalidTransitionError,
    StatusTransitionController,
)
from ordertrack.services import Services
from ordertrack.web.dependencies import (
    get_archive_manager,
    get_services,
    get_status_controller,
)
from ordertrack.web.models import (
    ArchivedOrderSummary,
    ImportResponse,
    StatusUpdateRequest,
    SweepResponse,
    TransferResponse,
    TransitionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

SPREADSHEET_SUFFIXES = {".xlsx", ".xls"}


@router.post("/import", response_model=ImportResponse)
async def import_orders(
    file: UploadFile = File(...),
    auto_detect_removed: bool | None = Form(default=None),
    column_mapping: str | None = Form(default=None),
    services: Services = Depends(get_services),
):
    """Upload and import an order file.

    Args:
        file: CSV or XLSX order export
        auto_detect_removed: Mark active orders missing from the file as Removed
        column_mapping: JSON object of source header -> logical field
    """
    mapping = None
    if column_mapping:
        try:
            mapping = json.loads(column_mapping)
        except json.JSONDecodeError as e:
            raise HTTPException(status_code=400, detail=f"Invalid column_mapping: {e}") from None
        if not isinstance(mapping, dict):
            raise HTTPException(status_code=400, detail="column_mapping must be a JSON object")

    content = await file.read()
    limit_mb = services.config.imports.max_file_size_mb
    if len(content) > limit_mb * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"File exceeds {limit_mb} MB limit")

    orchestrator = services.orchestrator(
        column_mapping=mapping, auto_detect_removed=auto_detect_removed
    )
    filename = file.filename or "upload.csv"
    suffix = Path(filename).suffix.lower()

    try:
        if suffix in SPREADSHEET_SUFFIXES:
            with tempfile.TemporaryDirectory() as tmp:
                temp_path = Path(tmp) / Path(filename).name
                temp_path.write_bytes(content)
                result = await orchestrator.run_file(temp_path, max_file_size_mb=limit_mb)
        else:
            try:
                text = content.decode("utf-8-sig")
            except UnicodeDecodeError:
                raise CSVParseError("File is not valid UTF-8 text") from None
            result = await orchestrator.run_text(text, source_name=filename)
    except (CSVParseError, ColumnMappingError) as e:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": str(e)},
        )

    return ImportResponse(
        success=result.success,
        warnings=[str(w) for w in result.warnings],
        **result.to_dict(),
    )


@router.post("/{order_number}/status", response_model=TransitionResponse)
async def update_status(
    order_number: str,
    request: StatusUpdateRequest,
    controller: StatusTransitionController = Depends(get_status_controller),
):
    try:
        result = await controller.set_status(order_number, request.status)
    except InvalidStatusError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None

    if not result.success and result.previous_status is None:
        raise HTTPException(status_code=404, detail=result.message)
    if not result.success:
        raise HTTPException(status_code=500, detail=result.message)

    return TransitionResponse(**vars(result))


@router.post("/{order_number}/restore", response_model=TransferResponse)
async def restore_order(
    order_number: str,
    controller: StatusTransitionController = Depends(get_status_controller),
):
    outcome = await controller.restore(order_number)
    if outcome.status is TransferStatus.NOT_FOUND:
        raise HTTPException(status_code=404, detail=outcome.message)
    if outcome.status is TransferStatus.FAILED:
        raise HTTPException(status_code=500, detail=outcome.message)

    return TransferResponse(
        order_number=outcome.order_number,
        status=outcome.status.value,
        message=outcome.message,
        process_count=outcome.process_count,
    )


@router.post("/{order_number}/reinstate", response_model=TransitionResponse)
async def reinstate_order(
    order_number: str,
    controller: StatusTransitionController = Depends(get_status_controller),
):
    try:
        result = await controller.reinstate(order_number)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None

    if not result.success:
        raise HTTPException(status_code=404, detail=result.message)
    return TransitionResponse(**vars(result))


@router.post("/archive/sweep", response_model=SweepResponse)
async def sweep_terminal_orders(
    archive_manager: ArchiveManager = Depends(get_archive_manager),
):
    """Archive Finished/Done orders still in the active partition."""
    result = await archive_manager.sweep_terminal()
    return SweepResponse(
        archived=result.archived,
        skipped=result.skipped,
        failed=result.failed,
        failures=result.failures,
    )


@router.get("/archived", response_model=list[ArchivedOrderSummary])
async def list_archived_orders(
    since: datetime | None = Query(default=None),
    until: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=1000),
    archive_manager: ArchiveManager = Depends(get_archive_manager),
):
    orders = await archive_manager.list_archived(since=since, until=until, limit=limit)
    return [ArchivedOrderSummary(**order.model_dump()) for order in orders]
