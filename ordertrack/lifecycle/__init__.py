"""Order lifecycle: process scheduling, archival and status transitions."""

from ordertrack.lifecycle.archive import (
    ArchiveManager,
    BulkTransferResult,
    TransferOutcome,
    TransferStatus,
)
from ordertrack.lifecycle.processes import (
    ProcessGenerator,
    ProcessTemplate,
    update_progress,
)
from ordertrack.lifecycle.status import (
    InvalidStatusError,
    InvalidTransitionError,
    StatusTransitionController,
    TransitionResult,
)

__all__ = [
    "ArchiveManager",
    "BulkTransferResult",
    "InvalidStatusError",
    "InvalidTransitionError",
    "ProcessGenerator",
    "ProcessTemplate",
    "StatusTransitionController",
    "TransferOutcome",
    "TransferStatus",
    "TransitionResult",
    "update_progress",
]
