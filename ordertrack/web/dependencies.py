"""Shared dependencies for OrderTrack web routes.

Route handlers receive the wired components through FastAPI's Depends()
system; tests swap them via ``app.dependency_overrides[get_services]``.
"""

from __future__ import annotations

from fastapi import Depends

from ordertrack.db.connection import get_session_factory
from ordertrack.lifecycle.archive import ArchiveManager
from ordertrack.lifecycle.status import StatusTransitionController
from ordertrack.services import Services, build_services

# Global singleton, built on first request
_services: Services | None = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(get_session_factory())
    return _services


def get_status_controller(
    services: Services = Depends(get_services),
) -> StatusTransitionController:
    return services.controller


def get_archive_manager(services: Services = Depends(get_services)) -> ArchiveManager:
    return services.archive_manager
