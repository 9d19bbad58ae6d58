"""Wiring of repositories, lifecycle managers and the import engine.

Both the CLI and the web app build their components through
``build_services`` so they share one configuration path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ordertrack.config import AppConfig, get_config
from ordertrack.db.repository import OrderRepository, ProcessRepository, build_repositories
from ordertrack.lifecycle.archive import ArchiveManager
from ordertrack.lifecycle.processes import ProcessGenerator, ProcessTemplate
from ordertrack.lifecycle.status import StatusTransitionController
from ordertrack.pipeline.orchestrator import OrderImportOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: AppConfig
    orders: OrderRepository
    processes: ProcessRepository
    archive_manager: ArchiveManager
    controller: StatusTransitionController
    process_generator: ProcessGenerator
    session_factory: async_sessionmaker[AsyncSession] | None = None

    def orchestrator(
        self,
        column_mapping: dict[str, str] | None = None,
        auto_detect_removed: bool | None = None,
    ) -> OrderImportOrchestrator:
        imports = self.config.imports
        return OrderImportOrchestrator(
            self.orders,
            self.processes,
            column_mapping=column_mapping,
            auto_detect_removed=(
                imports.auto_detect_removed
                if auto_detect_removed is None
                else auto_detect_removed
            ),
            process_generator=self.process_generator,
            controller=self.controller,
            delimiter=imports.delimiter,
            max_rows=imports.max_rows,
            session_factory=self.session_factory,
        )


def load_process_template(config: AppConfig) -> ProcessTemplate:
    """Template from PROCESS_TEMPLATE_PATH, else the bundled file, else built-in."""
    path = config.scheduling.process_template_path
    if path is not None:
        return ProcessTemplate.from_yaml(path)

    bundled = config.default_process_template_path
    if bundled.exists():
        return ProcessTemplate.from_yaml(bundled)

    logger.debug("No process template file found, using built-in defaults")
    return ProcessTemplate()


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    config: AppConfig | None = None,
    log_runs: bool = True,
) -> Services:
    config = config or get_config()
    orders, processes = build_repositories(
        session_factory, config.imports.max_batch_operations
    )
    archive_manager = ArchiveManager(orders, processes)

    return Services(
        config=config,
        orders=orders,
        processes=processes,
        archive_manager=archive_manager,
        controller=StatusTransitionController(orders, archive_manager),
        process_generator=ProcessGenerator(load_process_template(config)),
        session_factory=session_factory if log_runs else None,
    )
