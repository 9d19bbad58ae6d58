"""Production process scheduling for new orders.

A template is an ordered list of process types with base durations in whole
days. The order's state tag (REGULAR, HIGH, URGENT) may override individual
durations. Processes are laid end to end from the order start date.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

import yaml

from ordertrack.db.repository import Partition, ProcessRepository, WriteBatch
from ordertrack.models import Process, ProcessStatus, ProcessType, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessStep:
    type: str
    name: str
    duration_days: int

    def __post_init__(self):
        ProcessType(self.type)
        if self.duration_days < 1:
            raise ValueError(f"{self.type}: duration must be at least one day")


DEFAULT_STEPS: tuple[ProcessStep, ...] = (
    ProcessStep(ProcessType.SETUP.value, "Initial Setup", 1),
    ProcessStep(ProcessType.ASSEMBLY.value, "Assembly Process", 3),
    ProcessStep(ProcessType.TESTING.value, "Testing & Validation", 2),
    ProcessStep(ProcessType.QUALITY_CHECK.value, "Quality Inspection", 1),
    ProcessStep(ProcessType.PACKAGING.value, "Packaging", 1),
)

# state tag -> {process type: duration in days}
DEFAULT_ADJUSTMENTS: dict[str, dict[str, int]] = {
    "URGENT": {ProcessType.ASSEMBLY.value: 2, ProcessType.TESTING.value: 1},
    "HIGH": {ProcessType.ASSEMBLY.value: 2},
}


@dataclass(frozen=True)
class ProcessTemplate:
    steps: tuple[ProcessStep, ...] = DEFAULT_STEPS
    adjustments: dict[str, dict[str, int]] = field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_ADJUSTMENTS.items()}
    )

    def durations_for(self, state: str | None) -> list[int]:
        overrides = self.adjustments.get((state or "").strip().upper(), {})
        return [max(1, int(overrides.get(step.type, step.duration_days))) for step in self.steps]

    @classmethod
    def from_yaml(cls, path: Path) -> ProcessTemplate:
        """Load a template.

        Expected layout:
            steps:
              - {type: Setup, name: Initial Setup, duration_days: 1}
            adjustments:
              URGENT: {Assembly: 2}

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the template is invalid
        """
        if not path.exists():
            raise FileNotFoundError(f"Process template not found: {path}")

        with open(path) as f:
            config = yaml.safe_load(f)

        if not config or not config.get("steps"):
            raise ValueError("Invalid process template: missing 'steps' section")

        steps = tuple(
            ProcessStep(
                type=step["type"],
                name=step.get("name", step["type"]),
                duration_days=int(step["duration_days"]),
            )
            for step in config["steps"]
        )
        adjustments = {
            str(state).upper(): {str(k): int(v) for k, v in (overrides or {}).items()}
            for state, overrides in (config.get("adjustments") or {}).items()
        }

        logger.info(f"Loaded process template with {len(steps)} steps from {path}")
        return cls(steps=steps, adjustments=adjustments)


class ProcessGenerator:
    """Derive the ordered process records of a newly created order."""

    def __init__(self, template: ProcessTemplate | None = None):
        self.template = template or ProcessTemplate()

    def generate(
        self,
        order_number: str,
        start: datetime,
        state: str | None = None,
        now: datetime | None = None,
    ) -> list[Process]:
        created_at = now or utc_now()
        durations = self.template.durations_for(state)

        processes = []
        cursor = start
        for sequence, (step, days) in enumerate(zip(self.template.steps, durations), start=1):
            end = cursor + timedelta(days=days)
            processes.append(
                Process(
                    process_id=Process.make_id(order_number, sequence),
                    work_order_id=order_number,
                    type=step.type,
                    name=step.name,
                    sequence=sequence,
                    status=(
                        ProcessStatus.PENDING.value
                        if sequence == 1
                        else ProcessStatus.NOT_STARTED.value
                    ),
                    start=cursor,
                    end=end,
                    assigned_resource=None,
                    progress=0,
                    created_at=created_at,
                )
            )
            cursor = end

        return processes


def add_processes(batch: WriteBatch, processes: list[Process]) -> None:
    for process in processes:
        batch.set(Partition.PROCESSES, process.process_id, process)


class ProgressRegressionError(ValueError):
    """Raised when an update would move progress backwards."""


async def update_progress(
    processes: ProcessRepository,
    process_id: str,
    progress: int,
    allow_regression: bool = False,
) -> Process:
    """Set a process's progress, keeping it monotonic non-decreasing.

    Status follows progress: 100 completes the process, anything above 0
    marks it in progress.

    Raises:
        LookupError: If the process is not in the active partition
        ValueError: If progress is outside 0..100 or would decrease
    """
    if not 0 <= progress <= 100:
        raise ValueError(f"Progress must be between 0 and 100, got {progress}")

    process = await processes.get(process_id)
    if process is None:
        raise LookupError(f"Process {process_id} not found")

    if progress < process.progress and not allow_regression:
        raise ProgressRegressionError(
            f"Progress of {process_id} cannot decrease ({process.progress} -> {progress})"
        )

    fields: dict = {"progress": progress}
    if progress == 100:
        fields["status"] = ProcessStatus.COMPLETED.value
    elif progress > 0:
        fields["status"] = ProcessStatus.IN_PROGRESS.value

    batch = processes.new_batch()
    batch.update(Partition.PROCESSES, process_id, fields)
    await processes.commit(batch)

    return process.model_copy(update=fields)
