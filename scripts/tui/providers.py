"""
Data providers for the TUI.

Protocols define the interface; implementations can be swapped
for testing or alternative data sources.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from tasks import TaskCounts

TASK_COMPLETE = "complete"
TASK_READY = "ready"
TASK_BLOCKED = "blocked"


@dataclass(frozen=True)
class FeatureInfo:
    """Immutable snapshot of one feature record."""

    key: str
    display_name: str
    phase: str
    status: str
    current_task: str | None = None
    concerns: tuple[str, ...] = ()
    created_at: datetime | None = None
    artifacts: tuple[str, ...] = ()


@dataclass(frozen=True)
class TaskInfo:
    """Immutable snapshot of one tasks.md entry with its resolved status."""

    number: str
    description: str
    complexity: str
    status: str
    dependencies: tuple[str, ...] = ()
    missing: tuple[str, ...] = ()
    dependents: tuple[str, ...] = ()
    indent: int = 0

    @property
    def is_complete(self) -> bool:
        return self.status == TASK_COMPLETE


@dataclass(frozen=True)
class HealthCheck:
    """Result of a health/validation check."""

    name: str
    passed: bool
    message: str
    details: tuple[str, ...] = ()
    fix: str | None = None


@dataclass(frozen=True)
class DashboardState:
    """Complete dashboard snapshot."""

    features: tuple[FeatureInfo, ...]
    active_feature: FeatureInfo | None
    tasks: tuple[TaskInfo, ...]
    summary: TaskCounts
    next_task: TaskInfo | None
    blocked: tuple[TaskInfo, ...]
    updated_at: datetime | None = None
    health_checks: tuple[HealthCheck, ...] = ()
    task_error: str | None = None

    def get_task(self, number: str) -> TaskInfo | None:
        for task in self.tasks:
            if task.number == number:
                return task
        return None


class StateProvider(Protocol):
    """Protocol for accessing DevFlow state."""

    def load(self) -> DashboardState | None:
        """Load a fresh snapshot, or None when DevFlow is not initialized."""
        ...

    def get_task(self, number: str) -> TaskInfo | None:
        """Get details of one task of the active feature."""
        ...
