"""
Concrete implementation of StateProvider reading .devflow/ from disk.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path

# Add scripts to path for imports
SCRIPT_DIR = Path(__file__).resolve().parent.parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

import state as state_store  # noqa: E402
from tasks import (  # noqa: E402
    Task,
    TaskCounts,
    TaskParseError,
    check_dependencies,
    find_next_task,
    parse_tasks,
)
from tui.providers import (  # noqa: E402
    TASK_BLOCKED,
    TASK_COMPLETE,
    TASK_READY,
    DashboardState,
    FeatureInfo,
    HealthCheck,
    TaskInfo,
)
from validate import run_checks  # noqa: E402


def _parse_datetime(s: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None


def _feature_from_dict(key: str, data: dict, folder: Path) -> FeatureInfo:
    return FeatureInfo(
        key=key,
        display_name=data.get("display_name", key),
        phase=data.get("phase", "SPEC"),
        status=data.get("status", "pending"),
        current_task=data.get("current_task"),
        concerns=tuple(data.get("concerns", [])),
        created_at=_parse_datetime(data.get("created_at")),
        artifacts=tuple(name for name in state_store.ARTIFACTS if (folder / name).exists()),
    )


def _task_info(task: Task, all_tasks: list[Task]) -> TaskInfo:
    dependents = tuple(t.number for t in all_tasks if task.number in t.dependencies)
    if task.is_complete:
        return TaskInfo(
            number=task.number,
            description=task.description,
            complexity=task.complexity,
            status=TASK_COMPLETE,
            dependencies=task.dependencies,
            dependents=dependents,
            indent=task.indent,
        )

    check = check_dependencies(task, all_tasks)
    return TaskInfo(
        number=task.number,
        description=task.description,
        complexity=task.complexity,
        status=TASK_READY if check.met else TASK_BLOCKED,
        dependencies=task.dependencies,
        missing=tuple(f"{m.number} ({m.reason})" for m in check.missing),
        dependents=dependents,
        indent=task.indent,
    )


class FileStateProvider:
    """StateProvider implementation that reads .devflow/state.json."""

    def __init__(self, state_file: Path | None = None):
        self._state_file = state_file

    @property
    def state_file(self) -> Path:
        return self._state_file if self._state_file is not None else state_store.STATE_FILE

    @property
    def devflow_dir(self) -> Path:
        return self.state_file.parent

    def _feature_dir(self, key: str) -> Path:
        return self.devflow_dir / "features" / key

    def load(self) -> DashboardState | None:
        """Load current DevFlow state."""
        if not self.state_file.exists():
            return None

        try:
            data = json.loads(self.state_file.read_text())
        except (json.JSONDecodeError, OSError):
            return None

        features = tuple(
            _feature_from_dict(key, fdata, self._feature_dir(key))
            for key, fdata in (data.get("features") or {}).items()
            if isinstance(fdata, dict)
        )
        active_key = data.get("active_feature")
        active = next((f for f in features if f.key == active_key), None)

        tasks: tuple[TaskInfo, ...] = ()
        next_task = None
        task_error = None
        if active is not None:
            tasks_path = self._feature_dir(active.key) / "tasks.md"
            if tasks_path.exists():
                try:
                    parsed = parse_tasks(tasks_path.read_text())
                except TaskParseError as e:
                    parsed = []
                    task_error = str(e)
                tasks = tuple(_task_info(t, parsed) for t in parsed)
                result = find_next_task(parsed)
                if result is not None:
                    next_task = tasks[parsed.index(result.task)]

        summary = TaskCounts(
            total=len(tasks),
            completed=sum(1 for t in tasks if t.is_complete),
        )

        health_checks = tuple(
            HealthCheck(r.name, r.passed, r.message, r.details, r.fix)
            for r in run_checks(devflow_dir=self.devflow_dir)
        )

        return DashboardState(
            features=features,
            active_feature=active,
            tasks=tasks,
            summary=summary,
            next_task=next_task,
            blocked=tuple(t for t in tasks if t.status == TASK_BLOCKED),
            updated_at=_parse_datetime(data.get("updated_at")),
            health_checks=health_checks,
            task_error=task_error,
        )

    def get_task(self, number: str) -> TaskInfo | None:
        """Get details of a specific task."""
        state = self.load()
        if not state:
            return None
        return state.get_task(number)
