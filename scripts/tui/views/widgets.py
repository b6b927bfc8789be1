"""Reusable widgets for the TUI dashboard."""

from textual.app import ComposeResult
from textual.widgets import Label, ProgressBar, Static

from tasks import TaskCounts
from tui.providers import (
    TASK_BLOCKED,
    TASK_COMPLETE,
    TASK_READY,
    FeatureInfo,
    HealthCheck,
    TaskInfo,
)

STATUS_ICONS = {
    TASK_COMPLETE: "✓",
    TASK_READY: "○",
    TASK_BLOCKED: "⊘",
}

FEATURE_ICONS = {
    "active": "▶",
    "paused": "‖",
    "pending": "○",
    "completed": "✓",
}


class HealthPanel(Static):
    """Panel showing health check status."""

    DEFAULT_CSS = """
    HealthPanel {
        height: auto;
        border: solid $primary;
        padding: 1;
        margin-bottom: 1;
    }

    HealthPanel .title {
        text-style: bold;
        margin-bottom: 1;
    }

    HealthPanel .check-pass {
        color: $success;
    }

    HealthPanel .check-fail {
        color: $error;
    }

    HealthPanel .detail {
        color: $text-muted;
        margin-left: 2;
    }
    """

    def __init__(self, checks: tuple[HealthCheck, ...], **kwargs) -> None:
        super().__init__(**kwargs)
        self._checks = checks

    def compose(self) -> ComposeResult:
        yield Label("Health Checks", classes="title")
        for check in self._checks:
            icon = "✓" if check.passed else "✗"
            css_class = "check-pass" if check.passed else "check-fail"
            yield Label(f"{icon} {check.message}", classes=css_class, markup=False)
            if not check.passed:
                for detail in check.details[:3]:
                    yield Label(detail, classes="detail", markup=False)


class ProgressPanel(Static):
    """Panel showing task completion for the active feature."""

    DEFAULT_CSS = """
    ProgressPanel {
        height: auto;
        border: solid $primary;
        padding: 1;
        margin-bottom: 1;
    }

    ProgressPanel .title {
        text-style: bold;
        margin-bottom: 1;
    }

    ProgressPanel .status-complete {
        color: $success;
    }

    ProgressPanel .status-blocked {
        color: $error;
    }

    ProgressPanel .status-pending {
        color: $text-muted;
    }
    """

    def __init__(self, summary: TaskCounts, blocked_count: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self._summary = summary
        self._blocked_count = blocked_count

    def compose(self) -> ComposeResult:
        total = self._summary.total
        completed = self._summary.completed
        remaining = self._summary.remaining

        yield Label("Progress", classes="title")

        if total == 0:
            yield Label("No tasks yet", classes="status-pending")
            return

        yield ProgressBar(total=100, show_eta=False)
        yield Label(f"{completed}/{total} tasks ({self._summary.percentage}%)")
        yield Label("")

        if completed > 0:
            yield Label(f"  Completed: {completed}", classes="status-complete")
        if self._blocked_count > 0:
            yield Label(f"  Blocked:   {self._blocked_count}", classes="status-blocked")
        if remaining > 0:
            yield Label(f"  Remaining: {remaining}", classes="status-pending")

    def on_mount(self) -> None:
        for bar in self.query(ProgressBar):
            bar.update(progress=self._summary.percentage)


class NextTaskPanel(Static):
    """Panel showing the task to pick up next."""

    DEFAULT_CSS = """
    NextTaskPanel {
        height: auto;
        border: solid $warning;
        padding: 1;
        margin-bottom: 1;
    }

    NextTaskPanel .title {
        text-style: bold;
        margin-bottom: 1;
    }

    NextTaskPanel .task-id {
        color: $accent;
    }

    NextTaskPanel .blocked {
        color: $error;
    }
    """

    def __init__(self, task: TaskInfo | None, has_tasks: bool, **kwargs) -> None:
        super().__init__(**kwargs)
        self._task_info = task
        self._has_tasks = has_tasks

    def compose(self) -> ComposeResult:
        yield Label("Next Task", classes="title")

        if self._task_info is None:
            yield Label("All tasks complete!" if self._has_tasks else "No tasks.md for this feature")
            return

        yield Label(f"Task {self._task_info.number}: {self._task_info.description}", classes="task-id", markup=False)
        yield Label(f"  Complexity: {self._task_info.complexity}", markup=False)
        if self._task_info.status == TASK_BLOCKED:
            yield Label("  Blocked - complete dependencies first:", classes="blocked")
            for missing in self._task_info.missing:
                yield Label(f"    ✗ {missing}", classes="blocked")
        else:
            yield Label("  Ready to start")


class FeatureListPanel(Static):
    """Panel listing every feature with its phase and status."""

    DEFAULT_CSS = """
    FeatureListPanel {
        height: auto;
        border: solid $primary;
        padding: 1;
        margin-bottom: 1;
    }

    FeatureListPanel .title {
        text-style: bold;
        margin-bottom: 1;
    }

    FeatureListPanel .feature-active {
        color: $accent;
        text-style: bold;
    }

    FeatureListPanel .feature-completed {
        color: $success;
    }

    FeatureListPanel .feature-other {
        color: $text-muted;
    }
    """

    def __init__(self, features: tuple[FeatureInfo, ...], **kwargs) -> None:
        super().__init__(**kwargs)
        self._features = features

    def compose(self) -> ComposeResult:
        yield Label(f"Features ({len(self._features)})", classes="title")

        if not self._features:
            yield Label("No features yet", classes="feature-other")
            return

        for feature in self._features:
            icon = FEATURE_ICONS.get(feature.status, "?")
            if feature.status == "active":
                css_class = "feature-active"
            elif feature.status == "completed":
                css_class = "feature-completed"
            else:
                css_class = "feature-other"
            yield Label(f"{icon} {feature.key} ({feature.phase})", classes=css_class)


class TaskRow(Static):
    """Single row in the task list."""

    DEFAULT_CSS = """
    TaskRow {
        height: 1;
        width: 100%;
    }

    TaskRow .status-complete {
        color: $success;
    }

    TaskRow .status-blocked {
        color: $error;
    }

    TaskRow .status-ready {
        color: $text;
    }
    """

    def __init__(self, task: TaskInfo, **kwargs) -> None:
        super().__init__(**kwargs)
        self._task_info = task

    def compose(self) -> ComposeResult:
        icon = STATUS_ICONS.get(self._task_info.status, "?")
        indent = " " * self._task_info.indent
        yield Label(
            f"{indent}{icon} {self._task_info.number} {self._task_info.description}",
            classes=f"status-{self._task_info.status}",
            markup=False,
        )
