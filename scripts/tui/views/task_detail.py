"""Task detail view for drilling into individual tasks."""

from textual.app import ComposeResult
from textual.containers import ScrollableContainer
from textual.screen import Screen
from textual.widgets import Footer, Header, Label, Static

from tui.providers import TaskInfo


class DependenciesPanel(Static):
    """Panel showing task dependencies in both directions."""

    DEFAULT_CSS = """
    DependenciesPanel {
        height: auto;
        border: solid $primary;
        padding: 1;
        margin-bottom: 1;
    }

    DependenciesPanel .title {
        text-style: bold;
        margin-bottom: 1;
    }

    DependenciesPanel .unmet {
        color: $error;
    }
    """

    def __init__(
        self,
        dependencies: tuple[str, ...],
        missing: tuple[str, ...],
        dependents: tuple[str, ...],
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._dependencies = dependencies
        self._missing = missing
        self._dependents = dependents

    def compose(self) -> ComposeResult:
        yield Label("Dependencies", classes="title")

        if self._dependencies:
            yield Label(f"Depends on: {', '.join(self._dependencies)}")
        else:
            yield Label("Depends on: (none)")

        for missing in self._missing:
            yield Label(f"  ✗ {missing}", classes="unmet")

        if self._dependents:
            yield Label(f"Blocks: {', '.join(self._dependents)}")
        else:
            yield Label("Blocks: (none)")


class TaskDetailScreen(Screen):
    """Screen showing detailed task information."""

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "back", "Back"),
        ("b", "back", "Back"),
    ]

    DEFAULT_CSS = """
    TaskDetailScreen {
        padding: 1;
    }

    TaskDetailScreen .task-header {
        text-style: bold;
        margin-bottom: 1;
    }

    TaskDetailScreen .task-status {
        margin-bottom: 1;
    }

    TaskDetailScreen .status-complete {
        color: $success;
    }

    TaskDetailScreen .status-blocked {
        color: $error;
    }

    TaskDetailScreen .status-ready {
        color: $warning;
    }
    """

    def __init__(self, task: TaskInfo, **kwargs) -> None:
        super().__init__(**kwargs)
        self._task_info = task

    def compose(self) -> ComposeResult:
        yield Header()

        with ScrollableContainer():
            yield Label(
                f"Task {self._task_info.number}: {self._task_info.description}",
                classes="task-header",
                markup=False,
            )

            status_parts = [
                f"Status: {self._task_info.status.upper()}",
                f"Complexity: {self._task_info.complexity}",
            ]
            yield Label(
                " | ".join(status_parts),
                classes=f"task-status status-{self._task_info.status}",
                markup=False,
            )

            yield DependenciesPanel(
                self._task_info.dependencies, self._task_info.missing, self._task_info.dependents
            )

        yield Footer()

    def action_back(self) -> None:
        """Go back to the dashboard."""
        self.app.pop_screen()

    def action_quit(self) -> None:
        """Quit the application."""
        self.app.exit()
