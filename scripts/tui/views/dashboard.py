"""Main dashboard view combining all panels."""

from textual.app import ComposeResult
from textual.containers import Container, ScrollableContainer, Vertical
from textual.screen import Screen
from textual.widgets import Footer, Header, Label, Static

from transition import PHASE_ORDER
from tui.providers import DashboardState, FeatureInfo, TaskInfo
from tui.views.widgets import (
    FeatureListPanel,
    HealthPanel,
    NextTaskPanel,
    ProgressPanel,
    TaskRow,
)


class PhaseIndicator(Static):
    """Shows the active feature's position in the workflow."""

    DEFAULT_CSS = """
    PhaseIndicator {
        height: 3;
        border: solid $primary;
        padding: 0 1;
        content-align: center middle;
    }

    PhaseIndicator .phase-name {
        text-style: bold;
        color: $accent;
    }
    """

    def __init__(self, feature: FeatureInfo | None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._feature = feature

    def compose(self) -> ComposeResult:
        if self._feature is None:
            yield Label("No active feature", classes="phase-name")
            return

        steps = []
        for phase in PHASE_ORDER:
            steps.append(f"● {phase.value}" if phase.value == self._feature.phase else phase.value)
        yield Label(
            f"{self._feature.display_name}: {' → '.join(steps)}",
            classes="phase-name",
            markup=False,
        )


class TaskListPanel(Static):
    """Scrollable list of tasks."""

    DEFAULT_CSS = """
    TaskListPanel {
        height: 100%;
        border: solid $primary;
        padding: 1;
    }

    TaskListPanel .title {
        text-style: bold;
        margin-bottom: 1;
    }

    TaskListPanel .task-list {
        height: 1fr;
        overflow-y: auto;
    }

    TaskListPanel .parse-error {
        color: $error;
    }
    """

    def __init__(self, tasks: tuple[TaskInfo, ...], error: str | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._task_list = tasks
        self._task_error = error

    def compose(self) -> ComposeResult:
        yield Label("Tasks", classes="title")

        if self._task_error:
            yield Label(self._task_error, classes="parse-error", markup=False)
            return

        with ScrollableContainer(classes="task-list"):
            for task in self._task_list:
                yield TaskRow(task)


class DashboardScreen(Screen):
    """Main dashboard screen."""

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
        ("n", "next_task", "Next Task"),
    ]

    DEFAULT_CSS = """
    DashboardScreen {
        layout: grid;
        grid-size: 3 3;
        grid-columns: 1fr 2fr 1fr;
        grid-rows: auto 1fr auto;
    }

    #header-row {
        column-span: 3;
        height: 3;
    }

    #left-column {
        row-span: 1;
        padding: 1;
    }

    #center-column {
        row-span: 1;
        padding: 1;
    }

    #right-column {
        row-span: 1;
        padding: 1;
    }

    .no-state {
        text-align: center;
        margin: 2;
        color: $warning;
    }
    """

    def __init__(self, state: DashboardState | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._dashboard = state

    def compose(self) -> ComposeResult:
        yield Header()

        if not self._dashboard:
            yield Label(
                "DevFlow is not initialized.\n\n"
                "Run 'python3 scripts/state.py init' to start.",
                classes="no-state",
            )
            yield Footer()
            return

        with Container(id="header-row"):
            yield PhaseIndicator(self._dashboard.active_feature)

        with Vertical(id="left-column"):
            yield FeatureListPanel(self._dashboard.features)
            yield HealthPanel(self._dashboard.health_checks)

        with Vertical(id="center-column"):
            yield ProgressPanel(self._dashboard.summary, len(self._dashboard.blocked))
            yield NextTaskPanel(self._dashboard.next_task, bool(self._dashboard.tasks))

        with Vertical(id="right-column"):
            yield TaskListPanel(self._dashboard.tasks, self._dashboard.task_error)

        yield Footer()

    def action_refresh(self) -> None:
        """Refresh the dashboard."""
        self.app.refresh_state()

    def action_next_task(self) -> None:
        """Open the detail view for the next task."""
        if self._dashboard and self._dashboard.next_task:
            self.app.show_task_detail(self._dashboard.next_task.number)

    def action_quit(self) -> None:
        """Quit the application."""
        self.app.exit()
