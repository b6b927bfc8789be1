"""
DevFlow TUI Application.

Main entry point for the terminal user interface.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure scripts directory is in path
SCRIPT_DIR = Path(__file__).resolve().parent.parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

from textual.app import App  # noqa: E402
from textual.binding import Binding  # noqa: E402

from tui.providers import DashboardState  # noqa: E402
from tui.state_provider import FileStateProvider  # noqa: E402
from tui.views.dashboard import DashboardScreen  # noqa: E402
from tui.views.task_detail import TaskDetailScreen  # noqa: E402

# Auto-refresh interval in seconds
AUTO_REFRESH_INTERVAL = 5.0


def _fingerprint(state: DashboardState | None) -> tuple | None:
    """What the dashboard shows; a change means a redraw is due."""
    if state is None:
        return None
    return (
        state.updated_at,
        tuple((t.number, t.status) for t in state.tasks),
        tuple((h.name, h.passed) for h in state.health_checks),
    )


class DevflowApp(App):
    """Main DevFlow TUI application."""

    TITLE = "DevFlow"
    SUB_TITLE = "Feature Workflow"

    CSS = """
    Screen {
        background: $surface;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit", show=True),
        Binding("r", "refresh", "Refresh", show=True),
        Binding("a", "toggle_auto_refresh", "Auto-Refresh", show=True),
        Binding("d", "toggle_dark", "Dark/Light", show=True),
    ]

    def __init__(
        self,
        state_file: Path | None = None,
        auto_refresh: bool = True,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._provider = FileStateProvider(state_file)
        self._dashboard: DashboardState | None = None
        self._auto_refresh = auto_refresh
        self._refresh_timer = None
        self._last_seen: tuple | None = None

    def on_mount(self) -> None:
        """Called when app is mounted."""
        self._dashboard = self._provider.load()
        self._last_seen = _fingerprint(self._dashboard)
        self.push_screen(DashboardScreen(self._dashboard))

        if self._auto_refresh:
            self._start_auto_refresh()

    def _start_auto_refresh(self) -> None:
        """Start the auto-refresh timer."""
        self._refresh_timer = self.set_interval(
            AUTO_REFRESH_INTERVAL,
            self._check_for_updates,
        )

    def _stop_auto_refresh(self) -> None:
        """Stop the auto-refresh timer."""
        if self._refresh_timer:
            self._refresh_timer.stop()
            self._refresh_timer = None

    def _check_for_updates(self) -> None:
        """Redraw the dashboard when state.json or tasks.md changed."""
        new_state = self._provider.load()
        fingerprint = _fingerprint(new_state)
        if fingerprint == self._last_seen:
            return

        self._last_seen = fingerprint
        self._dashboard = new_state
        # Only refresh if we're on the dashboard
        if isinstance(self.screen, DashboardScreen):
            self.pop_screen()
            self.push_screen(DashboardScreen(self._dashboard))

    def refresh_state(self) -> None:
        """Reload state and refresh the dashboard."""
        self._dashboard = self._provider.load()
        self._last_seen = _fingerprint(self._dashboard)
        self.pop_screen()
        self.push_screen(DashboardScreen(self._dashboard))

    def show_task_detail(self, number: str) -> None:
        """Show detail screen for a specific task."""
        if not self._dashboard:
            return
        task = self._dashboard.get_task(number)
        if task:
            self.push_screen(TaskDetailScreen(task))

    def action_toggle_dark(self) -> None:
        """Toggle dark mode."""
        self.theme = "textual-light" if self.theme == "textual-dark" else "textual-dark"

    def action_toggle_auto_refresh(self) -> None:
        """Toggle auto-refresh on/off."""
        self._auto_refresh = not self._auto_refresh
        if self._auto_refresh:
            self._start_auto_refresh()
            self.notify("Auto-refresh enabled")
        else:
            self._stop_auto_refresh()
            self.notify("Auto-refresh disabled")

    def action_refresh(self) -> None:
        """Refresh the current view."""
        self.refresh_state()


def run(state_file: Path | None = None, auto_refresh: bool = True) -> None:
    """Run the TUI application."""
    app = DevflowApp(state_file=state_file, auto_refresh=auto_refresh)
    app.run()


if __name__ == "__main__":
    run()
