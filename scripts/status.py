#!/usr/bin/env python3
"""
DevFlow Status Dashboard

Terminal UI for following features through SPEC -> PLAN -> TASKS -> EXECUTE
-> DONE, with task progress and setup health for the active feature.

Usage:
    status.py              Launch interactive TUI dashboard
    status.py --once       Print status once and exit (no TUI)
    status.py --json       Print status as JSON and exit

Requirements:
    pip install textual
"""

import argparse
import json
import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

from state import FEATURE_STATUSES  # noqa: E402
from tui.providers import TASK_READY  # noqa: E402
from tui.state_provider import FileStateProvider  # noqa: E402


def print_status_once(state_file: Path | None = None) -> int:
    """Print status summary and exit."""
    state = FileStateProvider(state_file).load()

    if not state:
        print("DevFlow is not initialized.")
        print("Run 'python3 scripts/state.py init' to start.")
        return 1

    # Features
    print(f"Features: {len(state.features)}")
    for status in FEATURE_STATUSES:
        count = sum(1 for f in state.features if f.status == status)
        if count > 0:
            print(f"  {status.capitalize():<10} {count}")
    print()

    active = state.active_feature
    if not active:
        print("Active feature: none")
        print()
    else:
        print(f"Active feature: {active.key} ({active.display_name})")
        print(f"Phase: {active.phase}")
        if active.artifacts:
            print(f"Artifacts: {', '.join(active.artifacts)}")
        print()

        # Progress
        summary = state.summary
        if summary.total > 0:
            print(f"Progress: {summary.completed}/{summary.total} tasks ({summary.percentage}%)")
        else:
            print("Progress: No tasks")
        if state.task_error:
            print(f"  ✗ {state.task_error}")
        print()

        # Next task
        if state.next_task:
            task = state.next_task
            label = "Ready" if task.status == TASK_READY else "Blocked"
            print(f"Next task: {task.number} {task.description} ({label})")
            for missing in task.missing:
                print(f"  ✗ depends on {missing}")
            print()
        elif summary.total > 0:
            print("All tasks complete!")
            print()

        if state.blocked:
            print("Blocked Tasks:")
            for task in state.blocked:
                print(f"  ⊘ {task.number}: {task.description}")
            print()

    # Health checks
    print("Health Checks:")
    for check in state.health_checks:
        icon = "✓" if check.passed else "✗"
        print(f"  {icon} {check.message}")
    print()

    return 0


def print_status_json(state_file: Path | None = None) -> int:
    """Print status as JSON and exit."""
    state = FileStateProvider(state_file).load()

    if not state:
        print(json.dumps({"error": "DevFlow is not initialized"}))
        return 1

    active = state.active_feature
    output = {
        "active_feature": active.key if active else None,
        "phase": active.phase if active else None,
        "features": [
            {
                "key": f.key,
                "display_name": f.display_name,
                "phase": f.phase,
                "status": f.status,
                "current_task": f.current_task,
                "artifacts": list(f.artifacts),
            }
            for f in state.features
        ],
        "tasks": {
            "total": state.summary.total,
            "completed": state.summary.completed,
            "percentage": state.summary.percentage,
            "blocked": [t.number for t in state.blocked],
        },
        "next_task": (
            {
                "number": state.next_task.number,
                "description": state.next_task.description,
                "ready": state.next_task.status == TASK_READY,
                "missing": list(state.next_task.missing),
            }
            if state.next_task
            else None
        ),
        "health_checks": [
            {"name": c.name, "passed": c.passed, "message": c.message}
            for c in state.health_checks
        ],
    }

    print(json.dumps(output, indent=2))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="DevFlow Status Dashboard",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Print status once and exit (no TUI)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print status as JSON and exit",
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        help="Path to state.json file (default: .devflow/state.json)",
    )

    args = parser.parse_args()

    if args.json:
        return print_status_json(args.state_file)

    if args.once:
        return print_status_once(args.state_file)

    from tui.app import run

    run(state_file=args.state_file)
    return 0


if __name__ == "__main__":
    sys.exit(main())
