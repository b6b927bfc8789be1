#!/usr/bin/env python3
"""
Implementation Log for DevFlow

Appends progress entries to a feature's implementation.md during EXECUTE.
Entries are grouped under one dated section per day:

    ## 2025-10-25 - EXECUTE Phase

    ### Task 3.2: Add pagination
    **Logged:** 2025-10-25 14:05

    Implemented cursor-based pagination

    ---

Usage:
    implementation.py log <task_number> <message> [feature]
"""

import sys
from datetime import datetime
from pathlib import Path

import state as state_store
from tasks import TASK_LINE_PATTERN

PREVIEW_LINES = 4


def ensure_implementation_log(path: Path, display_name: str) -> bool:
    """Create implementation.md with its header. Returns True if created."""
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        f"# Implementation Log - {display_name}\n\n"
        "This log tracks progress during feature implementation.\n\n"
        "---\n\n"
    )
    return True


def get_task_description(tasks_text: str, number: str) -> str | None:
    """Description of task `number` from tasks.md text, or None."""
    number = str(number).strip().rstrip(".")
    # Line grammar only, so a bad [depends: ...] elsewhere does not stop logging
    for line in tasks_text.split("\n"):
        match = TASK_LINE_PATTERN.match(line.rstrip("\r"))
        if match and match.group("number") == number:
            return match.group("description").strip()
    return None


def format_log_entry(
    number: str,
    description: str | None,
    message: str,
    now: datetime,
    include_date_section: bool,
) -> str:
    entry = ""
    if include_date_section:
        entry += f"## {now:%Y-%m-%d} - EXECUTE Phase\n\n"

    entry += f"### Task {number}"
    if description:
        entry += f": {description}"
    entry += "\n"
    entry += f"**Logged:** {now:%Y-%m-%d %H:%M}\n\n"
    entry += f"{message}\n\n"
    entry += "---\n\n"
    return entry


def append_log_entry(
    path: Path,
    number: str,
    description: str | None,
    message: str,
    now: datetime | None = None,
) -> str:
    """Append an entry, opening today's section if the log has none yet."""
    now = now or datetime.now()
    content = path.read_text() if path.exists() else ""
    has_date_section = f"## {now:%Y-%m-%d}" in content

    entry = format_log_entry(number, description, message, now, not has_date_section)
    with path.open("a") as f:
        f.write(entry)
    return entry


def log_implementation(number: str, message: str, feature_name: str | None = None) -> tuple[str, Path]:
    """Resolve the feature and log one entry. Returns (entry, log path)."""
    if not str(number).strip():
        raise ValueError("Task number is required")
    if not message.strip():
        raise ValueError("Log message is required")

    state = state_store.require_state()
    key = state_store.resolve_feature_key(state, feature_name)
    feature = state_store.read_feature(state, key)

    folder = state_store.feature_dir(key)
    impl_path = folder / "implementation.md"
    tasks_path = folder / "tasks.md"

    ensure_implementation_log(impl_path, feature["display_name"])

    description = None
    if tasks_path.exists():
        description = get_task_description(tasks_path.read_text(), number)

    entry = append_log_entry(impl_path, number, description, message)
    return entry, impl_path


def main():
    if len(sys.argv) < 4 or sys.argv[1] != "log":
        print("Usage: implementation.py log <task_number> <message> [feature]", file=sys.stderr)
        print("", file=sys.stderr)
        print("Examples:", file=sys.stderr)
        print('  implementation.py log 3.2 "Implemented OAuth integration"', file=sys.stderr)
        print('  implementation.py log 2 "Created User model" user-auth', file=sys.stderr)
        sys.exit(1)

    number, message = sys.argv[2], sys.argv[3]
    feature_name = sys.argv[4] if len(sys.argv) > 4 else None

    print(f"Logging implementation for task {number}...\n")
    try:
        entry, impl_path = log_implementation(number, message, feature_name)
    except (state_store.StateError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print("✓ Entry added to implementation.md\n")
    print("Entry preview:")
    print("─" * 36)
    print("\n".join(entry.split("\n")[:PREVIEW_LINES]))
    print("─" * 36 + "\n")
    print(f"Location: {impl_path}")


if __name__ == "__main__":
    main()
