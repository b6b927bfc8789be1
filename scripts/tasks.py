#!/usr/bin/env python3
"""
Task Dependency Resolver for DevFlow

Parses the checklist in a feature's tasks.md, checks task dependencies and
picks the next runnable task. Parsing and resolution are pure functions over
text; only the commands below touch the filesystem.

Checklist grammar (one task per line):

    - [ ] 1. Set up schema (small)
    - [x] 2. Build API [depends: 1]
      - [ ] 2.1. Add pagination (large) [depends: 2, 1]

Usage:
    tasks.py next [feature]               Show the next task to work on
    tasks.py status [feature]             Show progress and blocked tasks
    tasks.py complete <number> [feature]  Mark a task complete in tasks.md
"""

import re
import sys
from collections import defaultdict
from dataclasses import dataclass

TASK_LINE_PATTERN = re.compile(
    r"^(?P<indent>\s*)- \[(?P<mark>[ x])\] (?P<number>\d+(?:\.\d+)*)\.\s+"
    r"(?P<description>.+?)"
    r"(?:\s+\((?P<complexity>[^)]+)\))?"
    r"(?:\s+\[depends:\s*(?P<depends>[^\]]*)\])?\s*$"
)
TASK_NUMBER_PATTERN = re.compile(r"^\d+(?:\.\d+)*$")

DEFAULT_COMPLEXITY = "medium"
REASON_NOT_FOUND = "not found"
REASON_NOT_COMPLETE = "not complete"


class TaskError(Exception):
    """Base class for task lookup failures."""

    def __init__(self, number: str, message: str):
        self.number = number
        super().__init__(message)


class TaskNotFoundError(TaskError):
    """No incomplete task with the given number exists."""

    def __init__(self, number: str):
        super().__init__(number, f"Task {number} not found in tasks.md")


class TaskAlreadyCompleteError(TaskError):
    """The task exists but its checkbox is already marked."""

    def __init__(self, number: str):
        super().__init__(number, f"Task {number} is already complete")


class TaskParseError(ValueError):
    """A checklist line could not be interpreted."""


class MalformedDependencyError(TaskParseError):
    """A depends: clause holds something other than task numbers."""

    def __init__(self, line_index: int, clause: str):
        self.line_index = line_index
        self.clause = clause
        super().__init__(
            f"Malformed dependency list on line {line_index + 1}: [depends: {clause}]"
        )


@dataclass(frozen=True)
class Task:
    """One checklist entry, rebuilt from text on every parse."""

    number: str
    description: str
    complexity: str = DEFAULT_COMPLEXITY
    is_complete: bool = False
    dependencies: tuple[str, ...] = ()
    indent: int = 0
    line_index: int = -1

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "description": self.description,
            "complexity": self.complexity,
            "is_complete": self.is_complete,
            "dependencies": list(self.dependencies),
        }


@dataclass(frozen=True)
class MissingDependency:
    """A dependency that keeps a task from running."""

    number: str
    reason: str
    description: str | None = None

    def to_dict(self) -> dict:
        data = {"number": self.number, "reason": self.reason}
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass(frozen=True)
class DependencyCheck:
    met: bool
    missing: tuple[MissingDependency, ...] = ()


@dataclass(frozen=True)
class NextTask:
    """Result of find_next_task.

    When dependencies_met is False the task is the first incomplete one and
    missing explains why nothing can run.
    """

    task: Task
    dependencies_met: bool
    missing: tuple[MissingDependency, ...] = ()

    def to_dict(self) -> dict:
        return {
            "task": self.task.to_dict(),
            "dependencies_met": self.dependencies_met,
            "missing": [m.to_dict() for m in self.missing],
        }


@dataclass(frozen=True)
class TaskCounts:
    total: int
    completed: int

    @property
    def remaining(self) -> int:
        return self.total - self.completed

    @property
    def percentage(self) -> int:
        """Completion percentage rounded to the nearest integer."""
        if self.total == 0:
            return 0
        return round(self.completed / self.total * 100)

    @property
    def all_complete(self) -> bool:
        """True only for a non-empty checklist with every task checked."""
        return self.total > 0 and self.completed == self.total

    def to_dict(self) -> dict:
        return {"total": self.total, "completed": self.completed}


# =============================================================================
# PARSING
# =============================================================================


def _parse_dependencies(clause: str | None, line_index: int) -> tuple[str, ...]:
    if clause is None:
        return ()

    numbers: list[str] = []
    for raw in clause.split(","):
        number = raw.strip()
        if not TASK_NUMBER_PATTERN.match(number):
            raise MalformedDependencyError(line_index, clause)
        if number not in numbers:
            numbers.append(number)
    return tuple(numbers)


def parse_task_line(line: str, line_index: int = -1) -> Task | None:
    """Parse a single line, returning None for anything that is not a task."""
    match = TASK_LINE_PATTERN.match(line)
    if not match:
        return None

    return Task(
        number=match.group("number"),
        description=match.group("description").strip(),
        complexity=(match.group("complexity") or DEFAULT_COMPLEXITY).strip(),
        is_complete=match.group("mark") == "x",
        dependencies=_parse_dependencies(match.group("depends"), line_index),
        indent=len(match.group("indent")),
        line_index=line_index,
    )


def parse_tasks(text: str) -> list[Task]:
    """Parse every checklist line in document order.

    Lines outside the grammar (headings, prose, blank lines) are skipped.
    """
    tasks = []
    for index, line in enumerate(text.split("\n")):
        task = parse_task_line(line, index)
        if task is not None:
            tasks.append(task)
    return tasks


def count_tasks(text: str) -> TaskCounts:
    """Count checklist lines and how many of them are checked."""
    total = 0
    completed = 0
    for line in text.split("\n"):
        match = TASK_LINE_PATTERN.match(line)
        if not match:
            continue
        total += 1
        if match.group("mark") == "x":
            completed += 1
    return TaskCounts(total=total, completed=completed)


# =============================================================================
# DEPENDENCY RESOLUTION
# =============================================================================


def check_dependencies(task: Task, all_tasks: list[Task]) -> DependencyCheck:
    """Check one hop of dependencies for a task.

    A dependency is unmet when no task carries that number or when the
    referenced task is still open. Cycles are not detected here.
    """
    if not task.dependencies:
        return DependencyCheck(met=True)

    by_number: dict[str, Task] = {}
    for candidate in all_tasks:
        by_number.setdefault(candidate.number, candidate)

    missing = []
    for number in task.dependencies:
        dep = by_number.get(number)
        if dep is None:
            missing.append(MissingDependency(number, REASON_NOT_FOUND))
        elif not dep.is_complete:
            missing.append(MissingDependency(number, REASON_NOT_COMPLETE, dep.description))

    return DependencyCheck(met=not missing, missing=tuple(missing))


def find_next_task(tasks: list[Task]) -> NextTask | None:
    """Return the first incomplete task, in document order, that can run.

    If every incomplete task is blocked, the first incomplete task is returned
    with its unmet dependencies. Returns None once everything is complete.
    """
    first_incomplete: Task | None = None

    for task in tasks:
        if task.is_complete:
            continue
        if first_incomplete is None:
            first_incomplete = task
        if check_dependencies(task, tasks).met:
            return NextTask(task=task, dependencies_met=True)

    if first_incomplete is None:
        return None

    check = check_dependencies(first_incomplete, tasks)
    return NextTask(task=first_incomplete, dependencies_met=False, missing=check.missing)


def blocked_tasks(tasks: list[Task]) -> list[tuple[Task, DependencyCheck]]:
    """Incomplete tasks whose dependencies are not yet met."""
    blocked = []
    for task in tasks:
        if task.is_complete:
            continue
        check = check_dependencies(task, tasks)
        if not check.met:
            blocked.append((task, check))
    return blocked


def detect_cycles(tasks: list[Task]) -> list[list[str]]:
    """Find dependency cycles with a DFS over task numbers.

    Each cycle is reported as a path that starts and ends on the same number,
    e.g. ["1", "2", "1"]. References to unknown numbers are ignored.
    """
    known = {t.number for t in tasks}
    graph: dict[str, list[str]] = defaultdict(list)
    for task in tasks:
        graph[task.number].extend(d for d in task.dependencies if d in known)

    visited: set[str] = set()
    on_stack: set[str] = set()
    cycles: list[list[str]] = []

    def dfs(node: str, path: list[str]) -> None:
        visited.add(node)
        on_stack.add(node)
        path.append(node)

        for dep in graph.get(node, []):
            if dep not in visited:
                dfs(dep, path)
            elif dep in on_stack:
                start = path.index(dep)
                cycles.append(path[start:] + [dep])

        path.pop()
        on_stack.remove(node)

    for task in tasks:
        if task.number not in visited:
            dfs(task.number, [])

    return cycles


# =============================================================================
# MUTATION
# =============================================================================


def mark_complete(text: str, number: str) -> tuple[str, str]:
    """Check the box of an open task and return (updated_text, description).

    Only the checkbox marker changes; all other content, including line
    endings, is kept as-is.

    Raises:
        ValueError: number is empty
        TaskAlreadyCompleteError: the task exists and is already checked
        TaskNotFoundError: no task with that number exists
    """
    number = str(number).strip()
    if not number:
        raise ValueError("Task number is required")

    lines = text.split("\n")
    already_complete = False

    # Same line grammar as parse_tasks; dependency clauses are not parsed so a
    # malformed clause elsewhere does not block the update.
    for index, line in enumerate(lines):
        match = TASK_LINE_PATTERN.match(line.rstrip("\r"))
        if not match or match.group("number") != number:
            continue
        if match.group("mark") == "x":
            already_complete = True
            continue

        lines[index] = line.replace("- [ ]", "- [x]", 1)
        return "\n".join(lines), match.group("description").strip()

    if already_complete:
        raise TaskAlreadyCompleteError(number)
    raise TaskNotFoundError(number)


# =============================================================================
# COMMANDS
# =============================================================================


def _load_feature_tasks(feature_name: str | None) -> tuple[dict, str, str]:
    """Resolve a feature and read its tasks.md. Returns (state, key, text)."""
    import state as state_store

    state = state_store.require_state()
    key = state_store.resolve_feature_key(state, feature_name)
    tasks_path = state_store.feature_dir(key) / "tasks.md"
    if not tasks_path.exists():
        raise FileNotFoundError(f"tasks.md not found for feature {key}")
    return state, key, tasks_path.read_text()


def print_next_task(result: NextTask) -> None:
    task = result.task

    print("Next task:")
    print("─" * 37)
    print(f"Task {task.number}: {task.description}")
    print(f"Complexity: {task.complexity}")

    if task.dependencies:
        dep_status = "all complete ✓" if result.dependencies_met else "NOT complete ✗"
        print(f"Dependencies: {', '.join(task.dependencies)} ({dep_status})")
    else:
        print("Dependencies: none")

    print(f"Status: {'Ready to start' if result.dependencies_met else 'Blocked'}")

    if not result.dependencies_met:
        print()
        print(f"Task {task.number} depends on:")
        for dep in result.missing:
            label = dep.description or f"({dep.reason})"
            print(f"  ✗ Task {dep.number}: {label}")
        print()
        print("Complete dependencies first.")


def print_task_status(feature_key: str, tasks: list[Task]) -> None:
    completed = [t for t in tasks if t.is_complete]
    remaining = [t for t in tasks if not t.is_complete]
    counts = TaskCounts(total=len(tasks), completed=len(completed))

    print(f"Task Status for: {feature_key}\n")
    print(f"Progress: {counts.completed}/{counts.total} tasks ({counts.percentage}% complete)\n")

    if completed:
        print(f"Completed: {len(completed)}")
        for t in completed[:5]:
            print(f"  ✓ {t.number} {t.description}")
        if len(completed) > 5:
            print(f"  ... and {len(completed) - 5} more")
        print()

    if remaining:
        print(f"Remaining: {len(remaining)}")
        for t in remaining[:5]:
            suffix = "" if check_dependencies(t, tasks).met else " (blocked)"
            print(f"  - {t.number} {t.description}{suffix}")
        if len(remaining) > 5:
            print(f"  ... and {len(remaining) - 5} more")
        print()

    blocked = blocked_tasks(tasks)
    if blocked:
        print(f"Blocked: {len(blocked)}")
        for t, check in blocked:
            print(f"  ✗ {t.number} {t.description}")
            for dep in check.missing:
                print(f"    Depends on: {dep.number} ({dep.reason})")
    else:
        print("Blocked: 0")
        print("  (No tasks blocked by dependencies)")


def cmd_next(feature_name: str | None) -> int:
    _, key, text = _load_feature_tasks(feature_name)
    tasks = parse_tasks(text)
    counts = count_tasks(text)

    print(f"Finding next task for feature: {key}\n")
    print(f"Current progress: {counts.completed}/{counts.total} tasks complete\n")

    result = find_next_task(tasks)
    if result is None:
        print("All tasks complete!")
        print()
        print("Next steps:")
        print("  1. Verify all implementation is tested")
        print("  2. Update architecture.md if needed")
        print("  3. Generate retrospective")
        print("  4. Move to DONE phase")
        return 0

    print_next_task(result)
    return 0


def cmd_status(feature_name: str | None) -> int:
    _, key, text = _load_feature_tasks(feature_name)
    print_task_status(key, parse_tasks(text))
    return 0


def cmd_complete(number: str, feature_name: str | None) -> int:
    import state as state_store

    state, key, text = _load_feature_tasks(feature_name)
    tasks_path = state_store.feature_dir(key) / "tasks.md"

    print(f"Marking task {number} complete for feature: {key}\n")

    updated, description = mark_complete(text, number)
    print(f"Task: {description}")
    print("Status: Updating tasks.md...\n")

    success, msg = state_store.set_current_task(state, key, number)
    if not success:
        print(f"Error: {msg}", file=sys.stderr)
        return 1
    # save_state validates; tasks.md is only touched once state is accepted
    state_store.save_state(state)
    tasks_path.write_text(updated)

    counts = count_tasks(updated)
    print("✓ tasks.md updated (checkbox marked)")
    print(f"✓ state.json updated (current_task: {number})")
    print()
    print(f"Completion: {counts.completed}/{counts.total} tasks ({counts.percentage}%)")

    if counts.all_complete:
        print()
        print("All tasks complete!")
        print("   Run 'state.py set-phase DONE' to finalize the feature")
    return 0


def main():
    import state as state_store

    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    cmd = sys.argv[1]
    args = sys.argv[2:]

    try:
        if cmd == "next":
            code = cmd_next(args[0] if args else None)
        elif cmd == "status":
            code = cmd_status(args[0] if args else None)
        elif cmd == "complete":
            if not args:
                print("Usage: tasks.py complete <number> [feature]", file=sys.stderr)
                sys.exit(1)
            code = cmd_complete(args[0], args[1] if len(args) > 1 else None)
        else:
            print(f"Unknown command: {cmd}")
            print(__doc__)
            sys.exit(1)
    except (TaskError, ValueError, state_store.StateError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
