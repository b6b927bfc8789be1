#!/usr/bin/env python3
"""
Phase Transition Validator for DevFlow

Decides whether moving a feature between workflow phases is allowed, given
which artifacts exist and how many tasks are complete. The rule table only
guards the common edges; any pair without a rule is allowed.

Phases: SPEC -> PLAN -> TASKS -> EXECUTE -> DONE (backward moves allowed)

Usage:
    transition.py check <from> <to> [feature] [--json]
                                      Validate a transition for a feature
    transition.py rules               Print the transition rule table
"""

import json
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from tasks import TaskCounts


class Phase(str, Enum):
    """Workflow phase. The str mixin keeps state.json values plain strings."""

    SPEC = "SPEC"
    PLAN = "PLAN"
    TASKS = "TASKS"
    EXECUTE = "EXECUTE"
    DONE = "DONE"


PHASE_ORDER = [Phase.SPEC, Phase.PLAN, Phase.TASKS, Phase.EXECUTE, Phase.DONE]


class InvalidPhaseError(ValueError):
    """Raised for a phase name outside the five workflow phases."""

    def __init__(self, value: str):
        self.value = value
        valid = ", ".join(p.value for p in Phase)
        super().__init__(f"Invalid phase: {value}. Valid phases: {valid}")


@dataclass(frozen=True)
class TransitionRule:
    """Requirements for one (from, to) edge."""

    required_files: tuple[str, ...] = ()
    validate_tasks: bool = False
    warning: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of validate_transition.

    A blocked transition is a normal result: blocking_reasons, missing_files
    and task_counts say exactly what is missing.
    """

    from_phase: Phase
    to_phase: Phase
    allowed: bool
    warnings: tuple[str, ...] = ()
    blocking_reasons: tuple[str, ...] = ()
    missing_files: tuple[str, ...] = ()
    task_counts: TaskCounts | None = None
    rule: TransitionRule | None = None
    notes: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "from": self.from_phase.value,
            "to": self.to_phase.value,
            "allowed": self.allowed,
            "warnings": list(self.warnings),
            "blocking_reasons": list(self.blocking_reasons),
            "missing_files": list(self.missing_files),
            "task_counts": self.task_counts.to_dict() if self.task_counts else None,
            "notes": list(self.notes),
        }


TRANSITION_RULES: dict[tuple[Phase, Phase], TransitionRule] = {
    (Phase.SPEC, Phase.PLAN): TransitionRule(
        required_files=("spec.md",),
        description="Spec must exist before planning",
    ),
    (Phase.SPEC, Phase.TASKS): TransitionRule(
        required_files=("spec.md",),
        warning="Skipping PLAN phase - consider generating technical plan first",
    ),
    (Phase.SPEC, Phase.EXECUTE): TransitionRule(
        required_files=("spec.md", "tasks.md"),
        warning="Skipping PLAN and TASKS phases - tasks.md must exist",
    ),
    (Phase.PLAN, Phase.TASKS): TransitionRule(
        required_files=("spec.md", "plan.md"),
        description="Plan must exist before generating tasks",
    ),
    (Phase.PLAN, Phase.EXECUTE): TransitionRule(
        required_files=("spec.md", "plan.md", "tasks.md"),
        warning="Skipping TASKS phase - tasks.md must exist",
    ),
    (Phase.PLAN, Phase.SPEC): TransitionRule(
        warning="Moving backward to SPEC - ensure changes are intentional",
    ),
    (Phase.TASKS, Phase.EXECUTE): TransitionRule(
        required_files=("spec.md", "tasks.md"),
        description="Tasks must exist before execution",
    ),
    (Phase.TASKS, Phase.PLAN): TransitionRule(
        warning="Moving backward to PLAN - task definitions may need regeneration",
    ),
    (Phase.TASKS, Phase.SPEC): TransitionRule(
        warning="Moving backward to SPEC - major rework indicated",
    ),
    (Phase.EXECUTE, Phase.DONE): TransitionRule(
        required_files=("spec.md", "tasks.md", "implementation.md"),
        validate_tasks=True,
        description="Execution complete, moving to done",
    ),
    (Phase.EXECUTE, Phase.TASKS): TransitionRule(
        warning="Moving backward to TASKS - execution restart required",
    ),
    (Phase.DONE, Phase.SPEC): TransitionRule(
        warning="Reopening completed feature - moving back to SPEC",
    ),
    (Phase.DONE, Phase.EXECUTE): TransitionRule(
        warning="Reopening completed feature - moving back to EXECUTE",
    ),
}

NEXT_STEPS: dict[Phase, list[str]] = {
    Phase.SPEC: [
        "Revise spec.md in the feature folder",
    ],
    Phase.PLAN: [
        "Generate the technical plan",
        "plan.md will be created in feature folder",
    ],
    Phase.TASKS: [
        "Break the plan into executable tasks",
        "tasks.md will be created in feature folder",
    ],
    Phase.EXECUTE: [
        "Run 'tasks.py next' to pick up the first task",
        "Log progress with 'implementation.py log'",
    ],
    Phase.DONE: [
        "Feature will be marked complete",
        "Retrospective will be generated",
        "Active feature will be cleared",
    ],
}


def parse_phase(value: str | Phase) -> Phase:
    """Normalize a phase name (case-insensitive) to a Phase."""
    if isinstance(value, Phase):
        return value
    try:
        return Phase(str(value).strip().upper())
    except ValueError:
        raise InvalidPhaseError(value) from None


def get_rule(from_phase: Phase, to_phase: Phase) -> TransitionRule | None:
    """Look up the rule for an edge.

    Returns None for pairs without a rule; callers treat those as allowed.
    """
    return TRANSITION_RULES.get((from_phase, to_phase))


def required_files(from_phase: Phase, to_phase: Phase) -> tuple[str, ...]:
    rule = get_rule(from_phase, to_phase)
    return rule.required_files if rule else ()


def needs_task_counts(from_phase: Phase, to_phase: Phase) -> bool:
    rule = get_rule(from_phase, to_phase)
    return bool(rule and rule.validate_tasks)


def validate_transition(
    from_phase: str | Phase,
    to_phase: str | Phase,
    file_existence: dict[str, bool] | None = None,
    task_counts: TaskCounts | None = None,
    recorded_phase: str | Phase | None = None,
) -> TransitionResult:
    """Validate a phase transition against the rule table.

    Args:
        from_phase: Phase the caller asserts the feature is in
        to_phase: Requested phase
        file_existence: Artifact name -> exists. Names absent from the map
            count as missing.
        task_counts: Completed/total task counts, needed for rules that
            validate tasks
        recorded_phase: Phase stored for the feature; a mismatch with
            from_phase adds a warning but the rule lookup still uses
            from_phase

    Returns:
        TransitionResult

    Raises:
        InvalidPhaseError: If any phase name is not recognized
    """
    src = parse_phase(from_phase)
    dst = parse_phase(to_phase)
    existence = file_existence or {}

    warnings: list[str] = []
    if recorded_phase is not None:
        recorded = parse_phase(recorded_phase)
        if recorded != src:
            warnings.append(
                f"Current phase is {recorded.value}, not {src.value}; "
                f"validating {src.value} -> {dst.value} as requested"
            )

    rule = get_rule(src, dst)
    if rule is None:
        return TransitionResult(
            from_phase=src,
            to_phase=dst,
            allowed=True,
            warnings=tuple(warnings),
            task_counts=task_counts,
            notes=(
                f"No specific rules for {src.value} -> {dst.value}; "
                "transition is allowed but uncommon",
            ),
        )

    notes: list[str] = []
    if rule.warning:
        warnings.append(rule.warning)
    if rule.description:
        notes.append(rule.description)

    reasons: list[str] = []
    missing = [name for name in rule.required_files if not existence.get(name, False)]
    if missing:
        reasons.append(f"Required files missing: {', '.join(missing)}")

    if rule.validate_tasks:
        if task_counts is None:
            reasons.append("Task completion unknown (tasks.md could not be read)")
        elif task_counts.total == 0:
            reasons.append("No tasks found in tasks.md")
        elif task_counts.completed < task_counts.total:
            reasons.append(
                f"Not all tasks complete ({task_counts.completed}/{task_counts.total})"
            )

    return TransitionResult(
        from_phase=src,
        to_phase=dst,
        allowed=not reasons,
        warnings=tuple(warnings),
        blocking_reasons=tuple(reasons),
        missing_files=tuple(missing),
        task_counts=task_counts,
        rule=rule,
        notes=tuple(notes),
    )


def check_required_files(feature_path: Path, files: tuple[str, ...] | list[str]) -> dict[str, bool]:
    """Probe the feature folder for each required artifact."""
    return {name: (feature_path / name).exists() for name in files}


def next_steps(to_phase: Phase) -> list[str]:
    return list(NEXT_STEPS.get(to_phase, []))


# =============================================================================
# COMMANDS
# =============================================================================


def evaluate_feature_transition(
    state: dict, feature_key: str, from_phase: str | Phase, to_phase: str | Phase
) -> TransitionResult:
    """Gather facts for a stored feature and run validate_transition."""
    import state as state_store
    from tasks import count_tasks

    src = parse_phase(from_phase)
    dst = parse_phase(to_phase)
    feature = state_store.read_feature(state, feature_key)
    path = state_store.feature_dir(feature_key)

    existence = check_required_files(path, required_files(src, dst))

    counts = None
    tasks_path = path / "tasks.md"
    if needs_task_counts(src, dst) and tasks_path.exists():
        counts = count_tasks(tasks_path.read_text())

    return validate_transition(src, dst, existence, counts, recorded_phase=feature.get("phase"))


def print_transition_report(feature_key: str, feature: dict, result: TransitionResult) -> None:
    src, dst = result.from_phase.value, result.to_phase.value

    print(f"Validating transition: {src} → {dst}\n")
    print(f"Feature: {feature_key}")
    print(f"Display name: {feature.get('display_name', '')}")
    print(f"Current phase: {feature.get('phase')}")
    print(f"Status: {feature.get('status')}\n")

    for warning in result.warnings:
        print(f"⚠  Warning: {warning}\n")
    for note in result.notes:
        print(f"ℹ  {note}\n")

    rule = result.rule
    if rule and rule.required_files:
        print("Prerequisites:")
        for name in rule.required_files:
            if name in result.missing_files:
                print(f"✗ {name} missing")
                print(f"  Expected: .devflow/features/{feature_key}/{name}")
            else:
                print(f"✓ {name} exists")

    if rule and rule.validate_tasks:
        print("\nTask completion:")
        counts = result.task_counts
        if counts is not None and counts.all_complete:
            print(f"✓ All tasks complete ({counts.total}/{counts.total})")
        else:
            task_reasons = [r for r in result.blocking_reasons if "task" in r.lower()]
            for reason in task_reasons:
                print(f"✗ {reason}")

    if not result.allowed:
        print(f"\n✗ Transition {src} → {dst} blocked\n")
        for reason in result.blocking_reasons:
            print(f"  - {reason}")
        return

    print(f"\n✓ Transition {src} → {dst} is valid\n")
    steps = next_steps(result.to_phase)
    if steps:
        print("Next steps:")
        for i, step in enumerate(steps, 1):
            print(f"{i}. {step}")


def print_rules() -> None:
    for (src, dst), rule in TRANSITION_RULES.items():
        files = ", ".join(rule.required_files) or "-"
        flags = " +tasks" if rule.validate_tasks else ""
        print(f"{src.value:>7} → {dst.value:<7}  files: {files}{flags}")
        if rule.warning:
            print(f"{'':19}warning: {rule.warning}")
        if rule.description:
            print(f"{'':19}{rule.description}")


def main():
    import state as state_store

    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    cmd = sys.argv[1]

    if cmd == "rules":
        print_rules()
        sys.exit(0)

    if cmd != "check":
        print(f"Unknown command: {cmd}")
        print(__doc__)
        sys.exit(1)

    args = [a for a in sys.argv[2:] if not a.startswith("--")]
    as_json = "--json" in sys.argv[2:]
    if len(args) < 2:
        print("Usage: transition.py check <from> <to> [feature] [--json]", file=sys.stderr)
        print(f"Valid phases: {', '.join(p.value for p in Phase)}", file=sys.stderr)
        sys.exit(1)

    try:
        state = state_store.require_state()
        key = state_store.resolve_feature_key(state, args[2] if len(args) > 2 else None)
        result = evaluate_feature_transition(state, key, args[0], args[1])
    except (InvalidPhaseError, state_store.StateError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if as_json:
        print(json.dumps({"feature": key, **result.to_dict()}, indent=2))
    else:
        print_transition_report(key, state_store.read_feature(state, key), result)

    sys.exit(0 if result.allowed else 1)


if __name__ == "__main__":
    main()
