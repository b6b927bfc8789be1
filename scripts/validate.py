#!/usr/bin/env python3
"""
Setup Validation for DevFlow

Checks that a project is set up for DevFlow and that its state is sound:
- .devflow/ directory, constitution.md and architecture.md present
- state.json present and valid against the schema
- at most one active feature
- no dependency cycles in the active feature's tasks.md

Usage:
    validate.py all                      Run every check (default)
    validate.py quick                    Short presence diagnostic
    validate.py schema                   Validate state.json only
"""

import json
import sys
from dataclasses import dataclass
from pathlib import Path

import state as state_store
from tasks import TaskParseError, detect_cycles, parse_tasks


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one setup check."""

    name: str
    passed: bool
    message: str
    details: tuple[str, ...] = ()
    fix: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "passed": self.passed,
            "message": self.message,
            "details": list(self.details),
            "fix": self.fix,
        }


def _devflow_dir(devflow_dir: Path | None) -> Path:
    """The .devflow/ folder to check; defaults to the current project's."""
    return devflow_dir if devflow_dir is not None else state_store.DEVFLOW_DIR


def _read_state(devflow_dir: Path | None = None) -> tuple[dict | None, str | None]:
    """Load state.json, returning (state, error) instead of raising."""
    state_file = _devflow_dir(devflow_dir) / "state.json"
    if not state_file.exists():
        return None, None
    try:
        return json.loads(state_file.read_text()), None
    except (json.JSONDecodeError, OSError) as e:
        return None, str(e)


# =============================================================================
# PRESENCE CHECKS
# =============================================================================


def check_devflow_initialized(devflow_dir: Path | None = None) -> CheckResult:
    return CheckResult(
        name="devflow_initialized",
        passed=_devflow_dir(devflow_dir).is_dir(),
        message="DevFlow initialized",
        fix="Run 'state.py init' to initialize DevFlow",
    )


def check_constitution_exists(devflow_dir: Path | None = None) -> CheckResult:
    return CheckResult(
        name="constitution_exists",
        passed=(_devflow_dir(devflow_dir) / "constitution.md").exists(),
        message="Constitution exists (.devflow/constitution.md)",
        fix="Create .devflow/constitution.md with the project principles",
    )


def check_architecture_exists(devflow_dir: Path | None = None) -> CheckResult:
    return CheckResult(
        name="architecture_exists",
        passed=(_devflow_dir(devflow_dir) / "architecture.md").exists(),
        message="Architecture exists (.devflow/architecture.md)",
        fix="Create .devflow/architecture.md describing the system",
    )


def check_state_file_exists(devflow_dir: Path | None = None) -> CheckResult:
    return CheckResult(
        name="state_file_exists",
        passed=(_devflow_dir(devflow_dir) / "state.json").exists(),
        message="State file exists (.devflow/state.json)",
        fix="Run 'state.py init' to create state.json",
    )


# =============================================================================
# STATE INTEGRITY CHECKS
# =============================================================================


def check_state_schema_valid(devflow_dir: Path | None = None) -> CheckResult:
    state, error = _read_state(devflow_dir)
    if error:
        return CheckResult(
            name="state_schema_valid",
            passed=False,
            message="State validation error",
            details=(error,),
            fix="Check state.json format",
        )
    if state is None:
        return CheckResult(
            name="state_schema_valid",
            passed=False,
            message="State schema not checked (no state.json)",
            fix="Run 'state.py init' to create state.json",
        )

    try:
        valid, errors = state_store.validate_state(state)
    except state_store.StateError as e:
        return CheckResult(
            name="state_schema_valid",
            passed=False,
            message="State schema unavailable",
            details=(str(e),),
            fix="Reinstall DevFlow so schemas/state.schema.json is present",
        )

    if not valid:
        return CheckResult(
            name="state_schema_valid",
            passed=False,
            message="State schema invalid",
            details=tuple(errors),
            fix="Fix state.json validation errors or restore from backup",
        )
    return CheckResult(name="state_schema_valid", passed=True, message="State schema valid")


def check_single_active_feature(devflow_dir: Path | None = None) -> CheckResult:
    state, error = _read_state(devflow_dir)
    if error:
        return CheckResult(
            name="single_active_feature",
            passed=False,
            message="Active feature check failed",
            details=(error,),
        )
    if state is None:
        return CheckResult(
            name="single_active_feature",
            passed=True,
            message="Single active feature (skipped - no state.json)",
        )

    features = state.get("features") or {}
    active = [key for key, f in features.items() if isinstance(f, dict) and f.get("status") == "active"]
    if len(active) > 1:
        return CheckResult(
            name="single_active_feature",
            passed=False,
            message="Multiple active features detected",
            details=tuple(f"- {key}" for key in active),
            fix="Set only one feature to status=\"active\" (state.py activate <feature>)",
        )
    return CheckResult(
        name="single_active_feature",
        passed=True,
        message="Single active feature rule validated",
    )


def check_task_dependencies_acyclic(devflow_dir: Path | None = None) -> CheckResult:
    """Look for cycles in the active feature's tasks.md."""
    state, _ = _read_state(devflow_dir)
    key = (state or {}).get("active_feature")
    if not key:
        return CheckResult(
            name="task_dependencies_acyclic",
            passed=True,
            message="Task dependencies (skipped - no active feature)",
        )

    tasks_path = _devflow_dir(devflow_dir) / "features" / key / "tasks.md"
    if not tasks_path.exists():
        return CheckResult(
            name="task_dependencies_acyclic",
            passed=True,
            message="Task dependencies (skipped - no tasks.md)",
        )

    try:
        tasks = parse_tasks(tasks_path.read_text())
    except TaskParseError as e:
        return CheckResult(
            name="task_dependencies_acyclic",
            passed=False,
            message="tasks.md could not be parsed",
            details=(str(e),),
            fix=f"Fix the [depends: ...] clause in .devflow/features/{key}/tasks.md",
        )

    cycles = detect_cycles(tasks)
    if cycles:
        return CheckResult(
            name="task_dependencies_acyclic",
            passed=False,
            message="Dependency cycles detected in tasks.md",
            details=tuple(" -> ".join(c) for c in cycles),
            fix="Remove one dependency from each cycle so every task can run",
        )
    return CheckResult(
        name="task_dependencies_acyclic",
        passed=True,
        message="Task dependencies are acyclic",
    )


CHECKS = {
    "devflow_initialized": check_devflow_initialized,
    "constitution_exists": check_constitution_exists,
    "architecture_exists": check_architecture_exists,
    "state_file_exists": check_state_file_exists,
    "state_schema_valid": check_state_schema_valid,
    "single_active_feature": check_single_active_feature,
    "task_dependencies_acyclic": check_task_dependencies_acyclic,
}


# =============================================================================
# RUNNERS
# =============================================================================


def run_checks(names: list[str] | None = None, devflow_dir: Path | None = None) -> list[CheckResult]:
    """Run the named checks (all by default), skipping unknown names."""
    return [CHECKS[name](devflow_dir) for name in (names or list(CHECKS)) if name in CHECKS]


def recommended_actions(results: list[CheckResult]) -> list[str]:
    """Fixes for failed checks, de-duplicated, in check order."""
    fixes: list[str] = []
    for result in results:
        if not result.passed and result.fix and result.fix not in fixes:
            fixes.append(result.fix)
    return fixes


def print_check(result: CheckResult) -> None:
    icon = "✓" if result.passed else "✗"
    print(f"{icon} {result.message}")
    for detail in result.details:
        print(f"  {detail}")
    if not result.passed and result.fix:
        print(f"  Fix: {result.fix}")


def run_validation(names: list[str] | None = None) -> bool:
    """Run checks, print the report and return True when all passed."""
    print("DevFlow Setup Validation\n")

    results = run_checks(names)
    for result in results:
        print_check(result)
        print()

    passed = sum(1 for r in results if r.passed)
    all_passed = passed == len(results)
    icon = "✓" if all_passed else "✗"
    print(f"{icon} Setup validation {'passed' if all_passed else 'failed'} ({passed}/{len(results)} checks)\n")

    if not all_passed:
        print("Recommended actions:")
        for i, fix in enumerate(recommended_actions(results), 1):
            print(f"{i}. {fix}")

    return all_passed


def quick_diagnostic() -> bool:
    """Presence-only diagnostic. True when every core file exists."""
    print("DevFlow Quick Diagnostic\n")

    def mark(exists: bool) -> str:
        return "✓ Present" if exists else "✗ Missing"

    devflow = _devflow_dir(None)
    devflow_exists = devflow.is_dir()
    print(f"DevFlow directory: {mark(devflow_exists)}")
    if not devflow_exists:
        print("\nDevFlow is not initialized. Run 'state.py init'")
        return False

    state_exists = (devflow / "state.json").exists()
    constitution_exists = (devflow / "constitution.md").exists()
    architecture_exists = (devflow / "architecture.md").exists()
    print(f"State file: {mark(state_exists)}")
    print(f"Constitution: {mark(constitution_exists)}")
    print(f"Architecture: {mark(architecture_exists)}")

    if state_exists:
        state, error = _read_state()
        if error:
            print(f"\nState read error: {error}")
        else:
            print(f"\nActive feature: {state.get('active_feature') or 'none'}")
            print(f"Total features: {len(state.get('features') or {})}")

    return state_exists and constitution_exists and architecture_exists


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "all"

    if cmd == "all":
        sys.exit(0 if run_validation() else 1)

    elif cmd == "quick":
        sys.exit(0 if quick_diagnostic() else 1)

    elif cmd == "schema":
        result = check_state_schema_valid()
        print_check(result)
        sys.exit(0 if result.passed else 1)

    else:
        print(f"Unknown command: {cmd}")
        print(__doc__)
        sys.exit(1)


if __name__ == "__main__":
    main()
