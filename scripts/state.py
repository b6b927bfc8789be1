#!/usr/bin/env python3
"""
State Manager for DevFlow

Single source of truth for feature state in .devflow/state.json. All state
changes go through here and are validated against schemas/state.schema.json
before they are written.

Usage:
    state.py init                          Initialize .devflow/ in the current project
    state.py add-feature <name> [--key KEY] [--concerns c1 c2] [--activate]
                                           Register a new feature (phase SPEC)
    state.py activate <feature>            Make a feature the active one
    state.py pause [feature]               Pause the active (or given) feature
    state.py set-phase <phase> [feature] [--force]
                                           Move a feature to another phase
    state.py show [feature]                Print a feature record as JSON
    state.py validate                      Validate state.json against the schema
    state.py query <query_type> [args]     Answer a single state query
"""

import argparse
import json
import re
import sys
from datetime import date, datetime, timezone
from pathlib import Path

from jsonschema import Draft7Validator, SchemaError

from tasks import count_tasks
from transition import TransitionResult, evaluate_feature_transition, parse_phase

# Paths: tool files relative to this script, project files relative to cwd
SCRIPT_DIR = Path(__file__).resolve().parent
SCHEMAS_DIR = SCRIPT_DIR.parent / "schemas"
PROJECT_ROOT = Path.cwd()
DEVFLOW_DIR = PROJECT_ROOT / ".devflow"
STATE_FILE = DEVFLOW_DIR / "state.json"
FEATURES_DIR = DEVFLOW_DIR / "features"

STATE_VERSION = "1.0"
FEATURE_STATUSES = ["pending", "active", "paused", "completed"]
ARTIFACTS = ["spec.md", "plan.md", "tasks.md", "implementation.md"]


class StateError(Exception):
    """Base class for state store failures."""


class StateNotInitializedError(StateError):
    def __init__(self):
        super().__init__("DevFlow not initialized in this project. Run 'state.py init' first.")


class FeatureNotFoundError(StateError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No feature found matching: {name}")


class AmbiguousFeatureError(StateError):
    def __init__(self, name: str, candidates: list[str]):
        self.name = name
        self.candidates = candidates
        super().__init__(
            f"Feature name '{name}' is ambiguous; matches: {', '.join(candidates)}"
        )


class StateValidationError(StateError):
    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"State validation failed: {'; '.join(errors)}")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def feature_dir(feature_key: str) -> Path:
    """Folder holding a feature's markdown artifacts."""
    return FEATURES_DIR / feature_key


# =============================================================================
# LOAD / SAVE / VALIDATE
# =============================================================================


def load_state() -> dict | None:
    """Load state from file or return None if doesn't exist."""
    if not STATE_FILE.exists():
        return None
    return json.loads(STATE_FILE.read_text())


def require_state() -> dict:
    """Load state, raising StateNotInitializedError when there is none."""
    state = load_state()
    if state is None:
        raise StateNotInitializedError()
    return state


def load_schema(schema_name: str = "state") -> dict:
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_path.exists():
        raise StateError(f"Schema not found: {schema_path}")
    return json.loads(schema_path.read_text())


def validate_state(state: dict) -> tuple[bool, list[str]]:
    """Validate state against the JSON schema. Returns (valid, errors)."""
    schema = load_schema()
    try:
        validator = Draft7Validator(schema)
        errors = sorted(validator.iter_errors(state), key=lambda e: list(e.absolute_path))
    except SchemaError as e:
        return False, [f"Invalid schema: {e.message}"]

    messages = []
    for error in errors:
        path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "root"
        messages.append(f"Validation error at '{path}': {error.message}")

    if state.get("active_feature") and state["active_feature"] not in state.get("features", {}):
        messages.append(f"active_feature '{state['active_feature']}' is not a known feature")

    return not messages, messages


def save_state(state: dict) -> None:
    """Validate and save state to file."""
    state["updated_at"] = now_iso()
    valid, errors = validate_state(state)
    if not valid:
        raise StateValidationError(errors)
    STATE_FILE.parent.mkdir(parents=True, exist_ok=True)
    STATE_FILE.write_text(json.dumps(state, indent=2) + "\n")


def init_state() -> dict:
    """Initialize a new, empty DevFlow state."""
    return {
        "version": STATE_VERSION,
        "initialized_at": now_iso(),
        "updated_at": now_iso(),
        "active_feature": None,
        "features": {},
    }


# =============================================================================
# FEATURES
# =============================================================================


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "feature"


def make_feature_key(display_name: str, today: date | None = None) -> str:
    """Date-prefixed slug, e.g. 20251025-user-auth."""
    today = today or datetime.now(timezone.utc).date()
    return f"{today:%Y%m%d}-{slugify(display_name)}"


def resolve_feature_key(state: dict, feature_name: str | None) -> str:
    """Resolve a feature name to a single feature key.

    No name means the active feature. Otherwise an exact key wins, then a
    unique substring match.
    """
    features = state.get("features", {})

    if not feature_name:
        active = state.get("active_feature")
        if not active:
            raise StateError("No active feature and no feature name provided")
        return active

    if feature_name in features:
        return feature_name

    matches = [k for k in features if feature_name in k]
    if not matches:
        raise FeatureNotFoundError(feature_name)
    if len(matches) > 1:
        raise AmbiguousFeatureError(feature_name, matches)
    return matches[0]


def read_feature(state: dict, feature_key: str) -> dict:
    feature = state.get("features", {}).get(feature_key)
    if feature is None:
        raise FeatureNotFoundError(feature_key)
    return feature


def add_feature(
    state: dict,
    display_name: str,
    key: str | None = None,
    concerns: list[str] | None = None,
) -> tuple[bool, str]:
    """Register a new feature in phase SPEC with status pending."""
    if not display_name.strip():
        return False, "Feature name is required"

    key = key or make_feature_key(display_name)
    if key in state["features"]:
        return False, f"Feature already exists: {key}"

    state["features"][key] = {
        "display_name": display_name.strip(),
        "phase": "SPEC",
        "status": "pending",
        "current_task": None,
        "concerns": list(concerns or []),
        "created_at": now_iso(),
    }
    return True, key


def activate_feature(state: dict, feature_key: str) -> tuple[bool, str]:
    """Make a feature active, pausing whichever feature was active before."""
    feature = read_feature(state, feature_key)
    if feature["status"] == "completed":
        return False, f"Feature {feature_key} is completed; reopen it with set-phase first"

    paused = []
    for key, other in state["features"].items():
        if key != feature_key and other["status"] == "active":
            other["status"] = "paused"
            paused.append(key)

    feature["status"] = "active"
    state["active_feature"] = feature_key

    msg = f"Activated {feature_key}"
    if paused:
        msg += f", paused: {', '.join(paused)}"
    return True, msg


def pause_feature(state: dict, feature_key: str) -> tuple[bool, str]:
    feature = read_feature(state, feature_key)
    if feature["status"] != "active":
        return False, f"Feature {feature_key} is {feature['status']}, not active"

    feature["status"] = "paused"
    if state.get("active_feature") == feature_key:
        state["active_feature"] = None
    return True, f"Paused {feature_key}"


def set_current_task(state: dict, feature_key: str, task_number: str) -> tuple[bool, str]:
    """Record the last-touched task for a feature."""
    number = str(task_number).strip()
    if not number:
        return False, "Task number is required"
    read_feature(state, feature_key)["current_task"] = number
    return True, f"current_task set to {number}"


def set_phase(
    state: dict, feature_key: str, to_phase: str, force: bool = False
) -> tuple[bool, str, TransitionResult]:
    """Validate and apply a phase change from the feature's recorded phase.

    A blocked transition is only applied with force=True. Entering DONE
    completes the feature; leaving DONE reopens it.
    """
    feature = read_feature(state, feature_key)
    src = parse_phase(feature["phase"])
    dst = parse_phase(to_phase)

    result = evaluate_feature_transition(state, feature_key, src, dst)
    if not result.allowed and not force:
        return False, f"Transition {src.value} → {dst.value} blocked", result

    feature["phase"] = dst.value

    if dst.value == "DONE":
        feature["status"] = "completed"
        if state.get("active_feature") == feature_key:
            state["active_feature"] = None
    elif src.value == "DONE":
        if state.get("active_feature") in (None, feature_key):
            feature["status"] = "active"
            state["active_feature"] = feature_key
        else:
            feature["status"] = "paused"

    msg = f"Moved {feature_key} from {src.value} to {dst.value}"
    if not result.allowed:
        msg += " (forced)"
    return True, msg, result


# =============================================================================
# QUERIES
# =============================================================================


def _active(state: dict) -> dict | None:
    key = state.get("active_feature")
    if not key:
        return None
    return state["features"].get(key)


def _count_status(state: dict, status: str) -> str:
    return str(sum(1 for f in state["features"].values() if f["status"] == status))


def _resolve_or_none(state: dict, feature_name: str | None) -> str | None:
    try:
        return resolve_feature_key(state, feature_name)
    except StateError:
        return None


def _has_artifact(state: dict, feature_name: str | None, artifact: str) -> str:
    key = _resolve_or_none(state, feature_name)
    if not key:
        return "no"
    return "yes" if (feature_dir(key) / artifact).exists() else "no"


def _last_initialized(state: dict) -> str:
    value = state.get("initialized_at")
    if not value:
        return "Never"
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return "Unknown"
    return f"{ts:%b} {ts.day}, {ts.year}"


def _current_phase(state: dict, feature_name: str | None) -> str:
    key = _resolve_or_none(state, feature_name)
    if not key:
        return "unknown"
    return state["features"][key]["phase"]


def _active_progress(state: dict) -> str:
    key = state.get("active_feature")
    if not key:
        return "N/A"
    tasks_path = feature_dir(key) / "tasks.md"
    if tasks_path.exists():
        counts = count_tasks(tasks_path.read_text())
        return f"{counts.completed}/{counts.total}"
    return str(state["features"][key].get("current_task") or "0")


QUERIES = {
    "active_feature": lambda s: s.get("active_feature") or "none",
    "active_feature_name": lambda s: (_active(s) or {}).get("display_name", "N/A"),
    "active_phase": lambda s: (_active(s) or {}).get("phase", "N/A"),
    "active_status": lambda s: (_active(s) or {}).get("status", "N/A"),
    "active_progress": _active_progress,
    "feature_count": lambda s: str(len(s["features"])),
    "pending_count": lambda s: _count_status(s, "pending"),
    "active_count": lambda s: _count_status(s, "active"),
    "paused_count": lambda s: _count_status(s, "paused"),
    "completed_count": lambda s: _count_status(s, "completed"),
    "all_features": lambda s: "\n".join(s["features"]) or "None",
    "latest_feature": lambda s: max(s["features"], default="None"),
    "last_initialized": _last_initialized,
}

# Queries that take an optional feature name
FEATURE_QUERIES = {
    "feature_exists": lambda s, name: "yes" if _resolve_or_none(s, name) else "no",
    "has_spec": lambda s, name: _has_artifact(s, name, "spec.md"),
    "has_plan": lambda s, name: _has_artifact(s, name, "plan.md"),
    "has_tasks": lambda s, name: _has_artifact(s, name, "tasks.md"),
    "current_phase": lambda s, name: _current_phase(s, name),
}


def run_query(state: dict, query_type: str, *args: str) -> str:
    """Answer one query. Raises KeyError for an unknown query type."""
    if query_type in QUERIES:
        return QUERIES[query_type](state)
    if query_type in FEATURE_QUERIES:
        return FEATURE_QUERIES[query_type](state, args[0] if args else None)
    raise KeyError(query_type)


def available_queries() -> list[str]:
    return [*QUERIES, *FEATURE_QUERIES]


# =============================================================================
# CLI
# =============================================================================


def cmd_init(args: argparse.Namespace) -> int:
    if STATE_FILE.exists():
        print(f"State already exists: {STATE_FILE}")
        return 1
    FEATURES_DIR.mkdir(parents=True, exist_ok=True)
    save_state(init_state())
    print(f"Initialized DevFlow in {DEVFLOW_DIR}")
    return 0


def cmd_add_feature(args: argparse.Namespace) -> int:
    state = require_state()
    success, result = add_feature(state, " ".join(args.name), key=args.key, concerns=args.concerns)
    if not success:
        print(result)
        return 1

    msg = f"Added feature {result}"
    if args.activate:
        _, msg = activate_feature(state, result)
    # The feature folder is created only after the new record passed validation
    save_state(state)
    feature_dir(result).mkdir(parents=True, exist_ok=True)
    print(msg)
    return 0


def cmd_activate(args: argparse.Namespace) -> int:
    state = require_state()
    success, msg = activate_feature(state, resolve_feature_key(state, args.feature))
    if success:
        save_state(state)
    print(msg)
    return 0 if success else 1


def cmd_pause(args: argparse.Namespace) -> int:
    state = require_state()
    success, msg = pause_feature(state, resolve_feature_key(state, args.feature))
    if success:
        save_state(state)
    print(msg)
    return 0 if success else 1


def cmd_set_phase(args: argparse.Namespace) -> int:
    state = require_state()
    key = resolve_feature_key(state, args.feature)
    success, msg, result = set_phase(state, key, args.phase, force=args.force)
    for warning in result.warnings:
        print(f"⚠  Warning: {warning}")
    for reason in result.blocking_reasons:
        print(f"✗ {reason}")
    if success:
        save_state(state)
    print(msg)
    return 0 if success else 1


def cmd_show(args: argparse.Namespace) -> int:
    state = require_state()
    key = resolve_feature_key(state, args.feature)
    print(json.dumps({"key": key, **read_feature(state, key)}, indent=2))
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    valid, errors = validate_state(require_state())
    if valid:
        print("State schema valid")
    for error in errors:
        print(f"  {error}")
    return 0 if valid else 1


def cmd_query(args: argparse.Namespace) -> int:
    state = require_state()
    if not args.query_type:
        print("Usage: state.py query <query_type> [args]", file=sys.stderr)
        print(f"Available queries: {', '.join(available_queries())}", file=sys.stderr)
        return 1
    try:
        print(run_query(state, args.query_type, *args.query_args))
    except KeyError:
        print(f"Unknown query type: {args.query_type}", file=sys.stderr)
        print(f"Available queries: {', '.join(available_queries())}", file=sys.stderr)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DevFlow feature state manager")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Initialize .devflow/ in the current project")
    init_parser.set_defaults(func=cmd_init)

    add_parser = subparsers.add_parser("add-feature", help="Register a new feature (phase SPEC)")
    add_parser.add_argument("name", nargs="+", help="Display name of the feature")
    add_parser.add_argument("--key", help="Feature key (default: date-prefixed slug of the name)")
    add_parser.add_argument("--concerns", nargs="*", default=[], help="Architecture concerns to tag")
    add_parser.add_argument("--activate", action="store_true", help="Make the new feature active")
    add_parser.set_defaults(func=cmd_add_feature)

    activate_parser = subparsers.add_parser("activate", help="Make a feature the active one")
    activate_parser.add_argument("feature", help="Feature key or unique substring")
    activate_parser.set_defaults(func=cmd_activate)

    pause_parser = subparsers.add_parser("pause", help="Pause the active (or given) feature")
    pause_parser.add_argument("feature", nargs="?", help="Feature key or unique substring")
    pause_parser.set_defaults(func=cmd_pause)

    phase_parser = subparsers.add_parser("set-phase", help="Move a feature to another phase")
    phase_parser.add_argument("phase", help="Target phase")
    phase_parser.add_argument("feature", nargs="?", help="Feature key (default: active feature)")
    phase_parser.add_argument("--force", action="store_true", help="Apply even when blocked")
    phase_parser.set_defaults(func=cmd_set_phase)

    show_parser = subparsers.add_parser("show", help="Print a feature record as JSON")
    show_parser.add_argument("feature", nargs="?", help="Feature key (default: active feature)")
    show_parser.set_defaults(func=cmd_show)

    validate_parser = subparsers.add_parser("validate", help="Validate state.json against the schema")
    validate_parser.set_defaults(func=cmd_validate)

    query_parser = subparsers.add_parser("query", help="Answer a single state query")
    query_parser.add_argument("query_type", nargs="?", help="Query name")
    query_parser.add_argument("query_args", nargs="*", help="Query arguments")
    query_parser.set_defaults(func=cmd_query)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except (StateError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
