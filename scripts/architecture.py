#!/usr/bin/env python3
"""
Architecture Review for DevFlow

Points at the parts of .devflow/architecture.md a finished feature may have
changed, and flags an architecture document that looks stale or unfinished.
Suggestions only; the document is never edited.

Usage:
    architecture.py suggest [feature]   Files and concerns to review for a feature
    architecture.py check               Check architecture.md for drift
"""

import argparse
import re
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import state as state_store

FILE_MENTION_PATTERN = re.compile(r"([A-Za-z0-9_/-]+\.(?:cs|js|ts|py|java|go|rb|php))\b")

STALE_AFTER_DAYS = 30
MIN_CONTENT_LENGTH = 1000
PLACEHOLDERS = ["TODO", "[Description]", "[Add "]
MAX_LISTED_FILES = 10

REVIEW_SECTIONS = [
    "System Components (for new services/classes)",
    "Data Models (if database changes)",
    "API Design (if endpoints modified)",
    "Cross-Cutting Concerns (based on tagged concerns)",
]


class ArchitectureNotFoundError(state_store.StateError):
    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"architecture.md not found at {path}. Run 'state.py init' and create it first.")


@dataclass(frozen=True)
class ArchitectureSuggestion:
    """What a feature touched, as far as its implementation log tells."""

    feature_key: str
    display_name: str
    phase: str
    concerns: tuple[str, ...]
    files: tuple[str, ...]
    has_log: bool

    def to_dict(self) -> dict:
        return {
            "feature": self.feature_key,
            "display_name": self.display_name,
            "phase": self.phase,
            "concerns": list(self.concerns),
            "files": list(self.files),
            "has_log": self.has_log,
        }


def architecture_path(devflow_dir: Path | None = None) -> Path:
    return (devflow_dir or state_store.DEVFLOW_DIR) / "architecture.md"


def require_architecture(devflow_dir: Path | None = None) -> Path:
    path = architecture_path(devflow_dir)
    if not path.exists():
        raise ArchitectureNotFoundError(path)
    return path


# =============================================================================
# SUGGESTIONS
# =============================================================================


def files_mentioned(log_text: str) -> list[str]:
    """Source files named in an implementation log, first mention first."""
    seen: dict[str, None] = {}
    for match in FILE_MENTION_PATTERN.finditer(log_text):
        seen.setdefault(match.group(1))
    return list(seen)


def suggest_updates(state: dict, feature_name: str | None = None) -> ArchitectureSuggestion:
    key = state_store.resolve_feature_key(state, feature_name)
    feature = state_store.read_feature(state, key)

    log_path = state_store.feature_dir(key) / "implementation.md"
    has_log = log_path.exists()
    files = files_mentioned(log_path.read_text()) if has_log else []

    return ArchitectureSuggestion(
        feature_key=key,
        display_name=feature["display_name"],
        phase=feature["phase"],
        concerns=tuple(feature.get("concerns") or ()),
        files=tuple(files),
        has_log=has_log,
    )


def print_suggestions(suggestion: ArchitectureSuggestion, arch_path: Path) -> None:
    folder = state_store.feature_dir(suggestion.feature_key)

    print(f"Analyzing changes for feature: {suggestion.feature_key}")
    print(f"Display name: {suggestion.display_name}")
    print(f"Phase: {suggestion.phase}")
    print()

    if not suggestion.has_log:
        print("No implementation log found - feature may not have been executed yet")
    else:
        print(f"{len(suggestion.files)} files mentioned during implementation")
    print()

    if suggestion.files:
        print("Files modified:")
        for path in suggestion.files[:MAX_LISTED_FILES]:
            print(f"  - {path}")
        extra = len(suggestion.files) - MAX_LISTED_FILES
        if extra > 0:
            print(f"  ... and {extra} more")
        print()

    if suggestion.concerns:
        print("Tagged concerns (may need architecture updates):")
        for concern in suggestion.concerns:
            print(f"  - {concern}")
        print()

    print("Suggested architecture.md sections to review:")
    for section in REVIEW_SECTIONS:
        print(f"  - {section}")
    print()

    print("⚠  Manual review required:")
    print("   These are suggestions only; update architecture.md by hand.")
    print()
    print(f"   Architecture file: {arch_path}")
    print(f"   Feature spec: {folder / 'spec.md'}")
    print(f"   Feature plan: {folder / 'plan.md'}")


# =============================================================================
# DRIFT
# =============================================================================


def check_drift(path: Path, now: datetime | None = None) -> list[str]:
    """Heuristic warnings about an out-of-date architecture.md."""
    now = now or datetime.now()
    content = path.read_text()
    warnings = []

    modified = datetime.fromtimestamp(path.stat().st_mtime)
    age_days = (now - modified).days
    if age_days > STALE_AFTER_DAYS:
        warnings.append(f"architecture.md last modified {age_days} days ago")

    if any(marker in content for marker in PLACEHOLDERS):
        warnings.append("architecture.md contains template placeholders")

    if len(content) < MIN_CONTENT_LENGTH:
        warnings.append("architecture.md is very short - may be incomplete")

    return warnings


def print_drift_report(warnings: list[str]) -> None:
    print("Checking architecture.md for potential drift...\n")
    if not warnings:
        print("✓ No obvious drift detected")
        print("  (Basic heuristics only - manual review still recommended)")
        return

    print("Potential issues detected:\n")
    for warning in warnings:
        print(f"⚠  {warning}")
    print("\nRecommendation: Review and update architecture.md")


# =============================================================================
# CLI
# =============================================================================


def cmd_suggest(args: argparse.Namespace) -> int:
    arch_path = require_architecture()
    suggestion = suggest_updates(state_store.require_state(), args.feature)
    print_suggestions(suggestion, arch_path)
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    print_drift_report(check_drift(require_architecture()))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Review architecture.md against feature work")
    subparsers = parser.add_subparsers(dest="command", required=True)

    suggest_parser = subparsers.add_parser("suggest", help="Files and concerns to review for a feature")
    suggest_parser.add_argument("feature", nargs="?", help="Feature key (default: active feature)")
    suggest_parser.set_defaults(func=cmd_suggest)

    check_parser = subparsers.add_parser("check", help="Check architecture.md for drift")
    check_parser.set_defaults(func=cmd_check)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except state_store.StateError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
