"""Tests for validate.py - DevFlow setup and integrity checks."""

import json
import sys
from pathlib import Path

import pytest

# Add scripts to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from validate import (
    CHECKS,
    CheckResult,
    check_architecture_exists,
    check_constitution_exists,
    check_devflow_initialized,
    check_single_active_feature,
    check_state_file_exists,
    check_state_schema_valid,
    check_task_dependencies_acyclic,
    quick_diagnostic,
    recommended_actions,
    run_checks,
    run_validation,
)


@pytest.fixture
def temp_validate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Set up temporary validation environment (nothing initialized yet)."""
    import state

    devflow_dir = tmp_path / ".devflow"

    monkeypatch.setattr(state, "PROJECT_ROOT", tmp_path)
    monkeypatch.setattr(state, "DEVFLOW_DIR", devflow_dir)
    monkeypatch.setattr(state, "STATE_FILE", devflow_dir / "state.json")
    monkeypatch.setattr(state, "FEATURES_DIR", devflow_dir / "features")

    return devflow_dir


@pytest.fixture
def initialized(temp_validate_env: Path) -> Path:
    """A fully set up project with one active feature."""
    import state

    (temp_validate_env / "features" / "20251025-user-auth").mkdir(parents=True)
    (temp_validate_env / "constitution.md").write_text("# Constitution")
    (temp_validate_env / "architecture.md").write_text("# Architecture")

    s = state.init_state()
    state.add_feature(s, "User Auth", key="20251025-user-auth")
    state.activate_feature(s, "20251025-user-auth")
    state.save_state(s)

    return temp_validate_env


def _write_raw_state(devflow_dir: Path, data: dict) -> None:
    (devflow_dir / "state.json").write_text(json.dumps(data))


class TestPresenceChecks:
    """Tests for the file presence checks."""

    def test_nothing_initialized(self, temp_validate_env: Path) -> None:
        assert check_devflow_initialized().passed is False
        assert check_constitution_exists().passed is False
        assert check_architecture_exists().passed is False
        assert check_state_file_exists().passed is False

    def test_all_present(self, initialized: Path) -> None:
        assert check_devflow_initialized().passed is True
        assert check_constitution_exists().passed is True
        assert check_architecture_exists().passed is True
        assert check_state_file_exists().passed is True

    def test_explicit_devflow_dir(self, temp_validate_env: Path, tmp_path: Path) -> None:
        other = tmp_path / "elsewhere" / ".devflow"
        other.mkdir(parents=True)
        (other / "constitution.md").write_text("# C")

        assert check_devflow_initialized(other).passed is True
        assert check_constitution_exists(other).passed is True
        assert check_devflow_initialized().passed is False


class TestCheckStateSchemaValid:
    """Tests for check_state_schema_valid function."""

    def test_valid_state(self, initialized: Path) -> None:
        result = check_state_schema_valid()
        assert result.passed is True
        assert result.message == "State schema valid"

    def test_no_state_file(self, temp_validate_env: Path) -> None:
        result = check_state_schema_valid()
        assert result.passed is False
        assert result.fix is not None

    def test_invalid_json(self, initialized: Path) -> None:
        (initialized / "state.json").write_text("{not json")
        result = check_state_schema_valid()
        assert result.passed is False
        assert result.message == "State validation error"
        assert len(result.details) == 1

    def test_schema_violation_lists_errors(self, initialized: Path) -> None:
        data = json.loads((initialized / "state.json").read_text())
        data["features"]["20251025-user-auth"]["phase"] = "REVIEW"
        _write_raw_state(initialized, data)

        result = check_state_schema_valid()
        assert result.passed is False
        assert result.message == "State schema invalid"
        assert any("phase" in d for d in result.details)


class TestCheckSingleActiveFeature:
    """Tests for check_single_active_feature function."""

    def test_single_active(self, initialized: Path) -> None:
        assert check_single_active_feature().passed is True

    def test_skipped_without_state(self, temp_validate_env: Path) -> None:
        result = check_single_active_feature()
        assert result.passed is True
        assert "skipped" in result.message

    def test_multiple_active(self, initialized: Path) -> None:
        data = json.loads((initialized / "state.json").read_text())
        data["features"]["20251026-payments"] = {
            "display_name": "Payments",
            "phase": "SPEC",
            "status": "active",
        }
        _write_raw_state(initialized, data)

        result = check_single_active_feature()
        assert result.passed is False
        assert result.details == ("- 20251025-user-auth", "- 20251026-payments")


class TestCheckTaskDependenciesAcyclic:
    """Tests for check_task_dependencies_acyclic function."""

    def _tasks(self, devflow_dir: Path) -> Path:
        return devflow_dir / "features" / "20251025-user-auth" / "tasks.md"

    def test_skipped_without_tasks(self, initialized: Path) -> None:
        result = check_task_dependencies_acyclic()
        assert result.passed is True
        assert "skipped" in result.message

    def test_acyclic(self, initialized: Path) -> None:
        self._tasks(initialized).write_text("- [ ] 1. A\n- [ ] 2. B [depends: 1]")
        assert check_task_dependencies_acyclic().passed is True

    def test_cycle_reported(self, initialized: Path) -> None:
        self._tasks(initialized).write_text("- [ ] 1. A [depends: 2]\n- [ ] 2. B [depends: 1]")
        result = check_task_dependencies_acyclic()
        assert result.passed is False
        assert result.details == ("1 -> 2 -> 1",)

    def test_malformed_dependency(self, initialized: Path) -> None:
        self._tasks(initialized).write_text("- [ ] 1. A [depends: first]")
        result = check_task_dependencies_acyclic()
        assert result.passed is False
        assert result.message == "tasks.md could not be parsed"


class TestRunners:
    """Tests for run_checks, recommended_actions and the printed reports."""

    def test_run_checks_order(self, initialized: Path) -> None:
        results = run_checks()
        assert [r.name for r in results] == list(CHECKS)
        assert all(r.passed for r in results)

    def test_run_checks_subset_skips_unknown(self, initialized: Path) -> None:
        results = run_checks(["state_schema_valid", "nope"])
        assert [r.name for r in results] == ["state_schema_valid"]

    def test_recommended_actions_deduplicated(self) -> None:
        results = [
            CheckResult("a", False, "A", fix="Run init"),
            CheckResult("b", False, "B", fix="Run init"),
            CheckResult("c", True, "C", fix="Never shown"),
            CheckResult("d", False, "D", fix="Write docs"),
        ]
        assert recommended_actions(results) == ["Run init", "Write docs"]

    def test_run_validation_passes(self, initialized: Path, capsys: pytest.CaptureFixture) -> None:
        assert run_validation() is True
        out = capsys.readouterr().out
        assert f"✓ Setup validation passed ({len(CHECKS)}/{len(CHECKS)} checks)" in out
        assert "Recommended actions" not in out

    def test_run_validation_fails_with_fixes(
        self, temp_validate_env: Path, capsys: pytest.CaptureFixture
    ) -> None:
        assert run_validation() is False
        out = capsys.readouterr().out
        assert "✗ DevFlow initialized" in out
        assert "Recommended actions:" in out
        assert out.count("1. Run 'state.py init' to initialize DevFlow") == 1

    def test_quick_diagnostic_uninitialized(
        self, temp_validate_env: Path, capsys: pytest.CaptureFixture
    ) -> None:
        assert quick_diagnostic() is False
        assert "DevFlow is not initialized" in capsys.readouterr().out

    def test_quick_diagnostic_initialized(self, initialized: Path, capsys: pytest.CaptureFixture) -> None:
        assert quick_diagnostic() is True
        out = capsys.readouterr().out
        assert "Active feature: 20251025-user-auth" in out
        assert "Total features: 1" in out

    def test_schema_command(
        self, initialized: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
    ) -> None:
        import validate

        monkeypatch.setattr(sys, "argv", ["validate.py", "schema"])
        with pytest.raises(SystemExit) as exc_info:
            validate.main()
        assert exc_info.value.code == 0
        assert "✓ State schema valid" in capsys.readouterr().out
