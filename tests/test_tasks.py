"""Tests for tasks.py - checklist parsing and dependency resolution."""

import json
import sys
from pathlib import Path

import pytest

# Add scripts to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from tasks import (
    REASON_NOT_COMPLETE,
    REASON_NOT_FOUND,
    MalformedDependencyError,
    MissingDependency,
    Task,
    TaskAlreadyCompleteError,
    TaskCounts,
    TaskNotFoundError,
    blocked_tasks,
    check_dependencies,
    count_tasks,
    detect_cycles,
    find_next_task,
    mark_complete,
    parse_task_line,
    parse_tasks,
)

SAMPLE_TASKS = """# Tasks: User Auth

## Phase 1

- [x] 1. Set up schema (small)
- [ ] 2. Build API (large) [depends: 1]
  - [ ] 2.1. Add pagination [depends: 2]
- [ ] 3. Write docs

Some prose that mentions - [ ] a fake checkbox.
"""


@pytest.fixture
def devflow_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Temporary .devflow/ with one active feature."""
    import state

    devflow_dir = tmp_path / ".devflow"
    features_dir = devflow_dir / "features"
    features_dir.mkdir(parents=True)

    monkeypatch.setattr(state, "PROJECT_ROOT", tmp_path)
    monkeypatch.setattr(state, "DEVFLOW_DIR", devflow_dir)
    monkeypatch.setattr(state, "STATE_FILE", devflow_dir / "state.json")
    monkeypatch.setattr(state, "FEATURES_DIR", features_dir)

    s = state.init_state()
    state.add_feature(s, "User Auth", key="20251025-user-auth")
    state.activate_feature(s, "20251025-user-auth")
    state.save_state(s)
    (features_dir / "20251025-user-auth").mkdir()

    return tmp_path


def _tasks_file(root: Path) -> Path:
    return root / ".devflow" / "features" / "20251025-user-auth" / "tasks.md"


class TestParseTaskLine:
    """Tests for parse_task_line function."""

    def test_plain_task(self) -> None:
        task = parse_task_line("- [ ] 1. Set up schema")
        assert task is not None
        assert task.number == "1"
        assert task.description == "Set up schema"
        assert task.complexity == "medium"
        assert task.is_complete is False
        assert task.dependencies == ()

    def test_completed_task_with_complexity(self) -> None:
        task = parse_task_line("- [x] 4. Wire login (small)")
        assert task is not None
        assert task.is_complete is True
        assert task.complexity == "small"
        assert task.description == "Wire login"

    def test_dependencies_with_whitespace(self) -> None:
        task = parse_task_line("- [ ] 5. Deploy (large) [depends: 1,  2.1 , 3]")
        assert task is not None
        assert task.dependencies == ("1", "2.1", "3")

    def test_duplicate_dependencies_collapse(self) -> None:
        task = parse_task_line("- [ ] 5. Deploy [depends: 1, 1]")
        assert task is not None
        assert task.dependencies == ("1",)

    def test_nested_task_keeps_indent(self) -> None:
        task = parse_task_line("    - [ ] 2.1.3. Deep subtask")
        assert task is not None
        assert task.number == "2.1.3"
        assert task.indent == 4

    def test_non_task_lines(self) -> None:
        assert parse_task_line("# Heading") is None
        assert parse_task_line("") is None
        assert parse_task_line("- [ ] no number here") is None
        assert parse_task_line("* [ ] 1. wrong bullet") is None
        assert parse_task_line("- [X] 1. uppercase mark") is None

    def test_malformed_dependency_raises(self) -> None:
        with pytest.raises(MalformedDependencyError) as exc_info:
            parse_task_line("- [ ] 2. Build [depends: one]", 7)
        assert exc_info.value.line_index == 7
        assert "line 8" in str(exc_info.value)

    def test_empty_dependency_clause_raises(self) -> None:
        with pytest.raises(MalformedDependencyError):
            parse_task_line("- [ ] 2. Build [depends: ]")


class TestParseTasks:
    """Tests for parse_tasks function."""

    def test_sample_document(self) -> None:
        tasks = parse_tasks(SAMPLE_TASKS)
        assert [t.number for t in tasks] == ["1", "2", "2.1", "3"]
        assert tasks[1].complexity == "large"
        assert tasks[1].dependencies == ("1",)
        assert tasks[2].indent == 2

    def test_empty_text(self) -> None:
        assert parse_tasks("") == []

    def test_crlf_line_endings(self) -> None:
        tasks = parse_tasks("- [ ] 1. First\r\n- [x] 2. Second\r\n")
        assert [t.number for t in tasks] == ["1", "2"]
        assert tasks[0].description == "First"
        assert tasks[1].is_complete is True

    def test_line_index_recorded(self) -> None:
        tasks = parse_tasks("# Title\n\n- [ ] 1. Only task")
        assert tasks[0].line_index == 2


class TestCountTasks:
    """Tests for count_tasks function."""

    def test_counts_sample(self) -> None:
        counts = count_tasks(SAMPLE_TASKS)
        assert counts == TaskCounts(total=4, completed=1)
        assert counts.remaining == 3
        assert counts.percentage == 25

    @pytest.mark.parametrize(
        "text",
        [
            SAMPLE_TASKS,
            "",
            "- [x] 1. a\n- [x] 2. b",
            "- [ ] 1. a (small) [depends: 2]\n  - [x] 1.1. b\nnot a task\n- [ ] 2. c",
        ],
    )
    def test_agrees_with_parse_tasks(self, text: str) -> None:
        tasks = parse_tasks(text)
        counts = count_tasks(text)
        assert counts.total == len(tasks)
        assert counts.completed == sum(1 for t in tasks if t.is_complete)

    def test_percentage_zero_for_empty(self) -> None:
        assert TaskCounts(0, 0).percentage == 0

    def test_percentage_rounds(self) -> None:
        assert TaskCounts(3, 1).percentage == 33
        assert TaskCounts(3, 2).percentage == 67

    def test_all_complete_requires_tasks(self) -> None:
        assert TaskCounts(0, 0).all_complete is False
        assert TaskCounts(2, 2).all_complete is True
        assert TaskCounts(2, 1).all_complete is False


class TestCheckDependencies:
    """Tests for check_dependencies function."""

    def test_no_dependencies(self) -> None:
        task = Task(number="1", description="a")
        assert check_dependencies(task, [task]).met is True

    def test_missing_reference(self) -> None:
        tasks = parse_tasks("- [ ] 3. Deploy [depends: 99]")
        check = check_dependencies(tasks[0], tasks)
        assert check.met is False
        assert check.missing == (MissingDependency("99", REASON_NOT_FOUND),)

    def test_incomplete_dependency(self) -> None:
        tasks = parse_tasks("- [ ] 1. Schema\n- [ ] 2. API [depends: 1]")
        check = check_dependencies(tasks[1], tasks)
        assert check.met is False
        assert check.missing == (MissingDependency("1", REASON_NOT_COMPLETE, "Schema"),)

    def test_completed_dependency(self) -> None:
        tasks = parse_tasks("- [x] 1. Schema\n- [ ] 2. API [depends: 1]")
        assert check_dependencies(tasks[1], tasks).met is True

    def test_one_hop_only(self) -> None:
        """A met dependency is not inspected for its own dependencies."""
        tasks = parse_tasks(
            "- [ ] 1. Root\n- [x] 2. Middle [depends: 1]\n- [ ] 3. Leaf [depends: 2]"
        )
        assert check_dependencies(tasks[2], tasks).met is True


class TestFindNextTask:
    """Tests for find_next_task function."""

    def test_dependency_free_task_first(self) -> None:
        text = "- [ ] 1. Set up schema\n- [ ] 2. Build API [depends: 1]"
        result = find_next_task(parse_tasks(text))
        assert result is not None
        assert result.task.number == "1"
        assert result.dependencies_met is True

        text, _ = mark_complete(text, "1")
        result = find_next_task(parse_tasks(text))
        assert result is not None
        assert result.task.number == "2"
        assert result.dependencies_met is True

    def test_skips_blocked_task(self) -> None:
        tasks = parse_tasks(
            "- [ ] 1. Blocked [depends: 2]\n- [ ] 2. Free\n- [ ] 3. Also free"
        )
        result = find_next_task(tasks)
        assert result is not None
        assert result.task.number == "2"

    def test_all_blocked_returns_first_incomplete(self) -> None:
        tasks = parse_tasks("- [ ] 1. A [depends: 2]\n- [ ] 2. B [depends: 1]")
        result = find_next_task(tasks)
        assert result is not None
        assert result.task.number == "1"
        assert result.dependencies_met is False
        assert [m.number for m in result.missing] == ["2"]

    def test_all_complete_returns_none(self) -> None:
        assert find_next_task(parse_tasks("- [x] 1. A\n- [x] 2. B")) is None

    def test_empty_list_returns_none(self) -> None:
        assert find_next_task([]) is None

    def test_draining_takes_one_step_per_open_task(self) -> None:
        text = (
            "- [ ] 1. A\n"
            "- [ ] 2. B [depends: 3]\n"
            "- [x] 3. C\n"
            "- [ ] 4. D [depends: 1, 2]\n"
            "  - [ ] 4.1. E [depends: 4]\n"
        )
        open_count = sum(1 for t in parse_tasks(text) if not t.is_complete)

        iterations = 0
        while (result := find_next_task(parse_tasks(text))) is not None:
            assert result.dependencies_met is True
            text, _ = mark_complete(text, result.task.number)
            iterations += 1
            assert iterations <= open_count

        assert iterations == open_count

    def test_to_dict(self) -> None:
        result = find_next_task(parse_tasks("- [ ] 3. Deploy [depends: 99]"))
        assert result is not None
        data = result.to_dict()
        assert data["task"]["number"] == "3"
        assert data["dependencies_met"] is False
        assert data["missing"] == [{"number": "99", "reason": "not found"}]
        json.dumps(data)


class TestBlockedTasks:
    """Tests for blocked_tasks function."""

    def test_lists_only_open_blocked(self) -> None:
        blocked = blocked_tasks(parse_tasks(SAMPLE_TASKS))
        assert [t.number for t, _ in blocked] == ["2.1"]


class TestDetectCycles:
    """Tests for detect_cycles function."""

    def test_no_cycles(self) -> None:
        assert detect_cycles(parse_tasks(SAMPLE_TASKS)) == []

    def test_two_task_cycle(self) -> None:
        cycles = detect_cycles(parse_tasks("- [ ] 1. A [depends: 2]\n- [ ] 2. B [depends: 1]"))
        assert cycles == [["1", "2", "1"]]

    def test_self_dependency(self) -> None:
        cycles = detect_cycles(parse_tasks("- [ ] 1. A [depends: 1]"))
        assert cycles == [["1", "1"]]

    def test_unknown_references_ignored(self) -> None:
        assert detect_cycles(parse_tasks("- [ ] 1. A [depends: 42]")) == []


class TestMarkComplete:
    """Tests for mark_complete function."""

    def test_flips_only_checkbox(self) -> None:
        updated, description = mark_complete(SAMPLE_TASKS, "2")
        assert description == "Build API"
        assert "- [x] 2. Build API (large) [depends: 1]" in updated
        assert len(updated) == len(SAMPLE_TASKS)
        diffs = [i for i, (a, b) in enumerate(zip(SAMPLE_TASKS, updated)) if a != b]
        assert len(diffs) == 1

    def test_does_not_match_prefix_number(self) -> None:
        text = "- [ ] 2.1. Sub\n- [ ] 2. Parent"
        updated, description = mark_complete(text, "2")
        assert description == "Parent"
        assert updated == "- [ ] 2.1. Sub\n- [x] 2. Parent"

    def test_number_is_regex_escaped(self) -> None:
        text = "- [ ] 211. Other\n- [ ] 2.1. Sub"
        updated, _ = mark_complete(text, "2.1")
        assert updated == "- [ ] 211. Other\n- [x] 2.1. Sub"

    def test_preserves_crlf(self) -> None:
        text = "- [ ] 1. First\r\n- [ ] 2. Second\r\n"
        updated, description = mark_complete(text, "1")
        assert updated == "- [x] 1. First\r\n- [ ] 2. Second\r\n"
        assert description == "First"

    def test_second_call_reports_already_complete(self) -> None:
        updated, _ = mark_complete(SAMPLE_TASKS, "3")
        with pytest.raises(TaskAlreadyCompleteError) as exc_info:
            mark_complete(updated, "3")
        assert exc_info.value.number == "3"

    def test_unknown_number(self) -> None:
        with pytest.raises(TaskNotFoundError):
            mark_complete(SAMPLE_TASKS, "42")

    def test_empty_number(self) -> None:
        with pytest.raises(ValueError):
            mark_complete(SAMPLE_TASKS, "  ")

    def test_number_must_be_followed_by_period(self) -> None:
        text = "- [ ] 1 Set up schema\n- [ ] 2. Build API [depends: 1]\n"
        assert count_tasks(text).total == 1
        with pytest.raises(TaskNotFoundError):
            mark_complete(text, "1")

    def test_ignores_malformed_dependency_on_other_line(self) -> None:
        text = "- [ ] 1. A [depends: first]\n- [ ] 2. B (small)\n"
        updated, description = mark_complete(text, "2")
        assert description == "B"
        assert updated == "- [ ] 1. A [depends: first]\n- [x] 2. B (small)\n"

    def test_count_increases_by_one(self) -> None:
        before = count_tasks(SAMPLE_TASKS)
        updated, _ = mark_complete(SAMPLE_TASKS, "2.1")
        after = count_tasks(updated)
        assert after.total == before.total
        assert after.completed == before.completed + 1


class TestCommands:
    """Tests for the tasks.py command layer."""

    def test_next_prints_ready_task(self, devflow_env: Path, capsys: pytest.CaptureFixture) -> None:
        from tasks import cmd_next

        _tasks_file(devflow_env).write_text(SAMPLE_TASKS)
        assert cmd_next(None) == 0

        out = capsys.readouterr().out
        assert "Current progress: 1/4 tasks complete" in out
        assert "Task 2: Build API" in out
        assert "Ready to start" in out

    def test_next_all_complete(self, devflow_env: Path, capsys: pytest.CaptureFixture) -> None:
        from tasks import cmd_next

        _tasks_file(devflow_env).write_text("- [x] 1. Done")
        assert cmd_next("user-auth") == 0
        assert "All tasks complete!" in capsys.readouterr().out

    def test_next_missing_tasks_file(self, devflow_env: Path) -> None:
        from tasks import cmd_next

        with pytest.raises(FileNotFoundError):
            cmd_next(None)

    def test_complete_updates_file_and_state(self, devflow_env: Path, capsys: pytest.CaptureFixture) -> None:
        import state
        from tasks import cmd_complete

        path = _tasks_file(devflow_env)
        path.write_text(SAMPLE_TASKS)

        assert cmd_complete("2", None) == 0
        assert "- [x] 2. Build API" in path.read_text()

        s = state.load_state()
        assert s["features"]["20251025-user-auth"]["current_task"] == "2"
        assert "Completion: 2/4 tasks (50%)" in capsys.readouterr().out

    def test_complete_leaves_tasks_file_when_state_rejected(
        self, devflow_env: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        import state
        from tasks import cmd_complete

        path = _tasks_file(devflow_env)
        path.write_text(SAMPLE_TASKS)

        def reject(_state: dict) -> None:
            raise state.StateValidationError(["disk full"])

        monkeypatch.setattr(state, "save_state", reject)
        with pytest.raises(state.StateValidationError):
            cmd_complete("2", None)
        assert path.read_text() == SAMPLE_TASKS

    def test_complete_last_task_suggests_done(self, devflow_env: Path, capsys: pytest.CaptureFixture) -> None:
        from tasks import cmd_complete

        _tasks_file(devflow_env).write_text("- [x] 1. A\n- [ ] 2. B")
        cmd_complete("2", None)
        assert "set-phase DONE" in capsys.readouterr().out

    def test_main_reports_already_complete(
        self, devflow_env: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
    ) -> None:
        import tasks

        _tasks_file(devflow_env).write_text(SAMPLE_TASKS)
        monkeypatch.setattr(sys, "argv", ["tasks.py", "complete", "1"])

        with pytest.raises(SystemExit) as exc_info:
            tasks.main()
        assert exc_info.value.code == 1
        assert "Task 1 is already complete" in capsys.readouterr().err

    def test_status_lists_blocked(self, devflow_env: Path, capsys: pytest.CaptureFixture) -> None:
        from tasks import cmd_status

        _tasks_file(devflow_env).write_text(SAMPLE_TASKS)
        assert cmd_status(None) == 0

        out = capsys.readouterr().out
        assert "Progress: 1/4 tasks (25% complete)" in out
        assert "Blocked: 1" in out
        assert "Depends on: 2 (not complete)" in out
