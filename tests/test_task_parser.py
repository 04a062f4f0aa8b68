"""Unit tests for the tasks.md parser and status rewriting."""

import pytest

from spec_workflow.exceptions import TaskParsingError
from spec_workflow.task_parser import (
    TaskStatus,
    find_next_pending_task,
    get_task_by_id,
    parse_task_progress,
    parse_tasks_from_markdown,
    update_task_status,
)

SAMPLE_TASKS = """# Tasks

- [ ] 1. Set up project structure
- [-] 1.1 Create models
  - File: src/models.py (new)
  - Purpose: Define the data types
  - Use dataclasses for plain records
  - _Leverage: src/base.py, src/utils.py_
  - _Requirements: 1.1, 2.3, NFR_
- [x] 1.2 Add storage
  - Files: src/store.py, src/io.py (modify)
  - _Requirements: 2.1_
- [ ] 2. Wire everything
- [ ] 2.1 Add the CLI
  - Keep the commands thin
"""


class TestParseTasksFromMarkdown:
    """Test cases for decoding tasks.md."""

    def test_single_task_with_files_and_requirements(self):
        text = "- [ ] 1.1 Do X\n  - Files: a.ts\n  - _Requirements: 1.1_\n"

        result = parse_tasks_from_markdown(text)

        assert len(result.tasks) == 1
        task = result.tasks[0]
        assert task.id == "1.1"
        assert task.description == "Do X"
        assert task.status is TaskStatus.PENDING
        assert task.files == ["a.ts"]
        assert task.requirements == ["1.1"]
        assert task.is_header is False

    def test_adjacent_checkboxes_are_headers(self):
        result = parse_tasks_from_markdown("- [ ] 1. First\n- [ ] 2. Second\n")

        assert [t.is_header for t in result.tasks] == [True, True]
        assert result.summary.headers == 2

    def test_metadata_is_scoped_to_its_checkbox(self):
        result = parse_tasks_from_markdown(SAMPLE_TASKS)
        tasks = {t.id: t for t in result.tasks}

        models = tasks["1.1"]
        assert models.files == ["src/models.py"]
        assert models.purposes == ["Define the data types"]
        assert models.implementation_details == ["Use dataclasses for plain records"]
        assert models.leverage == "src/base.py, src/utils.py"
        assert models.requirements == ["1.1", "2.3"]

        storage = tasks["1.2"]
        assert storage.files == ["src/store.py", "src/io.py"]
        assert storage.requirements == ["2.1"]
        assert storage.purposes == []

        assert tasks["1"].is_header is True
        assert tasks["2"].is_header is True
        assert tasks["2.1"].implementation_details == ["Keep the commands thin"]
        assert tasks["2.1"].is_header is False

    def test_summary_and_first_in_progress(self):
        text = SAMPLE_TASKS.replace("- [ ] 2.1 Add the CLI", "- [-] 2.1 Add the CLI")

        result = parse_tasks_from_markdown(text)

        assert result.summary.total == 5
        assert result.summary.completed == 1
        assert result.summary.in_progress == 2
        assert result.summary.pending == 2
        assert result.in_progress_task == "1.1"

    def test_indent_level_and_line_numbers(self):
        text = "- [ ] 1. Parent\n  - [ ] 1.1 Child\n    - [ ] 1.1.1 Grandchild\n"

        result = parse_tasks_from_markdown(text)

        assert [t.indent_level for t in result.tasks] == [0, 1, 2]
        assert [t.line_number for t in result.tasks] == [0, 1, 2]
        assert result.tasks[2].id == "1.1.1"

    def test_unnumbered_checkbox_is_skipped_but_ends_scope(self):
        text = "- [ ] 1. Numbered\n- [ ] Not numbered\n  - Detail of the unnumbered item\n"

        result = parse_tasks_from_markdown(text)

        assert [t.id for t in result.tasks] == ["1"]
        assert result.tasks[0].is_header is True

    def test_nested_checkbox_bullet_is_not_a_detail(self):
        text = "- [ ] 1. Parent\n  - [x] sub-item without id\n"

        result = parse_tasks_from_markdown(text)

        assert result.tasks[0].implementation_details == []

    def test_id_with_trailing_dot(self):
        result = parse_tasks_from_markdown("- [x] 3. Release\n")

        assert result.tasks[0].id == "3"
        assert result.tasks[0].description == "Release"
        assert result.tasks[0].completed is True

    @pytest.mark.parametrize("text", [
        "",
        "# Tasks\n\nNothing to see here.\n",
        "- [ ]\n- [y] 1. Bad marker\n-[ ] 2. Missing space\n",
        "- [ ] 1.1 Half writ",
    ])
    def test_malformed_documents_never_raise(self, text):
        result = parse_tasks_from_markdown(text)

        assert result.summary.total == len(result.tasks)
        assert all(t.id for t in result.tasks)

    def test_crlf_document(self):
        text = "- [ ] 1. Windows task\r\n  - _Requirements: 4.2_\r\n"

        task = parse_tasks_from_markdown(text).tasks[0]

        assert task.description == "Windows task"
        assert task.requirements == ["4.2"]

    def test_to_dict_is_json_ready(self):
        data = parse_tasks_from_markdown(SAMPLE_TASKS).to_dict()

        assert data["in_progress_task"] == "1.1"
        assert data["summary"]["total"] == 5
        assert data["tasks"][1]["status"] == "in-progress"
        assert data["tasks"][1]["in_progress"] is True


class TestUpdateTaskStatus:
    """Test cases for rewriting a single status marker."""

    def test_completes_pending_task(self):
        assert update_task_status("- [ ] 1.1 Foo", "1.1", "completed") == "- [x] 1.1 Foo"

    def test_only_marker_changes(self):
        updated = update_task_status(SAMPLE_TASKS, "2.1", TaskStatus.IN_PROGRESS)

        assert len(updated) == len(SAMPLE_TASKS)
        diff = [i for i, (a, b) in enumerate(zip(SAMPLE_TASKS, updated)) if a != b]
        assert len(diff) == 1
        assert updated[diff[0]] == '-'

    def test_round_trip_preserves_everything_but_status(self):
        before = parse_tasks_from_markdown(SAMPLE_TASKS).tasks
        after = parse_tasks_from_markdown(update_task_status(SAMPLE_TASKS, "1.2", "pending")).tasks

        for old, new in zip(before, after):
            assert (old.id, old.description, old.requirements, old.leverage, old.files,
                    old.purposes, old.implementation_details, old.is_header, old.indent_level) == \
                   (new.id, new.description, new.requirements, new.leverage, new.files,
                    new.purposes, new.implementation_details, new.is_header, new.indent_level)
        assert get_task_by_id(after, "1.2").status is TaskStatus.PENDING

    @pytest.mark.parametrize("status", ["pending", "in-progress", "completed"])
    @pytest.mark.parametrize("task_id", ["1", "1.1", "1.2", "2.1"])
    def test_idempotent(self, task_id, status):
        once = update_task_status(SAMPLE_TASKS, task_id, status)

        assert update_task_status(once, task_id, status) == once

    def test_unknown_id_returns_input_unchanged(self):
        assert update_task_status(SAMPLE_TASKS, "9.9", "completed") is SAMPLE_TASKS

    def test_id_match_is_exact(self):
        text = "- [ ] 1.10 Ten\n- [ ] 1.1 One\n"

        assert update_task_status(text, "1.1", "completed") == "- [ ] 1.10 Ten\n- [x] 1.1 One\n"

    def test_duplicate_ids_first_match_wins(self):
        text = "- [ ] 1. First\n- [ ] 1. Duplicate\n"

        updated = update_task_status(text, "1", "completed")

        assert updated == "- [x] 1. First\n- [ ] 1. Duplicate\n"
        assert get_task_by_id(parse_tasks_from_markdown(text).tasks, "1").description == "First"

    def test_crlf_line_endings_preserved(self):
        text = "- [ ] 1. A\r\n- [ ] 2. B\r\n"

        assert update_task_status(text, "2", "in-progress") == "- [ ] 1. A\r\n- [-] 2. B\r\n"

    def test_invalid_status_raises(self):
        with pytest.raises(TaskParsingError, match="Invalid task status"):
            update_task_status(SAMPLE_TASKS, "1.1", "done")


class TestTaskQueries:
    """Test cases for next-pending selection and progress figures."""

    def test_next_pending_skips_headers(self):
        tasks = parse_tasks_from_markdown(SAMPLE_TASKS).tasks

        assert find_next_pending_task(tasks).id == "2.1"

    def test_next_pending_none_when_all_done(self):
        tasks = parse_tasks_from_markdown("- [x] 1.1 Done\n  - detail\n").tasks

        assert find_next_pending_task(tasks) is None

    def test_progress(self):
        progress = parse_task_progress(SAMPLE_TASKS)

        assert (progress.total, progress.completed, progress.pending) == (5, 1, 3)
