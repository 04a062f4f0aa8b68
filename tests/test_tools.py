"""Unit tests for the agent tool handlers."""

import asyncio

import pytest

from spec_workflow.approval_storage import ApprovalStorage
from spec_workflow.paths import PathUtils
from spec_workflow.tools import (
    delete_approval_handler,
    get_approval_status_handler,
    manage_tasks_handler,
    request_approval_handler,
)

TASKS = """- [ ] 1. Foundation
- [x] 1.1 Models
  - File: src/models.py
- [ ] 1.2 Storage
  - _Requirements: 2.1_
  - _Leverage: src/models.py_
"""


class TestManageTasks:
    """Test cases for the manage-tasks handler."""

    def test_list(self, project, write_spec):
        write_spec('login', 'tasks', TASKS)

        response = asyncio.run(manage_tasks_handler(project, 'login'))

        assert response.success is True
        assert response.message == 'Found 3 tasks (1 completed, 0 in-progress, 2 pending)'
        assert [t['id'] for t in response.data['tasks']] == ['1', '1.1', '1.2']

    def test_set_status_writes_file(self, project, write_spec):
        path = write_spec('login', 'tasks', TASKS)

        response = asyncio.run(manage_tasks_handler(
            project, 'login', action='set-status', task_id='1.2', status='in-progress'
        ))

        assert response.success is True
        assert response.data['previous_status'] == 'pending'
        assert response.data['updated_task']['status'] == 'in-progress'
        assert path.read_text(encoding='utf-8') == TASKS.replace('- [ ] 1.2', '- [-] 1.2')

    def test_set_status_unknown_task(self, project, write_spec):
        path = write_spec('login', 'tasks', TASKS)

        response = asyncio.run(manage_tasks_handler(
            project, 'login', action='set-status', task_id='7', status='completed'
        ))

        assert response.success is False
        assert response.message == 'Task 7 not found'
        assert path.read_text(encoding='utf-8') == TASKS

    def test_set_status_invalid_status_is_reported(self, project, write_spec):
        write_spec('login', 'tasks', TASKS)

        response = asyncio.run(manage_tasks_handler(
            project, 'login', action='set-status', task_id='1.2', status='done'
        ))

        assert response.success is False
        assert 'Invalid task status' in response.message

    def test_next_pending(self, project, write_spec):
        write_spec('login', 'tasks', TASKS)

        response = asyncio.run(manage_tasks_handler(project, 'login', action='next-pending'))

        assert response.data['next_task']['id'] == '1.2'

    def test_context_includes_documents(self, project, write_spec):
        write_spec('login', 'tasks', TASKS)
        write_spec('login', 'requirements', '# Login requirements')

        response = asyncio.run(manage_tasks_handler(project, 'login', action='context', task_id='1.2'))

        assert response.data['has_requirements'] is True
        assert response.data['has_design'] is False
        assert '# Login requirements' in response.data['context']
        assert '**Leverage Existing:** src/models.py' in response.data['context']

    @pytest.mark.parametrize('action', ['get', 'context', 'set-status'])
    def test_task_id_required(self, project, write_spec, action):
        write_spec('login', 'tasks', TASKS)

        response = asyncio.run(manage_tasks_handler(project, 'login', action=action))

        assert response.success is False
        assert 'Task ID required' in response.message

    def test_missing_tasks_file(self, project):
        response = asyncio.run(manage_tasks_handler(project, 'ghost'))

        assert response.success is False
        assert "tasks.md not found" in response.message

    def test_missing_project(self, tmp_path):
        response = asyncio.run(manage_tasks_handler(tmp_path / 'nope', 'login'))

        assert response.success is False
        assert 'does not exist' in response.message


class TestApprovalTools:
    """Test cases for the approval handlers."""

    def test_request_then_status(self, project):
        created = asyncio.run(request_approval_handler(
            project, 'Review tasks', 'specs/login/tasks.md', 'login', dashboard_url='http://localhost:5000'
        ))
        approval_id = created.data['approval_id']

        status = asyncio.run(get_approval_status_handler(project, approval_id))

        assert created.success is True
        assert status.data['status'] == 'pending'
        assert status.data['is_completed'] is False
        assert status.project_context['workflow_root'] == str(PathUtils.get_workflow_root(project.resolve()))

    @pytest.mark.parametrize('status', [None, 'rejected', 'needs-revision'])
    def test_delete_refuses_unless_approved(self, project, status):
        storage = ApprovalStorage(project)
        approval_id = asyncio.run(storage.create('Review', 'specs/login/tasks.md', 'spec', 'login'))
        if status:
            asyncio.run(storage.update_status(approval_id, status, 'no'))
        approval_file = PathUtils.get_spec_approval_path(project, 'login') / f"{approval_id}.json"
        before = approval_file.read_bytes()

        response = asyncio.run(delete_approval_handler(project, approval_id))

        assert response.success is False
        assert 'only approved requests can be deleted' in response.message
        assert approval_file.read_bytes() == before

    def test_delete_approved(self, project):
        storage = ApprovalStorage(project)
        approval_id = asyncio.run(storage.create('Review', 'specs/login/tasks.md', 'spec', 'login'))
        asyncio.run(storage.update_status(approval_id, 'approved', 'ship it'))

        response = asyncio.run(delete_approval_handler(project, approval_id))

        assert response.success is True
        assert asyncio.run(storage.get(approval_id)) is None

    def test_missing_approval(self, project):
        assert asyncio.run(get_approval_status_handler(project, 'approval_0_none')).success is False
        assert asyncio.run(delete_approval_handler(project, 'approval_0_none')).success is False
