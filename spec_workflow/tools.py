"""Agent-facing tool handlers.

Each handler validates the project path, calls the task codec or the approval
store, and reports the outcome as a ``ToolResponse``. Handlers never raise:
any error is folded into ``success=False`` with a readable message.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .approval_storage import ApprovalStatus, ApprovalStorage
from .fileio import read_text, write_text_atomic
from .paths import PathUtils, validate_project_path
from .task_parser import (
    ParsedTask,
    TaskStatus,
    find_next_pending_task,
    get_task_by_id,
    parse_tasks_from_markdown,
    update_task_status,
)

logger = logging.getLogger(__name__)

TASK_ACTIONS = ('list', 'get', 'set-status', 'next-pending', 'context')


class ToolResponse(BaseModel):
    """Uniform result of a tool invocation."""
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None
    next_steps: List[str] = Field(default_factory=list)
    project_context: Optional[Dict[str, Any]] = None


def _project_context(project_path: Path, dashboard_url: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    context = {
        'project_path': str(project_path),
        'workflow_root': str(PathUtils.get_workflow_root(project_path)),
        'dashboard_url': dashboard_url,
    }
    context.update(extra)
    return context


def _task_not_found(task_id: str) -> ToolResponse:
    return ToolResponse(
        success=False,
        message=f"Task {task_id} not found",
        next_steps=['Use action "list" to see available task IDs'],
    )


def _task_id_required(action: str) -> ToolResponse:
    return ToolResponse(
        success=False,
        message=f"Task ID required for {action} action",
        next_steps=['Provide a task_id parameter (e.g. "1.1", "2.3")'],
    )


async def manage_tasks_handler(
    project_path: Union[str, Path],
    spec_name: str,
    action: str = 'list',
    task_id: Optional[str] = None,
    status: Optional[str] = None,
    dashboard_url: Optional[str] = None,
) -> ToolResponse:
    """List, inspect and update the tasks of one spec.

    Args:
        project_path: Project root directory.
        spec_name: Name of the spec whose tasks.md is used.
        action: One of list, get, set-status, next-pending or context.
        task_id: Task ID for get, set-status and context.
        status: New status for set-status.
        dashboard_url: Included in the project context when known.

    Returns:
        ToolResponse describing the outcome.
    """
    try:
        project = await validate_project_path(project_path)
        tasks_path = PathUtils.get_spec_path(project, spec_name) / 'tasks.md'
        content = await read_text(tasks_path)
        if content is None:
            return ToolResponse(
                success=False,
                message=f"tasks.md not found for spec '{spec_name}'",
                next_steps=['Create the tasks document first', 'Ensure the spec exists'],
            )

        result = parse_tasks_from_markdown(content)
        tasks = result.tasks
        if not tasks:
            return ToolResponse(
                success=True,
                message='No tasks found in tasks.md',
                data={'tasks': []},
                next_steps=['Add checkbox tasks such as "- [ ] 1. Task description" to tasks.md'],
            )

        if action == 'list':
            summary = result.summary
            return ToolResponse(
                success=True,
                message=(
                    f"Found {summary.total} tasks ({summary.completed} completed, "
                    f"{summary.in_progress} in-progress, {summary.pending} pending)"
                ),
                data=result.to_dict(),
                next_steps=[
                    'Use action "next-pending" to get the next task to work on',
                    'Use action "set-status" to update task progress',
                ],
            )

        if action == 'next-pending':
            return _next_pending_response(tasks)

        if action not in TASK_ACTIONS:
            return ToolResponse(
                success=False,
                message=f"Unknown action: {action}",
                next_steps=[f"Use action: {', '.join(TASK_ACTIONS)}"],
            )

        if not task_id:
            return _task_id_required(action)
        task = get_task_by_id(tasks, task_id)
        if task is None:
            return _task_not_found(task_id)

        if action == 'get':
            return ToolResponse(
                success=True,
                message=f"Task {task_id}: {task.description}",
                data={'task': task.to_dict()},
                next_steps=['Use action "context" to get full implementation context for this task'],
            )

        if action == 'context':
            return await _context_response(project, spec_name, task)

        # set-status
        if not status:
            return ToolResponse(
                success=False,
                message='Status required for set-status action',
                next_steps=['Provide status: "pending", "in-progress", or "completed"'],
            )

        updated_content = update_task_status(content, task_id, status)
        if updated_content == content and task.status.value != status:
            return ToolResponse(
                success=False,
                message=f"Could not find task {task_id} to update status",
                next_steps=['Ensure the task follows the format "- [ ] 1.1 Task description"'],
            )
        if updated_content != content:
            await write_text_atomic(tasks_path, updated_content)

        updated_task = task.to_dict()
        updated_task['status'] = status
        return ToolResponse(
            success=True,
            message=f"Task {task_id} status updated to {status}",
            data={
                'task_id': task_id,
                'previous_status': task.status.value,
                'new_status': status,
                'updated_task': updated_task,
            },
            next_steps=['Task status saved to tasks.md'],
            project_context=_project_context(
                project, dashboard_url, spec_name=spec_name, current_phase='implementation'
            ),
        )
    except Exception as error:
        logger.debug(f"manage-tasks failed for {spec_name}", exc_info=True)
        return ToolResponse(success=False, message=f"Failed to manage tasks: {error}")


def _next_pending_response(tasks: List[ParsedTask]) -> ToolResponse:
    next_task = find_next_pending_task(tasks)
    if next_task is not None:
        return ToolResponse(
            success=True,
            message=f"Next pending task: {next_task.id} - {next_task.description}",
            data={'next_task': next_task.to_dict()},
            next_steps=[f'Use action "set-status" with task_id "{next_task.id}" and status "in-progress" to start work'],
        )

    in_progress = [t for t in tasks if t.status is TaskStatus.IN_PROGRESS and not t.is_header]
    if in_progress:
        return ToolResponse(
            success=True,
            message=f"No pending tasks. {len(in_progress)} task(s) in progress.",
            data={'next_task': None, 'in_progress_tasks': [t.to_dict() for t in in_progress]},
            next_steps=[f"Continue working on in-progress tasks: {', '.join(t.id for t in in_progress)}"],
        )

    return ToolResponse(
        success=True,
        message='All tasks are completed',
        data={'next_task': None},
        next_steps=['Implementation phase is complete'],
    )


async def _context_response(project: Path, spec_name: str, task: ParsedTask) -> ToolResponse:
    spec_dir = PathUtils.get_spec_path(project, spec_name)
    requirements = await read_text(spec_dir / 'requirements.md')
    design = await read_text(spec_dir / 'design.md')

    lines = [
        f"# Implementation Context for Task {task.id}",
        '',
        '## Task Details',
        f"**ID:** {task.id}",
        f"**Status:** {task.status.value}",
        f"**Description:** {task.description}",
    ]
    if task.requirements:
        lines.append(f"**Requirements Reference:** {', '.join(task.requirements)}")
    if task.leverage:
        lines.append(f"**Leverage Existing:** {task.leverage}")
    if task.files:
        lines.append(f"**Files:** {', '.join(task.files)}")
    if task.implementation_details:
        lines.append('**Implementation Notes:**')
        lines.extend(f"- {detail}" for detail in task.implementation_details)
    if requirements is not None:
        lines.extend(['', '## Requirements Context', requirements])
    if design is not None:
        lines.extend(['', '## Design Context', design])

    return ToolResponse(
        success=True,
        message=f"Implementation context loaded for task {task.id}",
        data={
            'task': task.to_dict(),
            'context': '\n'.join(lines),
            'has_requirements': requirements is not None,
            'has_design': design is not None,
        },
        next_steps=['Reference the requirements and design sections for implementation guidance'],
    )


async def request_approval_handler(
    project_path: Union[str, Path],
    title: str,
    file_path: str,
    category_name: str,
    category: str = 'spec',
    type: str = 'document',
    dashboard_url: Optional[str] = None,
) -> ToolResponse:
    """Create a pending approval request for a document."""
    try:
        project = await validate_project_path(project_path)
        approval_id = await ApprovalStorage(project).create(title, file_path, category, category_name, type)
    except Exception as error:
        return ToolResponse(success=False, message=f"Failed to create approval request: {error}")

    return ToolResponse(
        success=True,
        message=f"Approval request created successfully. Please review in dashboard: {dashboard_url or 'not available'}",
        data={
            'approval_id': approval_id,
            'title': title,
            'file_path': file_path,
            'type': type,
            'status': ApprovalStatus.PENDING.value,
        },
        next_steps=[
            f'Use get-approval-status with ID "{approval_id}" to check approval status',
            'Wait for human approval before proceeding',
        ],
        project_context=_project_context(project, dashboard_url),
    )


async def get_approval_status_handler(
    project_path: Union[str, Path],
    approval_id: str,
    dashboard_url: Optional[str] = None,
) -> ToolResponse:
    """Report the current state of an approval request."""
    try:
        project = await validate_project_path(project_path)
        approval = await ApprovalStorage(project).get(approval_id)
    except Exception as error:
        return ToolResponse(success=False, message=f"Failed to check approval status: {error}")

    if approval is None:
        return ToolResponse(success=False, message=f"Approval request not found: {approval_id}")

    next_steps = []
    if approval.status is ApprovalStatus.PENDING:
        next_steps.append('Approval is still pending; poll again to check for updates')
    elif approval.status is ApprovalStatus.APPROVED:
        next_steps.append('Approval has been APPROVED; proceed with the approved content')
    elif approval.status is ApprovalStatus.REJECTED:
        next_steps.append('Approval has been REJECTED; review the reason and make changes')
    else:
        next_steps.append('Approval NEEDS REVISION; revise the document and submit a revision')
        if approval.comments:
            next_steps.append(f"Structured comments ({len(approval.comments)}): use these for targeted improvements")
    if approval.response:
        next_steps.append(f"Response: {approval.response}")
    if approval.annotations:
        next_steps.append(f"Additional feedback: {approval.annotations}")

    return ToolResponse(
        success=True,
        message=f"Approval status: {approval.status.value}",
        data={
            'approval_id': approval_id,
            'title': approval.title,
            'type': approval.type,
            'status': approval.status.value,
            'created_at': approval.created_at.isoformat(),
            'responded_at': approval.responded_at.isoformat() if approval.responded_at else None,
            'response': approval.response,
            'annotations': approval.annotations,
            'is_completed': approval.status in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED),
        },
        next_steps=next_steps,
        project_context=_project_context(project, dashboard_url),
    )


async def delete_approval_handler(
    project_path: Union[str, Path],
    approval_id: str,
    dashboard_url: Optional[str] = None,
) -> ToolResponse:
    """Delete an approval request, but only once it has been approved."""
    try:
        project = await validate_project_path(project_path)
        storage = ApprovalStorage(project)

        approval = await storage.get(approval_id)
        if approval is None:
            return ToolResponse(
                success=False,
                message=f'Approval request "{approval_id}" not found',
                next_steps=['Verify the approval ID is correct'],
            )

        if approval.status is not ApprovalStatus.APPROVED:
            return ToolResponse(
                success=False,
                message=(
                    f'Cannot delete approval "{approval_id}" - status is "{approval.status.value}", '
                    'only approved requests can be deleted'
                ),
                data={'approval_id': approval_id, 'current_status': approval.status.value, 'title': approval.title},
                next_steps=['Wait for the approval to be approved first'],
            )

        deleted = await storage.delete(approval_id)
    except Exception as error:
        return ToolResponse(success=False, message=f"Failed to delete approval: {error}")

    if not deleted:
        return ToolResponse(success=False, message=f'Failed to delete approval request "{approval_id}"')

    return ToolResponse(
        success=True,
        message=f'Approval request "{approval_id}" deleted successfully',
        data={
            'deleted_approval_id': approval_id,
            'title': approval.title,
            'category': approval.category,
            'category_name': approval.category_name,
        },
        next_steps=['Approval cleanup complete'],
        project_context=_project_context(project, dashboard_url),
    )
