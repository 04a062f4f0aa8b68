"""In-process dashboard operations.

These are the handlers behind the dashboard's HTTP routes. Each mutation
writes through the shared file layer and then calls the broadcaster directly,
without waiting for the watcher to notice its own write. Every method returns
a plain dict: ``{"success": True, ...}`` or ``{"error": "..."}``.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

import aiofiles.os

from ..approval_storage import ApprovalComment, ApprovalStatus, ApprovalStorage
from ..archive import SpecArchiveService
from ..events import ACTION_UPDATED, SpecChangeEvent
from ..exceptions import ApprovalStateError, SpecWorkflowError
from ..fileio import read_text, write_text_atomic
from ..paths import SPEC_DOCUMENTS, STEERING_DOCUMENTS, PathUtils
from ..task_parser import TaskStatus, get_task_by_id, parse_tasks_from_markdown, update_task_status
from .broadcaster import EventBroadcaster
from .parser import SpecParser

logger = logging.getLogger(__name__)


class DashboardApi:
    """Read and mutation handlers used by the dashboard front end."""

    def __init__(
        self,
        project_path: Union[str, Path],
        broadcaster: EventBroadcaster,
        parser: Optional[SpecParser] = None,
        approval_storage: Optional[ApprovalStorage] = None,
        archive_service: Optional[SpecArchiveService] = None,
    ) -> None:
        self.project_path = Path(project_path).resolve()
        self.broadcaster = broadcaster
        self.parser = parser or broadcaster.parser
        self.approval_storage = approval_storage or broadcaster.approval_storage
        self.archive_service = archive_service or SpecArchiveService(self.project_path)

    async def list_specs(self, archived: bool = False) -> dict:
        """List snapshots of all active (or archived) specs."""
        try:
            if archived:
                specs = await self.parser.get_all_archived_specs()
            else:
                specs = await self.parser.get_all_specs()
        except Exception as error:
            return {'error': f"Failed to list specs: {error}"}
        return {'specs': [spec.model_dump(mode='json') for spec in specs]}

    async def get_spec(self, spec_name: str, archived: bool = False) -> dict:
        try:
            if archived:
                spec = await self.parser.get_archived_spec(spec_name)
            else:
                spec = await self.parser.get_spec(spec_name)
        except Exception as error:
            return {'error': f"Failed to read spec: {error}"}
        if spec is None:
            return {'error': 'Spec not found'}
        return spec.model_dump(mode='json')

    async def get_spec_document(self, spec_name: str, document: str) -> dict:
        """Raw markdown of one document of an active spec."""
        if document not in SPEC_DOCUMENTS:
            return {'error': 'Invalid document type'}
        try:
            content = await read_text(PathUtils.get_spec_path(self.project_path, spec_name) / f"{document}.md")
        except (OSError, UnicodeDecodeError) as error:
            return {'error': f"Failed to read document: {error}"}
        if content is None:
            return {'error': 'Document not found'}
        return {'content': content}

    async def get_all_spec_documents(self, spec_name: str, archived: bool = False) -> dict:
        """Every spec document with its modification time; missing documents map to None."""
        if archived:
            spec_dir = PathUtils.get_archive_spec_path(self.project_path, spec_name)
        else:
            spec_dir = PathUtils.get_spec_path(self.project_path, spec_name)

        documents = {}
        for document in SPEC_DOCUMENTS:
            documents[document] = await self._read_document(spec_dir / f"{document}.md")
        return documents

    async def get_steering_document(self, name: str) -> dict:
        """Raw markdown of a steering document; a missing one reads as empty so it can be created."""
        if name not in STEERING_DOCUMENTS:
            return {'error': 'Invalid steering document name'}
        document = await self._read_document(PathUtils.get_steering_path(self.project_path) / f"{name}.md")
        if document is None:
            return {'content': '', 'last_modified': datetime.now(timezone.utc).isoformat()}
        return document

    async def get_task_progress(self, spec_name: str) -> dict:
        try:
            spec = await self.parser.get_spec(spec_name)
            content = await read_text(self._tasks_path(spec_name)) if spec else None
            if spec is None or content is None:
                return {'error': 'Spec or tasks not found'}

            result = parse_tasks_from_markdown(content)
            total = result.summary.total
            return {
                'total': total,
                'completed': result.summary.completed,
                'in_progress': result.in_progress_task,
                'progress': (result.summary.completed / total * 100) if total else 0,
                'task_list': [task.to_dict() for task in result.tasks],
                'last_modified': (spec.phases.tasks.last_modified or spec.last_modified).isoformat(),
            }
        except Exception as error:
            return {'error': f"Failed to get task progress: {error}"}

    async def update_task_status(self, spec_name: str, task_id: str, status: str) -> dict:
        """Rewrite one task's status marker in tasks.md and broadcast the result."""
        if status not in {s.value for s in TaskStatus}:
            return {'error': 'Invalid status. Must be pending, in-progress, or completed'}

        tasks_path = self._tasks_path(spec_name)
        try:
            content = await read_text(tasks_path)
            if content is None:
                return {'error': 'Tasks file not found'}

            task = get_task_by_id(parse_tasks_from_markdown(content).tasks, task_id)
            if task is None:
                return {'error': f"Task {task_id} not found"}

            updated_content = update_task_status(content, task_id, status)
            if updated_content != content:
                await write_text_atomic(tasks_path, updated_content)
        except Exception as error:
            return {'error': f"Failed to update task status: {error}"}

        await self.broadcaster.broadcast_task_update(spec_name)

        task_data = task.to_dict()
        task_data['status'] = status
        return {
            'success': True,
            'message': f"Task {task_id} status updated to {status}",
            'task': task_data,
        }

    async def approve(self, approval_id: str, response: str, annotations: Optional[str] = None,
                      comments: Optional[List[Union[ApprovalComment, dict]]] = None) -> dict:
        return await self._respond(approval_id, ApprovalStatus.APPROVED, response, annotations, comments)

    async def reject(self, approval_id: str, response: str, annotations: Optional[str] = None,
                     comments: Optional[List[Union[ApprovalComment, dict]]] = None) -> dict:
        return await self._respond(approval_id, ApprovalStatus.REJECTED, response, annotations, comments)

    async def request_revision(self, approval_id: str, response: str, annotations: Optional[str] = None,
                               comments: Optional[List[Union[ApprovalComment, dict]]] = None) -> dict:
        return await self._respond(approval_id, ApprovalStatus.NEEDS_REVISION, response, annotations, comments)

    async def get_approval_content(self, approval_id: str) -> dict:
        try:
            approval = await self.approval_storage.get(approval_id)
            if approval is None or not approval.file_path:
                return {'error': 'Approval not found or no file path'}

            resolved_path = await self.approval_storage.resolve_target_path(approval)
            content = await read_text(resolved_path)
            if content is None:
                return {'error': f"Failed to read file at any known location for {approval.file_path}"}
            return {'content': content, 'file_path': str(resolved_path)}
        except Exception as error:
            return {'error': f"Failed to read file: {error}"}

    async def archive_spec(self, spec_name: str) -> dict:
        try:
            await self.archive_service.archive_spec(spec_name)
        except Exception as error:
            return {'error': str(error)}
        await self.broadcaster.broadcast_spec_update()
        return {'success': True, 'message': f"Spec '{spec_name}' archived successfully"}

    async def unarchive_spec(self, spec_name: str) -> dict:
        try:
            await self.archive_service.unarchive_spec(spec_name)
        except Exception as error:
            return {'error': str(error)}
        await self.broadcaster.broadcast_spec_update()
        return {'success': True, 'message': f"Spec '{spec_name}' unarchived successfully"}

    async def save_spec_document(self, spec_name: str, document: str, content: str, archived: bool = False) -> dict:
        if document not in SPEC_DOCUMENTS:
            return {'error': 'Invalid document type'}
        if not isinstance(content, str):
            return {'error': 'Content must be a string'}

        if archived:
            spec_dir = PathUtils.get_archive_spec_path(self.project_path, spec_name)
        else:
            spec_dir = PathUtils.get_spec_path(self.project_path, spec_name)

        try:
            await write_text_atomic(spec_dir / f"{document}.md", content)
        except Exception as error:
            return {'error': f"Failed to save document: {error}"}

        if not archived:
            await self.broadcaster.broadcast_spec_change(
                SpecChangeEvent(action=ACTION_UPDATED, spec_name=spec_name, document=document)
            )
            if document == 'tasks':
                await self.broadcaster.broadcast_task_update(spec_name)
        return {'success': True, 'message': 'Document saved successfully'}

    async def save_steering_document(self, name: str, content: str) -> dict:
        if name not in STEERING_DOCUMENTS:
            return {'error': 'Invalid steering document name'}
        if not isinstance(content, str):
            return {'error': 'Content must be a string'}

        try:
            await write_text_atomic(PathUtils.get_steering_path(self.project_path) / f"{name}.md", content)
        except Exception as error:
            return {'error': f"Failed to save steering document: {error}"}

        await self.broadcaster.broadcast_steering_update()
        return {'success': True, 'message': 'Steering document saved successfully'}

    async def _respond(self, approval_id: str, status: ApprovalStatus, response: str,
                       annotations: Optional[str], comments: Optional[list]) -> dict:
        try:
            approval = await self.approval_storage.update_status(
                approval_id, status, response, annotations, comments
            )
        except ApprovalStateError as error:
            return {'error': str(error)}
        except (SpecWorkflowError, OSError, ValueError) as error:
            logger.warning(f"Failed to update approval {approval_id}: {error}")
            return {'error': str(error)}

        if approval is None:
            return {'error': f"Approval {approval_id} not found"}

        await self.broadcaster.broadcast_approval_update()
        return {'success': True}

    async def _read_document(self, path: Path) -> Optional[dict]:
        try:
            content = await read_text(path)
            if content is None:
                return None
            stats = await aiofiles.os.stat(path)
        except (OSError, UnicodeDecodeError) as error:
            logger.warning(f"Error reading {path}: {error}")
            return None
        return {
            'content': content,
            'last_modified': datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc).isoformat(),
        }

    def _tasks_path(self, spec_name: str) -> Path:
        return PathUtils.get_spec_path(self.project_path, spec_name) / 'tasks.md'
