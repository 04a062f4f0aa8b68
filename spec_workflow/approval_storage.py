"""File-backed approval requests.

Each approval request is one JSON file at
``.spec-workflow/approvals/<categoryName>/<id>.json``. The file is the
entity: there is no index, lookups scan the category directories, and no
lock is taken (concurrent writers race and the last write wins).
"""

import json
import logging
import secrets
import string
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import aiofiles.os
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .exceptions import ApprovalStateError
from .fileio import read_text, write_text_atomic
from .paths import PathUtils

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_REVISION = "needs-revision"


RESPONSE_STATUSES = (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED, ApprovalStatus.NEEDS_REVISION)
REVISABLE_STATUSES = (ApprovalStatus.PENDING, ApprovalStatus.NEEDS_REVISION)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    """Snake-case attributes stored with camelCase JSON keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApprovalComment(_CamelModel):
    """A reviewer comment, either general or attached to a text selection."""
    type: Literal['selection', 'general'] = 'general'
    selected_text: Optional[str] = None
    comment: str
    timestamp: datetime = Field(default_factory=_utcnow)
    line_number: Optional[int] = None
    character_position: Optional[int] = None
    highlight_color: Optional[str] = None


class RevisionEntry(_CamelModel):
    """Content of the target file as it was before a revision replaced it."""
    version: int
    content: str
    timestamp: datetime
    reason: Optional[str] = None


class ApprovalRequest(_CamelModel):
    """One human-in-the-loop review of a spec document or action."""
    id: str
    title: str
    file_path: str
    type: Literal['document', 'action'] = 'document'
    status: ApprovalStatus = ApprovalStatus.PENDING
    created_at: datetime = Field(default_factory=_utcnow)
    responded_at: Optional[datetime] = None
    response: Optional[str] = None
    annotations: Optional[str] = None
    comments: Optional[List[ApprovalComment]] = None
    revision_history: List[RevisionEntry] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None
    category: str = 'spec'
    category_name: str

    @field_validator('created_at', 'responded_at')
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    def to_dict(self) -> dict:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)


class ApprovalStorage:
    """CRUD and status transitions for approval request files.

    Absence is reported as None/False and unreadable files are treated as
    absent; only environment failures and forbidden transitions raise.
    """

    def __init__(self, project_path: Union[str, Path]) -> None:
        """Initialize the storage for a project.

        Args:
            project_path: Path to the project root directory.

        Raises:
            ValueError: If the path is empty or is the filesystem root.
        """
        if not str(project_path).strip():
            raise ValueError('Project path cannot be empty')

        resolved_path = Path(project_path).resolve()
        if resolved_path == Path(resolved_path.anchor):
            raise ValueError(
                f"Invalid project path: {resolved_path}. Cannot use root directory for spec workflow."
            )

        self.project_path = resolved_path
        self.approvals_dir = PathUtils.get_approvals_path(resolved_path)

    async def create(
        self,
        title: str,
        file_path: str,
        category: str,
        category_name: str,
        type: str = 'document',
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Create a pending approval request and return its ID."""
        approval = ApprovalRequest(
            id=self._generate_id(),
            title=title,
            file_path=file_path,
            type=type,
            category=category,
            category_name=category_name,
            metadata=metadata,
        )
        await write_text_atomic(self.approvals_dir / category_name / f"{approval.id}.json", approval.to_json())
        logger.debug(f"Created approval {approval.id} for {category_name}/{file_path}")
        return approval.id

    async def get(self, approval_id: str) -> Optional[ApprovalRequest]:
        approval_path = await self._find_approval_path(approval_id)
        if approval_path is None:
            return None
        return await self._load(approval_path)

    async def update_status(
        self,
        approval_id: str,
        status: Union[ApprovalStatus, str],
        response: str,
        annotations: Optional[str] = None,
        comments: Optional[List[Union[ApprovalComment, dict]]] = None,
    ) -> Optional[ApprovalRequest]:
        """Answer a pending approval request.

        Returns:
            The updated request, or None if no request has this ID.

        Raises:
            ValueError: If ``status`` is not approved, rejected or needs-revision.
            ApprovalStateError: If the request is no longer pending.
        """
        status = ApprovalStatus(status)
        if status not in RESPONSE_STATUSES:
            raise ValueError(f"Cannot set approval status to '{status.value}'")

        approval_path = await self._find_approval_path(approval_id)
        approval = await self._load(approval_path) if approval_path else None
        if approval is None:
            return None

        if approval.status is not ApprovalStatus.PENDING:
            raise ApprovalStateError(
                f"Approval {approval_id} is '{approval.status.value}'; only pending requests can be answered"
            )

        approval.status = status
        approval.response = response
        approval.annotations = annotations
        approval.responded_at = _utcnow()
        if comments:
            approval.comments = [ApprovalComment.model_validate(c) for c in comments]

        await write_text_atomic(approval_path, approval.to_json())
        return approval

    async def create_revision(
        self,
        approval_id: str,
        new_content: str,
        reason: Optional[str] = None,
    ) -> Optional[str]:
        """Write new content to the approval's target file and re-open review.

        The target's previous content is appended to the revision history
        and the request goes back to pending with its response cleared.

        Returns:
            The approval ID, or None if no request has this ID.

        Raises:
            ApprovalStateError: If the request is approved/rejected or has no file path.
        """
        approval_path = await self._find_approval_path(approval_id)
        approval = await self._load(approval_path) if approval_path else None
        if approval is None:
            return None

        if approval.status not in REVISABLE_STATUSES:
            raise ApprovalStateError(
                f"Approval {approval_id} is '{approval.status.value}' and cannot be revised"
            )
        if not approval.file_path:
            raise ApprovalStateError(f"Approval {approval_id} has no file path for revision")

        target_path = await self.resolve_target_path(approval)
        current_content = await read_text(target_path) or ''

        approval.revision_history.append(RevisionEntry(
            version=len(approval.revision_history),
            content=current_content,
            timestamp=approval.responded_at or approval.created_at,
            reason=reason,
        ))

        await write_text_atomic(target_path, new_content)

        approval.status = ApprovalStatus.PENDING
        approval.response = None
        approval.annotations = None
        approval.comments = None
        approval.responded_at = None

        await write_text_atomic(approval_path, approval.to_json())
        return approval_id

    async def delete(self, approval_id: str) -> bool:
        """Remove an approval file regardless of its status."""
        approval_path = await self._find_approval_path(approval_id)
        if approval_path is None:
            return False
        try:
            await aiofiles.os.remove(approval_path)
        except FileNotFoundError:
            return False
        return True

    async def list_all(self) -> List[ApprovalRequest]:
        """All readable approval requests, newest first."""
        approvals = []
        for approval_path in await self._approval_files():
            approval = await self._load(approval_path)
            if approval is not None:
                approvals.append(approval)

        approvals.sort(key=lambda a: a.created_at, reverse=True)
        return approvals

    async def list_pending(self) -> List[ApprovalRequest]:
        return [a for a in await self.list_all() if a.status is ApprovalStatus.PENDING]

    async def cleanup(self, max_age_days: int = 7) -> int:
        """Delete answered requests created more than ``max_age_days`` ago.

        Returns:
            Number of approval files removed.
        """
        cutoff = _utcnow() - timedelta(days=max_age_days)
        removed = 0
        for approval_path in await self._approval_files():
            approval = await self._load(approval_path)
            if approval is None or approval.status is ApprovalStatus.PENDING:
                continue
            if approval.created_at < cutoff:
                try:
                    await aiofiles.os.remove(approval_path)
                    removed += 1
                except FileNotFoundError:
                    pass

        if removed:
            logger.info(f"Removed {removed} approval(s) older than {max_age_days} days")
        return removed

    async def resolve_target_path(self, approval: ApprovalRequest) -> Path:
        """Locate the file under review.

        Tries the path relative to the project root (or as-is when absolute),
        then under the workflow root; falls back to the first candidate.
        """
        file_path = Path(approval.file_path)
        candidates = [file_path if file_path.is_absolute() else self.project_path / file_path]
        if '.spec-workflow' not in file_path.parts:
            candidates.append(PathUtils.get_workflow_root(self.project_path) / file_path)

        for candidate in candidates:
            if await aiofiles.os.path.isfile(candidate):
                return candidate
        return candidates[0]

    async def read_target_content(self, approval_id: str) -> Optional[str]:
        """Current content of the file under review, or None if unavailable."""
        approval = await self.get(approval_id)
        if approval is None or not approval.file_path:
            return None
        return await read_text(await self.resolve_target_path(approval))

    async def _category_dirs(self) -> List[Path]:
        try:
            names = await aiofiles.os.listdir(self.approvals_dir)
        except FileNotFoundError:
            return []
        dirs = []
        for name in sorted(names):
            path = self.approvals_dir / name
            if await aiofiles.os.path.isdir(path):
                dirs.append(path)
        return dirs

    async def _approval_files(self) -> List[Path]:
        files = []
        for category_dir in await self._category_dirs():
            try:
                file_names = await aiofiles.os.listdir(category_dir)
            except OSError as error:
                logger.warning(f"Could not read approval category {category_dir}: {error}")
                continue
            files.extend(category_dir / name for name in sorted(file_names) if name.endswith('.json'))
        return files

    async def _find_approval_path(self, approval_id: str) -> Optional[Path]:
        for category_dir in await self._category_dirs():
            candidate = category_dir / f"{approval_id}.json"
            if await aiofiles.os.path.isfile(candidate):
                return candidate
        return None

    async def _load(self, path: Path) -> Optional[ApprovalRequest]:
        try:
            content = await read_text(path)
            if content is None:
                return None
            return ApprovalRequest.model_validate(json.loads(content))
        except OSError as error:
            logger.warning(f"Could not read approval file {path}: {error}")
            return None
        except (ValueError, ValidationError) as error:
            # A foreign writer may be mid-flush; treat as absent
            logger.warning(f"Ignoring unreadable approval file {path}: {error}")
            return None

    @staticmethod
    def _generate_id() -> str:
        suffix = ''.join(secrets.choice(_ID_ALPHABET) for _ in range(9))
        return f"approval_{int(time.time() * 1000)}_{suffix}"
