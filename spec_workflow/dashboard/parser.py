"""Spec directory parsing and status tracking.

This module derives dashboard snapshots (phase presence, modification times,
task progress, steering status) straight from the workflow directory. Nothing
is cached: every call re-reads the filesystem.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

import aiofiles.os
from pydantic import BaseModel, Field

from ..fileio import read_text
from ..paths import SPEC_DOCUMENTS, STEERING_DOCUMENTS, PathUtils
from ..task_parser import TaskProgress, parse_task_progress

logger = logging.getLogger(__name__)


class PhaseStatus(BaseModel):
    """Presence of one spec phase document."""
    exists: bool = False
    last_modified: Optional[datetime] = None


class SpecPhases(BaseModel):
    requirements: PhaseStatus = Field(default_factory=PhaseStatus)
    design: PhaseStatus = Field(default_factory=PhaseStatus)
    tasks: PhaseStatus = Field(default_factory=PhaseStatus)
    implementation: PhaseStatus = Field(default_factory=PhaseStatus)


class ParsedSpec(BaseModel):
    """Snapshot of one spec directory."""
    name: str
    display_name: str
    archived: bool = False
    created_at: Optional[datetime] = None
    last_modified: Optional[datetime] = None
    phases: SpecPhases = Field(default_factory=SpecPhases)
    task_progress: Optional[TaskProgress] = None


class SteeringDocuments(BaseModel):
    product: bool = False
    tech: bool = False
    structure: bool = False


class SteeringStatus(BaseModel):
    """Status of steering documents in the project."""
    exists: bool = False
    documents: SteeringDocuments = Field(default_factory=SteeringDocuments)
    last_modified: Optional[datetime] = None


def _mtime(stats) -> datetime:
    return datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc)


class SpecParser:
    """Parser for extracting status information from spec directories."""

    def __init__(self, project_path: Union[str, Path]) -> None:
        """Initialize the parser with project path.

        Args:
            project_path: Path to the project root directory.
        """
        self.project_path = Path(project_path).resolve()
        self.specs_path = PathUtils.get_specs_path(self.project_path)
        self.archive_specs_path = PathUtils.get_archive_specs_path(self.project_path)
        self.steering_path = PathUtils.get_steering_path(self.project_path)

    async def get_all_specs(self) -> List[ParsedSpec]:
        """Get snapshots of all active specs, sorted by name."""
        return await self._read_spec_dirs(self.specs_path, archived=False)

    async def get_all_archived_specs(self) -> List[ParsedSpec]:
        """Get snapshots of all archived specs, sorted by name."""
        return await self._read_spec_dirs(self.archive_specs_path, archived=True)

    async def get_spec(self, name: str) -> Optional[ParsedSpec]:
        """Get the snapshot of an active spec.

        Args:
            name: Name of the spec directory.

        Returns:
            ParsedSpec, or None if the spec doesn't exist.
        """
        return await self._parse_spec_dir(self.specs_path / name, name, archived=False)

    async def get_archived_spec(self, name: str) -> Optional[ParsedSpec]:
        return await self._parse_spec_dir(self.archive_specs_path / name, name, archived=True)

    async def get_project_steering_status(self) -> SteeringStatus:
        """Get the status of steering documents.

        Returns:
            SteeringStatus indicating which documents exist.
        """
        status = SteeringStatus()
        try:
            steering_stats = await aiofiles.os.stat(self.steering_path)
        except FileNotFoundError:
            return status

        status.exists = True
        status.last_modified = _mtime(steering_stats)
        for document in STEERING_DOCUMENTS:
            exists = await aiofiles.os.path.isfile(self.steering_path / f"{document}.md")
            setattr(status.documents, document, exists)
        return status

    async def _read_spec_dirs(self, root: Path, archived: bool) -> List[ParsedSpec]:
        try:
            entries = await aiofiles.os.listdir(root)
        except FileNotFoundError:
            return []
        except OSError as error:
            logger.warning(f"Error reading specs from {root}: {error}")
            return []

        specs = []
        for name in entries:
            if name.startswith('.'):
                continue
            spec = await self._parse_spec_dir(root / name, name, archived)
            if spec:
                specs.append(spec)

        specs.sort(key=lambda spec: spec.name)
        return specs

    async def _parse_spec_dir(self, spec_dir: Path, name: str, archived: bool) -> Optional[ParsedSpec]:
        if not await aiofiles.os.path.isdir(spec_dir):
            return None

        try:
            dir_stats = await aiofiles.os.stat(spec_dir)
        except FileNotFoundError:
            return None

        spec = ParsedSpec(
            name=name,
            display_name=self._format_display_name(name),
            archived=archived,
            created_at=datetime.fromtimestamp(
                getattr(dir_stats, 'st_birthtime', dir_stats.st_ctime), tz=timezone.utc
            ),
            last_modified=_mtime(dir_stats),
        )

        for document in SPEC_DOCUMENTS:
            doc_path = spec_dir / f"{document}.md"
            try:
                doc_stats = await aiofiles.os.stat(doc_path)
            except FileNotFoundError:
                continue

            phase = getattr(spec.phases, document)
            phase.exists = True
            phase.last_modified = _mtime(doc_stats)
            if phase.last_modified > spec.last_modified:
                spec.last_modified = phase.last_modified

            if document == 'tasks':
                try:
                    content = await read_text(doc_path)
                except UnicodeDecodeError as error:
                    logger.warning(f"Skipping task progress of {name}: {doc_path} is not valid UTF-8 ({error})")
                    content = None
                if content is not None:
                    spec.task_progress = parse_task_progress(content)

        # Implementation is ongoing manual work and always considered present
        spec.phases.implementation.exists = True
        return spec

    @staticmethod
    def _format_display_name(name: str) -> str:
        """Format a kebab-case spec name for display."""
        return ' '.join(word[:1].upper() + word[1:] for word in name.split('-'))
