"""Moving specs between the active and archived trees."""

import logging
from pathlib import Path
from typing import Union

import aiofiles.os

from .exceptions import ArchiveConflictError, SpecNotFoundError, SpecWorkflowError
from .paths import PathUtils

logger = logging.getLogger(__name__)


class SpecArchiveService:
    """Archive and restore whole spec directories."""

    def __init__(self, project_path: Union[str, Path]) -> None:
        self.project_path = Path(project_path).resolve()

    async def archive_spec(self, spec_name: str) -> None:
        """Move ``specs/<name>`` to ``archive/specs/<name>``.

        Raises:
            SpecNotFoundError: If the spec is not active.
            ArchiveConflictError: If the spec is already archived.
        """
        await self._move(
            PathUtils.get_spec_path(self.project_path, spec_name),
            PathUtils.get_archive_spec_path(self.project_path, spec_name),
            missing=f"Spec '{spec_name}' not found in active specs",
            conflict=f"Spec '{spec_name}' already exists in archive",
            failure=f"Failed to archive spec '{spec_name}'",
        )
        logger.info(f"Archived spec {spec_name}")

    async def unarchive_spec(self, spec_name: str) -> None:
        """Move ``archive/specs/<name>`` back to ``specs/<name>``.

        Raises:
            SpecNotFoundError: If the spec is not archived.
            ArchiveConflictError: If an active spec has the same name.
        """
        await self._move(
            PathUtils.get_archive_spec_path(self.project_path, spec_name),
            PathUtils.get_spec_path(self.project_path, spec_name),
            missing=f"Spec '{spec_name}' not found in archive",
            conflict=f"Spec '{spec_name}' already exists in active specs",
            failure=f"Failed to unarchive spec '{spec_name}'",
        )
        logger.info(f"Unarchived spec {spec_name}")

    async def is_spec_active(self, spec_name: str) -> bool:
        return await aiofiles.os.path.exists(PathUtils.get_spec_path(self.project_path, spec_name))

    async def is_spec_archived(self, spec_name: str) -> bool:
        return await aiofiles.os.path.exists(PathUtils.get_archive_spec_path(self.project_path, spec_name))

    async def get_spec_location(self, spec_name: str) -> str:
        """Return 'active', 'archived' or 'not-found'."""
        if await self.is_spec_active(spec_name):
            return 'active'
        if await self.is_spec_archived(spec_name):
            return 'archived'
        return 'not-found'

    @staticmethod
    async def _move(source: Path, destination: Path, missing: str, conflict: str, failure: str) -> None:
        if not await aiofiles.os.path.exists(source):
            raise SpecNotFoundError(missing)
        if await aiofiles.os.path.exists(destination):
            raise ArchiveConflictError(conflict)

        try:
            await aiofiles.os.makedirs(destination.parent, exist_ok=True)
            await aiofiles.os.rename(source, destination)
        except OSError as error:
            raise SpecWorkflowError(f"{failure}: {error}") from error
