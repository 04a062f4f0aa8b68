"""Workflow directory layout helpers.

Every component locates files through these helpers so the
``.spec-workflow`` layout is defined in exactly one place.
"""

from pathlib import Path
from typing import Union

import aiofiles.os

from .config import WORKFLOW_DIR_NAME
from .exceptions import ProjectNotFoundError

SPEC_DOCUMENTS = ('requirements', 'design', 'tasks')
STEERING_DOCUMENTS = ('product', 'tech', 'structure')


class PathUtils:
    """Static path builders for the workflow directory tree."""

    @staticmethod
    def get_workflow_root(project_path: Union[str, Path]) -> Path:
        return Path(project_path) / WORKFLOW_DIR_NAME

    @staticmethod
    def get_specs_path(project_path: Union[str, Path]) -> Path:
        return PathUtils.get_workflow_root(project_path) / 'specs'

    @staticmethod
    def get_spec_path(project_path: Union[str, Path], spec_name: str) -> Path:
        return PathUtils.get_specs_path(project_path) / spec_name

    @staticmethod
    def get_archive_specs_path(project_path: Union[str, Path]) -> Path:
        return PathUtils.get_workflow_root(project_path) / 'archive' / 'specs'

    @staticmethod
    def get_archive_spec_path(project_path: Union[str, Path], spec_name: str) -> Path:
        return PathUtils.get_archive_specs_path(project_path) / spec_name

    @staticmethod
    def get_steering_path(project_path: Union[str, Path]) -> Path:
        return PathUtils.get_workflow_root(project_path) / 'steering'

    @staticmethod
    def get_templates_path(project_path: Union[str, Path]) -> Path:
        return PathUtils.get_workflow_root(project_path) / 'templates'

    @staticmethod
    def get_agents_path(project_path: Union[str, Path]) -> Path:
        return PathUtils.get_workflow_root(project_path) / 'agents'

    @staticmethod
    def get_commands_path(project_path: Union[str, Path]) -> Path:
        return PathUtils.get_workflow_root(project_path) / 'commands'

    @staticmethod
    def get_approvals_path(project_path: Union[str, Path]) -> Path:
        return PathUtils.get_workflow_root(project_path) / 'approvals'

    @staticmethod
    def get_spec_approval_path(project_path: Union[str, Path], spec_name: str) -> Path:
        return PathUtils.get_approvals_path(project_path) / spec_name

    @staticmethod
    def to_unix_path(path: Union[str, Path]) -> str:
        """Normalize separators so path segments can be located by position."""
        return str(path).replace('\\', '/')


async def validate_project_path(project_path: Union[str, Path]) -> Path:
    """Resolve a project path and make sure it is an existing directory.

    Args:
        project_path: Project root as given by the caller.

    Returns:
        The absolute project path.

    Raises:
        ProjectNotFoundError: If the path is missing or is not a directory.
    """
    absolute_path = Path(project_path).expanduser().resolve()

    if not await aiofiles.os.path.exists(absolute_path):
        raise ProjectNotFoundError(f"Project path does not exist: {project_path}")
    if not await aiofiles.os.path.isdir(absolute_path):
        raise ProjectNotFoundError(f"Project path is not a directory: {absolute_path}")

    return absolute_path


async def ensure_workflow_directory(project_path: Union[str, Path]) -> Path:
    """Create the workflow directory tree (approvals are created on demand).

    Returns:
        The workflow root directory.
    """
    directories = [
        PathUtils.get_workflow_root(project_path),
        PathUtils.get_specs_path(project_path),
        PathUtils.get_archive_specs_path(project_path),
        PathUtils.get_steering_path(project_path),
        PathUtils.get_templates_path(project_path),
        PathUtils.get_agents_path(project_path),
        PathUtils.get_commands_path(project_path),
    ]
    for directory in directories:
        await aiofiles.os.makedirs(directory, exist_ok=True)

    return PathUtils.get_workflow_root(project_path)
