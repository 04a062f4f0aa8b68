"""Shared test fixtures."""

from pathlib import Path

import pytest

from spec_workflow.config import WorkflowSettings
from spec_workflow.paths import PathUtils


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    """An empty project root with a workflow directory."""
    PathUtils.get_specs_path(tmp_path).mkdir(parents=True)
    PathUtils.get_steering_path(tmp_path).mkdir(parents=True)
    return tmp_path


@pytest.fixture()
def write_spec(project: Path):
    """Write ``<document>.md`` of a spec and return its path."""

    def _write(spec_name: str, document: str, content: str) -> Path:
        spec_dir = PathUtils.get_spec_path(project, spec_name)
        spec_dir.mkdir(parents=True, exist_ok=True)
        path = spec_dir / f"{document}.md"
        path.write_bytes(content.encode('utf-8'))
        return path

    return _write


@pytest.fixture()
def instant_settings() -> WorkflowSettings:
    """Settings without debounce so watcher reactions complete immediately."""
    return WorkflowSettings(debounce_seconds=0)
