"""Spec Workflow - file-backed coordination for spec-driven development.

Agents, a live dashboard and humans editing by hand share one
``.spec-workflow`` directory (Requirements → Design → Tasks → Implementation).
This package provides the tasks.md codec, the approval store and the
watch-and-broadcast pipeline that keeps every party in sync.
"""

__version__ = "1.3.4"
__author__ = "Pimzino"
__license__ = "MIT"

# Package exports
from spec_workflow.exceptions import (
    SpecWorkflowError,
    ProjectNotFoundError,
    SpecNotFoundError,
    TaskParsingError,
    ArchiveConflictError,
    ApprovalError,
    ApprovalStateError,
)
from spec_workflow.task_parser import (
    ParsedTask,
    TaskParserResult,
    TaskStatus,
    parse_tasks_from_markdown,
    update_task_status,
)
from spec_workflow.approval_storage import ApprovalRequest, ApprovalStatus, ApprovalStorage

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "SpecWorkflowError",
    "ProjectNotFoundError",
    "SpecNotFoundError",
    "TaskParsingError",
    "ArchiveConflictError",
    "ApprovalError",
    "ApprovalStateError",
    "ParsedTask",
    "TaskParserResult",
    "TaskStatus",
    "parse_tasks_from_markdown",
    "update_task_status",
    "ApprovalRequest",
    "ApprovalStatus",
    "ApprovalStorage",
]
