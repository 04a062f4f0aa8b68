"""Checkbox task parsing and status rewriting for tasks.md files.

This module is the single place that understands the task list dialect used
by agents, the dashboard and humans editing by hand:

    - [ ] 1. Header task
    - [-] 1.1 Subtask in progress
      - File: src/app.py (new)
      - Purpose: Explain why
      - Any other bullet is an implementation detail
      - _Leverage: src/utils.py_
      - _Requirements: 1.1, 2.2_
    - [x] 1.2 Completed subtask

Parsing never raises for bad input: a half-written or malformed document
simply yields fewer (possibly zero) tasks.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from .exceptions import TaskParsingError

logger = logging.getLogger(__name__)

CHECKBOX_LINE = re.compile(r'^\s*-\s+\[([ x\-])\]')
CHECKBOX_TASK = re.compile(r'^(\s*)-\s+\[([ x\-])\]\s+(.+)')
CHECKBOX_PARTS = re.compile(r'^(\s*-\s+\[)([ x\-])(\]\s+)(.+)$')
TASK_ID = re.compile(r'^(\d+(?:\.\d+)*)\s*\.?\s+(.+)')

REQUIREMENTS = re.compile(r'_Requirements:\s*(.+?)_?$')
LEVERAGE = re.compile(r'_Leverage:\s*(.+?)_?$')
FILES = re.compile(r'Files?:\s*(.+)$')
PARENTHETICAL = re.compile(r'\(.*?\)')
BRACKET_BULLET = re.compile(r'^-\s+\[')


class TaskStatus(Enum):
    """Status of a checkbox task and its one-character marker."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


STATUS_MARKERS: Dict[TaskStatus, str] = {
    TaskStatus.PENDING: ' ',
    TaskStatus.IN_PROGRESS: '-',
    TaskStatus.COMPLETED: 'x',
}
MARKER_STATUSES: Dict[str, TaskStatus] = {marker: status for status, marker in STATUS_MARKERS.items()}


@dataclass
class ParsedTask:
    """One checkbox line of tasks.md plus the metadata found under it."""
    id: str
    description: str
    status: TaskStatus
    line_number: int
    indent_level: int
    is_header: bool
    requirements: List[str] = field(default_factory=list)
    leverage: Optional[str] = None
    files: List[str] = field(default_factory=list)
    purposes: List[str] = field(default_factory=list)
    implementation_details: List[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status is TaskStatus.COMPLETED

    @property
    def in_progress(self) -> bool:
        return self.status is TaskStatus.IN_PROGRESS

    def to_dict(self) -> dict:
        """JSON-ready representation used by broadcasts and tool responses."""
        data = asdict(self)
        data['status'] = self.status.value
        data['completed'] = self.completed
        data['in_progress'] = self.in_progress
        return data


@dataclass
class TaskSummary:
    """Aggregate counts over a parsed task list."""
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    pending: int = 0
    headers: int = 0


@dataclass
class TaskProgress:
    """Short progress figures shown next to a spec."""
    total: int = 0
    completed: int = 0
    pending: int = 0


@dataclass
class TaskParserResult:
    """A tasks.md document decoded into its flat, ordered task list."""
    tasks: List[ParsedTask] = field(default_factory=list)
    in_progress_task: Optional[str] = None
    summary: TaskSummary = field(default_factory=TaskSummary)

    def to_dict(self) -> dict:
        return {
            'tasks': [task.to_dict() for task in self.tasks],
            'in_progress_task': self.in_progress_task,
            'summary': asdict(self.summary),
        }


def _coerce_status(status: Union[TaskStatus, str]) -> TaskStatus:
    if isinstance(status, TaskStatus):
        return status
    try:
        return TaskStatus(status)
    except ValueError:
        raise TaskParsingError(
            f"Invalid task status '{status}'. Must be pending, in-progress, or completed"
        ) from None


def _strip_trailing_underscore(text: str) -> str:
    return text[:-1] if text.endswith('_') else text


def parse_tasks_from_markdown(content: str) -> TaskParserResult:
    """Parse every numbered checkbox task in a tasks.md document.

    Each checkbox owns the lines up to the next checkbox (or end of file);
    metadata is collected only from that range.

    Args:
        content: Raw markdown content from tasks.md.

    Returns:
        TaskParserResult with tasks in document order, the first in-progress
        task ID and summary counts.
    """
    lines = content.split('\n')
    checkbox_indices = [i for i, line in enumerate(lines) if CHECKBOX_LINE.match(line)]

    tasks: List[ParsedTask] = []
    in_progress_task: Optional[str] = None
    seen_ids = set()

    for idx, line_number in enumerate(checkbox_indices):
        end_line = checkbox_indices[idx + 1] if idx + 1 < len(checkbox_indices) else len(lines)

        checkbox_match = CHECKBOX_TASK.match(lines[line_number])
        if not checkbox_match:
            continue
        indent, marker, task_text = checkbox_match.groups()

        task_match = TASK_ID.match(task_text)
        if not task_match:
            # Un-numbered checkboxes still bound the previous task's scope
            continue
        task_id = task_match.group(1)
        description = task_match.group(2).rstrip()

        requirements: List[str] = []
        leverage: List[str] = []
        files: List[str] = []
        purposes: List[str] = []
        implementation_details: List[str] = []

        for content_line in lines[line_number + 1:end_line]:
            content_line = content_line.strip()
            if not content_line:
                continue

            if '_Requirements:' in content_line:
                req_match = REQUIREMENTS.search(content_line)
                if req_match:
                    req_text = _strip_trailing_underscore(req_match.group(1))
                    requirements.extend(
                        r for r in re.split(r'[,\s]+', req_text) if r and r != 'NFR'
                    )
            elif '_Leverage:' in content_line:
                lev_match = LEVERAGE.search(content_line)
                if lev_match:
                    lev_text = _strip_trailing_underscore(lev_match.group(1))
                    leverage.extend(l.strip() for l in lev_text.split(',') if l.strip())
            elif FILES.search(content_line):
                file_match = FILES.search(content_line)
                for path in file_match.group(1).split(','):
                    path = PARENTHETICAL.sub('', path.strip()).strip()
                    if path:
                        files.append(path)
            elif content_line.startswith('- ') and not BRACKET_BULLET.match(content_line):
                bullet = content_line[2:].strip()
                if bullet.startswith('Purpose:'):
                    purposes.append(bullet[len('Purpose:'):].strip())
                else:
                    implementation_details.append(bullet)

        has_details = bool(requirements or leverage or files or purposes or implementation_details)
        status = MARKER_STATUSES[marker]

        if task_id in seen_ids:
            logger.debug(f"Duplicate task ID {task_id} at line {line_number}; first occurrence wins")
        seen_ids.add(task_id)

        tasks.append(ParsedTask(
            id=task_id,
            description=description,
            status=status,
            line_number=line_number,
            indent_level=len(indent) // 2,
            is_header=not has_details,
            requirements=requirements,
            leverage=', '.join(leverage) if leverage else None,
            files=files,
            purposes=purposes,
            implementation_details=implementation_details,
        ))

        if status is TaskStatus.IN_PROGRESS and in_progress_task is None:
            in_progress_task = task_id

    summary = TaskSummary(
        total=len(tasks),
        completed=sum(1 for t in tasks if t.status is TaskStatus.COMPLETED),
        in_progress=sum(1 for t in tasks if t.status is TaskStatus.IN_PROGRESS),
        pending=sum(1 for t in tasks if t.status is TaskStatus.PENDING),
        headers=sum(1 for t in tasks if t.is_header),
    )

    logger.debug(f"Parsed {summary.total} tasks from markdown")
    if not tasks and content.strip():
        logger.debug("No tasks found in non-empty tasks document")

    return TaskParserResult(tasks=tasks, in_progress_task=in_progress_task, summary=summary)


def update_task_status(content: str, task_id: str, new_status: Union[TaskStatus, str]) -> str:
    """Rewrite the status marker of one task.

    Only the marker character of the first checkbox whose ID equals
    ``task_id`` changes; every other character of the document is kept.

    Returns:
        The updated document, or ``content`` itself if no task matched.

    Raises:
        TaskParsingError: If ``new_status`` is not a known status.
    """
    marker = STATUS_MARKERS[_coerce_status(new_status)]
    lines = content.split('\n')

    for i, line in enumerate(lines):
        checkbox_match = CHECKBOX_PARTS.match(line)
        if not checkbox_match:
            continue

        prefix, _, suffix, task_text = checkbox_match.groups()
        task_match = TASK_ID.match(task_text)
        if task_match and task_match.group(1) == task_id:
            lines[i] = prefix + marker + suffix + task_text
            return '\n'.join(lines)

    return content


def find_next_pending_task(tasks: List[ParsedTask]) -> Optional[ParsedTask]:
    """Return the first pending task that is not a header."""
    return next((t for t in tasks if t.status is TaskStatus.PENDING and not t.is_header), None)


def get_task_by_id(tasks: List[ParsedTask], task_id: str) -> Optional[ParsedTask]:
    return next((t for t in tasks if t.id == task_id), None)


def parse_task_progress(content: str) -> TaskProgress:
    summary = parse_tasks_from_markdown(content).summary
    return TaskProgress(total=summary.total, completed=summary.completed, pending=summary.pending)
