"""File system monitoring for spec, steering and approval changes.

Raw watchdog notifications arrive on the observer thread; they are handed to
the asyncio loop and turned into typed domain events there. Every event
carries state re-read from disk after a short debounce, never data taken from
the notification itself.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional, Set, Type, TypeVar, Union

import aiofiles.os
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from ..config import WorkflowSettings
from ..events import (
    ACTION_CREATED,
    ACTION_DELETED,
    ACTION_UPDATED,
    ApprovalChangeEvent,
    EventChannel,
    SpecChangeEvent,
    SteeringChangeEvent,
    TaskUpdateEvent,
    Unsubscribe,
)
from ..paths import PathUtils
from .parser import SpecParser

logger = logging.getLogger(__name__)

E = TypeVar('E')
Dispatch = Callable[[str, str, bool], None]


class WorkflowFileHandler(FileSystemEventHandler):
    """Forwards raw watchdog events as (action, path, is_directory)."""

    def __init__(self, dispatch: Dispatch):
        self._forward = dispatch

    def on_created(self, event: FileSystemEvent):
        self._forward(ACTION_CREATED, os.fsdecode(event.src_path), event.is_directory)

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory:
            self._forward(ACTION_UPDATED, os.fsdecode(event.src_path), False)

    def on_deleted(self, event: FileSystemEvent):
        self._forward(ACTION_DELETED, os.fsdecode(event.src_path), event.is_directory)

    def on_moved(self, event: FileSystemEvent):
        # Atomic saves arrive as a rename of a temporary file onto the target
        self._forward(ACTION_DELETED, os.fsdecode(event.src_path), event.is_directory)
        dest_action = ACTION_CREATED if event.is_directory else ACTION_UPDATED
        self._forward(dest_action, os.fsdecode(event.dest_path), event.is_directory)


class DirectoryWatcher(ABC):
    """One recursive watchdog subscription with an owned event channel.

    Each ``start`` opens a new generation. Reactions scheduled by an older
    generation may still run after ``stop`` but their events are dropped.
    """

    def __init__(self, watch_path: Path, settings: Optional[WorkflowSettings] = None):
        self.watch_path = Path(watch_path)
        self.settings = settings or WorkflowSettings()
        self.events = EventChannel()

        self._observer: Optional[Observer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._generation = 0
        self._pending: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def subscribe(self, event_type: Type[E], callback: Callable[[E], object]) -> Unsubscribe:
        return self.events.subscribe(event_type, callback)

    async def start(self) -> None:
        """Create the watch subscription (no-op if already running)."""
        if self._observer is not None:
            return

        await aiofiles.os.makedirs(self.watch_path, exist_ok=True)
        self._loop = asyncio.get_running_loop()
        self._generation += 1

        observer = PollingObserver() if self.settings.use_polling else Observer()
        observer.schedule(WorkflowFileHandler(self._dispatch), str(self.watch_path), recursive=True)
        observer.start()
        self._observer = observer

        logger.debug(f"[{type(self).__name__}] Watching {self.watch_path}")

    async def stop(self) -> None:
        """Detach handlers, close the OS watch and drop all subscribers."""
        observer, self._observer = self._observer, None
        self._generation += 1

        if observer is not None:
            observer.unschedule_all()
            observer.stop()
            await asyncio.to_thread(observer.join)
            logger.debug(f"[{type(self).__name__}] Stopped watching {self.watch_path}")

        self.events.clear()

    @abstractmethod
    async def handle_file_change(
        self, action: str, file_path: str, is_directory: bool = False, generation: Optional[int] = None
    ) -> None:
        """Translate one raw change into domain events.

        ``generation`` is the watcher generation the change was observed in;
        it defaults to the current one for direct calls.
        """

    async def _debounce(self, action: str) -> None:
        if action in (ACTION_CREATED, ACTION_UPDATED) and self.settings.debounce_seconds > 0:
            await asyncio.sleep(self.settings.debounce_seconds)

    async def _emit(self, event: object, generation: int) -> None:
        if generation != self._generation:
            logger.debug(f"Discarding {type(event).__name__} from a stopped watcher")
            return
        await self.events.emit(event)

    def _relative_parts(self, file_path: str) -> Optional[list]:
        root = PathUtils.to_unix_path(self.watch_path).rstrip('/')
        normalized = PathUtils.to_unix_path(file_path)
        if not normalized.startswith(root + '/'):
            return None
        return [part for part in normalized[len(root) + 1:].split('/') if part]

    def _dispatch(self, action: str, file_path: str, is_directory: bool) -> None:
        # Runs on the watchdog thread
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._schedule, action, file_path, is_directory, self._generation)
        except RuntimeError:
            logger.debug(f"Event loop closed; dropping {action} of {file_path}")

    def _schedule(self, action: str, file_path: str, is_directory: bool, generation: int) -> None:
        if generation != self._generation:
            return
        task = asyncio.ensure_future(self._react(action, file_path, is_directory, generation))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _react(self, action: str, file_path: str, is_directory: bool, generation: int) -> None:
        try:
            await self.handle_file_change(action, file_path, is_directory, generation)
        except Exception:
            logger.warning(f"Error handling {action} of {file_path}", exc_info=True)


class SpecWatcher(DirectoryWatcher):
    """Watches ``specs/**/*.md`` and ``steering/*.md`` of one project."""

    def __init__(
        self,
        project_path: Union[str, Path],
        parser: SpecParser,
        settings: Optional[WorkflowSettings] = None,
    ):
        """Initialize the watcher.

        Args:
            project_path: Path to the project root directory.
            parser: SpecParser used to re-derive snapshots after a change.
            settings: Debounce and observer settings.
        """
        self.project_path = Path(project_path).resolve()
        self.parser = parser
        super().__init__(PathUtils.get_workflow_root(self.project_path), settings)

    async def handle_file_change(
        self, action: str, file_path: str, is_directory: bool = False, generation: Optional[int] = None
    ) -> None:
        """Translate one raw change into spec, task and steering events."""
        parts = self._relative_parts(file_path)
        if not parts or len(parts) < 2:
            return

        if generation is None:
            generation = self._generation
        if parts[0] == 'specs':
            await self._handle_spec_change(action, parts[1:], is_directory, generation)
        elif parts[0] == 'steering':
            await self._handle_steering_change(action, parts[1:], is_directory, generation)

    async def _handle_spec_change(self, action: str, parts: list, is_directory: bool, generation: int) -> None:
        spec_name = parts[0]

        if is_directory:
            if len(parts) != 1 or action == ACTION_UPDATED:
                return
            document = None
        else:
            if len(parts) < 2 or not parts[-1].endswith('.md'):
                return
            document = parts[1][:-len('.md')] if len(parts) == 2 else '/'.join(parts[1:])

        logger.debug(f"Spec change detected: {action} - {spec_name}/{document or ''}")
        await self._debounce(action)

        data = await self.parser.get_spec(spec_name) if action != ACTION_DELETED else None
        if is_directory and action == ACTION_CREATED and data is None:
            return

        await self._emit(SpecChangeEvent(action=action, spec_name=spec_name, document=document, data=data), generation)

        if not is_directory and parts[-1] == 'tasks.md':
            await self._emit(TaskUpdateEvent(spec_name=spec_name, action=action), generation)

    async def _handle_steering_change(self, action: str, parts: list, is_directory: bool, generation: int) -> None:
        if is_directory or len(parts) != 1 or not parts[0].endswith('.md'):
            return

        document_name = parts[0][:-len('.md')]
        logger.debug(f"Steering change detected: {action} - {document_name}")
        await self._debounce(action)

        steering_status = await self.parser.get_project_steering_status()
        await self._emit(
            SteeringChangeEvent(action=action, document_name=document_name, steering_status=steering_status),
            generation,
        )


class ApprovalWatcher(DirectoryWatcher):
    """Watches ``approvals/**/*.json`` of one project."""

    def __init__(self, project_path: Union[str, Path], settings: Optional[WorkflowSettings] = None):
        self.project_path = Path(project_path).resolve()
        super().__init__(PathUtils.get_approvals_path(self.project_path), settings)

    async def handle_file_change(
        self, action: str, file_path: str, is_directory: bool = False, generation: Optional[int] = None
    ) -> None:
        parts = self._relative_parts(file_path)
        if is_directory or not parts or not parts[-1].endswith('.json'):
            return

        if generation is None:
            generation = self._generation
        await self._debounce(action)
        await self._emit(ApprovalChangeEvent(action=action), generation)
