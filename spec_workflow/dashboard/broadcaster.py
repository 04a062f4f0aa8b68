"""Fan-out of full-state snapshots to live dashboard subscribers.

Both trigger paths (an in-process mutation calling a ``broadcast_*`` method
directly, and a watcher event for a foreign write) end in the same methods,
which always re-read the canonical state from disk before sending.
"""

import itertools
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..approval_storage import ApprovalStorage
from ..events import (
    ACTION_DELETED,
    ApprovalChangeEvent,
    SpecChangeEvent,
    SteeringChangeEvent,
    TaskUpdateEvent,
    Unsubscribe,
)
from ..fileio import read_text
from ..paths import PathUtils
from ..task_parser import parse_tasks_from_markdown
from .parser import SpecParser
from .watcher import ApprovalWatcher, SpecWatcher

logger = logging.getLogger(__name__)

Send = Callable[[dict], Awaitable[None]]


class _Client:
    def __init__(self, send: Send, on_close: Optional[Callable[[], Any]]):
        self.send = send
        self.on_close = on_close


class EventBroadcaster:
    """Owns the subscriber set and sends each subscriber complete snapshots."""

    def __init__(
        self,
        project_path: Union[str, Path],
        parser: Optional[SpecParser] = None,
        approval_storage: Optional[ApprovalStorage] = None,
    ) -> None:
        self.project_path = Path(project_path).resolve()
        self.parser = parser or SpecParser(self.project_path)
        self.approval_storage = approval_storage or ApprovalStorage(self.project_path)

        self._clients: Dict[int, _Client] = {}
        self._client_ids = itertools.count(1)
        self._watch_subscriptions: List[Unsubscribe] = []

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, send: Send, on_close: Optional[Callable[[], Any]] = None) -> Callable[[], None]:
        """Register a subscriber and send it the initial snapshot.

        Args:
            send: Coroutine function delivering one message to the subscriber.
            on_close: Called once when the subscriber is deregistered.

        Returns:
            Function that deregisters the subscriber; safe to call repeatedly.
        """
        client_id = next(self._client_ids)
        self._clients[client_id] = _Client(send, on_close)

        def disconnect() -> None:
            self._disconnect(client_id)

        try:
            specs = await self.parser.get_all_specs()
            approvals = await self.approval_storage.list_pending()
        except Exception:
            logger.warning("Error getting initial dashboard data", exc_info=True)
            return disconnect

        await self._send(client_id, {
            'type': 'initial',
            'data': {
                'specs': [spec.model_dump(mode='json') for spec in specs],
                'approvals': [approval.to_dict() for approval in approvals],
            },
        })
        return disconnect

    def attach(self, spec_watcher: SpecWatcher, approval_watcher: Optional[ApprovalWatcher] = None) -> None:
        """Forward watcher events (foreign writes) to the broadcast methods."""
        self._watch_subscriptions.extend([
            spec_watcher.subscribe(SpecChangeEvent, self.broadcast_spec_change),
            spec_watcher.subscribe(TaskUpdateEvent, lambda event: self.broadcast_task_update(event.spec_name)),
            spec_watcher.subscribe(SteeringChangeEvent, lambda event: self.broadcast_steering_update()),
        ])
        if approval_watcher is not None:
            self._watch_subscriptions.append(
                approval_watcher.subscribe(ApprovalChangeEvent, lambda event: self.broadcast_approval_update())
            )

    def detach(self) -> None:
        subscriptions, self._watch_subscriptions = self._watch_subscriptions, []
        for unsubscribe in subscriptions:
            unsubscribe()

    def close(self) -> None:
        """Detach from watchers and deregister every subscriber."""
        self.detach()
        for client_id in list(self._clients):
            self._disconnect(client_id)

    async def broadcast(self, message: dict) -> None:
        for client_id in list(self._clients):
            await self._send(client_id, message)

    async def broadcast_spec_change(self, event: SpecChangeEvent) -> None:
        try:
            data = None
            if event.action != ACTION_DELETED:
                spec = await self.parser.get_spec(event.spec_name)
                data = spec.model_dump(mode='json') if spec else None
        except Exception:
            logger.warning(f"Error re-reading spec {event.spec_name}", exc_info=True)
            return

        await self.broadcast({
            'type': 'update',
            'data': {
                'action': event.action,
                'spec_name': event.spec_name,
                'document': event.document,
                'data': data,
            },
        })

    async def broadcast_task_update(self, spec_name: str) -> None:
        """Send the fully re-parsed task list of one spec."""
        tasks_path = PathUtils.get_spec_path(self.project_path, spec_name) / 'tasks.md'
        try:
            content = await read_text(tasks_path)
        except UnicodeDecodeError as error:
            # Foreign writer caught mid-flush inside a multibyte character
            logger.warning(f"{tasks_path} is not valid UTF-8 ({error}); sending an empty task list")
            content = ''
        except Exception:
            logger.warning(f"Error reading {tasks_path}", exc_info=True)
            return

        result = parse_tasks_from_markdown(content or '').to_dict()
        await self.broadcast({
            'type': 'task-status-update',
            'data': {
                'spec_name': spec_name,
                'task_list': result['tasks'],
                'summary': result['summary'],
                'in_progress': result['in_progress_task'],
            },
        })

    async def broadcast_steering_update(self) -> None:
        try:
            steering_status = await self.parser.get_project_steering_status()
        except Exception:
            logger.warning("Error reading steering status", exc_info=True)
            return
        await self.broadcast({'type': 'steering-update', 'data': steering_status.model_dump(mode='json')})

    async def broadcast_approval_update(self) -> None:
        try:
            approvals = await self.approval_storage.list_pending()
        except Exception:
            logger.warning("Error reading pending approvals", exc_info=True)
            return
        await self.broadcast({'type': 'approval-update', 'data': [a.to_dict() for a in approvals]})

    async def broadcast_spec_update(self) -> None:
        try:
            specs = await self.parser.get_all_specs()
            archived_specs = await self.parser.get_all_archived_specs()
        except Exception:
            logger.warning("Error reading specs", exc_info=True)
            return
        await self.broadcast({
            'type': 'spec-update',
            'data': {
                'specs': [spec.model_dump(mode='json') for spec in specs],
                'archived_specs': [spec.model_dump(mode='json') for spec in archived_specs],
            },
        })

    async def _send(self, client_id: int, message: dict) -> None:
        client = self._clients.get(client_id)
        if client is None:
            return
        try:
            await client.send(message)
        except Exception:
            logger.warning(f"Dropping subscriber {client_id} after failed send", exc_info=True)
            self._disconnect(client_id)

    def _disconnect(self, client_id: int) -> None:
        client = self._clients.pop(client_id, None)
        if client is None or client.on_close is None:
            return
        try:
            client.on_close()
        except Exception:
            logger.warning(f"Error closing subscriber {client_id}", exc_info=True)
