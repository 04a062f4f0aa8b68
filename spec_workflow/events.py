"""Domain change events and the per-instance channel that delivers them.

Every component that produces events owns its own ``EventChannel``;
``subscribe`` always returns the function that undoes it.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar, Union

logger = logging.getLogger(__name__)

ACTION_CREATED = 'created'
ACTION_UPDATED = 'updated'
ACTION_DELETED = 'deleted'


@dataclass
class SpecChangeEvent:
    """A spec document was created, updated or deleted.

    ``data`` is the spec snapshot re-read from disk after the change, or
    None when the spec (or document) is gone.
    """
    action: str
    spec_name: str
    document: Optional[str] = None
    data: Optional[Any] = None


@dataclass
class TaskUpdateEvent:
    """tasks.md of a spec changed; receivers re-parse it themselves."""
    spec_name: str
    action: str


@dataclass
class SteeringChangeEvent:
    """A steering document changed; carries the fresh steering status."""
    action: str
    document_name: str
    steering_status: Any = None


@dataclass
class ApprovalChangeEvent:
    """Some approval file was added, changed or removed."""
    action: str = ACTION_UPDATED


E = TypeVar('E')
Callback = Callable[[Any], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


class EventChannel:
    """Typed publish/subscribe owned by a single component instance."""

    def __init__(self) -> None:
        self._subscribers: Dict[type, List[Callback]] = {}

    def subscribe(self, event_type: Type[E], callback: Callable[[E], Any]) -> Unsubscribe:
        """Register ``callback`` for events of ``event_type``.

        Returns:
            A function removing the subscription; calling it again is a no-op.
        """
        callbacks = self._subscribers.setdefault(event_type, [])
        callbacks.append(callback)
        active = True

        def unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            current = self._subscribers.get(event_type, [])
            if callback in current:
                current.remove(callback)

        return unsubscribe

    async def emit(self, event: Any) -> None:
        """Deliver ``event`` to its subscribers in registration order."""
        for callback in list(self._subscribers.get(type(event), [])):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning(f"Subscriber failed while handling {type(event).__name__}", exc_info=True)

    def subscriber_count(self, event_type: Optional[type] = None) -> int:
        if event_type is not None:
            return len(self._subscribers.get(event_type, []))
        return sum(len(callbacks) for callbacks in self._subscribers.values())

    def clear(self) -> None:
        self._subscribers.clear()
