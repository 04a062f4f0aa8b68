"""Dashboard module for live spec workflow monitoring.

This module turns file changes under ``.spec-workflow`` into full-state
snapshots pushed to every connected subscriber, and hosts the in-process
handlers the dashboard front end calls.
"""

from .api import DashboardApi
from .broadcaster import EventBroadcaster
from .cli import DashboardManager
from .parser import ParsedSpec, SpecParser, SteeringStatus
from .watcher import ApprovalWatcher, SpecWatcher

__all__ = [
    'DashboardApi',
    'DashboardManager',
    'EventBroadcaster',
    'ParsedSpec',
    'SpecParser',
    'SteeringStatus',
    'SpecWatcher',
    'ApprovalWatcher',
]
