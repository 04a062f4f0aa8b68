"""Runtime configuration for watchers and approval housekeeping."""

import os
from dataclasses import dataclass


WORKFLOW_DIR_NAME = '.spec-workflow'


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class WorkflowSettings:
    """Settings shared by the watchers, the dashboard and the CLI.

    The debounce delay is an empirically tuned value, not a behavioral
    contract; it only has to outlast a typical editor flush.
    """
    debounce_seconds: float = 0.1
    use_polling: bool = False
    approval_max_age_days: int = 7

    @classmethod
    def from_env(cls) -> 'WorkflowSettings':
        """Load settings from the environment, falling back to defaults."""
        debounce_ms = int(os.getenv('SPEC_WORKFLOW_DEBOUNCE_MS', '100'))
        return cls(
            debounce_seconds=max(debounce_ms, 0) / 1000,
            use_polling=_env_flag('SPEC_WORKFLOW_USE_POLLING', False),
            approval_max_age_days=int(os.getenv('SPEC_WORKFLOW_APPROVAL_MAX_AGE_DAYS', '7')),
        )
