"""
Structured outcomes for Backup Manager operations.

Every value here is derived from device output that has already been fully
read and closed.
"""

from dataclasses import dataclass
from enum import Enum


class BackupResult(Enum):
    """Outcome of "bmgr backupnow <package>"."""
    SUCCESS = "success"
    NOT_ALLOWED = "not_allowed"
    PACKAGE_NOT_FOUND = "package_not_found"


class RestoreResult(Enum):
    """Outcome of "bmgr restore <token> <package>"."""
    SUCCESS = "success"
    FAILED = "failed"


class EnabledState(Enum):
    """Backup Manager enabled state as reported by "bmgr enabled"."""
    ENABLED = "enabled"
    DISABLED = "disabled"


class ReadinessState(Enum):
    """Whether the Backup Manager has finished initialization."""
    READY = "ready"
    NOT_READY = "not_ready"


class PollOutcome(Enum):
    """Result of a bounded wait."""
    READY = "ready"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class PollConfig:
    """Bounded-wait contract: total time budget and interval between probes."""
    timeout_seconds: float = 30.0
    poll_interval_seconds: float = 1.0

    def __post_init__(self):
        if self.timeout_seconds < 0:
            raise ValueError(f"timeout_seconds must not be negative: {self.timeout_seconds}")
        if self.poll_interval_seconds < 0:
            raise ValueError(f"poll_interval_seconds must not be negative: {self.poll_interval_seconds}")
