"""
Backup Manager Compliance Client
================================

This package drives a target device's Backup Manager over a remote shell and
interprets its text output for automated compliance testing:
- Command channels over SSH (Paramiko / Netmiko) and adb
- Line-oriented output reading with guaranteed stream closure
- Classification of bmgr / dumpsys output into structured outcomes
- Bounded, cancellable polling for Backup Manager initialization
- Error classification and structured logging
"""

from backup_compliance.config import LOCAL_TRANSPORT, LOCAL_TRANSPORT_TOKEN, Settings, settings
from backup_compliance.control_client import BackupControlClient
from backup_compliance.error_handling import (
    BackupAssertionError,
    BackupComplianceError,
    ChannelConfigurationError,
    InitializationTimeoutError,
    TokenNotFoundError,
    UnparseableOutputError,
)
from backup_compliance.outcomes import (
    BackupResult,
    EnabledState,
    PollConfig,
    PollOutcome,
    ReadinessState,
    RestoreResult,
)

__version__ = "1.0.0"
__author__ = "Backup Compliance Team"

__all__ = [
    "LOCAL_TRANSPORT",
    "LOCAL_TRANSPORT_TOKEN",
    "Settings",
    "settings",
    "BackupControlClient",
    "BackupAssertionError",
    "BackupComplianceError",
    "ChannelConfigurationError",
    "InitializationTimeoutError",
    "TokenNotFoundError",
    "UnparseableOutputError",
    "BackupResult",
    "EnabledState",
    "PollConfig",
    "PollOutcome",
    "ReadinessState",
    "RestoreResult",
]
