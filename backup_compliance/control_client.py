"""
Backup Manager Control Client
=============================

This module provides the public entry point for driving the device Backup
Manager: it issues bmgr / dumpsys commands over a CommandChannel, reads the
output with an OutputReader and turns it into outcomes with the response
classifier.

Operations come in three flavours:
- raw: return the command's output stream (the caller must close it)
- sync / text: run the command to completion, optionally returning its text
- parsed: return a structured outcome, or raise BackupAssertionError when the
  expected result marker is absent
"""

import logging
import threading
from typing import BinaryIO, List, Optional

from backup_compliance import response_classifier
from backup_compliance.config import (
    Settings,
    configure_logging,
    settings as default_settings,
)
from backup_compliance.error_handling import (
    BackupAssertionError,
    InitializationTimeoutError,
    StructuredLogger,
    log_exceptions,
)
from backup_compliance.outcomes import (
    BackupResult,
    EnabledState,
    PollConfig,
    PollOutcome,
    ReadinessState,
    RestoreResult,
)
from backup_compliance.output_reader import OutputReader
from backup_compliance.poll_loop import PollLoop
from backup_compliance.ssh_connection import CommandChannel, create_command_channel

# Configure logging
logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)

BACKUP_MANAGER_ENABLED_MARKER = "currently enabled"


class BackupControlClient:
    """Drives the device Backup Manager through a shell command channel."""

    def __init__(self, channel: CommandChannel, reader: Optional[OutputReader] = None,
                 settings: Optional[Settings] = None):
        self.channel = channel
        self.settings = settings or default_settings
        self.reader = reader or OutputReader(self.settings.output_encoding)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BackupControlClient":
        """Build a client with the command channel selected in settings."""
        settings = settings or default_settings
        return cls(create_command_channel(settings), settings=settings)

    def close(self):
        self.channel.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # Raw command access

    def execute_shell_command(self, command: str) -> BinaryIO:
        """Kick off command and return its output stream. The caller must close it."""
        logger.debug(f"Issuing shell command: {command}")
        return self.channel.execute(command)

    def execute_shell_command_sync(self, command: str):
        """Run command and wait for it to complete, discarding output."""
        self.reader.drain_and_close(self.execute_shell_command(command))

    def read_lines(self, command: str) -> List[str]:
        return self.reader.read_all(self.execute_shell_command(command))

    def run_raw(self, command: str) -> str:
        """Run command and return its full output, lines joined with newlines."""
        return "\n".join(self.read_lines(command))

    get_shell_command_output = run_raw

    # bmgr backupnow

    def backup_now(self, package_name: str) -> BinaryIO:
        """Execute "bmgr backupnow <package>" and return its output stream."""
        return self.execute_shell_command(f"bmgr backupnow {package_name}")

    def backup_now_sync(self, package_name: str):
        self.reader.drain_and_close(self.backup_now(package_name))

    def get_backup_now_output(self, package_name: str) -> str:
        return "\n".join(self.reader.read_all(self.backup_now(package_name)))

    def backup_now_and_classify(self, package_name: str) -> BackupResult:
        lines = self.reader.read_all(self.backup_now(package_name))
        return response_classifier.classify_backup_now(package_name, lines)

    def backup_now_and_assert_success(self, package_name: str):
        """Execute "bmgr backupnow <package>" and assert the package backed up successfully."""
        with structured_logger.operation("backupnow", package=package_name):
            result = self.backup_now_and_classify(package_name)
            if result is not BackupResult.SUCCESS:
                raise BackupAssertionError("Couldn't find package in output or backup wasn't successful")

    def backup_now_and_assert_backup_not_allowed(self, package_name: str):
        """Execute "bmgr backupnow <package>" and assert backup was refused for the package."""
        with structured_logger.operation("backupnow", package=package_name):
            lines = self.reader.read_all(self.backup_now(package_name))
            result = response_classifier.classify_backup_not_allowed(package_name, lines)
            if result is not BackupResult.NOT_ALLOWED:
                raise BackupAssertionError("Didn't find 'Backup not allowed' in the output")

    # bmgr restore

    def restore(self, token: str, package_name: str) -> BinaryIO:
        """Execute "bmgr restore <token> <package>" and return its output stream."""
        return self.execute_shell_command(f"bmgr restore {token} {package_name}")

    def restore_sync(self, token: str, package_name: str):
        self.reader.drain_and_close(self.restore(token, package_name))

    def get_restore_output(self, token: str, package_name: str) -> str:
        return "\n".join(self.reader.read_all(self.restore(token, package_name)))

    def restore_and_classify(self, token: str, package_name: str) -> RestoreResult:
        return response_classifier.classify_restore(self.reader.read_all(self.restore(token, package_name)))

    def restore_and_assert_success(self, token: str, package_name: str):
        """Execute "bmgr restore <token> <package>" and assert the restore finished cleanly."""
        with structured_logger.operation("restore", token=token, package=package_name):
            if self.restore_and_classify(token, package_name) is not RestoreResult.SUCCESS:
                raise BackupAssertionError("Restore not successful")

    def restore_from_local_transport_and_assert_success(self, package_name: str):
        """Restore package from the local transport's restore set."""
        self.restore_and_assert_success(self.settings.local_transport_token, package_name)

    # Transport and enabled state

    def is_local_transport_selected(self) -> bool:
        marker = f"* {self.settings.local_transport}"
        stream = self.execute_shell_command("bmgr list transports")
        return self.reader.scan_for_line(stream, lambda line: marker in line) is not None

    def is_backup_enabled(self) -> bool:
        stream = self.execute_shell_command("bmgr enabled")
        return self.reader.scan_for_line(
            stream, lambda line: BACKUP_MANAGER_ENABLED_MARKER in line) is not None

    def get_enabled_state(self) -> EnabledState:
        line = self.reader.read_first_line(self.execute_shell_command("bmgr enabled"))
        return response_classifier.classify_enabled_state(line)

    @log_exceptions(structured_logger)
    def enable_backup(self, enable: bool) -> bool:
        """Set the Backup Manager enabled state and return whether it was previously enabled.

        Raises UnparseableOutputError if the current state cannot be read; the
        enable command is not issued in that case.
        """
        previously_enabled = self.get_enabled_state() is EnabledState.ENABLED
        self.execute_shell_command_sync(f"bmgr enable {str(bool(enable)).lower()}")
        logger.info(f"Backup Manager enabled set to {enable} (was {previously_enabled})")
        return previously_enabled

    set_enabled = enable_backup

    # dumpsys backup

    def dumpsys_backup(self) -> BinaryIO:
        """Execute "dumpsys backup" and return its output stream."""
        return self.execute_shell_command("dumpsys backup")

    @log_exceptions(structured_logger)
    def get_current_token(self) -> str:
        """Return the current restore set token from "dumpsys backup"."""
        return response_classifier.extract_token(self.reader.read_all(self.dumpsys_backup()))

    def check_initialization(self) -> ReadinessState:
        """Probe once whether the Backup Manager has finished initializing."""
        return response_classifier.classify_readiness(self.reader.read_first_line(self.dumpsys_backup()))

    def wait_for_backup_initialization(self, poll_config: Optional[PollConfig] = None,
                                       stop_event: Optional[threading.Event] = None) -> PollOutcome:
        """Poll "dumpsys backup" until the Backup Manager is not pending init.

        Returns PollOutcome.TIMED_OUT if the deadline passes or stop_event is set
        during a wait between probes.
        """
        poll_config = poll_config or self.settings.poll_config()
        outcome = PollLoop(stop_event=stop_event).poll_until_ready(self.check_initialization, poll_config)

        if outcome is PollOutcome.READY:
            logger.info("Backup Manager initialization complete")
        else:
            structured_logger.warning(
                "Backup Manager still pending init",
                timeout_seconds=poll_config.timeout_seconds,
                poll_interval_seconds=poll_config.poll_interval_seconds,
            )
        return outcome

    def wait_for_backup_initialization_or_fail(self, poll_config: Optional[PollConfig] = None,
                                               stop_event: Optional[threading.Event] = None):
        if self.wait_for_backup_initialization(poll_config, stop_event) is not PollOutcome.READY:
            raise InitializationTimeoutError("Timed out waiting for backup initialization")


if __name__ == "__main__":
    # Example usage against the device configured through BMGR_* settings
    configure_logging("DEBUG")

    with BackupControlClient.from_settings() as client:
        print(f"Initialization: {client.wait_for_backup_initialization().value}")
        print(f"Backup enabled: {client.is_backup_enabled()}")
        print(f"Local transport selected: {client.is_local_transport_selected()}")
        print(f"Current token: {client.get_current_token()}")
