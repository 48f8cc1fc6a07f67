"""
Error Handling and Structured Logging
=====================================

This module defines the failures raised while driving the Backup Manager and
the utilities used to classify and log them.

Two tiers of failure exist:
- Hard test failures: the device output violated the expected diagnostic
  format (result line missing, restore marker missing, token missing,
  unparseable enabled state). These abort the calling test.
- Transport I/O errors: raised by the command channel and propagated
  unchanged. Nothing here retries them.

Features:
- Exception hierarchy rooted at BackupComplianceError
- Error classification by category and severity
- Structured JSON logging with a per-thread context stack
- Exception logging decorator
"""

import functools
import hashlib
import json
import logging
import socket
import subprocess
import threading
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import paramiko
from netmiko import NetmikoAuthenticationException, NetmikoTimeoutException

# Configure logging
logger = logging.getLogger(__name__)


class BackupComplianceError(Exception):
    """Base class for all errors raised by this package."""


class BackupAssertionError(BackupComplianceError, AssertionError):
    """Device output did not contain the expected result marker."""


class TokenNotFoundError(BackupAssertionError):
    """The "Current:" token field is missing from "dumpsys backup" output."""


class UnparseableOutputError(BackupComplianceError):
    """Device output could not be parsed at all."""

    def __init__(self, message: str, output: Optional[str] = None):
        super().__init__(message)
        self.output = output


class InitializationTimeoutError(BackupComplianceError, TimeoutError):
    """The Backup Manager did not finish initialization in time."""


class ChannelConfigurationError(BackupComplianceError):
    """The command channel settings are invalid."""


class ErrorCategory(Enum):
    """Error category classification."""
    TRANSPORT = "transport"
    AUTHENTICATION = "authentication"
    TIMEOUT = "timeout"
    PROTOCOL = "protocol"
    ASSERTION = "assertion"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorInfo:
    """Detailed error information."""
    error_id: str
    timestamp: datetime
    category: ErrorCategory
    severity: ErrorSeverity
    error_type: str
    error_message: str
    context: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None
    suggested_action: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "category": self.category.value,
            "severity": self.severity.value,
            "type": self.error_type,
            "message": self.error_message,
            "context": self.context,
            "stack_trace": self.stack_trace,
            "suggested_action": self.suggested_action,
        }


class ErrorClassifier:
    """Classifies and categorizes errors."""

    @staticmethod
    def classify_error(exception: Exception) -> Tuple[ErrorCategory, ErrorSeverity]:
        """Classify error into category and severity."""
        # Order matters: TokenNotFoundError is an AssertionError, timeouts are OSErrors
        if isinstance(exception, UnparseableOutputError):
            return ErrorCategory.PROTOCOL, ErrorSeverity.HIGH
        if isinstance(exception, AssertionError):
            return ErrorCategory.ASSERTION, ErrorSeverity.HIGH
        if isinstance(exception, ChannelConfigurationError):
            return ErrorCategory.CONFIGURATION, ErrorSeverity.CRITICAL
        if isinstance(exception, (paramiko.AuthenticationException, NetmikoAuthenticationException)):
            return ErrorCategory.AUTHENTICATION, ErrorSeverity.CRITICAL
        if isinstance(exception, (TimeoutError, socket.timeout, NetmikoTimeoutException,
                                  subprocess.TimeoutExpired)):
            return ErrorCategory.TIMEOUT, ErrorSeverity.MEDIUM
        if isinstance(exception, (OSError, paramiko.SSHException, subprocess.SubprocessError)):
            return ErrorCategory.TRANSPORT, ErrorSeverity.HIGH

        return ErrorCategory.UNKNOWN, ErrorSeverity.MEDIUM

    @staticmethod
    def suggest_action(exception: Exception) -> str:
        """Suggest corrective action for error."""
        category, _ = ErrorClassifier.classify_error(exception)

        suggestions = {
            ErrorCategory.TRANSPORT: "Check device connectivity and that the shell transport is reachable",
            ErrorCategory.AUTHENTICATION: "Verify username, password or key file for the device",
            ErrorCategory.TIMEOUT: "Increase command timeout or check device responsiveness",
            ErrorCategory.PROTOCOL: "Device output format changed; check the platform version",
            ErrorCategory.ASSERTION: "Inspect the raw command output for the expected result line",
            ErrorCategory.CONFIGURATION: "Review the BMGR_* settings",
            ErrorCategory.UNKNOWN: "Review error details and logs",
        }

        return suggestions[category]

    @staticmethod
    def build_error_info(exception: Exception, context: Optional[Dict[str, Any]] = None) -> ErrorInfo:
        category, severity = ErrorClassifier.classify_error(exception)
        return ErrorInfo(
            error_id=hashlib.md5(f"{type(exception).__name__}{exception}".encode()).hexdigest(),
            timestamp=datetime.now(timezone.utc),
            category=category,
            severity=severity,
            error_type=type(exception).__name__,
            error_message=str(exception),
            context=dict(context or {}),
            stack_trace=traceback.format_exc(),
            suggested_action=ErrorClassifier.suggest_action(exception),
        )


class StructuredLogger:
    """Logger with structured JSON output and a per-thread context stack."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self._local = threading.local()
        self._lock = threading.RLock()
        self.recent_errors: List[ErrorInfo] = []

    @property
    def context_stack(self) -> List[Dict[str, Any]]:
        """Context entries pushed by the calling thread."""
        stack = getattr(self._local, "stack", None)
        if stack is None:
            stack = self._local.stack = []
        return stack

    @contextmanager
    def context(self, **context_vars):
        """Add context variables for logging."""
        self.context_stack.append(context_vars)
        try:
            yield
        finally:
            self.context_stack.pop()

    @contextmanager
    def operation(self, name: str, **context_vars):
        """Push context for an operation and log any failure before the context is dropped."""
        with self.context(operation=name, **context_vars):
            try:
                yield
            except Exception as e:
                self.error(f"{name} failed", exception=e)
                raise

    def _get_context(self) -> Dict[str, Any]:
        context = {}
        for ctx in self.context_stack:
            context.update(ctx)
        return context

    def _create_log_entry(self, level: str, message: str, **kwargs) -> Dict[str, Any]:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "message": message,
            "context": self._get_context()
        }
        entry.update(kwargs)
        return entry

    def debug(self, message: str, **kwargs):
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(json.dumps(self._create_log_entry("DEBUG", message, **kwargs), default=str))

    def info(self, message: str, **kwargs):
        entry = self._create_log_entry("INFO", message, **kwargs)
        self.logger.info(json.dumps(entry, default=str))

    def warning(self, message: str, **kwargs):
        entry = self._create_log_entry("WARNING", message, **kwargs)
        self.logger.warning(json.dumps(entry, default=str))

    def error(self, message: str, exception: Optional[Exception] = None, **kwargs):
        """Log error message with optional exception details."""
        entry = self._create_log_entry("ERROR", message, **kwargs)

        if exception:
            error_info = ErrorClassifier.build_error_info(exception, self._get_context())
            entry["exception"] = {
                "type": error_info.error_type,
                "message": error_info.error_message,
                "category": error_info.category.value,
                "severity": error_info.severity.value,
                "suggested_action": error_info.suggested_action
            }
            with self._lock:
                self.recent_errors.append(error_info)
                del self.recent_errors[:-100]

        self.logger.error(json.dumps(entry, default=str))


def log_exceptions(logger_instance: Optional[StructuredLogger] = None):
    """Decorator for automatic exception logging. Exceptions are re-raised."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if logger_instance:
                    logger_instance.error(f"Exception in {func.__name__}", exception=e)
                else:
                    logger.error(f"Exception in {func.__name__}: {e}")
                raise
        return wrapper
    return decorator
