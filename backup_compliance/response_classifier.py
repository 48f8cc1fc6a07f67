"""
Classification of Backup Manager text output.

The device prints human-readable diagnostics with no formal grammar, so
matching is line-oriented and tolerant of surrounding text, but strict about
the literal markers below. Changing any of them on the device side breaks
this module.

Expected formats:
- "bmgr backupnow":  "Package <package> with result: Success"
                     "Package <package> with result:  Backup is not allowed"
- "bmgr restore":    "restoreFinished: 0"
- "bmgr enabled":    "Backup Manager currently enabled" / "... disabled"
- "dumpsys backup":  first line "Backup Manager is enabled / setup complete / not pending init"
                     token line "Current: <token>"
"""

import re
from typing import Iterable, Optional

from backup_compliance.error_handling import TokenNotFoundError, UnparseableOutputError
from backup_compliance.outcomes import BackupResult, EnabledState, ReadinessState, RestoreResult

BACKUP_SUCCESS_RESULT = "success"
BACKUP_NOT_ALLOWED_RESULT = "Backup is not allowed"
RESTORE_FINISHED_SUCCESS_MARKER = "restoreFinished: 0"
BACKUP_DUMPSYS_CURRENT_TOKEN_FIELD = "Current:"

BACKUP_MANAGER_CURRENTLY_ENABLE_STATUS_PATTERN = re.compile(
    r"^Backup Manager currently (enabled|disabled)$")
BACKUP_MANAGER_IS_NOT_PENDING_INIT_PATTERN = re.compile(
    r"^Backup Manager is .* not pending init.*", re.DOTALL)


def _package_results(package_name: str, lines: Iterable[str]) -> Iterable[str]:
    """Yield the trimmed text after the first colon of each line naming package_name."""
    for line in lines:
        if package_name in line:
            _, sep, result = line.partition(":")
            if sep:
                yield result.strip()


def classify_backup_now(package_name: str, lines: Iterable[str]) -> BackupResult:
    for result in _package_results(package_name, lines):
        if result.lower() == BACKUP_SUCCESS_RESULT:
            return BackupResult.SUCCESS
    return BackupResult.PACKAGE_NOT_FOUND


def classify_backup_not_allowed(package_name: str, lines: Iterable[str]) -> BackupResult:
    for result in _package_results(package_name, lines):
        if result == BACKUP_NOT_ALLOWED_RESULT:
            return BackupResult.NOT_ALLOWED
    return BackupResult.PACKAGE_NOT_FOUND


def classify_restore(lines: Iterable[str]) -> RestoreResult:
    if contains_marker(lines, RESTORE_FINISHED_SUCCESS_MARKER):
        return RestoreResult.SUCCESS
    return RestoreResult.FAILED


def classify_enabled_state(line: Optional[str]) -> EnabledState:
    """Parse the first line of "bmgr enabled".

    Raises UnparseableOutputError if the line does not match; that means the
    device's output contract changed, not that backup is in some third state.
    """
    output = (line or "").strip()
    matcher = BACKUP_MANAGER_CURRENTLY_ENABLE_STATUS_PATTERN.match(output)
    if not matcher:
        raise UnparseableOutputError(f"non-parsable output setting bmgr enabled: {line}", output=line)
    return EnabledState(matcher.group(1))


def classify_readiness(line: Optional[str]) -> ReadinessState:
    if line is not None and BACKUP_MANAGER_IS_NOT_PENDING_INIT_PATTERN.fullmatch(line):
        return ReadinessState.READY
    return ReadinessState.NOT_READY


def extract_token(lines: Iterable[str]) -> str:
    for line in lines:
        if BACKUP_DUMPSYS_CURRENT_TOKEN_FIELD in line:
            return line.split(BACKUP_DUMPSYS_CURRENT_TOKEN_FIELD)[1].strip()
    raise TokenNotFoundError("Couldn't find token in output")


def contains_marker(lines: Iterable[str], marker: str) -> bool:
    return any(marker in line for line in lines)
