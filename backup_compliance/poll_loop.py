"""
Bounded, cancellable polling.

Probes run strictly one after another with a fixed wait between them. The
wait is done on a threading.Event so another thread can cut it short with
cancel(); an in-flight probe is always allowed to finish. A cancelled wait
reports TIMED_OUT, the same as a real timeout.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

from backup_compliance.outcomes import PollConfig, PollOutcome, ReadinessState

# Configure logging
logger = logging.getLogger(__name__)


def _is_ready(result: Any) -> bool:
    if isinstance(result, ReadinessState):
        return result is ReadinessState.READY
    if isinstance(result, PollOutcome):
        return result is PollOutcome.READY
    return bool(result)


class PollLoop:
    """Repeats a probe until it reports ready or the deadline passes."""

    def __init__(self, clock: Callable[[], float] = time.monotonic,
                 stop_event: Optional[threading.Event] = None):
        self.clock = clock
        self.stop_event = stop_event if stop_event is not None else threading.Event()

    def cancel(self):
        """Abandon the wait. The loop returns TIMED_OUT after the current probe.

        Cancellation sticks: a later poll_until_ready on this loop gives up
        after its first probe unless reset() is called first.
        """
        self.stop_event.set()

    def reset(self):
        """Clear a previous cancel() so the loop can poll again."""
        self.stop_event.clear()

    def poll_until_ready(self, probe: Callable[[], Any], poll_config: PollConfig) -> PollOutcome:
        deadline = self.clock() + poll_config.timeout_seconds
        attempts = 0

        while self.clock() < deadline:
            attempts += 1
            if _is_ready(probe()):
                logger.debug(f"Probe reported ready after {attempts} attempt(s)")
                return PollOutcome.READY

            if self.stop_event.wait(poll_config.poll_interval_seconds):
                logger.info(f"Polling cancelled after {attempts} attempt(s)")
                return PollOutcome.TIMED_OUT

        logger.debug(f"Polling deadline of {poll_config.timeout_seconds}s passed after {attempts} attempt(s)")
        return PollOutcome.TIMED_OUT


def poll_until_ready(probe: Callable[[], Any], timeout_seconds: float = 30.0,
                     poll_interval_seconds: float = 1.0,
                     stop_event: Optional[threading.Event] = None) -> PollOutcome:
    """Convenience wrapper around PollLoop with a real clock."""
    config = PollConfig(timeout_seconds=timeout_seconds, poll_interval_seconds=poll_interval_seconds)
    return PollLoop(stop_event=stop_event).poll_until_ready(probe, config)
