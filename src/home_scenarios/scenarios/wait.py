"""
Wait for linked controls to appear after a (re)start.

Controls are ready when they exist (non-None value) and carry no critical
error. Readiness is checked immediately and then polled until the timeout.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from home_scenarios.core.adapter import ERROR_SUFFIX, PlatformAdapter, TimerService

logger = logging.getLogger(__name__)

CONTROLS_WAIT_TIMEOUT_MS = 60000
CONTROLS_WAIT_PERIOD_MS = 5000


class ControlsTimeoutError(Exception):
    """Raised (passed to the callback) when controls are not ready in time."""

    def __init__(self, not_ready: List[str]) -> None:
        self.not_ready = not_ready
        super().__init__(f"Timeout expired waiting for {len(not_ready)} controls: {', '.join(not_ready)}")


WaitCallback = Callable[[Optional[ControlsTimeoutError]], None]


def has_critical_err(error: Any) -> bool:
    """A critical error is an error string containing 'r' or 'w'."""
    if not isinstance(error, str):
        return False
    return "r" in error or "w" in error


def is_control_healthy(platform: PlatformAdapter, topic: str) -> bool:
    if platform.get(topic) is None:
        return False
    return not has_critical_err(platform.get(topic + ERROR_SUFFIX))


@dataclass
class ControlsWaiter:
    """
    Poll controls until they are all healthy or the timeout expires.

    The callback receives None on success or a ControlsTimeoutError.
    """

    platform: PlatformAdapter
    timers: TimerService
    controls: List[str]
    callback: WaitCallback
    timeout_ms: int = CONTROLS_WAIT_TIMEOUT_MS
    period_ms: int = CONTROLS_WAIT_PERIOD_MS
    elapsed_ms: int = field(default=0, init=False)
    _handle: Optional[int] = field(default=None, init=False, repr=False)

    def not_ready(self) -> List[str]:
        return [topic for topic in self.controls if not is_control_healthy(self.platform, topic)]

    def start(self) -> None:
        self._check()

    def cancel(self) -> None:
        self.timers.clear_timeout(self._handle)
        self._handle = None

    def _check(self) -> None:
        self._handle = None
        pending = self.not_ready()
        if not pending:
            self.callback(None)
            return
        if self.elapsed_ms >= self.timeout_ms:
            logger.debug(f"Controls not ready after {self.elapsed_ms} ms: {pending}")
            self.callback(ControlsTimeoutError(pending))
            return
        self.elapsed_ms += self.period_ms
        self._handle = self.timers.set_timeout(self._check, self.period_ms)


def wait_controls(
    platform: PlatformAdapter,
    timers: TimerService,
    controls: List[str],
    callback: WaitCallback,
    timeout_ms: int = CONTROLS_WAIT_TIMEOUT_MS,
    period_ms: int = CONTROLS_WAIT_PERIOD_MS,
) -> ControlsWaiter:
    """Start waiting for controls; an empty list succeeds at once."""
    waiter = ControlsWaiter(platform, timers, list(controls), callback, timeout_ms, period_ms)
    waiter.start()
    return waiter
