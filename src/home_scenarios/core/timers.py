"""
Countdown timers on top of the host TimerService.

A countdown timer is a cancel-and-restart debounce timer that publishes its
remaining seconds once per second (typically to a virtual-device control)
and calls an expiry callback when it reaches zero.
"""

import logging
from typing import Any, Callable, Dict, Optional

from home_scenarios.core.adapter import TimerService

logger = logging.getLogger(__name__)

TICK_MS = 1000


class CountdownTimer:
    """Single-purpose countdown timer.

    Arming while already armed cancels the pending countdown first, so at
    most one countdown per timer object is ever pending.
    """

    def __init__(
        self,
        timers: TimerService,
        on_expire: Callable[[], Any],
        display: Optional[Callable[[int], None]] = None,
        name: Optional[str] = None,
    ):
        """Initialize a countdown timer.

        Args:
            timers: Host timer service
            on_expire: Called once when the countdown reaches zero
            display: Called with the remaining seconds on every change
            name: Optional name for debugging
        """
        self.name = name or "countdown"
        self._timers = timers
        self._on_expire = on_expire
        self._display = display
        self._handle: Optional[int] = None
        self._remaining = 0

    @property
    def is_active(self) -> bool:
        return self._handle is not None

    @property
    def remaining_seconds(self) -> int:
        """Get remaining seconds (0 if not active)."""
        return self._remaining if self._handle is not None else 0

    def start(self, seconds: int) -> None:
        """Start or restart the countdown."""
        self.cancel(reset_display=False)
        self._remaining = max(0, int(seconds))
        logger.debug(f"Starting countdown '{self.name}' for {self._remaining}s")
        self._publish()
        if self._remaining == 0:
            self._expire()
            return
        self._handle = self._timers.set_timeout(self._tick, TICK_MS)

    def cancel(self, reset_display: bool = True) -> None:
        """Cancel the countdown; the display returns to zero."""
        if self._handle is not None:
            logger.debug(f"Cancelling countdown '{self.name}'")
            self._timers.clear_timeout(self._handle)
            self._handle = None
        if reset_display and self._remaining != 0:
            self._remaining = 0
            self._publish()

    def _tick(self) -> None:
        self._handle = None
        self._remaining -= 1
        self._publish()
        if self._remaining <= 0:
            self._remaining = 0
            self._expire()
            return
        self._handle = self._timers.set_timeout(self._tick, TICK_MS)

    def _expire(self) -> None:
        logger.debug(f"Countdown '{self.name}' expired")
        try:
            self._on_expire()
        except Exception as err:
            logger.error(f"Error in countdown callback for '{self.name}': {err}", exc_info=True)

    def _publish(self) -> None:
        if self._display is None:
            return
        try:
            self._display(self._remaining)
        except Exception as err:
            logger.error(f"Cannot publish countdown '{self.name}': {err}")

    def get_info(self) -> Dict[str, Any]:
        """Get timer diagnostic info."""
        return {
            "name": self.name,
            "is_active": self.is_active,
            "remaining_seconds": self.remaining_seconds,
        }
