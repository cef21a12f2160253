"""
History plugin: a small per-topic ring buffer of (value, timestamp).

Runs at a higher processor priority than event dispatch. By the time a
dispatch callback asks for the "previous" value, the new value has already
been stored, so index -1 is the value before the current change.
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Callable, Deque, Dict, List, Optional

from home_scenarios.core.topic_manager import Plugin, TopicManager

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 5
HISTORY_PRIORITY = 10


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class HistoryRecord:
    value: Any
    timestamp: datetime


class TopicHistory:
    """
    Bounded history of topic values.

    Attributes:
        max_length: Records kept per topic (0 = unbounded)
    """

    def __init__(
        self,
        max_length: int = DEFAULT_MAX_LENGTH,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if max_length < 0:
            raise ValueError(f"max_length must be >= 0, got {max_length}")
        self.max_length = max_length
        self._clock = clock or _utc_now
        self._buffers: Dict[str, Deque[HistoryRecord]] = {}

    def store(self, topic: str, value: Any) -> None:
        """Append a value; the oldest record is evicted when over capacity."""
        buffer = self._buffers.get(topic)
        if buffer is None:
            buffer = deque(maxlen=self.max_length or None)
            self._buffers[topic] = buffer
        buffer.append(HistoryRecord(value, self._clock()))

    def get_history(self, topic: str) -> List[HistoryRecord]:
        """Get all records of a topic, oldest first."""
        return list(self._buffers.get(topic, ()))

    def get_value_at(self, topic: str, index: int = 0) -> Any:
        """
        Get a past value.

        Args:
            topic: Topic name
            index: 0 for the current value, -1 for the previous one, ...

        Returns:
            The value, or None if the history is not that deep
        """
        if index > 0:
            logger.warning(f"History index must be 0 or negative, got {index}")
            return None
        buffer = self._buffers.get(topic)
        if not buffer or -index >= len(buffer):
            return None
        return buffer[len(buffer) - 1 + index].value

    def clear(self, topic: Optional[str] = None) -> None:
        if topic is None:
            self._buffers.clear()
        else:
            self._buffers.pop(topic, None)


class HistoryPlugin(Plugin):
    """
    Attaches `manager.history` (a TopicHistory) and stores every change.

    Options:
        max_length: Records kept per topic (default 5, 0 = unbounded)
        priority: Processor priority (default 10)
        clock: Callable returning the record timestamp
    """

    @property
    def name(self) -> str:
        return "history"

    def install(self, manager: TopicManager, options: Dict[str, Any]) -> None:
        history = TopicHistory(
            max_length=options.get("max_length", DEFAULT_MAX_LENGTH),
            clock=options.get("clock"),
        )
        manager.history = history
        manager.add_processor(history.store, options.get("priority", HISTORY_PRIORITY))
