"""
Host adapter interfaces for the scenario engine.

The adapters are the only path between scenarios and the host platform:
topic read/write and control metadata (PlatformAdapter), timers and cron
jobs (TimerService) and durable key/value storage (KeyValueStore). The
integration layer provides concrete implementations; the in-memory mocks
here drive the engine in tests.

Design Principle:
    Adapters stay minimal. Anything a scenario needs beyond reading and
    writing topics, arming timers and storing settings belongs in the
    scenario itself, not in the host.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from typing import Any, Callable, Dict, List, Optional, Tuple

from croniter import croniter

logger = logging.getLogger(__name__)

RuleCallback = Callable[[str, Any], None]
TimerCallback = Callable[[], None]

TYPE_SUFFIX = "#type"
ERROR_SUFFIX = "#error"
READONLY_SUFFIX = "#readonly"


def _utc_now() -> datetime:
    """Get current UTC time (for default factory)."""
    return datetime.now(UTC)


class PlatformAdapter(ABC):
    """
    Abstract interface for topic operations.

    Topics are "device/control" strings. Control metadata is readable
    through pseudo-topics: "<topic>#type" and "<topic>#error".

    A `None` result from get() means the control is not initialized yet and
    must not be confused with a falsy value.
    """

    @abstractmethod
    def get(self, topic: str) -> Any:
        """
        Read a topic.

        Args:
            topic: Topic name ("device/control") or metadata pseudo-topic

        Returns:
            Current value, or None if the control does not exist yet
        """
        pass

    @abstractmethod
    def set(self, topic: str, value: Any) -> None:
        """
        Write a topic.

        Raises:
            KeyError: If the topic cannot be written
        """
        pass

    @abstractmethod
    def define_control(
        self,
        topic: str,
        control_type: str,
        value: Any,
        readonly: bool = False,
        title: Optional[str] = None,
    ) -> None:
        """Create (or redefine) a control owned by the automation."""
        pass

    @abstractmethod
    def set_error(self, topic: str, error: str) -> None:
        """Set the error string of a control ("" clears it)."""
        pass

    @abstractmethod
    def set_readonly(self, topic: str, readonly: bool) -> None:
        """Mark a control read-only (or writable again)."""
        pass

    @abstractmethod
    def define_rule(self, name: str, topics: List[str], callback: RuleCallback) -> Optional[int]:
        """
        Register a change-notification rule.

        The callback receives (topic, new_value) whenever one of the topics
        changes.

        Returns:
            Rule id, or None if the rule could not be created
        """
        pass

    @abstractmethod
    def enable_rule(self, rule_id: int) -> None:
        pass

    @abstractmethod
    def disable_rule(self, rule_id: int) -> None:
        pass

    @abstractmethod
    def run_rule(self, rule_id: int) -> None:
        """Run a rule once, outside of change notification."""
        pass


class TimerService(ABC):
    """
    Abstract interface for timers.

    Timer callbacks fire as independent top-level events; they never run
    inside the call that armed them.
    """

    @abstractmethod
    def set_timeout(self, callback: TimerCallback, delay_ms: int) -> int:
        """Arm a one-shot timer and return its handle."""
        pass

    @abstractmethod
    def clear_timeout(self, handle: Optional[int]) -> None:
        """Cancel a timer. Unknown or None handles are ignored."""
        pass

    @abstractmethod
    def add_cron(self, expression: str, callback: TimerCallback) -> int:
        """
        Register a periodic job.

        Args:
            expression: 6-field cron "sec min hour dom month dow"
            callback: Called every time the expression matches

        Returns:
            Job handle

        Raises:
            ValueError: If the expression is malformed
        """
        pass

    @abstractmethod
    def remove_cron(self, handle: Optional[int]) -> None:
        pass

    @abstractmethod
    def now(self) -> datetime:
        """Current time from the host."""
        pass


class KeyValueStore(ABC):
    """Durable map of scope -> field -> value."""

    @abstractmethod
    def get(self, scope: str, field_name: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set(self, scope: str, field_name: str, value: Any) -> None:
        pass

    @abstractmethod
    def scopes(self) -> List[str]:
        pass


# =============================================================================
# In-memory mocks
# =============================================================================


@dataclass
class _MockControl:
    control_type: str
    value: Any
    readonly: bool = False
    error: str = ""
    title: Optional[str] = None


@dataclass
class _MockRule:
    name: str
    topics: List[str]
    callback: RuleCallback
    enabled: bool = True


@dataclass
class WriteRecord:
    """A single recorded topic write."""

    topic: str
    value: Any
    timestamp: datetime = field(default_factory=_utc_now)


class MockPlatformAdapter(PlatformAdapter):
    """
    Mock platform for testing.

    Change notification is synchronous: set() calls every enabled rule
    watching the topic before returning, and only when the value actually
    changes. Callbacks writing further topics therefore re-enter naturally,
    as they do on the real host.

    Metadata changes (error, readonly) notify rules watching the matching
    pseudo-topic ("<topic>#error").
    """

    def __init__(self) -> None:
        self._controls: Dict[str, _MockControl] = {}
        self._rules: Dict[int, _MockRule] = {}
        self._next_rule_id = 1
        self._writes: List[WriteRecord] = []
        self._failing: set[str] = set()
        self._held: Dict[str, List[Any]] = {}

    # Test helpers

    def add_device_control(self, topic: str, control_type: str, value: Any = None) -> None:
        """Create an external device control without going through a scenario."""
        self._controls[topic] = _MockControl(control_type=control_type, value=value)

    def fail_writes_to(self, topic: str) -> None:
        """Make every later set() on this topic raise."""
        self._failing.add(topic)

    def hold_writes(self, topic: str) -> None:
        """Queue later set() calls on this topic until release_writes() (a slow device)."""
        self._held.setdefault(topic, [])

    def release_writes(self, topic: str) -> None:
        """Apply queued writes in order and stop holding the topic."""
        for value in self._held.pop(topic, []):
            self._apply(topic, value)

    def get_writes(self, topic: Optional[str] = None) -> List[WriteRecord]:
        """Get recorded writes, optionally for one topic."""
        if topic is None:
            return self._writes.copy()
        return [w for w in self._writes if w.topic == topic]

    def get_written_values(self, topic: str) -> List[Any]:
        return [w.value for w in self._writes if w.topic == topic]

    def clear_writes(self) -> None:
        self._writes.clear()

    def is_readonly(self, topic: str) -> bool:
        control = self._controls.get(topic)
        return bool(control and control.readonly)

    def get_title(self, topic: str) -> Optional[str]:
        control = self._controls.get(topic)
        return control.title if control else None

    def rule_names(self) -> List[str]:
        return [rule.name for rule in self._rules.values()]

    def is_rule_enabled(self, rule_id: int) -> bool:
        return self._rules[rule_id].enabled

    # PlatformAdapter implementation

    def get(self, topic: str) -> Any:
        base, suffix = _split_meta(topic)
        control = self._controls.get(base)
        if control is None:
            return None
        if suffix == TYPE_SUFFIX:
            return control.control_type
        if suffix == ERROR_SUFFIX:
            return control.error
        if suffix == READONLY_SUFFIX:
            return control.readonly
        return control.value

    def set(self, topic: str, value: Any) -> None:
        if topic in self._failing:
            raise KeyError(f"Write to {topic} failed")
        if topic not in self._controls:
            raise KeyError(f"Control {topic} does not exist")
        self._writes.append(WriteRecord(topic, value))
        if topic in self._held:
            self._held[topic].append(value)
            return
        self._apply(topic, value)

    def _apply(self, topic: str, value: Any) -> None:
        control = self._controls[topic]
        if control.value == value and type(control.value) is type(value):
            return
        control.value = value
        self._notify(topic, value)

    def define_control(
        self,
        topic: str,
        control_type: str,
        value: Any,
        readonly: bool = False,
        title: Optional[str] = None,
    ) -> None:
        self._controls[topic] = _MockControl(
            control_type=control_type, value=value, readonly=readonly, title=title
        )

    def set_error(self, topic: str, error: str) -> None:
        control = self._controls.get(topic)
        if control is None:
            raise KeyError(f"Control {topic} does not exist")
        if control.error == error:
            return
        control.error = error
        self._notify(topic + ERROR_SUFFIX, error)

    def set_readonly(self, topic: str, readonly: bool) -> None:
        control = self._controls.get(topic)
        if control is None:
            raise KeyError(f"Control {topic} does not exist")
        control.readonly = readonly

    def define_rule(self, name: str, topics: List[str], callback: RuleCallback) -> Optional[int]:
        rule_id = self._next_rule_id
        self._next_rule_id += 1
        self._rules[rule_id] = _MockRule(name=name, topics=list(topics), callback=callback)
        return rule_id

    def enable_rule(self, rule_id: int) -> None:
        self._rules[rule_id].enabled = True

    def disable_rule(self, rule_id: int) -> None:
        self._rules[rule_id].enabled = False

    def run_rule(self, rule_id: int) -> None:
        rule = self._rules[rule_id]
        topic = rule.topics[0] if rule.topics else ""
        rule.callback(topic, self.get(topic))

    def _notify(self, topic: str, value: Any) -> None:
        for rule in list(self._rules.values()):
            if rule.enabled and topic in rule.topics:
                rule.callback(topic, value)


def _split_meta(topic: str) -> Tuple[str, Optional[str]]:
    for suffix in (TYPE_SUFFIX, ERROR_SUFFIX, READONLY_SUFFIX):
        if topic.endswith(suffix):
            return topic[: -len(suffix)], suffix
    return topic, None


@dataclass
class _PendingTimer:
    due_ms: int
    seq: int
    callback: TimerCallback


@dataclass
class _CronJob:
    schedule: croniter
    callback: TimerCallback
    due_ms: int


class MockTimerService(TimerService):
    """
    Virtual-clock timer service for testing.

    Nothing fires until advance() is called. Time moves forward to each due
    timer or cron run in turn. Timers due together fire in arming order and
    before a cron job due at the same moment. Cron schedules are computed by
    croniter.
    """

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._start = start or datetime(2024, 1, 1, tzinfo=UTC)
        self._now_ms = 0
        self._timers: Dict[int, _PendingTimer] = {}
        self._crons: Dict[int, _CronJob] = {}
        self._next_handle = 1
        self._seq = 0

    def _handle(self) -> int:
        handle = self._next_handle
        self._next_handle += 1
        return handle

    def pending_timers(self) -> int:
        return len(self._timers)

    def advance(self, seconds: float) -> None:
        """Move the virtual clock forward, firing everything that comes due."""
        target = self._now_ms + int(round(seconds * 1000))
        while True:
            next_timer = min(
                self._timers.items(),
                key=lambda item: (item[1].due_ms, item[1].seq),
                default=None,
            )
            next_cron = min(self._crons.items(), key=lambda item: item[1].due_ms, default=None)
            cron_due = next_cron[1].due_ms if next_cron is not None else None
            if next_timer is not None and next_timer[1].due_ms <= target and (
                cron_due is None or next_timer[1].due_ms <= cron_due
            ):
                handle, timer = next_timer
                self._now_ms = max(self._now_ms, timer.due_ms)
                del self._timers[handle]
                self._fire(timer.callback)
                continue
            if cron_due is not None and cron_due <= target:
                job = next_cron[1]
                self._now_ms = max(self._now_ms, cron_due)
                job.due_ms = self._next_cron_ms(job.schedule)
                self._fire(job.callback)
                continue
            break
        self._now_ms = target

    def _next_cron_ms(self, schedule: croniter) -> int:
        moment = schedule.get_next(datetime)
        return int(round((moment - self._start).total_seconds() * 1000))

    def _fire(self, callback: TimerCallback) -> None:
        try:
            callback()
        except Exception as e:
            logger.error(f"Error in timer callback: {e}", exc_info=True)

    # TimerService implementation

    def set_timeout(self, callback: TimerCallback, delay_ms: int) -> int:
        handle = self._handle()
        self._seq += 1
        self._timers[handle] = _PendingTimer(
            due_ms=self._now_ms + max(0, int(delay_ms)), seq=self._seq, callback=callback
        )
        return handle

    def clear_timeout(self, handle: Optional[int]) -> None:
        if handle is not None:
            self._timers.pop(handle, None)

    def add_cron(self, expression: str, callback: TimerCallback) -> int:
        schedule = croniter(expression, self.now(), second_at_beginning=True)
        handle = self._handle()
        self._crons[handle] = _CronJob(schedule, callback, self._next_cron_ms(schedule))
        return handle

    def remove_cron(self, handle: Optional[int]) -> None:
        if handle is not None:
            self._crons.pop(handle, None)

    def now(self) -> datetime:
        return self._start + timedelta(milliseconds=self._now_ms)


class MemoryKeyValueStore(KeyValueStore):
    """In-memory KeyValueStore."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self._data: Dict[str, Dict[str, Any]] = defaultdict(dict)
        for scope, values in (initial or {}).items():
            self._data[scope].update(values)

    def get(self, scope: str, field_name: str, default: Any = None) -> Any:
        return self._data.get(scope, {}).get(field_name, default)

    def set(self, scope: str, field_name: str, value: Any) -> None:
        self._data[scope][field_name] = value

    def scopes(self) -> List[str]:
        return list(self._data)

    def dump(self) -> Dict[str, Dict[str, Any]]:
        return {scope: dict(values) for scope, values in self._data.items()}
