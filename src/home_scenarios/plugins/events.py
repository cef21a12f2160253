"""
Event dispatch plugin.

Scenarios subscribe callbacks to (topic, event name) pairs; on every topic
change the dispatcher runs the resolver of each subscribed event and calls
the callbacks whose resolver triggers. Callbacks must return a bool; the
outcome of every triggered event is reported in an EventProcessingResult.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from home_scenarios.core.resolvers import DEFAULT_RESOLVERS, EventContext, EventResolverRegistry
from home_scenarios.core.topic_manager import Plugin, TopicManager

logger = logging.getLogger(__name__)

EventCallback = Callable[[Any], Optional[bool]]

EVENTS_PLUGIN_NAME = "events"
EVENTS_PRIORITY = 5


# =============================================================================
# Models
# =============================================================================


@dataclass(frozen=True)
class ControlBinding:
    """
    A control together with the event that should be watched on it.

    Attributes:
        control: Topic name ("device/control")
        behavior_type: Resolver name (e.g. "whenEnabled")
        action_value: Resolver parameter (threshold) or action parameter
    """

    control: str
    behavior_type: str
    action_value: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], behavior_key: str = "behaviorType") -> "ControlBinding":
        """
        Build from the config shape {control, behaviorType, actionValue}.

        Older configs name the control "mqttTopicName".
        """
        control = data.get("control") or data.get("mqttTopicName")
        if not isinstance(control, str):
            raise ValueError(f"Binding has no control topic: {data}")
        return cls(
            control=control,
            behavior_type=data[behavior_key],
            action_value=data.get("actionValue"),
        )


class ProcessingStatus(Enum):
    """Overall outcome of process_event()."""

    TOPIC_NOT_FOUND = "topic_not_found"
    NO_EVENTS_REGISTERED = "no_events_registered"
    PROCESSED_SUCCESS = "processed_success"
    PROCESSED_WITH_ISSUE = "processed_with_issue"


class CallbackStatus(Enum):
    """Outcome of one triggered callback."""

    SUCCESS = "success"
    FAILURE = "failure"
    PROCESSED_WITHOUT_RESULT = "processed_without_res"
    ERROR = "error"


@dataclass
class EventProcessingResult:
    """
    Report of one process_event() call.

    Attributes:
        status: Overall status
        message: Human-readable summary
        details: (event name, callback status) per triggered event
    """

    status: ProcessingStatus
    message: str
    details: List[Tuple[str, CallbackStatus]] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return self.status == ProcessingStatus.PROCESSED_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "details": [
                {"event_type": event_type, "status": status.value}
                for event_type, status in self.details
            ],
        }


@dataclass
class Subscription:
    callback: EventCallback
    action_value: Any = None


def _classify(result: Any) -> CallbackStatus:
    if result is True:
        return CallbackStatus.SUCCESS
    if result is False:
        return CallbackStatus.FAILURE
    return CallbackStatus.PROCESSED_WITHOUT_RESULT


# =============================================================================
# Dispatcher
# =============================================================================


class EventDispatcher:
    """
    Subscription API and event processing, attached as `manager.events`.

    Exactly one callback exists per (topic, event name); registering again
    replaces the previous callback and logs a warning.
    """

    def __init__(self, manager: TopicManager, resolvers: EventResolverRegistry) -> None:
        self._manager = manager
        self.resolvers = resolvers

    def _subscriptions(self, topic: str, create: bool = False) -> Optional[Dict[str, Subscription]]:
        data = self._manager.register_topic(topic) if create else self._manager.get_topic_data(topic)
        if data is None:
            return None
        if create:
            return data.setdefault(EVENTS_PLUGIN_NAME, {})
        return data.get(EVENTS_PLUGIN_NAME)

    # =========================================================================
    # Registration
    # =========================================================================

    def register_single_event(
        self,
        topic: str,
        event_type: str,
        callback: EventCallback,
        action_value: Any = None,
    ) -> bool:
        """
        Subscribe a callback to one event of one topic.

        Returns:
            False if the callback is not callable or the event is unknown
        """
        if not callable(callback):
            logger.error(f"Callback for {topic} / {event_type} must be callable")
            return False
        if event_type not in self.resolvers:
            logger.error(f"Unknown event type '{event_type}', event for {topic} not registered")
            return False

        subscriptions = self._subscriptions(topic, create=True)
        if event_type in subscriptions:
            logger.warning(
                f"Event '{event_type}' for topic '{topic}' is already registered, "
                f"overwriting the callback"
            )
        subscriptions[event_type] = Subscription(callback, action_value)
        logger.debug(f"Event registered: topic={topic}, type={event_type}")
        return True

    def register_opposite_event(
        self,
        topic: str,
        event_type: str,
        callback: EventCallback,
        action_value: Any = None,
    ) -> bool:
        """Subscribe a callback to the opposite of event_type (fails if none exists)."""
        if event_type not in self.resolvers:
            logger.error(f"Unknown event type '{event_type}', cannot register opposite")
            return False
        opposite = self.resolvers.opposite_of(event_type)
        if opposite is None:
            logger.error(f"Event '{event_type}' has no opposite event, nothing registered for {topic}")
            return False
        return self.register_single_event(topic, opposite.name, callback, action_value)

    def register_both_events(
        self,
        topic: str,
        event_type: str,
        callback: EventCallback,
        opposite_callback: EventCallback,
        action_value: Any = None,
    ) -> bool:
        main_ok = self.register_single_event(topic, event_type, callback, action_value)
        opposite_ok = self.register_opposite_event(topic, event_type, opposite_callback, action_value)
        return main_ok and opposite_ok

    def register_multiple_events(
        self,
        topics: Iterable[str],
        event_type: str,
        callback: EventCallback,
        action_value: Any = None,
    ) -> bool:
        if isinstance(topics, str):
            logger.error(f"Topics must be a list of strings, got a string: {topics}")
            return False
        ok = True
        for index, topic in enumerate(topics):
            if not isinstance(topic, str):
                logger.error(f"Invalid topic at index {index}: must be a string, skipping")
                ok = False
                continue
            ok = self.register_single_event(topic, event_type, callback, action_value) and ok
        return ok

    def register_single_event_with_behavior(
        self, binding: ControlBinding, callback: EventCallback
    ) -> bool:
        """Subscribe using the binding's behavior type and action value."""
        if not binding.control or not binding.behavior_type:
            logger.error("Invalid binding: control and behavior type are required")
            return False
        return self.register_single_event(
            binding.control, binding.behavior_type, callback, binding.action_value
        )

    def register_single_event_with_behavior_opposite(
        self,
        binding: ControlBinding,
        callback: EventCallback,
        opposite_callback: EventCallback,
    ) -> bool:
        if not binding.control or not binding.behavior_type:
            logger.error("Invalid binding: control and behavior type are required")
            return False
        return self.register_both_events(
            binding.control,
            binding.behavior_type,
            callback,
            opposite_callback,
            binding.action_value,
        )

    def register_multiple_events_with_behavior(
        self, bindings: Iterable[ControlBinding], callback: EventCallback
    ) -> bool:
        ok = True
        for binding in bindings:
            ok = self.register_single_event_with_behavior(binding, callback) and ok
        return ok

    def register_multiple_events_with_behavior_opposite(
        self,
        bindings: Iterable[ControlBinding],
        callback: EventCallback,
        opposite_callback: EventCallback,
    ) -> bool:
        ok = True
        for binding in bindings:
            ok = (
                self.register_single_event_with_behavior_opposite(binding, callback, opposite_callback)
                and ok
            )
        return ok

    # =========================================================================
    # Processing
    # =========================================================================

    def _previous_value(self, topic: str) -> Any:
        history = getattr(self._manager, "history", None)
        if history is None:
            return None
        return history.get_value_at(topic, -1)

    def process_event(self, topic: str, value: Any) -> EventProcessingResult:
        """
        Dispatch a topic change to every subscribed event whose resolver triggers.

        Args:
            topic: Topic that changed
            value: New value

        Returns:
            EventProcessingResult with one detail per triggered event
        """
        subscriptions = self._subscriptions(topic)
        if subscriptions is None:
            return EventProcessingResult(
                ProcessingStatus.TOPIC_NOT_FOUND,
                f"Topic '{topic}' not found in the registry",
            )

        previous = self._previous_value(topic)
        details: List[Tuple[str, CallbackStatus]] = []

        for event_type, subscription in list(subscriptions.items()):
            resolver = self.resolvers.resolve(event_type)
            if resolver is None:
                logger.error(f"Resolver not found for event type '{event_type}'")
                continue

            context = EventContext(value, previous, subscription.action_value)
            try:
                triggered = resolver.trigger(context)
            except Exception as e:
                logger.error(f"Resolver '{event_type}' failed for {topic}: {e}", exc_info=True)
                continue
            if not triggered:
                continue

            try:
                status = _classify(subscription.callback(value))
            except Exception as e:
                logger.error(
                    f"Error in callback for topic '{topic}', event '{event_type}': {e}",
                    exc_info=True,
                )
                status = CallbackStatus.ERROR

            if status == CallbackStatus.PROCESSED_WITHOUT_RESULT:
                logger.warning(
                    f"Callback for topic '{topic}', event '{event_type}' returned no boolean result"
                )
            details.append((event_type, status))

        if not details:
            return EventProcessingResult(
                ProcessingStatus.NO_EVENTS_REGISTERED,
                f"No events were processed for topic '{topic}'",
            )
        if all(status == CallbackStatus.SUCCESS for _, status in details):
            return EventProcessingResult(
                ProcessingStatus.PROCESSED_SUCCESS, "Events processed successfully", details
            )
        return EventProcessingResult(
            ProcessingStatus.PROCESSED_WITH_ISSUE,
            f"Some events for topic '{topic}' were processed with issues",
            details,
        )

    def get_registry_debug_view(self) -> Dict[str, Dict[str, str]]:
        """Get {topic: {event name: callback name}} for debugging."""
        view: Dict[str, Dict[str, str]] = {}
        for topic in self._manager.topics():
            subscriptions = self._subscriptions(topic)
            if not subscriptions:
                continue
            view[topic] = {
                event_type: f"{getattr(sub.callback, '__name__', 'anonymous')}()"
                for event_type, sub in subscriptions.items()
            }
        return view


class EventsPlugin(Plugin):
    """
    Attaches `manager.events` (an EventDispatcher) and dispatches every change.

    Options:
        priority: Processor priority (default 5, below history)
        resolvers: EventResolverRegistry to use instead of the built-ins
    """

    @property
    def name(self) -> str:
        return EVENTS_PLUGIN_NAME

    def install(self, manager: TopicManager, options: Dict[str, Any]) -> None:
        dispatcher = EventDispatcher(manager, options.get("resolvers", DEFAULT_RESOLVERS))
        manager.events = dispatcher

        def dispatch_events(topic: str, value: Any) -> None:
            result = dispatcher.process_event(topic, value)
            if result.status == ProcessingStatus.PROCESSED_WITH_ISSUE:
                logger.debug(f"{manager.name}: {result.message}: {result.to_dict()['details']}")

        manager.add_processor(dispatch_events, options.get("priority", EVENTS_PRIORITY))
