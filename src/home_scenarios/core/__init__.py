"""Core components: resolvers, topic manager, host adapters, cron and timers."""

from home_scenarios.core.adapter import (
    KeyValueStore,
    MemoryKeyValueStore,
    MockPlatformAdapter,
    MockTimerService,
    PlatformAdapter,
    TimerService,
)
from home_scenarios.core.resolvers import (
    DEFAULT_RESOLVERS,
    EventContext,
    EventResolver,
    EventResolverRegistry,
)
from home_scenarios.core.timers import CountdownTimer
from home_scenarios.core.topic_manager import Plugin, RuleInstance, TopicManager

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "MockPlatformAdapter",
    "MockTimerService",
    "PlatformAdapter",
    "TimerService",
    "DEFAULT_RESOLVERS",
    "EventContext",
    "EventResolver",
    "EventResolverRegistry",
    "CountdownTimer",
    "Plugin",
    "RuleInstance",
    "TopicManager",
]
