"""Topic manager plugins: event dispatch, history and the basic virtual device."""

from home_scenarios.plugins.basic_vd import BasicVdPlugin, VirtualDevice
from home_scenarios.plugins.events import (
    CallbackStatus,
    ControlBinding,
    EventDispatcher,
    EventProcessingResult,
    EventsPlugin,
    ProcessingStatus,
)
from home_scenarios.plugins.history import HistoryPlugin, HistoryRecord, TopicHistory

__all__ = [
    "BasicVdPlugin",
    "VirtualDevice",
    "CallbackStatus",
    "ControlBinding",
    "EventDispatcher",
    "EventProcessingResult",
    "EventsPlugin",
    "ProcessingStatus",
    "HistoryPlugin",
    "HistoryRecord",
    "TopicHistory",
]
