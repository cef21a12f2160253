"""Tests for the event dispatch plugin."""

import pytest

from home_scenarios.core.topic_manager import TopicManager
from home_scenarios.plugins.events import (
    CallbackStatus,
    ControlBinding,
    EventsPlugin,
    ProcessingStatus,
)
from home_scenarios.plugins.history import HistoryPlugin


@pytest.fixture
def manager(platform):
    """Create a topic manager with history and events installed."""
    mgr = TopicManager(platform, name="events_test")
    assert mgr.install_plugin(HistoryPlugin())
    assert mgr.install_plugin(EventsPlugin())
    return mgr


@pytest.fixture
def events(manager):
    return manager.events


class TestControlBinding:
    """Tests for binding parsing."""

    def test_from_dict(self):
        """Test the config shape."""
        binding = ControlBinding.from_dict(
            {"control": "motion/m1", "behaviorType": "whileValueHigherThanThreshold", "actionValue": 50}
        )
        assert binding == ControlBinding("motion/m1", "whileValueHigherThanThreshold", 50)

    def test_legacy_topic_key(self):
        """Test the older "mqttTopicName" key."""
        binding = ControlBinding.from_dict({"mqttTopicName": "door/d1", "behaviorType": "whenEnabled"})
        assert binding.control == "door/d1"

    def test_missing_control(self):
        """Test that a binding needs a control."""
        with pytest.raises(ValueError):
            ControlBinding.from_dict({"behaviorType": "whenEnabled"})


class TestRegistration:
    """Tests for subscription registration."""

    def test_unknown_event_rejected(self, events):
        """Test that unknown event names are not registered."""
        assert not events.register_single_event("a/b", "whenFoo", lambda v: True)

    def test_non_callable_rejected(self, events):
        """Test that callbacks must be callable."""
        assert not events.register_single_event("a/b", "whenChange", "not callable")

    def test_reregistration_overwrites(self, events, caplog):
        """Test that one callback exists per (topic, event)."""
        calls = []
        events.register_single_event("a/b", "whenChange", lambda v: calls.append("first") or True)
        events.register_single_event("a/b", "whenChange", lambda v: calls.append("second") or True)

        events.process_event("a/b", 1)

        assert calls == ["second"]
        assert "already registered" in caplog.text

    def test_register_opposite(self, events):
        """Test subscribing to the opposite of an event."""
        assert events.register_opposite_event("a/b", "whenEnabled", lambda v: True)
        assert events.get_registry_debug_view()["a/b"].keys() == {"whenDisabled"}

    def test_register_opposite_without_opposite_fails(self, events):
        """Test that whenChange has no opposite to register."""
        assert not events.register_opposite_event("a/b", "whenChange", lambda v: True)

    def test_register_both(self, events):
        """Test registering an event and its opposite together."""
        opened, closed = [], []
        assert events.register_both_events(
            "door/d1",
            "whenEnabled",
            lambda v: opened.append(v) or True,
            lambda v: closed.append(v) or True,
        )

        events.process_event("door/d1", True)
        events.process_event("door/d1", False)

        assert opened == [True]
        assert closed == [False]

    def test_register_multiple_rejects_string(self, events):
        """Test that a single string is not a topic list."""
        assert not events.register_multiple_events("a/b", "whenChange", lambda v: True)

    def test_register_multiple_skips_invalid_topics(self, events):
        """Test that invalid topics are skipped, the rest registered."""
        assert not events.register_multiple_events(["a/b", 3, "c/d"], "whenChange", lambda v: True)
        assert set(events.get_registry_debug_view()) == {"a/b", "c/d"}

    def test_behavior_registration(self, events):
        """Test behavior-driven registration passes the action value."""
        seen = []
        bindings = [
            ControlBinding("motion/m1", "whileValueHigherThanThreshold", 50),
            ControlBinding("motion/m2", "whileValueHigherThanThreshold", 10),
        ]
        assert events.register_multiple_events_with_behavior(bindings, lambda v: seen.append(v) or True)

        events.process_event("motion/m1", 20)
        events.process_event("motion/m2", 20)

        assert seen == [20]

    def test_behavior_registration_opposite(self, events):
        """Test behavior-driven registration with the opposite callback."""
        above, below = [], []
        binding = ControlBinding("sensor/t", "whileValueHigherThanThreshold", 25)
        assert events.register_multiple_events_with_behavior_opposite(
            [binding], lambda v: above.append(v) or True, lambda v: below.append(v) or True
        )

        events.process_event("sensor/t", 30)
        events.process_event("sensor/t", 20)

        assert above == [30]
        assert below == [20]


class TestProcessing:
    """Tests for process_event()."""

    def test_unregistered_topic(self, events):
        """Test that an unknown topic never invokes callbacks."""
        result = events.process_event("unknown/topic", True)
        assert result.status == ProcessingStatus.TOPIC_NOT_FOUND
        assert result.details == []

    def test_nothing_triggered(self, events):
        """Test a registered topic whose events do not trigger."""
        events.register_single_event("a/b", "whenEnabled", lambda v: True)

        result = events.process_event("a/b", False)

        assert result.status == ProcessingStatus.NO_EVENTS_REGISTERED

    def test_success(self, events):
        """Test all callbacks returning True."""
        events.register_single_event("a/b", "whenChange", lambda v: True)
        events.register_single_event("a/b", "whenEnabled", lambda v: True)

        result = events.process_event("a/b", True)

        assert result.is_success
        assert result.details == [
            ("whenChange", CallbackStatus.SUCCESS),
            ("whenEnabled", CallbackStatus.SUCCESS),
        ]

    def test_callback_without_boolean(self, events, caplog):
        """Test that a callback returning no boolean is an issue, not a failure."""
        called = []
        events.register_single_event("a/b", "whenChange", lambda v: None)
        events.register_single_event("a/b", "whenEnabled", lambda v: called.append(v) or True)

        result = events.process_event("a/b", True)

        assert result.status == ProcessingStatus.PROCESSED_WITH_ISSUE
        assert ("whenChange", CallbackStatus.PROCESSED_WITHOUT_RESULT) in result.details
        assert called == [True]
        assert "no boolean" in caplog.text

    def test_callback_exception_is_error(self, events):
        """Test that a raising callback is reported, not propagated."""

        def broken(value):
            raise RuntimeError("boom")

        events.register_single_event("a/b", "whenChange", broken)

        result = events.process_event("a/b", 1)

        assert result.details == [("whenChange", CallbackStatus.ERROR)]
        assert result.to_dict()["details"] == [{"event_type": "whenChange", "status": "error"}]

    def test_callback_false_is_failure(self, events):
        """Test a callback returning False."""
        events.register_single_event("a/b", "whenChange", lambda v: False)
        result = events.process_event("a/b", 1)
        assert result.details == [("whenChange", CallbackStatus.FAILURE)]

    def test_cross_event_uses_history(self, manager, events, platform):
        """Test that history is stored before dispatch for the same change."""
        platform.add_device_control("sensor/t", "temperature", 20)
        crossed = []
        events.register_single_event("sensor/t", "whenCrossUpper", lambda v: crossed.append(v) or True, 25)
        manager.init_rules_for_all_topics("events_test_rule")

        platform.set("sensor/t", 24)
        platform.set("sensor/t", 26)
        platform.set("sensor/t", 27)

        assert crossed == [26]
