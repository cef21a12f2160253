"""Tests for the scenario base lifecycle."""

from dataclasses import dataclass
from typing import Optional

import pytest

from home_scenarios.scenarios.base import ScenarioBase, ScenarioError, ScenarioState


@dataclass(frozen=True)
class EchoConfig:
    control: str
    valid: bool = True
    id_prefix: Optional[str] = None


class EchoScenario(ScenarioBase):
    """Minimal scenario recording changes of one control."""

    scenario_type = "echo"

    def __init__(self, host):
        super().__init__(host)
        self.seen = []

    def generate_names(self, id_prefix):
        return self.base_names(id_prefix, "events")

    def define_controls_wait_config(self, cfg):
        return [cfg.control]

    def validate_cfg(self, cfg):
        return cfg.valid

    def init_specific(self, cfg):
        return self.events.register_single_event(cfg.control, "whenChange", self._on_change)

    def _on_change(self, value):
        self.seen.append(value)
        return True


class TestLifecycle:
    """Tests for init()."""

    def test_base_is_abstract(self, host):
        """Test that the base class cannot be instantiated."""
        with pytest.raises(TypeError):
            ScenarioBase(host)

    def test_init_ready_controls(self, host, platform):
        """Test the synchronous path to NORMAL."""
        platform.add_device_control("relay/K1", "switch", False)
        scenario = EchoScenario(host)

        assert scenario.init("Echo Hall", EchoConfig("relay/K1")) is True

        assert scenario.id_prefix == "echo_hall"
        assert scenario.names == {"vdevice": "wbsc_echo_hall", "rule_events": "wbsc_echo_hall_events"}
        assert scenario.get_state() == ScenarioState.NORMAL
        assert platform.get("wbsc_echo_hall/state") == ScenarioState.NORMAL

        platform.set("relay/K1", True)
        assert scenario.seen == [True]

    def test_configured_id_prefix(self, host, platform):
        """Test that idPrefix wins over the name."""
        platform.add_device_control("relay/K1", "switch", False)
        scenario = EchoScenario(host)
        scenario.init("Anything", EchoConfig("relay/K1", id_prefix="custom"))
        assert scenario.vd.name == "wbsc_custom"

    def test_double_init(self, host, platform):
        """Test that a scenario can only be initialized once."""
        platform.add_device_control("relay/K1", "switch", False)
        scenario = EchoScenario(host)
        scenario.init("Echo", EchoConfig("relay/K1"))

        with pytest.raises(ScenarioError):
            scenario.init("Echo", EchoConfig("relay/K1"))

    def test_invalid_config(self, host, platform):
        """Test that validation failure marks the device errored."""
        platform.add_device_control("relay/K1", "switch", False)
        scenario = EchoScenario(host)

        assert scenario.init("Echo", EchoConfig("relay/K1", valid=False)) is False

        assert scenario.get_state() == ScenarioState.CONFIG_INVALID
        assert platform.get("wbsc_echo/rule_enabled#error") == "r"
        platform.set("relay/K1", True)
        assert scenario.seen == []

    def test_invalid_state_code(self, host, platform):
        """Test that unknown state codes raise."""
        platform.add_device_control("relay/K1", "switch", False)
        scenario = EchoScenario(host)
        scenario.init("Echo", EchoConfig("relay/K1"))

        with pytest.raises(ScenarioError):
            scenario.set_state(42)


class TestControlWaiting:
    """Tests for waiting on linked controls."""

    def test_waits_then_completes(self, host, platform, timers):
        """Test that init continues once the control appears."""
        scenario = EchoScenario(host)

        assert scenario.init("Echo", EchoConfig("relay/K1")) is True
        assert scenario.get_state() == ScenarioState.WAITING_CONTROLS

        platform.add_device_control("relay/K1", "switch", False)
        timers.advance(5)

        assert scenario.get_state() == ScenarioState.NORMAL

    def test_critical_error_keeps_waiting(self, host, platform, timers):
        """Test that a control with a read error is not ready."""
        platform.add_device_control("relay/K1", "switch", False)
        platform.set_error("relay/K1", "r")
        scenario = EchoScenario(host)

        scenario.init("Echo", EchoConfig("relay/K1"))
        timers.advance(10)
        assert scenario.get_state() == ScenarioState.WAITING_CONTROLS

        platform.set_error("relay/K1", "p")
        timers.advance(5)
        assert scenario.get_state() == ScenarioState.NORMAL

    def test_timeout(self, host, platform, timers):
        """Test giving up after 60 seconds."""
        scenario = EchoScenario(host)
        scenario.init("Echo", EchoConfig("relay/K1"))

        timers.advance(59)
        assert scenario.get_state() == ScenarioState.WAITING_CONTROLS

        timers.advance(1)
        assert scenario.get_state() == ScenarioState.LINKED_CONTROLS_TIMEOUT
        assert platform.get("wbsc_echo/state#error") == "r"


class TestRuleEnabled:
    """Tests for the persisted enable switch."""

    def test_disable_stops_rules_and_persists(self, host, platform, store):
        """Test that disabling stops processing and is remembered."""
        platform.add_device_control("relay/K1", "switch", False)
        scenario = EchoScenario(host)
        scenario.init("Echo", EchoConfig("relay/K1"))

        scenario.disable()
        platform.set("relay/K1", True)

        assert scenario.seen == []
        assert not scenario.is_rule_enabled()
        assert host.storage.get_user_setting("echo", "rule_enabled") is False

        scenario.enable()
        platform.set("relay/K1", False)
        assert scenario.seen == [False]

    def test_restored_disabled(self, host, platform):
        """Test that a stored disabled flag applies at startup."""
        host.storage.set_user_setting("echo", "rule_enabled", False)
        platform.add_device_control("relay/K1", "switch", False)
        scenario = EchoScenario(host)
        scenario.init("Echo", EchoConfig("relay/K1"))

        platform.set("relay/K1", True)

        assert scenario.get_state() == ScenarioState.NORMAL
        assert platform.get("wbsc_echo/rule_enabled") is False
        assert scenario.seen == []
