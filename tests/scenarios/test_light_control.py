"""Tests for the light control scenario."""

import pytest

from home_scenarios.scenarios.base import ScenarioState
from home_scenarios.scenarios.light_control import (
    GroupState,
    LightControlConfig,
    LightControlScenario,
)

VD = "wbsc_hall"


def make_config(**overrides):
    """Build a light control config dict: one light, one motion sensor."""
    data = {
        "idPrefix": "hall",
        "lightDevices": {"sensorObjects": [{"control": "light/l1", "behaviorType": "setEnable"}]},
        "motionSensors": {
            "delayToLightOff": 30,
            "sensorObjects": [{"control": "motion/m1", "behaviorType": "whenEnabled"}],
        },
        "openingSensors": {"delayToLightOff": 0, "sensorObjects": []},
        "lightSwitches": {"isDelayEnabled": False, "delayToLightOffAndEnable": 0, "sensorObjects": []},
    }
    data.update(overrides)
    return data


@pytest.fixture
def devices(platform):
    """Create the external controls used by the scenarios."""
    platform.add_device_control("light/l1", "switch", False)
    platform.add_device_control("light/l2", "switch", False)
    platform.add_device_control("motion/m1", "switch", False)
    platform.add_device_control("motion/level", "value", 0)
    platform.add_device_control("door/d1", "switch", False)
    platform.add_device_control("wall/sw1", "switch", False)
    return platform


def start(host, data):
    scenario = LightControlScenario(host)
    assert scenario.init("Hall", LightControlConfig.from_dict(data)) is True
    assert scenario.get_state() == ScenarioState.NORMAL
    return scenario


class TestConfig:
    """Tests for config parsing and validation."""

    def test_from_dict(self):
        """Test the nested config shape."""
        cfg = LightControlConfig.from_dict(
            make_config(
                lightSwitches={
                    "isDelayEnabled": True,
                    "delayToLightOffAndEnable": 120,
                    "sensorObjects": [{"control": "wall/sw1"}],
                }
            )
        )
        assert cfg.delay_by_motion_sensors == 30
        assert cfg.light_switches[0].behavior_type == "whenChange"
        assert cfg.is_delay_enabled_after_switch
        assert cfg.delay_block_after_switch == 120
        assert cfg.id_prefix == "hall"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"lightDevices": {"sensorObjects": []}},
            {"motionSensors": {"delayToLightOff": 0, "sensorObjects": [{"control": "motion/m1", "behaviorType": "whenEnabled"}]}},
            {"motionSensors": {"delayToLightOff": 30, "sensorObjects": []}},
            {"lightDevices": {"sensorObjects": [{"control": "light/l1", "behaviorType": "setValue"}]}},
            {"lightDevices": {"sensorObjects": [{"control": "motion/level", "behaviorType": "setEnable"}]}},
            {"motionSensors": {"delayToLightOff": 30, "sensorObjects": [{"control": "motion/m1", "behaviorType": "whenChange"}]}},
            {"openingSensors": {"delayToLightOff": 10, "sensorObjects": [{"control": "door/d1", "behaviorType": "ajar"}]}},
        ],
        ids=[
            "no_lights",
            "zero_motion_delay",
            "no_trigger_source",
            "light_action_without_reset",
            "light_type_mismatch",
            "unsupported_motion_behavior",
            "unsupported_opening_behavior",
        ],
    )
    def test_invalid_configs(self, host, devices, overrides):
        """Test that invalid configs end in CONFIG_INVALID."""
        scenario = LightControlScenario(host)

        assert scenario.init("Hall", LightControlConfig.from_dict(make_config(**overrides))) is False
        assert scenario.get_state() == ScenarioState.CONFIG_INVALID
        assert devices.get(f"{VD}/state#error") == "r"


class TestMotion:
    """Tests for motion-driven lighting."""

    def test_motion_turns_light_on(self, host, devices):
        """Test that motion actuates the light, classified as RULE_ON."""
        scenario = start(host, make_config())

        devices.set("motion/m1", True)

        assert devices.get("light/l1") is True
        assert devices.get(f"{VD}/lightOn") is True
        assert devices.get(f"{VD}/motionInProgress") is True
        assert devices.get(f"{VD}/lastSwitchAction") == "ruleOn"
        assert scenario.ctx.rule_action_in_progress is False

    def test_countdown_then_light_off(self, host, devices, timers):
        """Test the 30 s countdown after motion ends."""
        start(host, make_config())
        devices.set("motion/m1", True)
        devices.set("motion/m1", False)

        timers.advance(29)
        assert devices.get("light/l1") is True
        assert devices.get(f"{VD}/curDisableLightTimerInSec") == 1

        timers.advance(1)
        assert devices.get("light/l1") is False
        assert devices.get(f"{VD}/lightOn") is False
        assert devices.get(f"{VD}/lastSwitchAction") == "ruleOff"
        assert devices.get_written_values(f"{VD}/curDisableLightTimerInSec") == list(range(30, -1, -1))
        assert devices.get_written_values("light/l1") == [True, False]

    def test_rearm_uses_second_delay(self, host, devices, timers):
        """Test that re-arming cancels the first countdown."""
        start(host, make_config())
        devices.set("motion/m1", True)
        devices.set("motion/m1", False)
        timers.advance(10)
        devices.set("motion/m1", True)
        devices.set("motion/m1", False)

        timers.advance(29)
        assert devices.get("light/l1") is True

        timers.advance(1)
        assert devices.get("light/l1") is False
        assert devices.get_written_values("light/l1").count(False) == 1

    def test_motion_in_progress_blocks_light_off(self, host, devices, timers):
        """Test that a countdown reaching zero during motion is ignored."""
        scenario = start(host, make_config())
        devices.set("motion/m1", True)

        scenario.light_off_timer.start(2)
        timers.advance(5)

        assert devices.get("light/l1") is True

    def test_any_sensor_keeps_motion(self, host, devices, timers):
        """Test the aggregate over several sensors."""
        data = make_config(
            motionSensors={
                "delayToLightOff": 30,
                "sensorObjects": [
                    {"control": "motion/m1", "behaviorType": "whenEnabled"},
                    {"control": "motion/level", "behaviorType": "whileValueHigherThanThreshold", "actionValue": 50},
                ],
            }
        )
        start(host, data)

        devices.set("motion/level", 80)
        devices.set("motion/m1", True)
        devices.set("motion/m1", False)
        assert devices.get(f"{VD}/motionInProgress") is True

        devices.set("motion/level", 10)
        assert devices.get(f"{VD}/motionInProgress") is False
        timers.advance(30)
        assert devices.get("light/l1") is False


class TestSelfVsExternal:
    """Tests for classifying light changes."""

    def test_external_all_off_resyncs_without_actuation(self, host, devices):
        """Test that an external off only resynchronizes lightOn."""
        scenario = start(host, make_config())
        devices.set(f"{VD}/lightOn", True)
        assert devices.get(f"{VD}/lastSwitchAction") == "ruleOn"

        devices.set("light/l1", False)

        assert devices.get(f"{VD}/lightOn") is False
        assert devices.get(f"{VD}/lastSwitchAction") == "extOff"
        assert devices.get_written_values("light/l1") == [True, False]
        assert scenario.ctx.syncing is False

    def test_external_all_on_without_motion_stays_on(self, host, devices, timers):
        """Test that lights switched on by hand without motion are left on."""
        scenario = start(host, make_config())

        devices.set("light/l1", True)

        assert devices.get(f"{VD}/lightOn") is True
        assert devices.get(f"{VD}/lastSwitchAction") == "extOn"
        assert scenario.light_off_timer.is_active is False
        assert devices.get(f"{VD}/curDisableLightTimerInSec") == 0

        timers.advance(31)
        assert devices.get("light/l1") is True
        assert devices.get(f"{VD}/lastSwitchAction") == "extOn"

    def test_external_all_on_during_motion_arms_light_off(self, host, devices, timers):
        """Test that an external all-on while motion is tracked re-arms the countdown."""
        scenario = start(host, make_config())
        devices.set("motion/m1", True)
        devices.set("light/l1", False)
        assert scenario.light_off_timer.is_active is False

        devices.set("light/l1", True)

        assert devices.get(f"{VD}/lastSwitchAction") == "extOn"
        assert scenario.light_off_timer.is_active is True
        assert devices.get(f"{VD}/curDisableLightTimerInSec") == 30

    def test_partial_by_rule_then_rule_on(self, host, devices):
        """Test a group converging one device at a time."""
        data = make_config(
            lightDevices={
                "sensorObjects": [
                    {"control": "light/l1", "behaviorType": "setEnable"},
                    {"control": "light/l2", "behaviorType": "setEnable"},
                ]
            }
        )
        scenario = start(host, data)
        devices.hold_writes("light/l2")

        devices.set(f"{VD}/lightOn", True)
        assert devices.get(f"{VD}/lastSwitchAction") == "partialByRule"
        assert scenario.ctx.rule_action_in_progress is True
        assert scenario.group_state() == GroupState.MIXED

        devices.release_writes("light/l2")
        assert devices.get(f"{VD}/lastSwitchAction") == "ruleOn"
        assert scenario.ctx.rule_action_in_progress is False

    def test_external_change_during_actuation(self, host, devices):
        """Test that an external change mid-actuation wins over the pending target."""
        data = make_config(
            lightDevices={
                "sensorObjects": [
                    {"control": "light/l1", "behaviorType": "setEnable"},
                    {"control": "light/l2", "behaviorType": "setEnable"},
                ]
            }
        )
        scenario = start(host, data)
        devices.hold_writes("light/l2")
        devices.set(f"{VD}/lightOn", True)

        # Someone switches l1 off while l2 is still on its way
        devices.set("light/l1", False)
        assert scenario.ctx.rule_action_in_progress is False
        assert devices.get(f"{VD}/lastSwitchAction") == "extOff"
        assert devices.get(f"{VD}/lightOn") is False

        # The late write of l2 is now someone else's change
        devices.release_writes("light/l2")
        assert devices.get(f"{VD}/lastSwitchAction") == "partialExt"
        assert devices.get(f"{VD}/lightOn") is True
        assert devices.get_written_values("light/l1") == [True, False]

    def test_failed_write_does_not_stop_group(self, host, devices):
        """Test partial-failure tolerant actuation."""
        data = make_config(
            lightDevices={
                "sensorObjects": [
                    {"control": "light/l1", "behaviorType": "setEnable"},
                    {"control": "light/l2", "behaviorType": "setEnable"},
                ]
            }
        )
        scenario = start(host, data)
        devices.fail_writes_to("light/l1")

        devices.set(f"{VD}/lightOn", True)

        assert devices.get("light/l2") is True
        assert scenario.ctx.rule_action_in_progress is False

    def test_numeric_light(self, host, devices):
        """Test dimmer-style lights with setValueNumericInput."""
        devices.add_device_control("dimmer/d1", "value", 0)
        data = make_config(
            lightDevices={
                "sensorObjects": [{"control": "dimmer/d1", "behaviorType": "setValueNumericInput", "actionValue": 70}]
            }
        )
        start(host, data)

        devices.set("motion/m1", True)
        assert devices.get("dimmer/d1") == 70

        devices.set(f"{VD}/lightOn", False)
        assert devices.get("dimmer/d1") == 0
        assert devices.get(f"{VD}/lastSwitchAction") == "ruleOff"


class TestOpeningSensors:
    """Tests for door sensors."""

    def test_normally_open_door(self, host, devices, timers):
        """Test that opening turns the light on for the opening delay."""
        data = make_config(
            openingSensors={
                "delayToLightOff": 60,
                "sensorObjects": [{"control": "door/d1", "behaviorType": "normallyOpen"}],
            }
        )
        start(host, data)

        devices.set("door/d1", True)
        assert devices.get(f"{VD}/doorOpen") is True
        assert devices.get("light/l1") is True

        devices.set("door/d1", False)
        assert devices.get(f"{VD}/doorOpen") is False
        assert devices.get("light/l1") is True

        timers.advance(60)
        assert devices.get("light/l1") is False

    def test_normally_closed_door(self, host, devices):
        """Test that a normally closed sensor opens on False."""
        devices.add_device_control("door/nc", "switch", True)
        data = make_config(
            openingSensors={
                "delayToLightOff": 60,
                "sensorObjects": [{"control": "door/nc", "behaviorType": "normallyClosed"}],
            }
        )
        start(host, data)

        devices.set("door/nc", False)

        assert devices.get(f"{VD}/doorOpen") is True
        assert devices.get("light/l1") is True


class TestWallSwitch:
    """Tests for the wall switch override."""

    def switch_config(self, delay_enabled):
        return make_config(
            lightSwitches={
                "isDelayEnabled": delay_enabled,
                "delayToLightOffAndEnable": 120,
                "sensorObjects": [{"control": "wall/sw1"}],
            }
        )

    def test_switch_toggles_logic(self, host, devices):
        """Test that any switch change toggles the override."""
        start(host, self.switch_config(False))

        devices.set("wall/sw1", True)
        assert devices.get(f"{VD}/logicDisabledByWallSwitch") is True
        assert devices.get("light/l1") is True

        devices.set("motion/m1", True)
        devices.set("motion/m1", False)
        assert devices.get(f"{VD}/motionInProgress") is False

        devices.set("wall/sw1", False)
        assert devices.get(f"{VD}/logicDisabledByWallSwitch") is False
        assert devices.get("light/l1") is False

    def test_switch_block_delay(self, host, devices, timers):
        """Test that the override ends by itself after the block delay."""
        start(host, self.switch_config(True))

        devices.set("wall/sw1", True)
        assert devices.get(f"{VD}/curDisabledLogicTimerInSec") == 120

        timers.advance(120)
        assert devices.get(f"{VD}/logicDisabledByWallSwitch") is False
        assert devices.get("light/l1") is False


class TestDisabledScenario:
    """Tests for the enable switch."""

    def test_disabled_scenario_ignores_motion(self, host, devices):
        """Test that a disabled scenario does not react."""
        scenario = start(host, make_config())
        scenario.disable()

        devices.set("motion/m1", True)

        assert devices.get("light/l1") is False

    def test_debug_cells(self, host, devices):
        """Test linked read-only cells in debug mode."""
        start(host, make_config(isDebugEnabled=True))
        devices.set("light/l1", True)
        assert devices.get(f"{VD}/light_device_0") is True
