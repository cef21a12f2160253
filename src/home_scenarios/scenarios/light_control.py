"""
Light control scenario.

Turns a group of lights on from motion and opening sensors and off again
after a period of inactivity. Wall switches temporarily take the lights
out of automatic control.

Runtime model:
    - lightOn (virtual device) is the automation's on/off indicator; writing
      it actuates every light device through the action table
    - light device changes are classified as caused by the automation
      (RULE_ON / RULE_OFF / PARTIAL_BY_RULE) or by someone else
      (EXT_ON / EXT_OFF / PARTIAL_EXT); external changes resync lightOn
      without actuating the lights again
    - two countdown timers: light-off and logic re-enable
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from home_scenarios.core.resolvers import EventContext
from home_scenarios.core.timers import CountdownTimer
from home_scenarios.plugins.events import ControlBinding
from home_scenarios.scenarios.actions import apply_action, get_reset_action
from home_scenarios.scenarios.base import ScenarioBase
from home_scenarios.scenarios.host import ScenarioHost

logger = logging.getLogger(__name__)

# Virtual device cells
LIGHT_ON = "lightOn"
MOTION_IN_PROGRESS = "motionInProgress"
DOOR_OPEN = "doorOpen"
LOGIC_DISABLED = "logicDisabledByWallSwitch"
LIGHT_OFF_TIMER = "curDisableLightTimerInSec"
LOGIC_TIMER = "curDisabledLogicTimerInSec"
LAST_SWITCH_ACTION = "lastSwitchAction"

MOTION_BEHAVIORS = ("whileValueHigherThanThreshold", "whenEnabled")
# Opening sensor behavior -> event raised when the door opens
OPENING_BEHAVIORS: Dict[str, str] = {
    "normallyOpen": "whenEnabled",
    "normallyClosed": "whenDisabled",
}


class LastSwitchAction(Enum):
    """Who changed the lights last."""

    NONE = "none"
    RULE_ON = "ruleOn"
    RULE_OFF = "ruleOff"
    PARTIAL_BY_RULE = "partialByRule"
    EXT_ON = "extOn"
    EXT_OFF = "extOff"
    PARTIAL_EXT = "partialExt"


class GroupState(Enum):
    ALL_ON = "all_on"
    ALL_OFF = "all_off"
    MIXED = "mixed"


def bindings_from_list(items: Any) -> Tuple[ControlBinding, ...]:
    return tuple(ControlBinding.from_dict(item) for item in items or ())


@dataclass(frozen=True)
class LightControlConfig:
    """
    Light control configuration.

    Attributes:
        light_devices: Lights with their on-action (setEnable, setValueNumericInput, ...)
        motion_sensors: Sensors with whileValueHigherThanThreshold / whenEnabled
        opening_sensors: Sensors with normallyOpen / normallyClosed
        light_switches: Wall switches (any change toggles automatic control)
        delay_by_motion_sensors: Seconds until lights off after motion ends
        delay_by_opening_sensors: Seconds until lights off after an opening
        is_delay_enabled_after_switch: Re-enable automation after a switch press
        delay_block_after_switch: Seconds automation stays disabled
    """

    light_devices: Tuple[ControlBinding, ...]
    motion_sensors: Tuple[ControlBinding, ...] = ()
    opening_sensors: Tuple[ControlBinding, ...] = ()
    light_switches: Tuple[ControlBinding, ...] = ()
    delay_by_motion_sensors: float = 0
    delay_by_opening_sensors: float = 0
    is_delay_enabled_after_switch: bool = False
    delay_block_after_switch: float = 0
    is_debug_enabled: bool = False
    id_prefix: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LightControlConfig":
        motion = data.get("motionSensors", {})
        opening = data.get("openingSensors", {})
        switches = data.get("lightSwitches", {})
        return cls(
            light_devices=bindings_from_list(data.get("lightDevices", {}).get("sensorObjects")),
            motion_sensors=bindings_from_list(motion.get("sensorObjects")),
            opening_sensors=bindings_from_list(opening.get("sensorObjects")),
            light_switches=tuple(
                ControlBinding.from_dict({"behaviorType": "whenChange", **item})
                for item in switches.get("sensorObjects") or ()
            ),
            delay_by_motion_sensors=motion.get("delayToLightOff", 0),
            delay_by_opening_sensors=opening.get("delayToLightOff", 0),
            is_delay_enabled_after_switch=bool(switches.get("isDelayEnabled", False)),
            delay_block_after_switch=switches.get("delayToLightOffAndEnable", 0),
            is_debug_enabled=bool(data.get("isDebugEnabled", False)),
            id_prefix=data.get("idPrefix") or data.get("id_prefix"),
        )


@dataclass
class LightingContext:
    """Mutable runtime state of one light control scenario."""

    rule_action_in_progress: bool = False
    rule_target_state: Optional[bool] = None
    syncing: bool = False
    last_switch_action: LastSwitchAction = LastSwitchAction.NONE


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_positive_number(value: Any) -> bool:
    return _is_number(value) and value > 0


class LightControlScenario(ScenarioBase):
    """Motion and opening driven lighting with wall-switch override."""

    scenario_type = "lightControl"

    def __init__(self, host: ScenarioHost) -> None:
        super().__init__(host)
        self.ctx = LightingContext()
        self.light_off_timer: Optional[CountdownTimer] = None
        self.logic_enable_timer: Optional[CountdownTimer] = None

    # =========================================================================
    # ScenarioBase interface
    # =========================================================================

    def generate_names(self, id_prefix: str) -> Dict[str, str]:
        return self.base_names(id_prefix, "events", "linked")

    def define_controls_wait_config(self, cfg: LightControlConfig) -> List[str]:
        bindings = cfg.light_devices + cfg.motion_sensors + cfg.opening_sensors + cfg.light_switches
        return [binding.control for binding in bindings]

    def _delays_valid(self, cfg: LightControlConfig) -> bool:
        checks = [
            ("delayByMotionSensors", cfg.motion_sensors, cfg.delay_by_motion_sensors),
            ("delayByOpeningSensors", cfg.opening_sensors, cfg.delay_by_opening_sensors),
            (
                "delayBlockAfterSwitch",
                cfg.light_switches if cfg.is_delay_enabled_after_switch else (),
                cfg.delay_block_after_switch,
            ),
        ]
        for label, controls, delay in checks:
            if controls and not is_positive_number(delay):
                logger.error(f"{self.id_prefix}: {label} must be a positive number, got {delay!r}")
                return False
        return True

    def validate_cfg(self, cfg: LightControlConfig) -> bool:
        if not self._delays_valid(cfg):
            return False

        if not cfg.light_devices:
            logger.error(f"{self.id_prefix}: no light devices specified")
            return False

        if not (cfg.motion_sensors or cfg.opening_sensors or cfg.light_switches):
            logger.error(f"{self.id_prefix}: no motion sensors, opening sensors or wall switches specified")
            return False

        for device in cfg.light_devices:
            if get_reset_action(device.behavior_type) is None:
                logger.error(
                    f"{self.id_prefix}: light action '{device.behavior_type}' of {device.control} "
                    f"has no off action"
                )
                return False
        if not self.bindings_have_valid_types(cfg.light_devices, "actions"):
            return False

        for sensor in cfg.motion_sensors:
            if sensor.behavior_type not in MOTION_BEHAVIORS:
                logger.error(f"{self.id_prefix}: unsupported motion behavior '{sensor.behavior_type}'")
                return False
        if not self.bindings_have_valid_types(cfg.motion_sensors, "events"):
            return False

        return self._opening_sensors_valid(cfg)

    def _opening_sensors_valid(self, cfg: LightControlConfig) -> bool:
        for sensor in cfg.opening_sensors:
            if sensor.behavior_type not in OPENING_BEHAVIORS:
                logger.error(f"{self.id_prefix}: unsupported opening behavior '{sensor.behavior_type}'")
                return False
        opening_events = [
            ControlBinding(s.control, OPENING_BEHAVIORS[s.behavior_type]) for s in cfg.opening_sensors
        ]
        return self.bindings_have_valid_types(opening_events, "events")

    def init_specific(self, cfg: LightControlConfig) -> bool:
        self._add_cells()
        if cfg.is_debug_enabled:
            self._add_debug_cells(cfg)

        self.light_off_timer = CountdownTimer(
            self.timers,
            on_expire=self._on_light_off_timer,
            display=lambda seconds: self.vd.set(LIGHT_OFF_TIMER, seconds),
            name=f"{self.id_prefix}_light_off",
        )
        self.logic_enable_timer = CountdownTimer(
            self.timers,
            on_expire=self._on_logic_enable_timer,
            display=lambda seconds: self.vd.set(LOGIC_TIMER, seconds),
            name=f"{self.id_prefix}_logic_enable",
        )

        events = self.events
        ok = events.register_single_event(self.vd.topic(LIGHT_ON), "whenChange", self._on_light_on)
        ok = events.register_single_event(
            self.vd.topic(MOTION_IN_PROGRESS), "whenChange", self._on_motion_in_progress
        ) and ok
        ok = events.register_single_event(
            self.vd.topic(LOGIC_DISABLED), "whenChange", self._on_logic_disabled
        ) and ok

        for sensor in cfg.motion_sensors:
            ok = events.register_single_event(
                sensor.control,
                "whenChange",
                lambda value, sensor=sensor: self._on_motion_sensor(sensor, value),
            ) and ok

        ok = self._register_opening_sensors(cfg) and ok
        ok = events.register_multiple_events(
            [switch.control for switch in cfg.light_switches], "whenChange", self._on_wall_switch
        ) and ok

        for device in cfg.light_devices:
            ok = events.register_single_event(
                device.control,
                "whenChange",
                lambda value, device=device: self._on_light_device_changed(device, value),
            ) and ok

        logger.debug(f"{self.id_prefix}: light control subscriptions created: {ok}")
        return ok

    def _add_cells(self) -> None:
        vd = self.vd
        vd.add_cell(LIGHT_OFF_TIMER, "value", 0, readonly=True, title="Light off timer (seconds)")
        vd.add_cell(LOGIC_TIMER, "value", 0, readonly=True, title="Disabled logic timer (seconds)")
        vd.add_cell(MOTION_IN_PROGRESS, "switch", False, readonly=True, title="Motion in progress")
        vd.add_cell(DOOR_OPEN, "switch", False, readonly=True, title="Door open")
        vd.add_cell(LIGHT_ON, "switch", False, readonly=True, title="Light on")
        vd.add_cell(LOGIC_DISABLED, "switch", False, readonly=True, title="Disabled manually by switch")
        vd.add_cell(
            LAST_SWITCH_ACTION, "text", LastSwitchAction.NONE.value, readonly=True, title="Last switch action"
        )

    def _add_debug_cells(self, cfg: LightControlConfig) -> None:
        groups = [
            ("light_device", cfg.light_devices, "Light:"),
            ("motion_sensor", cfg.motion_sensors, "Motion:"),
            ("opening_sensor", cfg.opening_sensors, "Opening:"),
            ("light_switch", cfg.light_switches, "Switch:"),
        ]
        for cell_prefix, bindings, title in groups:
            for index, binding in enumerate(bindings):
                if not self.manager.add_linked_control_ro(binding.control, f"{cell_prefix}_{index}", title):
                    logger.error(f"{self.id_prefix}: failed to add {cell_prefix} cell for {binding.control}")

    def _register_opening_sensors(self, cfg: LightControlConfig) -> bool:
        ok = True
        for sensor in cfg.opening_sensors:
            ok = self.events.register_both_events(
                sensor.control,
                OPENING_BEHAVIORS[sensor.behavior_type],
                self._on_opening_sensor_opened,
                self._on_opening_sensor_closed,
            ) and ok
        return ok

    # =========================================================================
    # Light devices
    # =========================================================================

    def _is_device_on(self, device: ControlBinding, value: Any) -> bool:
        if device.behavior_type == "setDisable":
            return value is False
        if device.behavior_type == "setValueNumericInput":
            return _is_number(value) and value != 0
        return value is True

    def group_state(self) -> GroupState:
        devices = self.cfg.light_devices
        on_count = sum(
            1 for device in devices if self._is_device_on(device, self.platform.get(device.control))
        )
        if on_count == len(devices):
            return GroupState.ALL_ON
        if on_count == 0:
            return GroupState.ALL_OFF
        return GroupState.MIXED

    def _group_matches(self, target: Optional[bool]) -> bool:
        expected = GroupState.ALL_ON if target else GroupState.ALL_OFF
        return self.group_state() == expected

    def _set_last_switch_action(self, action: LastSwitchAction) -> None:
        self.ctx.last_switch_action = action
        self.vd.set(LAST_SWITCH_ACTION, action.value)

    def _finish_rule_action(self) -> None:
        target = self.ctx.rule_target_state
        self.ctx.rule_action_in_progress = False
        self._set_last_switch_action(LastSwitchAction.RULE_ON if target else LastSwitchAction.RULE_OFF)

    def _on_light_on(self, value: Any) -> bool:
        """Actuate every light device unless the change is a resync."""
        if self.ctx.syncing:
            return True
        if not isinstance(value, bool):
            logger.error(f"{self.id_prefix}: lightOn has an invalid value {value!r}")
            return False

        self.ctx.rule_action_in_progress = True
        self.ctx.rule_target_state = value

        all_ok = True
        for device in self.cfg.light_devices:
            if not apply_action(
                self.platform, device.control, device.behavior_type, device.action_value, reset=not value
            ):
                all_ok = False

        if self.ctx.rule_action_in_progress:
            if self._group_matches(value):
                self._finish_rule_action()
            elif not all_ok:
                logger.warning(f"{self.id_prefix}: light actuation incomplete, giving up on target {value}")
                self.ctx.rule_action_in_progress = False
        return all_ok

    def _sync_light_on(self, value: bool) -> None:
        self.ctx.syncing = True
        try:
            self.vd.set(LIGHT_ON, value)
        finally:
            self.ctx.syncing = False

    def _on_light_device_changed(self, device: ControlBinding, value: Any) -> bool:
        """Classify a light device change as self-caused or external."""
        group = self.group_state()
        device_on = self._is_device_on(device, value)

        if self.ctx.rule_action_in_progress and device_on == self.ctx.rule_target_state:
            if self._group_matches(self.ctx.rule_target_state):
                self._finish_rule_action()
            else:
                self._set_last_switch_action(LastSwitchAction.PARTIAL_BY_RULE)
            return True

        if self.ctx.rule_action_in_progress:
            logger.debug(
                f"{self.id_prefix}: external change on {device.control} during actuation, "
                f"dropping target {self.ctx.rule_target_state}"
            )
            self.ctx.rule_action_in_progress = False

        if group == GroupState.ALL_ON:
            self._set_last_switch_action(LastSwitchAction.EXT_ON)
        elif group == GroupState.ALL_OFF:
            self._set_last_switch_action(LastSwitchAction.EXT_OFF)
        else:
            self._set_last_switch_action(LastSwitchAction.PARTIAL_EXT)

        self._sync_light_on(group != GroupState.ALL_OFF)

        # Lights switched on by hand stay on unless motion is being tracked
        motion = self.vd.get(MOTION_IN_PROGRESS) is True
        if group == GroupState.ALL_ON and motion and is_positive_number(self.cfg.delay_by_motion_sensors):
            self.light_off_timer.start(self.cfg.delay_by_motion_sensors)
        elif group == GroupState.ALL_OFF:
            self.light_off_timer.cancel()
        return True

    # =========================================================================
    # Timers
    # =========================================================================

    def _on_light_off_timer(self) -> None:
        if self.vd.get(MOTION_IN_PROGRESS) is True:
            logger.debug(f"{self.id_prefix}: light-off timer reached zero during motion, ignored")
            return
        self.vd.set(LIGHT_ON, False)

    def _on_logic_enable_timer(self) -> None:
        self.vd.set(LOGIC_DISABLED, False)

    # =========================================================================
    # Sensors and switches
    # =========================================================================

    def _is_motion_active(self, sensor: ControlBinding, value: Any) -> bool:
        if sensor.behavior_type == "whenEnabled":
            if value is True or value == "true":
                return True
            if value is False or value == "false":
                return False
            logger.error(f"{self.id_prefix}: motion sensor {sensor.control} has invalid value {value!r}")
            return False
        resolver = self.events.resolvers.resolve(sensor.behavior_type)
        return bool(resolver and resolver.trigger(EventContext(value, None, sensor.action_value)))

    def _on_motion_sensor(self, sensor: ControlBinding, value: Any) -> bool:
        if self.vd.get(LOGIC_DISABLED) is True:
            logger.debug(f"{self.id_prefix}: motion ignored, logic disabled by wall switch")
            return True

        if self._is_motion_active(sensor, value):
            self.vd.set(MOTION_IN_PROGRESS, True)
            return True

        all_inactive = all(
            not self._is_motion_active(s, self.platform.get(s.control)) for s in self.cfg.motion_sensors
        )
        if all_inactive:
            self.vd.set(MOTION_IN_PROGRESS, False)
        return True

    def _on_motion_in_progress(self, value: Any) -> bool:
        if value is True:
            self.light_off_timer.cancel()
            self.vd.set(LIGHT_ON, True)
        else:
            self.light_off_timer.start(self.cfg.delay_by_motion_sensors)
        return True

    def _is_door_open(self, sensor: ControlBinding) -> bool:
        resolver = self.events.resolvers.resolve(self._opening_event(sensor))
        value = self.platform.get(sensor.control)
        return bool(resolver and resolver.trigger(EventContext(value, None, sensor.action_value)))

    def _opening_event(self, sensor: ControlBinding) -> str:
        return OPENING_BEHAVIORS[sensor.behavior_type]

    def _update_door_open(self) -> None:
        self.vd.set(DOOR_OPEN, any(self._is_door_open(s) for s in self.cfg.opening_sensors))

    def _on_opening_sensor_opened(self, value: Any) -> bool:
        self._update_door_open()
        if self.vd.get(LOGIC_DISABLED) is True:
            logger.debug(f"{self.id_prefix}: opening ignored, logic disabled by wall switch")
            return True
        self.vd.set(LIGHT_ON, True)
        self.light_off_timer.start(self.cfg.delay_by_opening_sensors)
        return True

    def _on_opening_sensor_closed(self, value: Any) -> bool:
        self._update_door_open()
        return True

    def _on_wall_switch(self, value: Any) -> bool:
        self.vd.set(LOGIC_DISABLED, not self.vd.get(LOGIC_DISABLED))
        return True

    def _on_logic_disabled(self, value: Any) -> bool:
        self.light_off_timer.cancel()
        self.logic_enable_timer.cancel()
        if value is True:
            self.vd.set(LIGHT_ON, True)
            if self.cfg.is_delay_enabled_after_switch:
                self.light_off_timer.start(self.cfg.delay_block_after_switch)
                self.logic_enable_timer.start(self.cfg.delay_block_after_switch)
        else:
            self.vd.set(LIGHT_ON, False)
        return True
