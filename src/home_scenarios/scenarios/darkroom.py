"""
Darkroom scenario: the earlier lighting variant.

Same state machine as light control, with a flat configuration, all three
delays mandatory, and opening sensors that name their event resolver
directly (e.g. "whenEnabled"). Only the opening event is watched. A
configuration error also raises an alarm cell on the device.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict

from home_scenarios.plugins.events import ControlBinding
from home_scenarios.scenarios.light_control import (
    LightControlConfig,
    LightControlScenario,
    bindings_from_list,
    is_positive_number,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DarkroomConfig(LightControlConfig):
    """Darkroom configuration; wall switches always re-enable after the block delay."""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DarkroomConfig":
        return cls(
            light_devices=bindings_from_list(data.get("lightDevices")),
            motion_sensors=bindings_from_list(data.get("motionSensors")),
            opening_sensors=bindings_from_list(data.get("openingSensors")),
            light_switches=tuple(
                ControlBinding.from_dict({"behaviorType": "whenChange", **item})
                for item in data.get("lightSwitches") or ()
            ),
            delay_by_motion_sensors=data.get("delayByMotionSensors", 0),
            delay_by_opening_sensors=data.get("delayByOpeningSensors", 0),
            is_delay_enabled_after_switch=True,
            delay_block_after_switch=data.get("delayBlockAfterSwitch", 0),
            is_debug_enabled=bool(data.get("isDebugEnabled", False)),
            id_prefix=data.get("idPrefix") or data.get("id_prefix"),
        )


class DarkroomScenario(LightControlScenario):
    scenario_type = "darkroom"

    def _delays_valid(self, cfg: LightControlConfig) -> bool:
        delays = (
            cfg.delay_by_motion_sensors,
            cfg.delay_by_opening_sensors,
            cfg.delay_block_after_switch,
        )
        if not all(is_positive_number(delay) for delay in delays):
            logger.error(f"{self.id_prefix}: invalid delay, all must be positive numbers: {delays}")
            return False
        return True

    def validate_cfg(self, cfg: LightControlConfig) -> bool:
        if super().validate_cfg(cfg):
            return True
        self.vd.add_alarm("Error - see log")
        return False

    def _opening_event(self, sensor: ControlBinding) -> str:
        return sensor.behavior_type

    def _opening_sensors_valid(self, cfg: LightControlConfig) -> bool:
        return self.bindings_have_valid_types(cfg.opening_sensors, "events")

    def _register_opening_sensors(self, cfg: LightControlConfig) -> bool:
        return self.events.register_multiple_events_with_behavior(
            cfg.opening_sensors, self._on_opening_sensor_opened
        )
