"""
Thermostat scenario.

Switches a heating actuator with hysteresis around an adjustable target
temperature: on below target - hysteresis, off above target + hysteresis,
unchanged in between. The target temperature is a control of the scenario
device and is remembered across restarts.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from home_scenarios.core.adapter import TYPE_SUFFIX
from home_scenarios.plugins.basic_vd import RULE_ENABLED
from home_scenarios.scenarios.base import ScenarioBase

logger = logging.getLogger(__name__)

TARGET_TEMPERATURE = "targetTemperature"
CURRENT_TEMPERATURE = "currentTemperature"
ACTUATOR_STATUS = "actuatorStatus"

SENSOR_TYPES = ("value", "temperature")
ACTUATOR_TYPES = ("switch",)


@dataclass(frozen=True)
class ThermostatConfig:
    target_temperature: float
    temperature_min: float
    temperature_max: float
    hysteresis: float
    temperature_sensor: str
    actuator: str
    id_prefix: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThermostatConfig":
        limits = data.get("temperatureLimits") or {}
        return cls(
            target_temperature=data["targetTemperature"],
            temperature_min=limits.get("min", data.get("tempLimitsMin")),
            temperature_max=limits.get("max", data.get("tempLimitsMax")),
            hysteresis=data.get("hysteresis", 0),
            temperature_sensor=data["temperatureSensor"],
            actuator=data["actuator"],
            id_prefix=data.get("idPrefix") or data.get("id_prefix"),
        )


def heating_decision(temperature: float, target: float, hysteresis: float) -> Optional[bool]:
    """
    Decide the actuator state.

    Returns:
        True to heat, False to stop, None to keep the current state
    """
    if temperature < target - hysteresis:
        return True
    if temperature > target + hysteresis:
        return False
    return None


class ThermostatScenario(ScenarioBase):
    """Hysteresis heating controller."""

    scenario_type = "thermostat"

    def generate_names(self, id_prefix: str) -> Dict[str, str]:
        return self.base_names(id_prefix, "events", "enable_watch")

    def define_controls_wait_config(self, cfg: ThermostatConfig) -> List[str]:
        return [cfg.temperature_sensor, cfg.actuator]

    def validate_cfg(self, cfg: ThermostatConfig) -> bool:
        numbers = (cfg.target_temperature, cfg.temperature_min, cfg.temperature_max, cfg.hysteresis)
        if not all(isinstance(n, (int, float)) and not isinstance(n, bool) for n in numbers):
            logger.error(f"{self.id_prefix}: temperatures and hysteresis must be numbers: {numbers}")
            return False

        valid = True
        if cfg.temperature_min > cfg.temperature_max:
            logger.error(
                f"{self.id_prefix}: temperature limit min={cfg.temperature_min} "
                f"must not exceed max={cfg.temperature_max}"
            )
            valid = False
        if not cfg.temperature_min <= cfg.target_temperature <= cfg.temperature_max:
            logger.error(
                f"{self.id_prefix}: target temperature {cfg.target_temperature} "
                f"must be within [{cfg.temperature_min}, {cfg.temperature_max}]"
            )
            valid = False
        if cfg.hysteresis < 0:
            logger.error(f"{self.id_prefix}: hysteresis must not be negative")
            valid = False

        sensor_type = self.platform.get(cfg.temperature_sensor + TYPE_SUFFIX)
        actuator_type = self.platform.get(cfg.actuator + TYPE_SUFFIX)
        if sensor_type not in SENSOR_TYPES or actuator_type not in ACTUATOR_TYPES:
            logger.error(
                f"{self.id_prefix}: sensor/actuator types must be {'/'.join(SENSOR_TYPES)} / switch, "
                f"got {sensor_type}/{actuator_type}"
            )
            valid = False
        return valid

    def init_specific(self, cfg: ThermostatConfig) -> bool:
        target = self._restore_target(cfg)
        self.vd.add_cell(TARGET_TEMPERATURE, "value", target, title="Target temperature")
        if not self.manager.add_linked_control_ro(cfg.temperature_sensor, CURRENT_TEMPERATURE, "Sensor"):
            return False
        if not self.manager.add_linked_control_ro(cfg.actuator, ACTUATOR_STATUS, "Actuator"):
            return False

        events = self.events
        ok = events.register_single_event(self.vd.topic(TARGET_TEMPERATURE), "whenChange", self._on_target_changed)
        ok = events.register_single_event(cfg.temperature_sensor, "whenChange", self._on_temperature) and ok

        watch = self.manager.define_service_rule(
            self.names["rule_enable_watch"], [self.vd.topic(RULE_ENABLED)], self._on_rule_enabled
        )
        if watch is None:
            return False

        if self.is_rule_enabled():
            self.regulate()
        return ok

    def _restore_target(self, cfg: ThermostatConfig) -> float:
        stored = self.host.storage.get_user_setting(self.id_prefix, TARGET_TEMPERATURE)
        if isinstance(stored, (int, float)) and cfg.temperature_min <= stored <= cfg.temperature_max:
            return stored
        return cfg.target_temperature

    # =========================================================================
    # Regulation
    # =========================================================================

    @property
    def target_temperature(self) -> Any:
        return self.vd.get(TARGET_TEMPERATURE)

    def regulate(self) -> bool:
        """Apply the hysteresis rule to the current sensor reading."""
        temperature = self.platform.get(self.cfg.temperature_sensor)
        if not isinstance(temperature, (int, float)) or isinstance(temperature, bool):
            logger.warning(f"{self.id_prefix}: no temperature reading from {self.cfg.temperature_sensor}")
            return False

        decision = heating_decision(temperature, self.target_temperature, self.cfg.hysteresis)
        if decision is None:
            return True
        return self._set_actuator(decision)

    def _set_actuator(self, heat: bool) -> bool:
        if self.platform.get(self.cfg.actuator) == heat:
            return True
        try:
            self.platform.set(self.cfg.actuator, heat)
        except Exception as e:
            logger.error(f"{self.id_prefix}: failed to switch {self.cfg.actuator}: {e}")
            return False
        logger.debug(f"{self.id_prefix}: heating {'on' if heat else 'off'}")
        return True

    def _on_temperature(self, value: Any) -> bool:
        return self.regulate()

    def _on_target_changed(self, value: Any) -> bool:
        cfg = self.cfg
        if not isinstance(value, (int, float)) or not cfg.temperature_min <= value <= cfg.temperature_max:
            logger.error(
                f"{self.id_prefix}: target {value!r} outside [{cfg.temperature_min}, {cfg.temperature_max}]"
            )
            return False
        self.host.storage.set_user_setting(self.id_prefix, TARGET_TEMPERATURE, value)
        return self.regulate()

    def _on_rule_enabled(self, topic: str, value: Any) -> None:
        if value is True:
            self.regulate()
        else:
            self._set_actuator(False)
