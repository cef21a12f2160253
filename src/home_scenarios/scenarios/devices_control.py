"""
Devices control scenario.

When an input control raises its configured event (whenChange, whenEnabled
or whenDisabled) every output control gets its configured action.

The "#error" topic of every linked control is watched as well: a critical
error that persists for 10 seconds switches the scenario off, locks its
enable switch and sets USED_CONTROL_ERROR. Once the controls recover the
lock is released and the state returns to NORMAL.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from home_scenarios.core.adapter import ERROR_SUFFIX
from home_scenarios.plugins.basic_vd import RULE_ENABLED
from home_scenarios.plugins.events import ControlBinding
from home_scenarios.scenarios.actions import apply_action
from home_scenarios.scenarios.base import ScenarioBase, ScenarioState
from home_scenarios.scenarios.host import ScenarioHost
from home_scenarios.scenarios.wait import has_critical_err

logger = logging.getLogger(__name__)

INPUT_EVENTS = frozenset({"whenChange", "whenEnabled", "whenDisabled"})
ERROR_DEBOUNCE_MS = 10000


@dataclass(frozen=True)
class DevicesControlConfig:
    in_controls: Tuple[ControlBinding, ...]
    out_controls: Tuple[ControlBinding, ...]
    id_prefix: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DevicesControlConfig":
        return cls(
            in_controls=tuple(ControlBinding.from_dict(item) for item in data.get("inControls") or ()),
            out_controls=tuple(ControlBinding.from_dict(item) for item in data.get("outControls") or ()),
            id_prefix=data.get("idPrefix") or data.get("id_prefix"),
        )

    @property
    def all_controls(self) -> List[str]:
        return [binding.control for binding in self.in_controls + self.out_controls]


class DevicesControlScenario(ScenarioBase):
    """Input events drive output actions; failing controls switch the scenario off."""

    scenario_type = "devicesControl"

    def __init__(self, host: ScenarioHost, error_debounce_ms: int = ERROR_DEBOUNCE_MS) -> None:
        super().__init__(host)
        self.error_debounce_ms = error_debounce_ms
        self._error_timers: Dict[str, int] = {}

    def generate_names(self, id_prefix: str) -> Dict[str, str]:
        return self.base_names(id_prefix, "main", "errors")

    def define_controls_wait_config(self, cfg: DevicesControlConfig) -> List[str]:
        return cfg.all_controls

    def validate_cfg(self, cfg: DevicesControlConfig) -> bool:
        if not cfg.in_controls:
            logger.error(f"{self.id_prefix}: no input controls specified")
            return False
        if not cfg.out_controls:
            logger.error(f"{self.id_prefix}: no output controls specified")
            return False

        for binding in cfg.in_controls:
            if binding.behavior_type not in INPUT_EVENTS:
                logger.error(
                    f"{self.id_prefix}: input event '{binding.behavior_type}' of {binding.control} "
                    f"is not one of {sorted(INPUT_EVENTS)}"
                )
                return False

        if not (
            self.bindings_have_valid_types(cfg.in_controls, "events")
            and self.bindings_have_valid_types(cfg.out_controls, "actions")
        ):
            logger.error(f"{self.id_prefix}: one or more controls are not of a valid type")
            return False
        return True

    def init_specific(self, cfg: DevicesControlConfig) -> bool:
        if not self.events.register_multiple_events_with_behavior(cfg.in_controls, self._on_input_event):
            return False

        for index, control in enumerate(cfg.all_controls):
            error_topic = control + ERROR_SUFFIX
            rule = self.manager.define_service_rule(
                f"{self.names['rule_errors']}_{index}", [error_topic], self._on_error_change
            )
            if rule is None:
                logger.error(f"{self.id_prefix}: failed to create the error rule for {control}")
                return False
        return True

    # =========================================================================
    # Inputs
    # =========================================================================

    def _on_input_event(self, value: Any) -> bool:
        if not self.is_rule_enabled():
            logger.debug(f"{self.id_prefix}: scenario is disabled, skipping action")
            return True
        ok = True
        for binding in self.cfg.out_controls:
            ok = apply_action(self.platform, binding.control, binding.behavior_type, binding.action_value) and ok
        logger.debug(f"{self.id_prefix}: output controls updated")
        return ok

    # =========================================================================
    # Linked control errors
    # =========================================================================

    def _on_error_change(self, topic: str, error: Any) -> None:
        if not has_critical_err(error):
            logger.debug(f"{self.id_prefix}: error cleared for {topic}: {error!r}")
            self._try_clear_readonly()
            self.set_state(ScenarioState.NORMAL)
            self.timers.clear_timeout(self._error_timers.pop(topic, None))
            return

        logger.warning(f"{self.id_prefix}: critical error for {topic}: {error!r}")
        if topic in self._error_timers:
            return
        self._error_timers[topic] = self.timers.set_timeout(
            lambda: self._on_error_timeout(topic), self.error_debounce_ms
        )

    def _on_error_timeout(self, topic: str) -> None:
        self._error_timers.pop(topic, None)
        error = self.platform.get(topic)
        if not has_critical_err(error):
            logger.debug(f"{self.id_prefix}: error for {topic} cleared in time, scenario keeps running")
            return

        logger.error(
            f"{self.id_prefix}: scenario disabled, critical error for {topic} "
            f"not cleared for {self.error_debounce_ms} ms: {error!r}"
        )
        self.set_state(ScenarioState.USED_CONTROL_ERROR)
        self.platform.set_readonly(self.vd.topic(RULE_ENABLED), True)
        self.disable()

    def _try_clear_readonly(self) -> None:
        for control in self.cfg.all_controls:
            if has_critical_err(self.platform.get(control + ERROR_SUFFIX)):
                return
        self.platform.set_readonly(self.vd.topic(RULE_ENABLED), False)
