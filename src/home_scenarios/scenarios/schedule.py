"""
Schedule scenario.

Applies output actions at a time of day or at a fixed interval, on the
selected days of the week. With an on-duration the actions are reversed
automatically once the duration has passed:

    toggle      -> toggle again
    setEnable   -> setDisable (and back)
    anything    -> restore the value seen before the trigger

Disabling the scenario while the on-phase is running reverses it at once.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from home_scenarios.core.cron import DAY_NAMES, weekday_field
from home_scenarios.plugins.basic_vd import RULE_ENABLED
from home_scenarios.plugins.events import ControlBinding
from home_scenarios.scenarios.actions import apply_action
from home_scenarios.scenarios.base import ScenarioBase
from home_scenarios.scenarios.host import ScenarioHost

logger = logging.getLogger(__name__)

PHASE_ACTIVE = "onPhaseActive"

# Actions reversed through their reset action; the rest restore a snapshot
REVERSED_BY_ACTION = frozenset({"toggle", "setEnable", "setDisable"})

WEEK_DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class ScheduleConfig:
    """
    Schedule configuration.

    Attributes:
        hours, minutes, seconds: Time of day (absolute mode)
        week_days: Enabled day names
        out_controls: Output controls with their actions
        periodic_interval_minutes: Repeat every N minutes instead of at a time of day
        duration_minutes: Reverse the actions after this many minutes
    """

    out_controls: Tuple[ControlBinding, ...]
    week_days: Tuple[str, ...]
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    periodic_interval_minutes: Optional[float] = None
    duration_minutes: Optional[float] = None
    id_prefix: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduleConfig":
        """
        Raises:
            ValueError: If weekDays is not an object of booleans
        """
        week_days = data.get("weekDays") or {}
        if not isinstance(week_days, dict):
            raise ValueError("weekDays must be an object")
        enabled = []
        for day in WEEK_DAYS:
            flag = week_days.get(day, False)
            if not isinstance(flag, bool):
                raise ValueError(f"weekDays.{day} must be a boolean")
            if flag:
                enabled.append(day)

        duration = data.get("periodicDurationMinutes", data.get("durationMinutes"))
        return cls(
            out_controls=tuple(ControlBinding.from_dict(item) for item in data.get("outControls") or ()),
            week_days=tuple(enabled),
            hours=data.get("hours", 0),
            minutes=data.get("minutes", 0),
            seconds=data.get("seconds", 0),
            periodic_interval_minutes=data.get("periodicIntervalMinutes"),
            duration_minutes=duration,
            id_prefix=data.get("idPrefix") or data.get("id_prefix"),
        )

    @property
    def is_periodic(self) -> bool:
        return self.periodic_interval_minutes is not None


def _in_range(value: Any, low: int, high: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and low <= value <= high


def _positive(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def build_cron_expression(cfg: ScheduleConfig) -> Optional[str]:
    """
    Build the 6-field cron expression of a schedule.

    Returns:
        None when the periodic interval cannot be expressed as a cron step
        (the scenario then falls back to a timer chain)
    """
    days = weekday_field(cfg.week_days)
    if not cfg.is_periodic:
        return f"{cfg.seconds} {cfg.minutes} {cfg.hours} * * {days}"

    interval = cfg.periodic_interval_minutes
    if interval != int(interval):
        return None
    interval = int(interval)
    if interval < 60 and 60 % interval == 0:
        return f"0 */{interval} * * * {days}"
    if interval % 60 == 0 and 24 % (interval // 60) == 0:
        return f"0 0 */{interval // 60} * * {days}"
    return None


class ScheduleScenario(ScenarioBase):
    """Time-of-day or periodic actions with optional automatic reversal."""

    scenario_type = "schedule"

    def __init__(self, host: ScenarioHost) -> None:
        super().__init__(host)
        self.cron_expression: Optional[str] = None
        self._cron_handle: Optional[int] = None
        self._chain_handle: Optional[int] = None
        self._reverse_handle: Optional[int] = None
        self._snapshot: Dict[str, Any] = {}
        self._phase_active = False

    def generate_names(self, id_prefix: str) -> Dict[str, str]:
        return self.base_names(id_prefix, "main", "disable_watch")

    def define_controls_wait_config(self, cfg: ScheduleConfig) -> List[str]:
        return [binding.control for binding in cfg.out_controls]

    def validate_cfg(self, cfg: ScheduleConfig) -> bool:
        if cfg.is_periodic:
            if not _positive(cfg.periodic_interval_minutes):
                logger.error(f"{self.id_prefix}: periodicIntervalMinutes must be a positive number")
                return False
        else:
            for label, value, high in (
                ("hours", cfg.hours, 23),
                ("minutes", cfg.minutes, 59),
                ("seconds", cfg.seconds, 59),
            ):
                if not _in_range(value, 0, high):
                    logger.error(f"{self.id_prefix}: {label} must be a number between 0 and {high}")
                    return False

        if cfg.duration_minutes is not None:
            if not _positive(cfg.duration_minutes):
                logger.error(f"{self.id_prefix}: duration must be a positive number")
                return False
            if cfg.is_periodic and cfg.duration_minutes >= cfg.periodic_interval_minutes:
                logger.error(
                    f"{self.id_prefix}: duration {cfg.duration_minutes} must be shorter "
                    f"than the interval {cfg.periodic_interval_minutes}"
                )
                return False

        if not cfg.week_days:
            logger.error(f"{self.id_prefix}: at least one day of the week must be enabled")
            return False

        if not cfg.out_controls:
            logger.error(f"{self.id_prefix}: at least one output control must be specified")
            return False

        if not self.bindings_have_valid_types(cfg.out_controls, "actions"):
            logger.error(f"{self.id_prefix}: one or more controls are not of a valid type")
            return False
        return True

    def init_specific(self, cfg: ScheduleConfig) -> bool:
        self.vd.add_cell(PHASE_ACTIVE, "switch", False, readonly=True, title="On-phase active")

        watch = self.manager.define_service_rule(
            self.names["rule_disable_watch"], [self.vd.topic(RULE_ENABLED)], self._on_rule_enabled
        )
        if watch is None:
            return False

        self.cron_expression = build_cron_expression(cfg)
        if self.cron_expression is not None:
            self._cron_handle = self.timers.add_cron(self.cron_expression, self.trigger)
            logger.info(f"{self.id_prefix}: schedule cron expression '{self.cron_expression}'")
        else:
            self._arm_chain()
            logger.info(
                f"{self.id_prefix}: repeating every {cfg.periodic_interval_minutes} min with a timer chain"
            )
        return True

    # =========================================================================
    # Triggering
    # =========================================================================

    def _arm_chain(self) -> None:
        delay_ms = int(self.cfg.periodic_interval_minutes * 60 * 1000)
        self._chain_handle = self.timers.set_timeout(self._on_chain_tick, delay_ms)

    def _on_chain_tick(self) -> None:
        self._arm_chain()
        weekday = DAY_NAMES[(self.timers.now().weekday() + 1) % 7]
        if weekday in self.cfg.week_days:
            self.trigger()

    def trigger(self) -> None:
        """Apply the forward actions (skipped while the scenario is disabled)."""
        if not self.is_rule_enabled():
            logger.debug(f"{self.id_prefix}: scenario is disabled, skipping actions")
            return
        if self._phase_active:
            self.reverse()

        if self.cfg.duration_minutes is not None:
            self._snapshot = {
                binding.control: self.platform.get(binding.control) for binding in self.cfg.out_controls
            }

        for binding in self.cfg.out_controls:
            apply_action(self.platform, binding.control, binding.behavior_type, binding.action_value)

        if self.cfg.duration_minutes is not None:
            self._set_phase(True)
            self._reverse_handle = self.timers.set_timeout(
                self.reverse, int(self.cfg.duration_minutes * 60 * 1000)
            )
        logger.debug(f"{self.id_prefix}: schedule actions completed")

    def reverse(self) -> None:
        """Undo the last trigger and end the on-phase."""
        self.timers.clear_timeout(self._reverse_handle)
        self._reverse_handle = None
        if not self._phase_active:
            return

        for binding in self.cfg.out_controls:
            if binding.behavior_type in REVERSED_BY_ACTION:
                apply_action(
                    self.platform, binding.control, binding.behavior_type, binding.action_value, reset=True
                )
                continue
            previous = self._snapshot.get(binding.control)
            if previous is None:
                logger.warning(f"{self.id_prefix}: no value saved for {binding.control}, not restored")
                continue
            try:
                self.platform.set(binding.control, previous)
            except Exception as e:
                logger.error(f"{self.id_prefix}: failed to restore {binding.control}: {e}")

        self._snapshot = {}
        self._set_phase(False)
        logger.debug(f"{self.id_prefix}: schedule actions reversed")

    def _set_phase(self, active: bool) -> None:
        self._phase_active = active
        self.vd.set(PHASE_ACTIVE, active)

    def _on_rule_enabled(self, topic: str, value: Any) -> None:
        if value is not True and self._phase_active:
            logger.info(f"{self.id_prefix}: disabled during the on-phase, reversing now")
            self.reverse()

    @property
    def is_phase_active(self) -> bool:
        return self._phase_active
