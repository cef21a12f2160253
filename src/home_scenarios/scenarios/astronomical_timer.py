"""
Astronomical timer scenario.

Applies output actions at a sun event (sunrise, sunset, twilight, ...) on
the selected days of the week. Event times come from the host's sun event
calculator. An offset in minutes shifts the event; an event that the offset
moves out of its own day does not fire that day.

Every scheduled day is planned at midnight by a cron job, and the current
day is planned at setup. The "executeNow" button runs the actions at once.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

from home_scenarios.core.cron import DAY_NAMES, weekday_field
from home_scenarios.plugins.events import ControlBinding
from home_scenarios.scenarios.actions import apply_action
from home_scenarios.scenarios.base import ScenarioBase
from home_scenarios.scenarios.host import ScenarioHost

logger = logging.getLogger(__name__)

EXECUTE_NOW = "executeNow"
NEXT_EVENT_TIME = "nextEventTime"
EVENT_TYPE = "eventType"

CUSTOM_ANGLE = "customAngle"
ASTRO_EVENTS = frozenset(
    {
        "sunrise",
        "sunset",
        "dawn",
        "dusk",
        "nauticalDawn",
        "nauticalDusk",
        "nightEnd",
        "night",
        "goldenHour",
        "goldenHourEnd",
        "solarNoon",
        "nadir",
        CUSTOM_ANGLE,
    }
)

# Calculator keys of the custom elevation crossing
ANGLE_DIRECTIONS = {"rising": "customRise", "setting": "customSet"}

DEFAULT_LATITUDE = 55.7558
DEFAULT_LONGITUDE = 37.6173
MAX_OFFSET_MINUTES = 720
LOOKAHEAD_DAYS = 8
NO_EVENT_TEXT = f"No event in the next {LOOKAHEAD_DAYS} days"


@dataclass(frozen=True)
class AstronomicalTimerConfig:
    """
    Astronomical timer configuration.

    Attributes:
        out_controls: Output controls with their actions
        schedule_days: Enabled day names ("monday", ...)
        latitude, longitude: Location in degrees
        astro_event: Sun event name, or "customAngle"
        offset_minutes: Shift of the event time, -720..720
        custom_elevation: Sun elevation in degrees for "customAngle"
        custom_angle_direction: "rising" or "setting" for "customAngle"
    """

    out_controls: Tuple[ControlBinding, ...]
    schedule_days: Tuple[str, ...]
    latitude: float = DEFAULT_LATITUDE
    longitude: float = DEFAULT_LONGITUDE
    astro_event: str = "sunrise"
    offset_minutes: float = 0
    custom_elevation: float = 0
    custom_angle_direction: str = "rising"
    id_prefix: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AstronomicalTimerConfig":
        """
        Raises:
            ValueError: If scheduleDaysOfWeek is not a list
        """
        days = data.get("scheduleDaysOfWeek") or []
        if not isinstance(days, (list, tuple)):
            raise ValueError("scheduleDaysOfWeek must be a list")

        def value(key: str, default: Any) -> Any:
            found = data.get(key)
            return default if found is None else found

        return cls(
            out_controls=tuple(ControlBinding.from_dict(item) for item in data.get("outControls") or ()),
            schedule_days=tuple(days),
            latitude=value("latitude", DEFAULT_LATITUDE),
            longitude=value("longitude", DEFAULT_LONGITUDE),
            astro_event=data.get("astroEvent") or "sunrise",
            offset_minutes=value("offset", 0),
            custom_elevation=value("customElevation", 0),
            custom_angle_direction=data.get("customAngleDirection") or "rising",
            id_prefix=data.get("idPrefix") or data.get("id_prefix"),
        )

    @property
    def is_custom_angle(self) -> bool:
        return self.astro_event == CUSTOM_ANGLE


def _number_in(value: Any, low: float, high: float) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and low <= value <= high


def describe_event(cfg: AstronomicalTimerConfig) -> str:
    """Short text of the event, e.g. "sunset -30min" or "rising -6°"."""
    text = cfg.astro_event
    if cfg.is_custom_angle:
        text = f"{cfg.custom_angle_direction} {cfg.custom_elevation}°"
    if cfg.offset_minutes:
        text += f" {cfg.offset_minutes:+}min"
    return text


class AstronomicalTimerScenario(ScenarioBase):
    """Actions at a sun event on selected days of the week."""

    scenario_type = "astronomicalTimer"

    def __init__(self, host: ScenarioHost) -> None:
        super().__init__(host)
        self.cron_expression: Optional[str] = None
        self._cron_handle: Optional[int] = None
        self._event_handle: Optional[int] = None

    def generate_names(self, id_prefix: str) -> Dict[str, str]:
        return self.base_names(id_prefix, "manual")

    def define_controls_wait_config(self, cfg: AstronomicalTimerConfig) -> List[str]:
        return [binding.control for binding in cfg.out_controls]

    def validate_cfg(self, cfg: AstronomicalTimerConfig) -> bool:
        if self.host.sun_events is None:
            logger.error(f"{self.id_prefix}: no sun event calculator is configured")
            return False
        if not _number_in(cfg.latitude, -90, 90):
            logger.error(f"{self.id_prefix}: latitude must be between -90 and 90")
            return False
        if not _number_in(cfg.longitude, -180, 180):
            logger.error(f"{self.id_prefix}: longitude must be between -180 and 180")
            return False
        if cfg.astro_event not in ASTRO_EVENTS:
            logger.error(f"{self.id_prefix}: invalid astroEvent '{cfg.astro_event}'")
            return False
        if not _number_in(cfg.offset_minutes, -MAX_OFFSET_MINUTES, MAX_OFFSET_MINUTES):
            logger.error(
                f"{self.id_prefix}: offset must be between -{MAX_OFFSET_MINUTES} and {MAX_OFFSET_MINUTES}"
            )
            return False

        if cfg.is_custom_angle:
            if not _number_in(cfg.custom_elevation, -90, 90):
                logger.error(f"{self.id_prefix}: customElevation must be between -90 and 90")
                return False
            if cfg.custom_angle_direction not in ANGLE_DIRECTIONS:
                logger.error(f"{self.id_prefix}: customAngleDirection must be rising or setting")
                return False

        if not cfg.schedule_days:
            logger.error(f"{self.id_prefix}: at least one day must be selected")
            return False
        for day in cfg.schedule_days:
            if day not in DAY_NAMES:
                logger.error(f"{self.id_prefix}: invalid day '{day}'")
                return False

        if not cfg.out_controls:
            logger.error(f"{self.id_prefix}: at least one output control is required")
            return False
        if not self.bindings_have_valid_types(cfg.out_controls, "actions"):
            logger.error(f"{self.id_prefix}: one or more controls are not of a valid type")
            return False
        return True

    def init_specific(self, cfg: AstronomicalTimerConfig) -> bool:
        vd = self.vd
        vd.add_cell(EXECUTE_NOW, "pushbutton", False, title="Execute now")
        vd.add_cell(NEXT_EVENT_TIME, "text", "", readonly=True, title="Next event time")
        vd.add_cell(EVENT_TYPE, "text", describe_event(cfg), readonly=True, title="Event type")

        manual = self.manager.define_service_rule(
            self.names["rule_manual"], [vd.topic(EXECUTE_NOW)], self._on_execute_now
        )
        if manual is None:
            return False

        self.cron_expression = f"0 0 0 * * {weekday_field(cfg.schedule_days)}"
        self._cron_handle = self.timers.add_cron(self.cron_expression, self.plan_today)
        logger.info(f"{self.id_prefix}: planning '{describe_event(cfg)}' with cron '{self.cron_expression}'")
        self.plan_today()
        return True

    # =========================================================================
    # Event times
    # =========================================================================

    def event_time(self, day: date) -> Optional[datetime]:
        """
        Time of the configured event on a day, offset applied.

        Returns:
            None if the event does not occur that day or the offset moves it
            to another day
        """
        cfg = self.cfg
        elevation = cfg.custom_elevation if cfg.is_custom_angle else None
        times = self.host.sun_events(day, cfg.latitude, cfg.longitude, elevation)
        key = ANGLE_DIRECTIONS[cfg.custom_angle_direction] if cfg.is_custom_angle else cfg.astro_event
        moment = times.get(key)
        if moment is None:
            return None

        moment += timedelta(minutes=cfg.offset_minutes)
        day_start = datetime.combine(day, time.min, tzinfo=self.timers.now().tzinfo)
        if not day_start <= moment < day_start + timedelta(days=1):
            logger.debug(f"{self.id_prefix}: event with offset falls outside {day}")
            return None
        return moment

    def next_event(self) -> Optional[datetime]:
        """First upcoming event on a scheduled day, looking a week ahead."""
        now = self.timers.now()
        for ahead in range(LOOKAHEAD_DAYS):
            moment = now + timedelta(days=ahead)
            if not self._is_scheduled(moment):
                continue
            event = self.event_time(moment.date())
            if event is not None and event > now:
                return event
        logger.warning(f"{self.id_prefix}: no '{self.cfg.astro_event}' event in the next {LOOKAHEAD_DAYS} days")
        return None

    def _is_scheduled(self, moment: datetime) -> bool:
        return DAY_NAMES[(moment.weekday() + 1) % 7] in self.cfg.schedule_days

    # =========================================================================
    # Triggering
    # =========================================================================

    def plan_today(self) -> None:
        """Arm the timer for today's event unless it is missing or already passed."""
        self.timers.clear_timeout(self._event_handle)
        self._event_handle = None

        now = self.timers.now()
        event = self.event_time(now.date()) if self._is_scheduled(now) else None
        if event is not None and event > now:
            delay_ms = round((event - now).total_seconds() * 1000)
            self._event_handle = self.timers.set_timeout(self._on_event, delay_ms)
            logger.debug(f"{self.id_prefix}: event armed for {event.isoformat()}")
        self._show_next_event()

    def _on_event(self) -> None:
        self._event_handle = None
        self.trigger()

    def trigger(self) -> None:
        """Apply the output actions (skipped while the scenario is disabled)."""
        if not self.is_rule_enabled():
            logger.debug(f"{self.id_prefix}: scenario is disabled, skipping actions")
            return
        for binding in self.cfg.out_controls:
            apply_action(self.platform, binding.control, binding.behavior_type, binding.action_value)
        logger.debug(f"{self.id_prefix}: astronomical timer actions completed")
        self._show_next_event()

    def _on_execute_now(self, topic: str, value: Any) -> None:
        if value is not True:
            return
        logger.info(f"{self.id_prefix}: manual execution")
        self.trigger()
        self.vd.set(EXECUTE_NOW, False)

    def _show_next_event(self) -> None:
        event = self.next_event()
        self.vd.set(NEXT_EVENT_TIME, event.strftime("%A %Y-%m-%d %H:%M") if event else NO_EVENT_TEXT)

    @property
    def is_armed(self) -> bool:
        return self._event_handle is not None
