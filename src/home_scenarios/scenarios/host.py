"""Process-level host bundle passed to every scenario."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Mapping, Optional

from home_scenarios.core.adapter import KeyValueStore, PlatformAdapter, TimerService
from home_scenarios.scenarios.storage import ScenarioStorage

# (day, latitude, longitude, custom elevation) -> event name -> time on that day.
# Events that do not occur on the day are missing or None. With a custom
# elevation the mapping also holds "customRise" and "customSet".
SunEventCalculator = Callable[[date, float, float, Optional[float]], Mapping[str, Optional[datetime]]]


@dataclass
class ScenarioHost:
    """
    Everything a scenario needs from the outside world.

    Attributes:
        platform: Topic read/write and rules
        timers: Timeouts and cron jobs
        store: Durable key/value store for user settings
        scenarios: Initialized scenarios by type tag, then id prefix
        sun_events: Sun position calculator for astronomical timers
    """

    platform: PlatformAdapter
    timers: TimerService
    store: KeyValueStore
    scenarios: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    sun_events: Optional[SunEventCalculator] = None

    @property
    def storage(self) -> ScenarioStorage:
        return ScenarioStorage(self.store)

    def register_scenario(self, scenario_type: str, id_prefix: str, scenario: Any) -> None:
        self.scenarios.setdefault(scenario_type, {})[id_prefix] = scenario

    def get_scenario(self, scenario_type: str, id_prefix: str) -> Any:
        return self.scenarios.get(scenario_type, {}).get(id_prefix)
