"""Scenarios: one configured automation instance each, plus process setup."""

from home_scenarios.scenarios.astronomical_timer import AstronomicalTimerConfig, AstronomicalTimerScenario
from home_scenarios.scenarios.base import ScenarioBase, ScenarioError, ScenarioState
from home_scenarios.scenarios.darkroom import DarkroomConfig, DarkroomScenario
from home_scenarios.scenarios.devices_control import DevicesControlConfig, DevicesControlScenario
from home_scenarios.scenarios.host import ScenarioHost
from home_scenarios.scenarios.light_control import LightControlConfig, LightControlScenario
from home_scenarios.scenarios.link import LinkConfig, LinkScenario
from home_scenarios.scenarios.schedule import ScheduleConfig, ScheduleScenario
from home_scenarios.scenarios.setup import SCENARIO_TYPES, setup_scenarios, setup_scenarios_from_file
from home_scenarios.scenarios.storage import ScenarioStorage
from home_scenarios.scenarios.thermostat import ThermostatConfig, ThermostatScenario

__all__ = [
    "ScenarioBase",
    "ScenarioError",
    "ScenarioState",
    "ScenarioHost",
    "ScenarioStorage",
    "AstronomicalTimerConfig",
    "AstronomicalTimerScenario",
    "DarkroomConfig",
    "DarkroomScenario",
    "DevicesControlConfig",
    "DevicesControlScenario",
    "LightControlConfig",
    "LightControlScenario",
    "LinkConfig",
    "LinkScenario",
    "ScheduleConfig",
    "ScheduleScenario",
    "ThermostatConfig",
    "ThermostatScenario",
    "SCENARIO_TYPES",
    "setup_scenarios",
    "setup_scenarios_from_file",
]
