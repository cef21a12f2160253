"""
Process-level scenario setup.

Reads the scenarios config, creates and initializes every enabled scenario
of every supported type and registers it in the host. A scenario that fails
to parse or initialize is logged and skipped; the others are still set up.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Union

from home_scenarios.scenarios.astronomical_timer import AstronomicalTimerConfig, AstronomicalTimerScenario
from home_scenarios.scenarios.base import ScenarioBase
from home_scenarios.scenarios.darkroom import DarkroomConfig, DarkroomScenario
from home_scenarios.scenarios.devices_control import DevicesControlConfig, DevicesControlScenario
from home_scenarios.scenarios.host import ScenarioHost
from home_scenarios.scenarios.light_control import LightControlConfig, LightControlScenario
from home_scenarios.scenarios.link import LinkConfig, LinkScenario
from home_scenarios.scenarios.loader import (
    find_all_active_scenarios_with_type,
    read_config,
    validate_scenarios_config,
)
from home_scenarios.scenarios.schedule import ScheduleConfig, ScheduleScenario
from home_scenarios.scenarios.thermostat import ThermostatConfig, ThermostatScenario

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScenarioType:
    """A supported scenario type: implementation, config parser and config version."""

    scenario_class: type
    config_class: type
    component_version: int = 1


SCENARIO_TYPES: Dict[str, ScenarioType] = {
    LightControlScenario.scenario_type: ScenarioType(LightControlScenario, LightControlConfig),
    DarkroomScenario.scenario_type: ScenarioType(DarkroomScenario, DarkroomConfig),
    ScheduleScenario.scenario_type: ScenarioType(ScheduleScenario, ScheduleConfig),
    ThermostatScenario.scenario_type: ScenarioType(ThermostatScenario, ThermostatConfig),
    LinkScenario.scenario_type: ScenarioType(LinkScenario, LinkConfig),
    DevicesControlScenario.scenario_type: ScenarioType(DevicesControlScenario, DevicesControlConfig),
    AstronomicalTimerScenario.scenario_type: ScenarioType(AstronomicalTimerScenario, AstronomicalTimerConfig),
}


def init_scenario(host: ScenarioHost, scenario_type: ScenarioType, descriptor: Dict[str, Any]) -> ScenarioBase:
    """
    Create, initialize and register one scenario.

    Raises:
        ValueError, KeyError: If the descriptor cannot be parsed
        ScenarioError: If the scenario device cannot be created
    """
    name = descriptor.get("name") or descriptor.get("scenarioType", "scenario")
    cfg = scenario_type.config_class.from_dict(descriptor)
    scenario = scenario_type.scenario_class(host)
    if scenario.init(name, cfg) is not True:
        logger.error(f"Scenario '{name}' ({scenario.id_prefix}) failed to initialize")
    host.register_scenario(scenario.scenario_type, scenario.id_prefix, scenario)
    return scenario


def setup_scenarios(host: ScenarioHost, config: Dict[str, Any]) -> List[ScenarioBase]:
    """
    Initialize every enabled scenario of a config object.

    Args:
        host: Host adapters and registries
        config: Parsed config ({configVersion, scenarios})

    Returns:
        Scenarios that were created (including ones whose validation failed)
    """
    descriptors = validate_scenarios_config(config)
    if descriptors is None:
        return []

    created: List[ScenarioBase] = []
    for type_name, scenario_type in SCENARIO_TYPES.items():
        active = find_all_active_scenarios_with_type(descriptors, type_name, scenario_type.component_version)
        if not active:
            continue
        logger.debug(f"Found {len(active)} active '{type_name}' scenarios")
        for descriptor in active:
            try:
                created.append(init_scenario(host, scenario_type, descriptor))
            except Exception as e:
                logger.error(
                    f"Exception during initialization of scenario '{descriptor.get('name')}': {e}",
                    exc_info=True,
                )

    logger.info(f"Scenarios set up: {len(created)}")
    return created


def setup_scenarios_from_file(host: ScenarioHost, path: Union[str, Path]) -> List[ScenarioBase]:
    """Read the config file and set up its scenarios."""
    config = read_config(path)
    if config is None:
        return []
    return setup_scenarios(host, config)
