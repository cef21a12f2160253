"""
home-scenarios: topic-driven home automation scenarios.

This library provides:
- A topic manager with pluggable processors (history, event dispatch,
  scenario virtual devices)
- Named event resolvers and output action tables
- Scenarios: light control, darkroom, schedule, thermostat, link and
  devices control
- Host adapter interfaces with in-memory implementations for testing
"""

from home_scenarios.core.topic_manager import TopicManager
from home_scenarios.scenarios.base import ScenarioBase, ScenarioState
from home_scenarios.scenarios.host import ScenarioHost
from home_scenarios.scenarios.setup import setup_scenarios, setup_scenarios_from_file

__version__ = "0.1.0"

__all__ = [
    "TopicManager",
    "ScenarioBase",
    "ScenarioState",
    "ScenarioHost",
    "setup_scenarios",
    "setup_scenarios_from_file",
]
