"""Shared fixtures: in-memory host adapters and a scenario host."""

import logging

import pytest

from home_scenarios.core.adapter import MemoryKeyValueStore, MockPlatformAdapter, MockTimerService
from home_scenarios.scenarios.host import ScenarioHost

logging.basicConfig(
    level=logging.DEBUG, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


@pytest.fixture
def platform():
    """Create a mock platform adapter."""
    return MockPlatformAdapter()


@pytest.fixture
def timers():
    """Create a virtual-clock timer service (starts Monday 2024-01-01 00:00 UTC)."""
    return MockTimerService()


@pytest.fixture
def store():
    """Create an in-memory settings store."""
    return MemoryKeyValueStore()


@pytest.fixture
def host(platform, timers, store):
    """Create a scenario host over the mock adapters."""
    return ScenarioHost(platform=platform, timers=timers, store=store)
