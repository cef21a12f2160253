"""
Base class for scenarios.

A scenario is one configured automation instance. It owns a TopicManager
with the history, events and basic virtual device plugins installed, and
goes through a fixed initialization sequence:

    CREATED -> INIT_STARTED -> [WAITING_CONTROLS -> LINKED_CONTROLS_READY]
            -> NORMAL

or ends in CONFIG_INVALID / LINKED_CONTROLS_TIMEOUT. Subclasses implement
generate_names(), validate_cfg() and init_specific().
"""

import logging
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional

from home_scenarios.core.adapter import PlatformAdapter, TimerService
from home_scenarios.core.topic_manager import TopicManager
from home_scenarios.plugins.basic_vd import RULE_ENABLED, STATE, BasicVdPlugin, VirtualDevice
from home_scenarios.plugins.events import ControlBinding, EventDispatcher, EventsPlugin
from home_scenarios.plugins.history import HistoryPlugin
from home_scenarios.scenarios.actions import ACTIONS, is_control_type_valid
from home_scenarios.scenarios.host import ScenarioHost
from home_scenarios.scenarios.loader import get_id_prefix
from home_scenarios.scenarios.wait import ControlsTimeoutError, ControlsWaiter, wait_controls

logger = logging.getLogger(__name__)

SCENARIO_PREFIX = "wbsc_"


class ScenarioState(IntEnum):
    """State codes shown in the scenario device's "state" control."""

    CREATED = 0
    INIT_STARTED = 1
    WAITING_CONTROLS = 2
    LINKED_CONTROLS_READY = 3
    CONFIG_INVALID = 4
    LINKED_CONTROLS_TIMEOUT = 5
    NORMAL = 6
    USED_CONTROL_ERROR = 7


class ScenarioError(Exception):
    """Unrecoverable scenario misuse (double init, invalid state code)."""


class ScenarioBase(ABC):
    """
    Base class for scenarios.

    Attributes:
        host: Host adapters and registries
        name: Scenario display name (device title)
        cfg: Parsed scenario config
        id_prefix: Identifier used in device and rule names
        names: Generated device and rule names
        manager: Topic manager owned by this scenario
    """

    scenario_type: str = ""

    def __init__(self, host: ScenarioHost) -> None:
        self.host = host
        self.name: Optional[str] = None
        self.cfg: Any = None
        self.id_prefix: Optional[str] = None
        self.names: Dict[str, str] = {}
        self.manager: Optional[TopicManager] = None
        self._waiter: Optional[ControlsWaiter] = None
        self._init_result: Optional[bool] = None

    @property
    def platform(self) -> PlatformAdapter:
        return self.host.platform

    @property
    def timers(self) -> TimerService:
        return self.host.timers

    @property
    def vd(self) -> Optional[VirtualDevice]:
        if self.manager is None:
            return None
        return self.manager.vd

    @property
    def events(self) -> EventDispatcher:
        return self.manager.events

    # =========================================================================
    # State
    # =========================================================================

    def get_state(self) -> ScenarioState:
        vd = self.vd
        if vd is None:
            return ScenarioState.CREATED
        return ScenarioState(vd.get(STATE))

    def set_state(self, state: int) -> None:
        """
        Publish a state code.

        Raises:
            ScenarioError: If the code is not a ScenarioState
        """
        try:
            state = ScenarioState(state)
        except ValueError:
            raise ScenarioError(f"Invalid scenario state: {state}") from None
        if self.vd is not None:
            self.vd.set(STATE, int(state))

    def is_rule_enabled(self) -> bool:
        return self.vd is not None and self.vd.get(RULE_ENABLED) is True

    def enable(self) -> None:
        if self.vd is not None:
            self.vd.set(RULE_ENABLED, True)

    def disable(self) -> None:
        if self.vd is not None:
            self.vd.set(RULE_ENABLED, False)

    # =========================================================================
    # Initialization
    # =========================================================================

    def init(self, name: str, cfg: Any) -> bool:
        """
        Initialize the scenario.

        When controls must be waited for, initialization continues from a
        timer and init() returns True as soon as the device exists.

        Returns:
            False if the configuration is invalid or init_specific() failed

        Raises:
            ScenarioError: If the scenario was already initialized or the
                virtual device cannot be created
        """
        if self.get_state() != ScenarioState.CREATED:
            raise ScenarioError(f"Scenario '{self.name}' was already initialized")

        self.name = name
        self.cfg = cfg
        self.id_prefix = get_id_prefix(name, getattr(cfg, "id_prefix", None))
        self.names = self.generate_names(self.id_prefix)

        self.manager = self._create_manager()
        if not self.manager.create_basic_vd(self.names["vdevice"], name):
            raise ScenarioError(f"Basic virtual device creation failed for '{name}'")
        self._restore_rule_enabled()
        self.set_state(ScenarioState.INIT_STARTED)

        controls = self.define_controls_wait_config(cfg)
        if controls:
            self.set_state(ScenarioState.WAITING_CONTROLS)
            self._waiter = wait_controls(self.platform, self.timers, controls, self._after_wait)
        else:
            self._complete_init()

        return True if self._init_result is None else self._init_result

    def _create_manager(self) -> TopicManager:
        manager = TopicManager(self.platform, name=self.id_prefix)
        manager.install_plugin(HistoryPlugin())
        manager.install_plugin(EventsPlugin())
        manager.install_plugin(BasicVdPlugin())
        return manager

    def _restore_rule_enabled(self) -> None:
        storage = self.host.storage
        stored = storage.get_user_setting(self.id_prefix, RULE_ENABLED, True)
        self.vd.set(RULE_ENABLED, stored is True)

        def persist(topic: str, value: Any) -> None:
            storage.set_user_setting(self.id_prefix, RULE_ENABLED, value is True)

        self.manager.define_service_rule(
            f"{self.names['vdevice']}_persist_{RULE_ENABLED}", [self.vd.topic(RULE_ENABLED)], persist
        )

    def _after_wait(self, error: Optional[ControlsTimeoutError]) -> None:
        self._waiter = None
        if error is not None:
            self.vd.set_total_error(str(error))
            self.set_state(ScenarioState.LINKED_CONTROLS_TIMEOUT)
            self._init_result = False
            return
        self.set_state(ScenarioState.LINKED_CONTROLS_READY)
        self._complete_init()

    def _complete_init(self) -> None:
        if self.validate_cfg(self.cfg) is not True:
            self.vd.set_total_error(f"Config validation failed for '{self.name}'")
            self.set_state(ScenarioState.CONFIG_INVALID)
            self._init_result = False
            return

        if self.init_specific(self.cfg) is False:
            self.vd.set_total_error(f"init_specific() returned False for '{self.name}'")
            self.set_state(ScenarioState.CONFIG_INVALID)
            self._init_result = False
            return

        if self.manager.topics():
            self.manager.init_rules_for_all_topics(self.names.get("rule_events", f"{self.names['vdevice']}_events"))
        if not self.is_rule_enabled():
            self.manager.disable_all_rules()

        self.set_state(ScenarioState.NORMAL)
        self._init_result = True
        logger.info(f"Scenario '{self.name}' ({self.id_prefix}) initialized successfully")

    # =========================================================================
    # Helpers for subclasses
    # =========================================================================

    def base_names(self, id_prefix: str, *rules: str) -> Dict[str, str]:
        """Device name plus "wbsc_<prefix>_<rule>" for each rule key."""
        vdevice = SCENARIO_PREFIX + id_prefix
        names = {"vdevice": vdevice}
        for rule in rules:
            names[f"rule_{rule}"] = f"{vdevice}_{rule}"
        return names

    def bindings_have_valid_types(
        self, bindings: Iterable[ControlBinding], table: str = "actions"
    ) -> bool:
        """
        Check every binding's behavior exists and fits the control type.

        Args:
            bindings: Controls to check
            table: "actions" for output actions, "events" for input resolvers
        """
        for binding in bindings:
            if table == "events":
                resolver = self.events.resolvers.resolve(binding.behavior_type)
                allowed = resolver.allowed_kinds if resolver else None
            else:
                action = ACTIONS.get(binding.behavior_type)
                allowed = action.allowed_types if action else None
            if allowed is None:
                logger.error(f"{self.id_prefix}: behavior type '{binding.behavior_type}' not found")
                return False
            if not is_control_type_valid(self.platform, binding.control, allowed):
                logger.error(
                    f"{self.id_prefix}: control '{binding.control}' is not of a valid type "
                    f"for '{binding.behavior_type}', allowed: {sorted(allowed)}"
                )
                return False
        return True

    # =========================================================================
    # Subclass interface
    # =========================================================================

    @abstractmethod
    def generate_names(self, id_prefix: str) -> Dict[str, str]:
        """
        Generate device and rule names.

        Must contain at least "vdevice".
        """
        pass

    @abstractmethod
    def validate_cfg(self, cfg: Any) -> bool:
        """Validate the configuration; called before init_specific()."""
        pass

    @abstractmethod
    def init_specific(self, cfg: Any) -> bool:
        """Create cells, subscriptions, rules and timers of the scenario."""
        pass

    def define_controls_wait_config(self, cfg: Any) -> List[str]:
        """Controls to wait for before validation; none by default."""
        return []
