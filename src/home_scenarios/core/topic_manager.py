"""
Topic registry and plugin host.

The TopicManager keeps, per topic, a dict of plugin-owned data and runs an
ordered chain of processors on every topic change. Plugins extend the
manager at install time (the event dispatcher, history buffer and basic
virtual device are plugins); this is how each scenario composes exactly
the capabilities it needs.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from home_scenarios.core.adapter import PlatformAdapter, RuleCallback

logger = logging.getLogger(__name__)

Processor = Callable[[str, Any], None]


class Plugin(ABC):
    """
    Base class for topic manager plugins.

    A plugin:
    - Has a unique name
    - Declares the plugins it depends on (installed strictly before it)
    - Attaches its API to the manager in install()
    """

    dependencies: Sequence[str] = ()

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique plugin name."""
        pass

    @abstractmethod
    def install(self, manager: "TopicManager", options: Dict[str, Any]) -> None:
        """
        Attach the plugin to a manager.

        Args:
            manager: The manager being extended
            options: Plugin options passed to install_plugin()
        """
        pass


@dataclass
class ProcessorEntry:
    """A processor and its priority (higher runs first)."""

    function: Processor
    priority: int


class RuleInstance:
    """Handle to a rule created on the host platform."""

    def __init__(self, name: str, rule_id: int, platform: PlatformAdapter) -> None:
        self.name = name
        self.rule_id = rule_id
        self._platform = platform
        self.enabled = True

    def enable(self) -> None:
        self._platform.enable_rule(self.rule_id)
        self.enabled = True

    def disable(self) -> None:
        self._platform.disable_rule(self.rule_id)
        self.enabled = False

    def run(self) -> None:
        self._platform.run_rule(self.rule_id)

    def __repr__(self) -> str:
        return f"RuleInstance(name={self.name!r}, rule_id={self.rule_id}, enabled={self.enabled})"


class TopicManager:
    """
    Per-scenario topic registry with a plugin host and processor chain.

    Rules come in two groups: general rules, which enable_all_rules() and
    disable_all_rules() toggle together, and service rules (for example the
    watch on the scenario's own enable switch), which stay active.
    """

    def __init__(self, platform: PlatformAdapter, name: str = "topic_manager") -> None:
        self.name = name
        self.platform = platform
        self.registry: Dict[str, Dict[str, Any]] = {}
        self.installed_plugins: Dict[str, Plugin] = {}
        self._processors: List[ProcessorEntry] = []
        self.rules: Dict[str, RuleInstance] = {}
        self.service_rules: Dict[str, RuleInstance] = {}

    # =========================================================================
    # Topics
    # =========================================================================

    def register_topic(self, topic: str) -> Dict[str, Any]:
        """Get the data dict of a topic, creating it if needed."""
        data = self.registry.get(topic)
        if data is None:
            data = {}
            self.registry[topic] = data
        return data

    def get_topic_data(self, topic: str) -> Optional[Dict[str, Any]]:
        return self.registry.get(topic)

    def topics(self) -> List[str]:
        return list(self.registry)

    # =========================================================================
    # Plugins
    # =========================================================================

    def install_plugin(self, plugin: Plugin, options: Optional[Dict[str, Any]] = None) -> bool:
        """
        Install a plugin.

        Fails when the plugin has no callable install, its name is invalid or
        already installed, or one of its dependencies is not installed yet.

        Returns:
            True if the plugin was installed
        """
        install = getattr(plugin, "install", None)
        if not callable(install):
            logger.error(f"{self.name}: plugin {plugin!r} has no install function")
            return False

        plugin_name = getattr(plugin, "name", None)
        if not isinstance(plugin_name, str) or not plugin_name:
            logger.error(f"{self.name}: plugin {plugin!r} has no valid name")
            return False

        if plugin_name in self.installed_plugins:
            logger.error(f"{self.name}: plugin {plugin_name} is already installed")
            return False

        dependencies = getattr(plugin, "dependencies", ())
        missing = [dep for dep in dependencies if dep not in self.installed_plugins]
        if missing:
            logger.error(
                f"{self.name}: plugin {plugin_name} requires {', '.join(missing)} "
                f"to be installed first"
            )
            return False

        try:
            install(self, dict(options or {}))
        except Exception as e:
            logger.error(f"{self.name}: failed to install plugin {plugin_name}: {e}", exc_info=True)
            return False

        self.installed_plugins[plugin_name] = plugin
        logger.debug(f"{self.name}: installed plugin {plugin_name}")
        return True

    def has_plugin(self, plugin_name: str) -> bool:
        return plugin_name in self.installed_plugins

    # =========================================================================
    # Processor chain
    # =========================================================================

    def add_processor(self, function: Processor, priority: int = 0) -> None:
        """
        Insert a processor.

        The chain stays sorted by descending priority; a new entry goes
        before the first entry with strictly lower priority, so equal
        priorities keep insertion order.
        """
        entry = ProcessorEntry(function, priority)
        for index, existing in enumerate(self._processors):
            if existing.priority < priority:
                self._processors.insert(index, entry)
                return
        self._processors.append(entry)

    def remove_processor(self, function: Processor) -> bool:
        for index, entry in enumerate(self._processors):
            if entry.function == function:
                del self._processors[index]
                return True
        logger.warning(f"{self.name}: processor {function!r} not found, nothing removed")
        return False

    def processors(self) -> List[ProcessorEntry]:
        return list(self._processors)

    def run_processors(self, topic: str, value: Any) -> None:
        """Run every processor, in order; a failing processor never stops the chain."""
        for entry in list(self._processors):
            try:
                entry.function(topic, value)
            except Exception as e:
                logger.error(
                    f"{self.name}: processor {getattr(entry.function, '__name__', entry.function)} "
                    f"failed for {topic}: {e}",
                    exc_info=True,
                )

    # =========================================================================
    # Rules
    # =========================================================================

    def _create_rule(self, name: str, topics: List[str], callback: RuleCallback) -> Optional[RuleInstance]:
        rule_id = self.platform.define_rule(name, topics, callback)
        if rule_id is None:
            logger.error(f"{self.name}: host refused rule {name}")
            return None
        return RuleInstance(name, rule_id, self.platform)

    def define_rule(self, name: str, topics: List[str], callback: RuleCallback) -> Optional[RuleInstance]:
        """Create a general rule (toggled by enable_all_rules/disable_all_rules)."""
        rule = self._create_rule(name, topics, callback)
        if rule is not None:
            self.rules[name] = rule
        return rule

    def define_service_rule(
        self, name: str, topics: List[str], callback: RuleCallback
    ) -> Optional[RuleInstance]:
        """Create a service rule, which the bulk enable/disable sweep ignores."""
        rule = self._create_rule(name, topics, callback)
        if rule is not None:
            self.service_rules[name] = rule
        return rule

    def enable_all_rules(self) -> None:
        for rule in self.rules.values():
            rule.enable()
        logger.debug(f"{self.name}: enabled {len(self.rules)} rules")

    def disable_all_rules(self) -> None:
        for rule in self.rules.values():
            rule.disable()
        logger.debug(f"{self.name}: disabled {len(self.rules)} rules")

    def init_rules_for_all_topics(self, name: str) -> bool:
        """
        Subscribe every currently registered topic to the processor chain.

        Topics registered afterwards are not subscribed.

        Returns:
            False when the name is invalid or no topic is registered
        """
        if not isinstance(name, str) or not name:
            logger.error(f"{self.name}: rule name must be a non-empty string")
            return False
        topics = self.topics()
        if not topics:
            logger.error(f"{self.name}: no topics registered, rule {name} not created")
            return False
        return self.define_rule(name, topics, self.run_processors) is not None
