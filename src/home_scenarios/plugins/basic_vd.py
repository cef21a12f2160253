"""
Basic virtual device plugin.

Adds `manager.create_basic_vd(name, title)`, which creates the scenario's
own device with two controls:

- rule_enabled: switch, starts enabled; toggling it enables or disables
  every general rule of the manager
- state: read-only value showing the scenario state code

The created device is attached as `manager.vd`.
"""

import logging
from typing import Any, Dict, List, Optional

from home_scenarios.core.adapter import PlatformAdapter, TYPE_SUFFIX
from home_scenarios.core.topic_manager import Plugin, TopicManager

logger = logging.getLogger(__name__)

RULE_ENABLED = "rule_enabled"
STATE = "state"
ALARM = "alarm"
CRITICAL_ERROR = "r"


class VirtualDevice:
    """
    A virtual device owned by one scenario.

    Cells are addressed by cell name; topic() gives the full "device/cell"
    topic.
    """

    def __init__(self, name: str, title: str, platform: PlatformAdapter) -> None:
        self.name = name
        self.title = title
        self._platform = platform
        self.cells: List[str] = []

    def topic(self, cell: str) -> str:
        return f"{self.name}/{cell}"

    def add_cell(
        self,
        cell: str,
        control_type: str,
        value: Any,
        readonly: bool = False,
        title: Optional[str] = None,
    ) -> bool:
        """
        Add a control to the device.

        Returns:
            False if a cell with that name already exists
        """
        if cell in self.cells:
            logger.error(f"Cell {cell} already exists on {self.name}")
            return False
        self._platform.define_control(self.topic(cell), control_type, value, readonly, title)
        self.cells.append(cell)
        logger.debug(f"Cell {cell} added to virtual device {self.name}")
        return True

    def add_alarm(self, message: str) -> bool:
        """Add the read-only "alarm" cell titled with the message."""
        return self.add_cell(ALARM, "alarm", True, readonly=True, title=message)

    def set_total_error(self, message: str) -> None:
        """Log the error and mark every cell of the device as errored."""
        logger.error(f"{self.name}: {message}")
        for cell in self.cells:
            self._platform.set_error(self.topic(cell), CRITICAL_ERROR)

    def clear_total_error(self) -> None:
        for cell in self.cells:
            self._platform.set_error(self.topic(cell), "")

    def get(self, cell: str) -> Any:
        return self._platform.get(self.topic(cell))

    def set(self, cell: str, value: Any) -> None:
        self._platform.set(self.topic(cell), value)


class BasicVdPlugin(Plugin):
    """Attaches `manager.create_basic_vd()`."""

    @property
    def name(self) -> str:
        return "basic_vd"

    def install(self, manager: TopicManager, options: Dict[str, Any]) -> None:
        manager.vd = None

        def create_basic_vd(device_name: str, title: str) -> bool:
            """
            Create the scenario device and its enable-switch service rule.

            Returns:
                False if a device already exists or the rule cannot be created
            """
            if manager.vd is not None:
                logger.error(f"Virtual device already initialized: {device_name}")
                return False

            vd = VirtualDevice(device_name, title, manager.platform)
            vd.add_cell(RULE_ENABLED, "switch", True, title="Activate scenario rule")
            vd.add_cell(STATE, "value", 0, readonly=True, title="State")

            def switch_rules(topic: str, value: Any) -> None:
                if value is True:
                    manager.enable_all_rules()
                else:
                    manager.disable_all_rules()

            rule = manager.define_service_rule(
                f"{device_name}_switch_control", [vd.topic(RULE_ENABLED)], switch_rules
            )
            if rule is None:
                logger.error(f"Failed to create the switch rule for {device_name}")
                return False

            manager.vd = vd
            logger.debug(f"Virtual device {device_name} created")
            return True

        def add_linked_control_ro(source: str, cell: str, title_prefix: str) -> bool:
            """Mirror an external control into a read-only cell of the device."""
            vd = manager.vd
            value = manager.platform.get(source)
            if vd is None or value is None:
                logger.error(f"Control {source} not found, cannot link it to the virtual device")
                return False
            control_type = manager.platform.get(source + TYPE_SUFFIX) or "value"
            if not vd.add_cell(cell, control_type, value, readonly=True, title=f"{title_prefix} {source}"):
                return False
            manager.define_rule(
                f"{vd.name}_{cell}", [source], lambda topic, new_value: vd.set(cell, new_value)
            )
            return True

        manager.create_basic_vd = create_basic_vd
        manager.add_linked_control_ro = add_linked_control_ro
