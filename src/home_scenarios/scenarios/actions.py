"""
Output action table.

Every action computes a new control value from the actual value and the
configured action value. Actions with a reset counterpart (setEnable ->
setDisable, setValueNumericInput -> setValueNumericZero) can be undone,
which lighting uses for "off" and schedules use for reversal.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Optional

from home_scenarios.core.adapter import PlatformAdapter, TYPE_SUFFIX

logger = logging.getLogger(__name__)

ActionHandler = Callable[[Any, Any], Any]


@dataclass(frozen=True)
class Action:
    """
    An output action.

    Attributes:
        name: Action name used in configs (behaviorType)
        allowed_types: Control types the action may be applied to
        handler: (actual_value, action_value) -> new value
        reset_name: Name of the action that undoes this one, if any
    """

    name: str
    allowed_types: FrozenSet[str]
    handler: ActionHandler
    reset_name: Optional[str] = None


def toggle(actual: Any, action_value: Any) -> bool:
    return not actual


def set_enable(actual: Any, action_value: Any) -> bool:
    return True


def set_disable(actual: Any, action_value: Any) -> bool:
    return False


def set_value(actual: Any, action_value: Any) -> Any:
    return action_value


def increase_value_by(actual: Any, action_value: Any) -> Any:
    return actual + action_value


def decrease_value_by(actual: Any, action_value: Any) -> Any:
    return actual - action_value


def set_value_zero(actual: Any, action_value: Any) -> int:
    return 0


_SWITCH = frozenset({"switch"})
_VALUE = frozenset({"value"})

ACTIONS: Dict[str, Action] = {
    action.name: action
    for action in (
        Action("toggle", _SWITCH, toggle, "toggle"),
        Action("setEnable", _SWITCH, set_enable, "setDisable"),
        Action("setDisable", _SWITCH, set_disable, "setEnable"),
        Action("setValue", _VALUE, set_value),
        Action("increaseValueBy", _VALUE, increase_value_by),
        Action("decreaseValueBy", _VALUE, decrease_value_by),
        Action("setValueNumericInput", _VALUE, set_value, "setValueNumericZero"),
        Action("setValueNumericZero", _VALUE, set_value_zero),
    )
}


def get_action(name: str) -> Optional[Action]:
    return ACTIONS.get(name)


def get_reset_action(name: str) -> Optional[Action]:
    """Get the action undoing `name`, None if it cannot be undone."""
    action = ACTIONS.get(name)
    if action is None or action.reset_name is None:
        return None
    return ACTIONS.get(action.reset_name)


def is_control_type_valid(platform: PlatformAdapter, topic: str, allowed_types: FrozenSet[str]) -> bool:
    """Check the control's "#type" against allowed types; empty allows any type."""
    if not allowed_types:
        return True
    control_type = platform.get(topic + TYPE_SUFFIX)
    if not control_type:
        logger.debug(f"Control type for {topic} not found")
        return False
    return control_type in allowed_types


def apply_action(
    platform: PlatformAdapter,
    topic: str,
    action_name: str,
    action_value: Any = None,
    reset: bool = False,
) -> bool:
    """
    Compute and write the new value of one control.

    Args:
        platform: Host platform
        topic: Output control
        action_name: Configured action
        action_value: Configured action parameter
        reset: Apply the reset counterpart instead of the action

    Returns:
        True if the write succeeded; failures are logged, never raised
    """
    action = get_reset_action(action_name) if reset else get_action(action_name)
    if action is None:
        logger.error(f"No {'reset ' if reset else ''}action for '{action_name}' on {topic}")
        return False
    try:
        new_value = action.handler(platform.get(topic), action_value)
        logger.debug(f"Control {topic} will be updated to {new_value!r}")
        platform.set(topic, new_value)
    except Exception as e:
        logger.error(f"Failed to update control {topic}: {e}")
        return False
    return True
