"""Link scenario: copy an input control to an output control, optionally inverted."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from home_scenarios.scenarios.base import ScenarioBase, ScenarioState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkConfig:
    in_control: str
    out_control: str
    inverse_link: bool = False
    id_prefix: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LinkConfig":
        return cls(
            in_control=data.get("inControl"),
            out_control=data.get("outControl"),
            inverse_link=bool(data.get("inverseLink", False)),
            id_prefix=data.get("idPrefix") or data.get("id_prefix"),
        )


class LinkScenario(ScenarioBase):
    scenario_type = "linkInToOut"

    def generate_names(self, id_prefix: str) -> Dict[str, str]:
        return self.base_names(id_prefix, "input_change")

    def define_controls_wait_config(self, cfg: LinkConfig) -> List[str]:
        return [c for c in (cfg.in_control, cfg.out_control) if isinstance(c, str) and c]

    def validate_cfg(self, cfg: LinkConfig) -> bool:
        if not isinstance(cfg.in_control, str) or not cfg.in_control:
            logger.error(f"{self.id_prefix}: invalid inControl configuration")
            return False
        if not isinstance(cfg.out_control, str) or not cfg.out_control:
            logger.error(f"{self.id_prefix}: invalid outControl configuration")
            return False
        return True

    def init_specific(self, cfg: LinkConfig) -> bool:
        return self.events.register_single_event(cfg.in_control, "whenChange", self._on_input_change)

    def _on_input_change(self, value: Any) -> bool:
        state = self.get_state()
        if state != ScenarioState.NORMAL:
            logger.debug(f"{self.id_prefix}: state is {state.name}, ignoring input change")
            return True

        out_value = (not value) if self.cfg.inverse_link else value
        try:
            self.platform.set(self.cfg.out_control, out_value)
        except Exception as e:
            logger.error(f"{self.id_prefix}: failed to set {self.cfg.out_control}: {e}")
            return False
        logger.debug(f"{self.id_prefix}: output set to {out_value!r}")
        return True
