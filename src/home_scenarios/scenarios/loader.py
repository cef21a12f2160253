"""
Scenario configuration file loading.

File shape:

    {
        "configVersion": 1,
        "scenarios": [
            {"scenarioType": "lightControl", "enable": true, "name": "Hall",
             "componentVersion": 1, "idPrefix": "hall", ...},
            ...
        ]
    }
"""

import json
import logging
import re
import unicodedata
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

CONFIG_VERSION = 1


def read_config(path: Union[str, Path]) -> Optional[Dict[str, Any]]:
    """
    Read a JSON config file.

    Returns:
        Parsed object, or None if the file is missing or not valid JSON
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.error(f"Config file {path} not found")
        return None
    except json.JSONDecodeError as e:
        logger.error(f"Config file {path} is not valid JSON: {e}")
        return None
    if not isinstance(data, dict):
        logger.error(f"Config file {path} must contain a JSON object")
        return None
    return data


def validate_scenarios_config(
    config: Optional[Dict[str, Any]], required_version: int = CONFIG_VERSION
) -> Optional[List[Dict[str, Any]]]:
    """
    Check the general config structure.

    Returns:
        The scenario descriptor list, or None when the structure is invalid
        or the list is empty
    """
    if not config:
        logger.error("Empty scenarios config")
        return None
    if "configVersion" not in config:
        logger.error('"configVersion" does not exist in the configuration')
        return None
    if config["configVersion"] != required_version:
        logger.error(
            f"Global config version mismatch. Expected: {required_version}, "
            f"got: {config['configVersion']}"
        )
        return None
    scenarios = config.get("scenarios")
    if not isinstance(scenarios, list):
        logger.error('"scenarios" is missing or not an array')
        return None
    if not scenarios:
        logger.debug('"scenarios" array is empty')
        return None
    return scenarios


def read_and_validate_scenarios_config(
    path: Union[str, Path], required_version: int = CONFIG_VERSION
) -> Optional[List[Dict[str, Any]]]:
    return validate_scenarios_config(read_config(path), required_version)


def find_all_active_scenarios_with_type(
    scenarios: List[Dict[str, Any]],
    scenario_type: str,
    required_version: int,
) -> List[Dict[str, Any]]:
    """
    Select enabled scenarios of one type.

    Scenarios with a mismatching componentVersion are skipped with an error.
    """
    matched = []
    for scenario in scenarios:
        if scenario.get("scenarioType") != scenario_type or scenario.get("enable") is not True:
            continue
        if scenario.get("componentVersion") != required_version:
            logger.error(
                f"Scenario '{scenario.get('name')}' config version mismatch. "
                f"Expected: {required_version}, got: {scenario.get('componentVersion')}"
            )
            continue
        matched.append(scenario)
    return matched


def make_id_prefix(name: str) -> str:
    """
    Build an ASCII identifier from a display name.

    Accents are stripped, other non-ASCII characters are dropped and runs
    of anything else become "_": "Café Hall 2" -> "cafe_hall_2".
    """
    normalized = unicodedata.normalize("NFKD", name)
    ascii_name = normalized.encode("ascii", "ignore").decode("ascii").lower()
    slug = re.sub(r"[^a-z0-9]+", "_", ascii_name).strip("_")
    return slug or "scenario"


def get_id_prefix(name: str, id_prefix: Optional[str]) -> str:
    """Use the configured id prefix when set, else derive one from the name."""
    if id_prefix and id_prefix.strip():
        return id_prefix.strip()
    return make_id_prefix(name)
