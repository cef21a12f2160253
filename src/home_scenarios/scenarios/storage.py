"""Persistent per-scenario user settings (enable flag, setpoints)."""

from typing import Any, List

from home_scenarios.core.adapter import KeyValueStore

USER_SETTINGS_PREFIX = "scenario:"


class ScenarioStorage:
    """
    User settings keyed by scenario id prefix.

    Values live in the host KeyValueStore under scope "scenario:<id_prefix>".
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @staticmethod
    def _scope(id_prefix: str) -> str:
        return USER_SETTINGS_PREFIX + id_prefix

    def get_user_setting(self, id_prefix: str, key: str, default: Any = None) -> Any:
        return self._store.get(self._scope(id_prefix), key, default)

    def set_user_setting(self, id_prefix: str, key: str, value: Any) -> None:
        self._store.set(self._scope(id_prefix), key, value)

    def get_stored_scenario_keys(self) -> List[str]:
        """Get the id prefixes of every scenario with stored settings."""
        return [
            scope[len(USER_SETTINGS_PREFIX):]
            for scope in self._store.scopes()
            if scope.startswith(USER_SETTINGS_PREFIX)
        ]
