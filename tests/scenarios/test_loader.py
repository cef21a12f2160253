"""Tests for config loading and id prefixes."""

import json

import pytest

from home_scenarios.scenarios.loader import (
    find_all_active_scenarios_with_type,
    get_id_prefix,
    make_id_prefix,
    read_and_validate_scenarios_config,
    read_config,
    validate_scenarios_config,
)


class TestReadConfig:
    """Tests for reading the JSON file."""

    def test_valid_file(self, tmp_path):
        """Test reading an object."""
        path = tmp_path / "scenarios.json"
        path.write_text(json.dumps({"configVersion": 1, "scenarios": []}), encoding="utf-8")
        assert read_config(path) == {"configVersion": 1, "scenarios": []}

    def test_missing_file(self, tmp_path, caplog):
        """Test that a missing file gives None and logs."""
        assert read_config(tmp_path / "nope.json") is None
        assert "not found" in caplog.text

    def test_invalid_json(self, tmp_path):
        """Test that broken JSON gives None."""
        path = tmp_path / "broken.json"
        path.write_text("{configVersion: 1", encoding="utf-8")
        assert read_config(path) is None

    def test_not_an_object(self, tmp_path):
        """Test that a top-level array is rejected."""
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert read_config(path) is None

    def test_read_and_validate(self, tmp_path):
        """Test the combined helper."""
        path = tmp_path / "scenarios.json"
        path.write_text(json.dumps({"configVersion": 1, "scenarios": [{"scenarioType": "x"}]}), encoding="utf-8")
        assert read_and_validate_scenarios_config(path) == [{"scenarioType": "x"}]


class TestValidateConfig:
    """Tests for the general structure check."""

    @pytest.mark.parametrize(
        "config",
        [
            None,
            {},
            {"scenarios": [{}]},
            {"configVersion": 2, "scenarios": [{}]},
            {"configVersion": 1, "scenarios": {}},
            {"configVersion": 1, "scenarios": []},
        ],
        ids=["none", "empty", "no_version", "wrong_version", "not_a_list", "empty_list"],
    )
    def test_rejected(self, config):
        """Test structures that yield no scenarios."""
        assert validate_scenarios_config(config) is None

    def test_accepted(self):
        """Test a valid structure."""
        scenarios = [{"scenarioType": "link"}]
        assert validate_scenarios_config({"configVersion": 1, "scenarios": scenarios}) == scenarios


class TestFindActive:
    """Tests for selecting scenarios of one type."""

    def test_filters(self, caplog):
        """Test type, enable flag and component version filtering."""
        scenarios = [
            {"scenarioType": "link", "enable": True, "componentVersion": 1, "name": "a"},
            {"scenarioType": "link", "enable": False, "componentVersion": 1, "name": "b"},
            {"scenarioType": "link", "enable": True, "componentVersion": 2, "name": "c"},
            {"scenarioType": "schedule", "enable": True, "componentVersion": 1, "name": "d"},
            {"scenarioType": "link", "enable": "yes", "componentVersion": 1, "name": "e"},
        ]

        found = find_all_active_scenarios_with_type(scenarios, "link", 1)

        assert [s["name"] for s in found] == ["a"]
        assert "'c' config version mismatch" in caplog.text


class TestIdPrefix:
    """Tests for id prefix generation."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Café Hall 2", "cafe_hall_2"),
            ("Kitchen", "kitchen"),
            ("  Living -- Room  ", "living_room"),
            ("Кухня", "scenario"),
        ],
    )
    def test_make_id_prefix(self, name, expected):
        """Test slugs built from display names."""
        assert make_id_prefix(name) == expected

    def test_configured_prefix_wins(self):
        """Test that a configured prefix is used as is."""
        assert get_id_prefix("Café Hall", " hall ") == "hall"

    def test_blank_prefix_ignored(self):
        """Test that a blank prefix falls back to the name."""
        assert get_id_prefix("Café Hall", "  ") == "cafe_hall"
        assert get_id_prefix("Café Hall", None) == "cafe_hall"
