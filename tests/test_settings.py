"""Tests for src.ids.settings — YAML config with default fallbacks."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.ids.settings import (
    DEFAULT_COMMON_USERNAMES,
    DEFAULT_NORMAL_COUNTRIES,
    DetectorSettings,
    load_settings,
    settings_from_dict,
)

REPO_CONFIG = Path(__file__).resolve().parent.parent / "config" / "detector.yaml"


class TestDefaults:
    def test_builtin_defaults(self):
        s = DetectorSettings()
        assert s.brute_force_threshold == 5
        assert s.brute_force_window_minutes == 10
        assert s.analysis_window_minutes == 60
        assert s.standard_ports == frozenset({22})
        assert "admin" in s.common_usernames
        assert s.normal_countries == frozenset({"US", "GB", "DE", "FR", "CA", "AU", "JP", "NL"})
        assert s.store_capacity == 10_000
        assert s.store_evict_count == 1_000

    def test_none_path(self):
        assert load_settings(None) == DetectorSettings()

    def test_shipped_config_matches_defaults(self):
        s = load_settings(REPO_CONFIG)
        d = DetectorSettings()
        assert s.brute_force_threshold == d.brute_force_threshold
        assert s.common_usernames == DEFAULT_COMMON_USERNAMES
        assert s.normal_countries == DEFAULT_NORMAL_COUNTRIES
        assert s.response_hints == d.response_hints


class TestFromDict:
    def test_overrides(self):
        s = settings_from_dict({
            "brute_force": {"threshold": 3, "window_minutes": 5},
            "analysis": {"timezone": "Europe/Kyiv"},
            "standard_ports": [22, 2222],
            "normal_countries": ["ua", "pl"],
            "store": {"capacity": 500, "evict_count": 50},
            "response_hints": {"brute_force": "tarpit"},
        })
        assert s.brute_force_threshold == 3
        assert s.brute_force_window_minutes == 5
        assert s.timezone == "Europe/Kyiv"
        assert s.standard_ports == frozenset({22, 2222})
        assert s.normal_countries == frozenset({"UA", "PL"})
        assert s.store_capacity == 500
        assert s.store_evict_count == 50
        assert s.response_hints["brute_force"] == "tarpit"
        assert s.response_hints["root_attack"] == "disable_root_login"

    @pytest.mark.parametrize("bad", [0, -3, "five", True, 2.5])
    def test_bad_threshold_falls_back(self, bad, caplog):
        with caplog.at_level("WARNING"):
            s = settings_from_dict({"brute_force": {"threshold": bad}})
        assert s.brute_force_threshold == 5
        assert "brute_force.threshold" in caplog.text

    def test_bad_port_list_falls_back(self):
        assert settings_from_dict({"standard_ports": [22, 70000]}).standard_ports == {22}
        assert settings_from_dict({"standard_ports": []}).standard_ports == {22}
        assert settings_from_dict({"standard_ports": "22"}).standard_ports == {22}

    def test_bad_hours_fall_back(self):
        s = settings_from_dict({"business_hours": {"start_hour": 18, "end_hour": 8}})
        assert (s.business_start_hour, s.business_end_hour) == (9, 17)
        s = settings_from_dict({"business_hours": {"start_hour": 25}})
        assert s.business_start_hour == 9

    def test_evict_count_above_capacity(self):
        s = settings_from_dict({"store": {"capacity": 100, "evict_count": 500}})
        assert s.store_evict_count == 10

    def test_section_not_a_mapping(self):
        s = settings_from_dict({"brute_force": [1, 2, 3]})
        assert s.brute_force_threshold == 5

    def test_weekdays(self):
        s = settings_from_dict({"business_hours": {"weekdays": [0, 1, 2, 3, 4, 5]}})
        assert 5 in s.business_weekdays


class TestLoadSettings:
    def test_missing_file(self, tmp_path, caplog):
        with caplog.at_level("WARNING"):
            s = load_settings(tmp_path / "nope.yaml")
        assert s == DetectorSettings()
        assert "not found" in caplog.text

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("brute_force: [unclosed\n", encoding="utf-8")
        assert load_settings(path) == DetectorSettings()

    def test_top_level_not_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        assert load_settings(path) == DetectorSettings()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(path) == DetectorSettings()
