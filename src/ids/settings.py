"""Detector settings — tunables loaded from ``config/detector.yaml``.

Every value has a built-in default.  Malformed values never raise: the
offending key falls back to its default and a warning is logged, so a
broken config degrades to stock behaviour instead of stopping detection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from src.shared.config_loader import load_yaml

log = logging.getLogger(__name__)

DEFAULT_COMMON_USERNAMES: frozenset[str] = frozenset({
    "admin", "administrator", "root", "user", "guest", "test",
    "mysql", "postgres", "apache", "nginx", "www-data", "ftp",
    "backup", "git", "jenkins", "docker", "ubuntu", "centos",
    "debian", "fedora", "oracle", "system",
})

DEFAULT_NORMAL_COUNTRIES: frozenset[str] = frozenset(
    {"US", "GB", "DE", "FR", "CA", "AU", "JP", "NL"}
)

DEFAULT_GEOIP_PATHS: tuple[str, ...] = (
    "/usr/share/GeoIP/GeoLite2-Country.mmdb",
    "/var/lib/GeoIP/GeoLite2-Country.mmdb",
    "/usr/local/share/GeoIP/GeoLite2-Country.mmdb",
    "./GeoLite2-Country.mmdb",
)

DEFAULT_RESPONSE_HINTS: dict[str, str] = {
    "brute_force": "block_ip",
    "dictionary_attack": "block_ip",
    "geo_ip_anomaly": "review_source_location",
    "time_anomaly": "verify_user_activity",
    "nonexistent_user": "block_ip",
    "root_attack": "disable_root_login",
    "non_standard_port": "review_firewall_rules",
    "post_login_anomaly": "audit_active_sessions",
}


@dataclass(slots=True)
class DetectorSettings:
    """All recognised configuration options with their defaults."""

    brute_force_threshold: int = 5
    brute_force_window_minutes: int = 10
    analysis_window_minutes: int = 60
    timezone: str = "local"
    business_weekdays: frozenset[int] = frozenset({0, 1, 2, 3, 4})
    business_start_hour: int = 9
    business_end_hour: int = 17
    standard_ports: frozenset[int] = frozenset({22})
    common_usernames: frozenset[str] = DEFAULT_COMMON_USERNAMES
    normal_countries: frozenset[str] = DEFAULT_NORMAL_COUNTRIES
    store_capacity: int = 10_000
    store_evict_count: int = 1_000
    geoip_db_path: str | None = None
    geoip_search_paths: tuple[str, ...] = DEFAULT_GEOIP_PATHS
    passwd_path: str = "/etc/passwd"
    response_hints: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_RESPONSE_HINTS))


# ═══════════════════════════════════════════════════════════════════════════
#  Value coercion — each returns the default on bad input
# ═══════════════════════════════════════════════════════════════════════════


def _positive_int(section: dict[str, Any], key: str, default: int, name: str) -> int:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int) or raw <= 0:
        log.warning("Invalid %s=%r — using default %d", name, raw, default)
        return default
    return raw


def _hour(section: dict[str, Any], key: str, default: int, name: str) -> int:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int) or not 0 <= raw <= 23:
        log.warning("Invalid %s=%r — using default %d", name, raw, default)
        return default
    return raw


def _int_set(raw: Any, default: frozenset[int], name: str, lo: int, hi: int) -> frozenset[int]:
    if raw is None:
        return default
    if not isinstance(raw, list) or not raw:
        log.warning("Invalid %s=%r — using default", name, raw)
        return default
    values = set()
    for item in raw:
        if isinstance(item, bool) or not isinstance(item, int) or not lo <= item <= hi:
            log.warning("Invalid entry %r in %s — using default", item, name)
            return default
        values.add(item)
    return frozenset(values)


def _str_set(raw: Any, default: frozenset[str], name: str, upper: bool = False) -> frozenset[str]:
    if raw is None:
        return default
    if not isinstance(raw, list) or not raw:
        log.warning("Invalid %s=%r — using default", name, raw)
        return default
    values = set()
    for item in raw:
        if not isinstance(item, (str, int)) or isinstance(item, bool):
            log.warning("Invalid entry %r in %s — using default", item, name)
            return default
        s = str(item).strip()
        values.add(s.upper() if upper else s)
    return frozenset(values)


def _section(cfg: dict[str, Any], key: str) -> dict[str, Any]:
    sec = cfg.get(key) or {}
    if not isinstance(sec, dict):
        log.warning("Config section '%s' must be a mapping — ignored", key)
        return {}
    return sec


# ═══════════════════════════════════════════════════════════════════════════
#  Public API
# ═══════════════════════════════════════════════════════════════════════════


def settings_from_dict(cfg: dict[str, Any]) -> DetectorSettings:
    """Build settings from a parsed config dict."""
    d = DetectorSettings()

    bf = _section(cfg, "brute_force")
    analysis = _section(cfg, "analysis")
    hours = _section(cfg, "business_hours")
    store = _section(cfg, "store")
    geoip = _section(cfg, "geoip")
    users = _section(cfg, "users")

    capacity = _positive_int(store, "capacity", d.store_capacity, "store.capacity")
    evict = _positive_int(store, "evict_count", max(1, capacity // 10), "store.evict_count")
    if evict > capacity:
        log.warning("store.evict_count=%d exceeds capacity — using %d", evict, capacity // 10 or 1)
        evict = capacity // 10 or 1

    start = _hour(hours, "start_hour", d.business_start_hour, "business_hours.start_hour")
    end = _hour(hours, "end_hour", d.business_end_hour, "business_hours.end_hour")
    if start > end:
        log.warning("business_hours start %d > end %d — using defaults", start, end)
        start, end = d.business_start_hour, d.business_end_hour

    tz = analysis.get("timezone", d.timezone)
    if not isinstance(tz, str) or not tz.strip():
        log.warning("Invalid analysis.timezone=%r — using local", tz)
        tz = d.timezone

    db_path = geoip.get("db_path")
    if db_path is not None and not isinstance(db_path, str):
        log.warning("Invalid geoip.db_path=%r — probing default locations", db_path)
        db_path = None

    search = geoip.get("search_paths")
    if search is None:
        search_paths = d.geoip_search_paths
    elif isinstance(search, list) and all(isinstance(s, str) for s in search):
        search_paths = tuple(search)
    else:
        log.warning("Invalid geoip.search_paths=%r — using defaults", search)
        search_paths = d.geoip_search_paths

    passwd = users.get("passwd_path", d.passwd_path)
    if not isinstance(passwd, str) or not passwd:
        log.warning("Invalid users.passwd_path=%r — using %s", passwd, d.passwd_path)
        passwd = d.passwd_path

    hints = dict(DEFAULT_RESPONSE_HINTS)
    raw_hints = _section(cfg, "response_hints")
    for alert_type, hint in raw_hints.items():
        if isinstance(hint, str):
            hints[str(alert_type)] = hint

    return DetectorSettings(
        brute_force_threshold=_positive_int(
            bf, "threshold", d.brute_force_threshold, "brute_force.threshold"
        ),
        brute_force_window_minutes=_positive_int(
            bf, "window_minutes", d.brute_force_window_minutes, "brute_force.window_minutes"
        ),
        analysis_window_minutes=_positive_int(
            analysis, "window_minutes", d.analysis_window_minutes, "analysis.window_minutes"
        ),
        timezone=tz,
        business_weekdays=_int_set(
            hours.get("weekdays"), d.business_weekdays, "business_hours.weekdays", 0, 6
        ),
        business_start_hour=start,
        business_end_hour=end,
        standard_ports=_int_set(cfg.get("standard_ports"), d.standard_ports, "standard_ports", 1, 65535),
        common_usernames=_str_set(cfg.get("common_usernames"), d.common_usernames, "common_usernames"),
        normal_countries=_str_set(
            cfg.get("normal_countries"), d.normal_countries, "normal_countries", upper=True
        ),
        store_capacity=capacity,
        store_evict_count=evict,
        geoip_db_path=db_path,
        geoip_search_paths=search_paths,
        passwd_path=passwd,
        response_hints=hints,
    )


def load_settings(path: str | Path | None = None) -> DetectorSettings:
    """Load settings from YAML; any failure yields the defaults."""
    if path is None:
        return DetectorSettings()
    try:
        cfg = load_yaml(path)
    except FileNotFoundError:
        log.warning("Config %s not found — using built-in defaults", path)
        return DetectorSettings()
    except (yaml.YAMLError, ValueError) as exc:
        log.warning("Config %s is malformed (%s) — using built-in defaults", path, exc)
        return DetectorSettings()
    settings = settings_from_dict(cfg)
    log.info(
        "Loaded settings from %s (brute force %d/%d min, %d common usernames)",
        path,
        settings.brute_force_threshold,
        settings.brute_force_window_minutes,
        len(settings.common_usernames),
    )
    return settings
