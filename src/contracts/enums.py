"""Canonical enumerations for the detection contracts."""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2, "critical": 3}


class AlertType(str, Enum):
    """Alert tags, listed in the order the pipeline runs the detectors."""

    BRUTE_FORCE = "brute_force"
    DICTIONARY_ATTACK = "dictionary_attack"
    GEO_IP_ANOMALY = "geo_ip_anomaly"
    TIME_ANOMALY = "time_anomaly"
    NONEXISTENT_USER = "nonexistent_user"
    ROOT_ATTACK = "root_attack"
    NON_STANDARD_PORT = "non_standard_port"
    POST_LOGIN_ANOMALY = "post_login_anomaly"


class CountryTag(str, Enum):
    """Tags the country classifier returns instead of an ISO code."""

    LOCAL = "LOCAL"
    RESERVED = "RESERVED"
    UNKNOWN = "UNKNOWN"
