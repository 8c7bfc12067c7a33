"""Tests for src.contracts — ConnectionAttempt, AttackAlert data classes."""

from __future__ import annotations

import csv
import dataclasses
import io
import json

import pytest

from src.contracts.alert import ALERT_CSV_COLUMNS, AttackAlert
from src.contracts.attempt import ATTEMPT_CSV_COLUMNS, ConnectionAttempt
from src.contracts.enums import SEVERITY_RANK, AlertType, CountryTag, Severity
from src.shared.timeutil import parse_ts
from tests.conftest import make_attempt

# ═══════════════════════════════════════════════════════════════════════════
#  ConnectionAttempt
# ═══════════════════════════════════════════════════════════════════════════


class TestConnectionAttempt:
    @pytest.fixture
    def sample_attempt(self):
        return make_attempt(ip="198.51.100.7", username="admin", success=True, port=2222)

    def test_csv_header_matches_columns(self):
        assert ConnectionAttempt.csv_header() == ",".join(ATTEMPT_CSV_COLUMNS)

    def test_to_csv_row(self, sample_attempt):
        values = next(csv.reader(io.StringIO(sample_attempt.to_csv_row())))
        assert values == ["2026-02-26T10:00:00Z", "198.51.100.7", "admin", "true", "2222"]

    def test_to_json(self, sample_attempt):
        data = json.loads(sample_attempt.to_json())
        assert data["timestamp"] == "2026-02-26T10:00:00Z"
        assert data["success"] is True
        assert data["port"] == 2222

    def test_is_immutable(self, sample_attempt):
        with pytest.raises(dataclasses.FrozenInstanceError):
            sample_attempt.username = "root"

    def test_garbage_is_stored_as_is(self):
        a = make_attempt(ip="not-an-ip", username="a,b\"c")
        values = next(csv.reader(io.StringIO(a.to_csv_row())))
        assert values[1] == "not-an-ip"
        assert values[2] == 'a,b"c'


# ═══════════════════════════════════════════════════════════════════════════
#  AttackAlert
# ═══════════════════════════════════════════════════════════════════════════


class TestAttackAlert:
    @pytest.fixture
    def sample_alert(self):
        return AttackAlert(
            type="brute_force",
            severity="high",
            ip="1.2.3.4",
            description="Brute force attack detected",
            timestamp=parse_ts("2026-02-26T10:05:00Z"),
            details={"failed_attempts": "5", "failure_rate": "100.0%"},
            recommended_action="block_ip",
            alert_id="ALR-0001",
        )

    def test_csv_header_matches_columns(self):
        assert AttackAlert.csv_header() == ",".join(ALERT_CSV_COLUMNS)

    def test_to_csv_row_flattens_details(self, sample_alert):
        values = next(csv.reader(io.StringIO(sample_alert.to_csv_row())))
        assert len(values) == len(ALERT_CSV_COLUMNS)
        assert values[0] == "ALR-0001"
        assert values[-1] == "failed_attempts=5;failure_rate=100.0%"

    def test_to_json_keeps_details_mapping(self, sample_alert):
        data = json.loads(sample_alert.to_json())
        assert data["details"] == {"failed_attempts": "5", "failure_rate": "100.0%"}
        assert data["timestamp"] == "2026-02-26T10:05:00Z"
        assert data["username"] == ""

    def test_defaults(self):
        a = AttackAlert(type="root_attack", severity="low", ip="x", description="d",
                        timestamp=parse_ts("2026-02-26T10:05:00Z"))
        assert a.details == {}
        assert a.alert_id == ""
        assert a.recommended_action == ""


# ═══════════════════════════════════════════════════════════════════════════
#  Enums
# ═══════════════════════════════════════════════════════════════════════════


class TestEnums:
    def test_severity_rank_covers_all(self):
        assert set(SEVERITY_RANK) == {s.value for s in Severity}
        assert SEVERITY_RANK["critical"] > SEVERITY_RANK["high"] > SEVERITY_RANK["medium"]

    def test_alert_type_order(self):
        assert [t.value for t in AlertType][:2] == ["brute_force", "dictionary_attack"]
        assert len(AlertType) == 8

    def test_country_tags(self):
        assert {t.value for t in CountryTag} == {"LOCAL", "RESERVED", "UNKNOWN"}
