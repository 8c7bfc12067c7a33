"""Модель оповіщення (AttackAlert)."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass, field
from datetime import datetime

from src.shared.timeutil import format_ts

ALERT_CSV_COLUMNS = [
    "alert_id",
    "type",
    "severity",
    "ip",
    "username",
    "timestamp",
    "description",
    "recommended_action",
    "details",
]


@dataclass(slots=True)
class AttackAlert:
    """One correlated finding raised by a detector.

    ``timestamp`` is the detection time, not the time of any event.
    ``details`` holds detector-specific metrics, always as strings.
    """

    type: str  # brute_force | dictionary_attack | geo_ip_anomaly | ...
    severity: str  # low | medium | high | critical
    ip: str
    description: str
    timestamp: datetime
    username: str = ""
    details: dict[str, str] = field(default_factory=dict)
    recommended_action: str = ""
    alert_id: str = ""  # e.g. "ALR-0001", assigned by the pipeline

    # ── serialisation ────────────────────────────────────────────────────

    def as_dict(self) -> dict[str, object]:
        return {
            "alert_id": self.alert_id,
            "type": self.type,
            "severity": self.severity,
            "ip": self.ip,
            "username": self.username,
            "timestamp": format_ts(self.timestamp),
            "description": self.description,
            "recommended_action": self.recommended_action,
            "details": dict(self.details),
        }

    def to_json(self) -> str:
        return json.dumps(self.as_dict(), ensure_ascii=False, separators=(",", ":"))

    def to_csv_row(self) -> str:
        row = self.as_dict()
        # details are flattened as key=value pairs
        row["details"] = ";".join(f"{k}={v}" for k, v in sorted(self.details.items()))
        buf = io.StringIO()
        csv.writer(buf).writerow([row[c] for c in ALERT_CSV_COLUMNS])
        return buf.getvalue().rstrip("\r\n")

    @staticmethod
    def csv_header() -> str:
        return ",".join(ALERT_CSV_COLUMNS)
