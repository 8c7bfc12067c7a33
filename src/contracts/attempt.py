"""ConnectionAttempt — one observed SSH authentication event."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime

from src.shared.timeutil import format_ts

# CSV column order for attempt files read by the loaders
ATTEMPT_CSV_COLUMNS: list[str] = [
    "timestamp",
    "ip",
    "username",
    "success",
    "port",
]


@dataclass(frozen=True, slots=True)
class ConnectionAttempt:
    """Immutable record produced by the log-parsing side.

    No validation of ``ip`` or ``username`` is done here: whatever the
    producer hands over is stored as-is.
    """

    ip: str
    username: str
    success: bool
    port: int
    timestamp: datetime  # timezone-aware

    # ── serialisation ─────────────────────────────────────────────────────

    def as_dict(self) -> dict[str, object]:
        return {
            "timestamp": format_ts(self.timestamp),
            "ip": self.ip,
            "username": self.username,
            "success": self.success,
            "port": self.port,
        }

    def to_json(self) -> str:
        """Return compact JSON string."""
        return json.dumps(self.as_dict(), ensure_ascii=False, separators=(",", ":"))

    def to_csv_row(self) -> str:
        """Return a single CSV line (no trailing newline)."""
        row = self.as_dict()
        row["success"] = "true" if self.success else "false"
        buf = io.StringIO()
        csv.writer(buf).writerow([row[c] for c in ATTEMPT_CSV_COLUMNS])
        return buf.getvalue().rstrip("\r\n")

    @staticmethod
    def csv_header() -> str:
        return ",".join(ATTEMPT_CSV_COLUMNS)
