"""Pipeline — detection engine: store attempts -> snapshot -> detectors -> alerts.

Supports CSV and JSONL input for one-shot batch runs.  In watch mode the
engine tails a JSONL file, appends every new attempt and re-runs the full
detector chain on each poll, the way a live monitor would.
"""

from __future__ import annotations

import csv
import json
import logging
import os
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from src.contracts.alert import AttackAlert
from src.contracts.attempt import ConnectionAttempt
from src.ids.detectors import (
    Detector,
    TimeAnomalyDetector,
    detect_brute_force,
    detect_dictionary_attack,
    detect_geo_anomalies,
    detect_non_standard_ports,
    detect_nonexistent_users,
    detect_post_login_anomalies,
    detect_root_attempts,
)
from src.ids.geoip import Classifier, CountryClassifier
from src.ids.reporter import format_alert_line, summarize
from src.ids.settings import DetectorSettings
from src.ids.store import EventStore
from src.ids.users import UserRegistry
from src.ids.views import AttemptIndex, DetectionContext
from src.shared.timeutil import parse_ts, resolve_tz, utcnow

log = logging.getLogger(__name__)

_TRUE = frozenset({"true", "1", "yes", "y", "t", "success", "accepted"})
_FALSE = frozenset({"false", "0", "no", "n", "f", "failure", "failed", ""})


# ═══════════════════════════════════════════════════════════════════════════
#  Engine
# ═══════════════════════════════════════════════════════════════════════════


class DetectionPipeline:
    """Owns the event store and runs the eight detectors over it.

    ``clock`` defines "now" for every window; tests and historical replays
    inject a fixed one.  Any number of threads may call
    :meth:`add_connection_attempt` while another calls :meth:`analyze`.
    """

    def __init__(
        self,
        settings: DetectorSettings | None = None,
        classifier: Classifier | None = None,
        registry: UserRegistry | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        # own copy; set_brute_force_threshold mutates it
        self.settings = replace(settings) if settings is not None else DetectorSettings()
        self.clock = clock
        self.tz = resolve_tz(self.settings.timezone)

        self._owns_classifier = classifier is None
        if classifier is None:
            classifier = CountryClassifier.from_path(
                self.settings.geoip_db_path, self.settings.geoip_search_paths
            )
        self.classifier = classifier
        self.registry = registry if registry is not None else UserRegistry.from_passwd(
            self.settings.passwd_path
        )

        self.store = EventStore(
            capacity=self.settings.store_capacity,
            evict_count=self.settings.store_evict_count,
            clock=clock,
        )
        self.time_anomaly = TimeAnomalyDetector()
        self.detectors: list[tuple[str, Detector]] = [
            ("brute_force", detect_brute_force),
            ("dictionary_attack", detect_dictionary_attack),
            ("geo_ip_anomaly", detect_geo_anomalies),
            ("time_anomaly", self.time_anomaly),
            ("nonexistent_user", detect_nonexistent_users),
            ("root_attack", detect_root_attempts),
            ("non_standard_port", detect_non_standard_ports),
            ("post_login_anomaly", detect_post_login_anomalies),
        ]
        # serialises analyze() runs; the time-anomaly detector keeps state
        self._analyze_lock = threading.Lock()

    # ── ingestion ────────────────────────────────────────────────────────

    def add_connection_attempt(
        self,
        ip: str,
        username: str,
        success: bool,
        port: int = 22,
        timestamp: datetime | None = None,
    ) -> ConnectionAttempt:
        attempt = ConnectionAttempt(
            ip=ip,
            username=username,
            success=success,
            port=port,
            timestamp=timestamp if timestamp is not None else self.clock(),
        )
        return self.store.append(attempt)

    def add_attempts(self, attempts: Iterable[ConnectionAttempt]) -> int:
        n = 0
        for a in attempts:
            self.store.append(a)
            n += 1
        return n

    # ── analysis ─────────────────────────────────────────────────────────

    def analyze(self) -> list[AttackAlert]:
        """Run every detector over the analysis window, in pipeline order.

        A detector that raises is logged and contributes no alerts; the
        others still run.  Alerts are numbered ``ALR-0001…`` per call.
        """
        window = timedelta(minutes=self.settings.analysis_window_minutes)
        with self._analyze_lock:
            snapshot = self.store.window(window)
            if not snapshot:
                log.debug("No attempts in the last %s — nothing to analyse", window)
                return []

            index = AttemptIndex.build(snapshot)
            ctx = DetectionContext(
                settings=self.settings,
                classifier=self.classifier,
                registry=self.registry,
                now=self.clock(),
                tz=self.tz,
            )

            alerts: list[AttackAlert] = []
            for name, detector in self.detectors:
                try:
                    found = detector(index, ctx)
                except Exception:
                    log.exception("Detector %s failed — skipped for this run", name)
                    continue
                log.debug("Detector %-20s alerts=%d", name, len(found))
                alerts.extend(found)

        hints = self.settings.response_hints
        for i, alert in enumerate(alerts, 1):
            alert.alert_id = f"ALR-{i:04d}"
            alert.recommended_action = hints.get(alert.type, "")

        log.info("Analysed %d attempts from %d IPs: %d alerts",
                 len(snapshot), len(index.by_ip), len(alerts))
        return alerts

    # ── housekeeping ─────────────────────────────────────────────────────

    def get_recent_attempts(self, minutes: int = 60) -> list[ConnectionAttempt]:
        return self.store.window(timedelta(minutes=minutes))

    def clear_old_attempts(self, minutes: int = 60) -> int:
        return self.store.evict_older_than(timedelta(minutes=minutes))

    def set_brute_force_threshold(self, attempts: int, window_minutes: int | None = None) -> None:
        """Override the brute-force threshold and window; non-positive values are ignored."""
        s = self.settings
        if attempts > 0:
            s.brute_force_threshold = attempts
        if window_minutes is not None and window_minutes > 0:
            s.brute_force_window_minutes = window_minutes
        log.info("Brute force detection: %d attempts in %d minutes",
                 s.brute_force_threshold, s.brute_force_window_minutes)

    def close(self) -> None:
        """Release the GeoIP reader if this engine opened it."""
        if self._owns_classifier and isinstance(self.classifier, CountryClassifier):
            self.classifier.close()

    def __enter__(self) -> DetectionPipeline:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ── watch mode (tail JSONL) ──────────────────────────────────────────

    def watch(
        self,
        input_path: str,
        on_alert: Callable[[AttackAlert], None],
        poll_interval_sec: float = 5.0,
        housekeeping_sec: float = 60.0,
        max_iterations: int | None = None,
        from_start: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """Tail *input_path* and analyse after every poll.

        Only complete lines are consumed; a partially written last line is
        picked up on the next poll.  A truncated file is re-read from the
        start.  Blocks until interrupted (Ctrl+C) or until
        ``max_iterations`` polls have run.  Returns the number of alerts
        delivered to ``on_alert``.
        """
        offset = 0
        if not from_start and os.path.isfile(input_path):
            offset = os.path.getsize(input_path)
        log.info("Watch: %s (offset=%d, poll=%.1fs)", input_path, offset, poll_interval_sec)

        delivered = 0
        iteration = 0
        last_housekeeping = time.monotonic()
        try:
            while max_iterations is None or iteration < max_iterations:
                iteration += 1
                new, offset = _read_new_lines(input_path, offset)
                if new:
                    self.add_attempts(new)
                    log.info("Watch iteration %d: +%d attempts, %d stored",
                             iteration, len(new), len(self.store))

                for alert in self.analyze():
                    log.warning("%s", format_alert_line(alert))
                    on_alert(alert)
                    delivered += 1

                if time.monotonic() - last_housekeeping >= housekeeping_sec:
                    self.clear_old_attempts(self.settings.analysis_window_minutes)
                    last_housekeeping = time.monotonic()

                if max_iterations is None or iteration < max_iterations:
                    sleep(poll_interval_sec)
        except KeyboardInterrupt:
            log.info("Watch stopped after %d iterations", iteration)
        return delivered


def _read_new_lines(path: str, offset: int) -> tuple[list[ConnectionAttempt], int]:
    if not os.path.isfile(path):
        return [], offset
    size = os.path.getsize(path)
    if size < offset:
        log.warning("Watch: %s shrank (%d < %d) — re-reading from start", path, size, offset)
        offset = 0
    if size == offset:
        return [], offset

    with open(path, "rb") as fh:
        fh.seek(offset)
        chunk = fh.read(size - offset)
    end = chunk.rfind(b"\n")
    if end < 0:
        return [], offset

    attempts: list[ConnectionAttempt] = []
    for raw in chunk[: end + 1].decode("utf-8", errors="replace").splitlines():
        line = raw.strip()
        if not line:
            continue
        try:
            attempts.append(_parse_attempt(json.loads(line)))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            log.warning("Watch: skipping malformed line: %s", exc)
    return attempts, offset + end + 1


# ═══════════════════════════════════════════════════════════════════════════
#  Attempt loaders
# ═══════════════════════════════════════════════════════════════════════════


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_attempt(row: dict[str, Any]) -> ConnectionAttempt:
    """Build a ConnectionAttempt from a CSV row or JSON object.

    ``ip``, ``username`` and ``timestamp`` are required; ``port`` defaults
    to 22 and ``success`` to false.
    """
    if not isinstance(row, dict):
        raise TypeError(f"expected an object, got {type(row).__name__}")
    port = row.get("port")
    return ConnectionAttempt(
        ip=str(row["ip"]).strip(),
        username=str(row["username"]),
        success=_parse_bool(row.get("success", False)),
        port=int(port) if port not in (None, "") else 22,
        timestamp=parse_ts(str(row["timestamp"])),
    )


def load_attempts_csv(path: str) -> list[ConnectionAttempt]:
    """Load attempts from a CSV file with a ``timestamp,ip,username,success,port`` header."""
    attempts: list[ConnectionAttempt] = []
    with open(path, encoding="utf-8", errors="replace", newline="") as fh:
        reader = csv.DictReader(fh)
        for line_no, row in enumerate(reader, 2):
            try:
                attempts.append(_parse_attempt(row))
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("Skipping CSV line %d: %s", line_no, exc)
    log.info("Loaded %d attempts from CSV: %s", len(attempts), path)
    return attempts


def load_attempts_jsonl(path: str) -> list[ConnectionAttempt]:
    """Load attempts from a JSONL (one JSON object per line) file."""
    attempts: list[ConnectionAttempt] = []
    with open(path, encoding="utf-8", errors="replace") as fh:
        for line_no, line in enumerate(fh, 1):
            line = line.strip()
            if not line:
                continue
            try:
                attempts.append(_parse_attempt(json.loads(line)))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                log.warning("Skipping JSONL line %d: %s", line_no, exc)
    log.info("Loaded %d attempts from JSONL: %s", len(attempts), path)
    return attempts


def load_attempts(path: str) -> list[ConnectionAttempt]:
    """Auto-detect format by file extension and load attempts."""
    if Path(path).suffix in (".jsonl", ".ndjson"):
        return load_attempts_jsonl(path)
    return load_attempts_csv(path)


# ═══════════════════════════════════════════════════════════════════════════
#  Batch run
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(slots=True)
class BatchResult:
    attempts: int
    now: datetime | None
    alerts: list[AttackAlert] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)


def run_batch(
    input_path: str,
    settings: DetectorSettings | None = None,
    classifier: Classifier | None = None,
    registry: UserRegistry | None = None,
    now: datetime | None = None,
) -> BatchResult:
    """Load a file of attempts, analyse it once and return the findings.

    Historical files are analysed as of their newest attempt unless *now*
    is given, so the windows cover the data rather than the wall clock.
    """
    attempts = load_attempts(input_path)
    if not attempts:
        log.warning("No attempts loaded from %s — nothing to analyse.", input_path)
        return BatchResult(attempts=0, now=now)

    attempts.sort(key=lambda a: a.timestamp)
    as_of = now if now is not None else attempts[-1].timestamp

    with DetectionPipeline(settings, classifier, registry, clock=lambda: as_of) as engine:
        engine.add_attempts(attempts)
        alerts = engine.analyze()

    return BatchResult(
        attempts=len(attempts),
        now=as_of,
        alerts=alerts,
        summary=summarize(alerts),
    )
