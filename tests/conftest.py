"""Shared fixtures for the SSH intrusion detector tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from src.contracts.attempt import ConnectionAttempt
from src.ids.geoip import CountryClassifier
from src.ids.pipeline import DetectionPipeline
from src.ids.settings import DetectorSettings
from src.ids.users import UserRegistry
from src.ids.views import AttemptIndex, DetectionContext
from src.shared.timeutil import parse_ts

# Thursday, inside business hours
BASE_TS = "2026-02-26T10:00:00Z"
# default "now" for engines and contexts: five minutes after BASE_TS
NOW_TS = "2026-02-26T10:05:00Z"

HOST_ACCOUNTS = ("root", "alice", "bob", "deploy")


# ── Timestamp helpers ────────────────────────────────────────────────────


def ts_offset(base: str = BASE_TS, seconds: int = 0) -> str:
    """Return an ISO-8601 timestamp offset from *base* by *seconds*."""
    dt = datetime.fromisoformat(base.replace("Z", "+00:00"))
    dt += timedelta(seconds=seconds)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def at(base: str = BASE_TS, seconds: int = 0) -> datetime:
    return parse_ts(ts_offset(base, seconds))


def fixed_clock(ts: str = NOW_TS) -> Callable[[], datetime]:
    now = parse_ts(ts)
    return lambda: now


# ── Helper: create ConnectionAttempt with sensible defaults ──────────────


def make_attempt(
    *,
    ip: str = "203.0.113.10",
    username: str = "alice",
    success: bool = False,
    port: int = 22,
    timestamp: str = BASE_TS,
) -> ConnectionAttempt:
    return ConnectionAttempt(
        ip=ip,
        username=username,
        success=success,
        port=port,
        timestamp=parse_ts(timestamp),
    )


def burst(
    n: int,
    *,
    every_sec: int = 10,
    start: str = BASE_TS,
    **kwargs,
) -> list[ConnectionAttempt]:
    """*n* attempts spaced *every_sec* apart, all sharing **kwargs."""
    return [
        make_attempt(timestamp=ts_offset(start, i * every_sec), **kwargs)
        for i in range(n)
    ]


# ── GeoIP fakes ──────────────────────────────────────────────────────────


class FakeLookup:
    """In-memory stand-in for the MaxMind reader.

    IPs missing from *codes* resolve to *default*; an exception instance
    stored as a value is raised on lookup.
    """

    def __init__(self, codes: dict[str, object] | None = None, default: str | None = "US"):
        self.codes = dict(codes or {})
        self.default = default
        self.calls: list[str] = []
        self.opened = 0
        self.closed = 0

    def open(self) -> object:
        self.opened += 1
        return self

    def country_code(self, ip: str) -> str | None:
        self.calls.append(ip)
        value = self.codes.get(ip, self.default)
        if isinstance(value, Exception):
            raise value
        return value

    def close(self) -> None:
        self.closed += 1


def make_classifier(codes: dict[str, object] | None = None, default: str | None = "US"):
    return CountryClassifier(FakeLookup(codes, default))


# ── Engine / context builders ────────────────────────────────────────────


def make_settings(**overrides) -> DetectorSettings:
    overrides.setdefault("timezone", "UTC")
    return DetectorSettings(**overrides)


def make_context(
    *,
    settings: DetectorSettings | None = None,
    classifier: CountryClassifier | None = None,
    registry: UserRegistry | None = None,
    now: str = NOW_TS,
) -> DetectionContext:
    return DetectionContext(
        settings=settings or make_settings(),
        classifier=classifier or make_classifier(),
        registry=registry if registry is not None else UserRegistry(HOST_ACCOUNTS),
        now=parse_ts(now),
        tz=UTC,
    )


def index_of(attempts: list[ConnectionAttempt]) -> AttemptIndex:
    return AttemptIndex.build(attempts)


def make_pipeline(
    *,
    settings: DetectorSettings | None = None,
    classifier: CountryClassifier | None = None,
    registry: UserRegistry | None = None,
    now: str = NOW_TS,
) -> DetectionPipeline:
    return DetectionPipeline(
        settings=settings or make_settings(),
        classifier=classifier or make_classifier(),
        registry=registry if registry is not None else UserRegistry(HOST_ACCOUNTS),
        clock=fixed_clock(now),
    )


# ── Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture
def settings() -> DetectorSettings:
    return make_settings()


@pytest.fixture
def registry() -> UserRegistry:
    return UserRegistry(HOST_ACCOUNTS)


@pytest.fixture
def pipeline() -> DetectionPipeline:
    return make_pipeline()


@pytest.fixture
def attempts_csv(tmp_path):
    """Small CSV input: a brute-force burst plus one normal login."""
    lines = ["timestamp,ip,username,success,port"]
    for i in range(6):
        lines.append(f"{ts_offset(seconds=i * 10)},198.51.100.7,alice,false,22")
    lines.append(f"{ts_offset(seconds=120)},192.168.1.20,bob,true,22")
    path = tmp_path / "attempts.csv"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
