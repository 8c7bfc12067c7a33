"""Indexed views over one analysis snapshot.

Detectors used to regroup the same snapshot independently; the groupings
are now built once per ``analyze()`` call and shared read-only.  Country
tags are memoised per IP so each address hits the classifier once.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, tzinfo

from src.contracts.attempt import ConnectionAttempt
from src.ids.geoip import Classifier
from src.ids.settings import DetectorSettings
from src.ids.users import UserRegistry
from src.shared.timeutil import is_business_hours


@dataclass(slots=True)
class AttemptIndex:
    attempts: list[ConnectionAttempt]
    by_ip: dict[str, list[ConnectionAttempt]]
    by_ip_user: dict[str, dict[str, list[ConnectionAttempt]]]
    by_ip_port: dict[str, dict[int, list[ConnectionAttempt]]]
    successes_by_ip: dict[str, list[ConnectionAttempt]]

    @classmethod
    def build(cls, attempts: Sequence[ConnectionAttempt]) -> AttemptIndex:
        by_ip: dict[str, list[ConnectionAttempt]] = defaultdict(list)
        by_ip_user: dict[str, dict[str, list[ConnectionAttempt]]] = defaultdict(
            lambda: defaultdict(list)
        )
        by_ip_port: dict[str, dict[int, list[ConnectionAttempt]]] = defaultdict(
            lambda: defaultdict(list)
        )
        successes: dict[str, list[ConnectionAttempt]] = defaultdict(list)

        for a in attempts:
            by_ip[a.ip].append(a)
            by_ip_user[a.ip][a.username].append(a)
            by_ip_port[a.ip][a.port].append(a)
            if a.success:
                successes[a.ip].append(a)

        return cls(
            attempts=list(attempts),
            by_ip=dict(by_ip),
            by_ip_user={ip: dict(users) for ip, users in by_ip_user.items()},
            by_ip_port={ip: dict(ports) for ip, ports in by_ip_port.items()},
            successes_by_ip=dict(successes),
        )


@dataclass(slots=True)
class DetectionContext:
    """Everything a detector may consult besides the index."""

    settings: DetectorSettings
    classifier: Classifier
    registry: UserRegistry
    now: datetime
    tz: tzinfo | None = None
    _countries: dict[str, str] = field(default_factory=dict)

    def country(self, ip: str) -> str:
        tag = self._countries.get(ip)
        if tag is None:
            tag = self.classifier.classify(ip)
            self._countries[ip] = tag
        return tag

    def is_unusual_country(self, country: str) -> bool:
        """True for a real tag outside the normal set.

        ``LOCAL`` and ``UNKNOWN`` never count as unusual: an address we
        could not place is not evidence of anything.
        """
        return country not in self.settings.normal_countries and country not in ("LOCAL", "UNKNOWN")

    def business_hours(self, ts: datetime) -> bool:
        s = self.settings
        return is_business_hours(
            ts,
            self.tz,
            weekdays=s.business_weekdays,
            start_hour=s.business_start_hour,
            end_hour=s.business_end_hour,
        )
