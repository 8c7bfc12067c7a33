"""Country Classifier — IP address → coarse location tag.

Resolution order
────────────────
  1. private / loopback / link-local ranges  → ``LOCAL`` (no lookup)
  2. ``0.0.0.0/8`` and the broadcast address → ``RESERVED``
  3. anything else                           → injected GeoIP lookup
     (ISO country code, or ``UNKNOWN`` on any failure)

The MaxMind database is opened lazily on the first non-local lookup and
kept open until :meth:`CountryClassifier.close`.
"""

from __future__ import annotations

import ipaddress
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

import geoip2.database
import geoip2.errors
from maxminddb import InvalidDatabaseError

from src.contracts.enums import CountryTag
from src.ids.settings import DEFAULT_GEOIP_PATHS
from src.shared.config_loader import first_existing

log = logging.getLogger(__name__)

LOCAL_NETWORKS = tuple(
    ipaddress.ip_network(n)
    for n in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "::1/128",
        "fe80::/10",
        "fc00::/7",
    )
)

RESERVED_NETWORKS = tuple(
    ipaddress.ip_network(n) for n in ("0.0.0.0/8", "255.255.255.255/32")
)

class GeoLookup(Protocol):
    """Country lookup service consumed by the classifier."""

    def open(self) -> object: ...

    def country_code(self, ip: str) -> str | None: ...

    def close(self) -> None: ...


class Classifier(Protocol):
    """What detectors need: ``classify(ip) -> tag``."""

    def classify(self, ip: str) -> str: ...


class MaxMindLookup:
    """GeoLite2-Country lookup through ``geoip2``.

    If no explicit ``db_path`` is given, the first readable file from
    ``search_paths`` is used.  A missing database is reported once and
    every later lookup answers ``None``.
    """

    def __init__(
        self,
        db_path: str | None = None,
        search_paths: Iterable[str] = DEFAULT_GEOIP_PATHS,
    ) -> None:
        self.db_path = db_path
        self.search_paths = tuple(search_paths)
        self._reader: geoip2.database.Reader | None = None
        self._opened = False

    def open(self) -> geoip2.database.Reader | None:
        if self._opened:
            return self._reader
        self._opened = True

        candidates = [self.db_path] if self.db_path else list(self.search_paths)
        path = first_existing(candidates)
        if path is None:
            log.warning(
                "GeoIP database not found (tried: %s) — countries will be UNKNOWN",
                ", ".join(candidates),
            )
            return None
        try:
            self._reader = geoip2.database.Reader(str(path))
        except (InvalidDatabaseError, OSError, ValueError) as exc:
            log.warning("Failed to open GeoIP database %s: %s", path, exc)
            return None
        log.info("Loaded GeoIP database from: %s", path)
        return self._reader

    def country_code(self, ip: str) -> str | None:
        reader = self.open()
        if reader is None:
            return None
        response = reader.country(ip)
        return response.country.iso_code or response.registered_country.iso_code

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            log.debug("Closed GeoIP database")
        self._reader = None
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._reader is not None


def _local_tag(ip: str) -> str | None:
    """Return LOCAL / RESERVED for special ranges, UNKNOWN for garbage, else None."""
    try:
        addr = ipaddress.ip_address(ip.strip())
    except ValueError:
        return CountryTag.UNKNOWN.value
    for net in LOCAL_NETWORKS:
        if addr.version == net.version and addr in net:
            return CountryTag.LOCAL.value
    for net in RESERVED_NETWORKS:
        if addr.version == net.version and addr in net:
            return CountryTag.RESERVED.value
    return None


class CountryClassifier:
    """Owns a :class:`GeoLookup` and turns its answers into tags.

    ``classify`` never raises: lookup errors, misses and malformed entries
    all come back as ``UNKNOWN``.
    """

    def __init__(self, lookup: GeoLookup | None = None) -> None:
        self.lookup: GeoLookup = lookup if lookup is not None else MaxMindLookup()

    @classmethod
    def from_path(
        cls,
        db_path: str | Path | None = None,
        search_paths: Iterable[str] = DEFAULT_GEOIP_PATHS,
    ) -> CountryClassifier:
        return cls(MaxMindLookup(str(db_path) if db_path else None, search_paths))

    def classify(self, ip: str) -> str:
        tag = _local_tag(ip)
        if tag is not None:
            return tag
        try:
            code = self.lookup.country_code(ip)
        except geoip2.errors.AddressNotFoundError:
            log.debug("GeoIP entry not found for IP: %s", ip)
            return CountryTag.UNKNOWN.value
        except Exception as exc:
            log.debug("GeoIP lookup failed for IP %s: %s", ip, exc)
            return CountryTag.UNKNOWN.value
        if not code:
            log.debug("Could not extract country code for IP: %s", ip)
            return CountryTag.UNKNOWN.value
        return code.upper()

    def warm(self) -> None:
        """Open the backing database now instead of on the first lookup."""
        self.lookup.open()

    def close(self) -> None:
        self.lookup.close()

    def __enter__(self) -> CountryClassifier:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
