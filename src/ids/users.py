"""User Registry — read-only snapshot of local account names.

Built once from ``/etc/passwd`` (or any passwd-format file) and never
refreshed: accounts created after start-up are reported as non-existent
until the process restarts.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

log = logging.getLogger(__name__)


class UserRegistry:
    def __init__(self, usernames: Iterable[str] = ()) -> None:
        self._users: frozenset[str] = frozenset(u for u in usernames if u)

    @classmethod
    def from_passwd(cls, path: str | Path = "/etc/passwd") -> UserRegistry:
        """Enumerate the first field of every line of a passwd file.

        An unreadable file yields an empty registry (every username then
        counts as non-existent) and a warning.
        """
        names: list[str] = []
        try:
            with open(path, encoding="utf-8", errors="replace") as fh:
                for line in fh:
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    names.append(line.split(":", 1)[0])
        except OSError as exc:
            log.warning("Cannot read user database %s: %s — registry is empty", path, exc)
            return cls()
        log.info("Loaded %d local accounts from %s", len(names), path)
        return cls(names)

    def exists(self, username: str) -> bool:
        return username in self._users

    def __len__(self) -> int:
        return len(self._users)

    def __contains__(self, username: object) -> bool:
        return username in self._users
