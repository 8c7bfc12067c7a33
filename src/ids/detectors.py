"""Detectors — eight independent heuristics: snapshot → AttackAlerts.

Every detector receives the same :class:`AttemptIndex` built from the
analysis window and a :class:`DetectionContext`.  Within a detector the
criteria are evaluated in a fixed order; when several match, the one
with the highest severity is reported (ties go to the earlier one).

Detectors
─────────
  brute_force         — many failures from one IP within the brute-force window
  dictionary_attack   — repeated common usernames from one IP
  geo_ip_anomaly      — activity from a country outside the normal set
  time_anomaly        — off-hours logins/failures (keeps per-IP state)
  nonexistent_user    — usernames missing from the host registry
  root_attack         — attempts against ``root``
  non_standard_port   — attempts on ports outside the standard set
  post_login_anomaly  — suspicious patterns among successful logins
"""

from __future__ import annotations

import itertools
import logging
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from src.contracts.alert import AttackAlert
from src.contracts.attempt import ConnectionAttempt
from src.contracts.enums import SEVERITY_RANK, AlertType
from src.ids.views import AttemptIndex, DetectionContext
from src.shared.timeutil import to_local

log = logging.getLogger(__name__)

Detector = Callable[[AttemptIndex, DetectionContext], list[AttackAlert]]

_ROOT = "root"


def _strongest(matches: Iterable[tuple[str, str]]) -> tuple[str, str] | None:
    """Pick the (severity, reason) with the highest severity; first wins ties."""
    best: tuple[str, str] | None = None
    for sev, reason in matches:
        if best is None or SEVERITY_RANK[sev] > SEVERITY_RANK[best[0]]:
            best = (sev, reason)
    return best


def _alert(
    alert_type: AlertType,
    severity: str,
    ip: str,
    description: str,
    now: datetime,
    details: dict[str, str],
    username: str = "",
) -> AttackAlert:
    return AttackAlert(
        type=alert_type.value,
        severity=severity,
        ip=ip,
        username=username,
        description=description,
        timestamp=now,
        details=details,
    )


def _by_time(attempts: Iterable[ConnectionAttempt]) -> list[ConnectionAttempt]:
    return sorted(attempts, key=lambda a: a.timestamp)


# ═══════════════════════════════════════════════════════════════════════════
#  1. Brute force
# ═══════════════════════════════════════════════════════════════════════════


def detect_brute_force(index: AttemptIndex, ctx: DetectionContext) -> list[AttackAlert]:
    threshold = ctx.settings.brute_force_threshold
    window_min = ctx.settings.brute_force_window_minutes
    window_start = ctx.now - timedelta(minutes=window_min)
    alerts: list[AttackAlert] = []

    for ip, attempts in index.by_ip.items():
        recent = [a for a in attempts if a.timestamp > window_start]
        if not recent:
            continue
        total = len(recent)
        failed = sum(1 for a in recent if not a.success)
        failure_rate = failed / total

        if failed >= threshold:
            reason = "High number of failed attempts"
        elif failure_rate > 0.8 and total >= 5:
            reason = "High failure rate with multiple attempts"
        elif total >= 10 and failed >= 8:
            reason = "Persistent failed attempts"
        else:
            continue

        # attached whichever criterion fired
        if total >= 10 and failed >= total - 1:
            span = max(a.timestamp for a in recent) - min(a.timestamp for a in recent)
            if span < timedelta(seconds=60):
                reason += " (rapid sequential attempts)"

        alerts.append(
            _alert(
                AlertType.BRUTE_FORCE,
                "high",
                ip,
                (
                    f"Brute force attack detected: {reason}. "
                    f"Failed: {failed}/{total} attempts in {window_min} minutes"
                ),
                ctx.now,
                {
                    "failed_attempts": str(failed),
                    "total_attempts": str(total),
                    "failure_rate": f"{failure_rate * 100:.1f}%",
                    "time_window_minutes": str(window_min),
                    "reason": reason,
                },
            )
        )
    return alerts


# ═══════════════════════════════════════════════════════════════════════════
#  2. Dictionary attack
# ═══════════════════════════════════════════════════════════════════════════


def detect_dictionary_attack(index: AttemptIndex, ctx: DetectionContext) -> list[AttackAlert]:
    common = ctx.settings.common_usernames
    alerts: list[AttackAlert] = []

    for ip, attempts in index.by_ip.items():
        common_attempts = [a for a in attempts if a.username in common]
        if not common_attempts:
            continue
        tried = sorted({a.username for a in common_attempts})
        total_common = len(common_attempts)
        failed_common = sum(1 for a in common_attempts if not a.success)

        reason = None
        if total_common >= 5:
            reason = "Multiple attempts with common usernames"
        elif len(tried) >= 3 and total_common >= 3:
            reason = "Multiple different common usernames tried"
        elif failed_common >= 3 and len(tried) >= 2:
            sequential = sum(
                1
                for cur, nxt in itertools.pairwise(_by_time(attempts))
                if not cur.success
                and cur.username in common
                and nxt.timestamp - cur.timestamp < timedelta(minutes=5)
            )
            if sequential >= 2:
                reason = "Sequential failed attempts with different common usernames"
        if reason is None:
            continue

        alerts.append(
            _alert(
                AlertType.DICTIONARY_ATTACK,
                "medium",
                ip,
                (
                    f"Dictionary attack detected: {reason}. "
                    f"Common usernames tried: {len(tried)}, Total attempts: {total_common}"
                ),
                ctx.now,
                {
                    "common_usernames_tried": str(len(tried)),
                    "total_common_attempts": str(total_common),
                    "failed_common_attempts": str(failed_common),
                    "usernames": ", ".join(tried),
                    "reason": reason,
                },
            )
        )
    return alerts


# ═══════════════════════════════════════════════════════════════════════════
#  3. GeoIP anomaly
# ═══════════════════════════════════════════════════════════════════════════


def detect_geo_anomalies(index: AttemptIndex, ctx: DetectionContext) -> list[AttackAlert]:
    standard = ctx.settings.standard_ports
    alerts: list[AttackAlert] = []

    for ip, attempts in index.by_ip.items():
        country = ctx.country(ip)
        if not ctx.is_unusual_country(country):
            continue

        total = len(attempts)
        succeeded = sum(1 for a in attempts if a.success)
        failed = total - succeeded
        ports = {a.port for a in attempts}
        usernames = {a.username for a in attempts}

        matches: list[tuple[str, str]] = []
        if total >= 3:
            matches.append(("medium", "Multiple connections from unusual geographic location"))
        if failed >= 5 and succeeded == 0:
            matches.append(("medium", "Failed connection attempts from unusual geographic location"))
        if total >= 2 and any(p not in standard for p in ports):
            matches.append((
                "high",
                "Connection attempts to non-standard ports from unusual geographic location",
            ))
        if len(usernames) >= 3 and failed >= 3:
            matches.append(("high", "Multiple usernames tried from unusual geographic location"))
        if total >= 2 and any(a.success and not ctx.business_hours(a.timestamp) for a in attempts):
            matches.append((
                "high",
                "Successful connections outside business hours from unusual geographic location",
            ))

        picked = _strongest(matches)
        if picked is None:
            continue
        severity, reason = picked
        alerts.append(
            _alert(
                AlertType.GEO_IP_ANOMALY,
                severity,
                ip,
                f"GeoIP anomaly detected: {reason} (Country: {country}, Connections: {total})",
                ctx.now,
                {
                    "country": country,
                    "total_connections": str(total),
                    "successful_connections": str(succeeded),
                    "failed_connections": str(failed),
                    "usernames_tried": str(len(usernames)),
                    "ports_used": str(len(ports)),
                    "reason": reason,
                },
            )
        )
    return alerts


# ═══════════════════════════════════════════════════════════════════════════
#  4. Time anomaly (stateful)
# ═══════════════════════════════════════════════════════════════════════════


class TimeAnomalyDetector:
    """Off-hours activity detector.

    Unlike the other detectors it remembers, per IP, the last successful
    login it reported on.  Two ``analyze()`` runs over the same data can
    therefore differ: the second one does not repeat a "new pattern"
    finding recorded less than 24 hours earlier.
    """

    NEW_PATTERN_AFTER = timedelta(hours=24)

    def __init__(self) -> None:
        self.last_successful_login: dict[str, datetime] = {}

    def reset(self) -> None:
        self.last_successful_login.clear()

    def __call__(self, index: AttemptIndex, ctx: DetectionContext) -> list[AttackAlert]:
        self._prune(ctx)
        alerts: list[AttackAlert] = []
        for ip, attempts in index.by_ip.items():
            alert = self._check_ip(ip, attempts, ctx)
            if alert is not None:
                alerts.append(alert)
        return alerts

    def _prune(self, ctx: DetectionContext) -> None:
        """Forget logins that can no longer suppress a finding.

        An entry older than the analysis window plus 24 hours is more than
        24 hours before every attempt in the window, so dropping it does
        not change any outcome.
        """
        horizon = self.NEW_PATTERN_AFTER + timedelta(minutes=ctx.settings.analysis_window_minutes)
        cutoff = ctx.now - horizon
        stale = [ip for ip, ts in self.last_successful_login.items() if ts < cutoff]
        for ip in stale:
            del self.last_successful_login[ip]
        if stale:
            log.debug("Time anomaly: forgot %d stale logins", len(stale))

    def _check_ip(
        self,
        ip: str,
        attempts: list[ConnectionAttempt],
        ctx: DetectionContext,
    ) -> AttackAlert | None:
        successes = [a for a in attempts if a.success]
        failures = [a for a in attempts if not a.success]
        off_hours = [a for a in attempts if not ctx.business_hours(a.timestamp)]
        off_hours_success = [a for a in off_hours if a.success]
        known = self.last_successful_login.get(ip)

        matches: list[tuple[str, str]] = []

        if off_hours_success:
            latest = max(a.timestamp for a in attempts)
            if known is None or latest - known > self.NEW_PATTERN_AFTER:
                sev = "medium" if len(off_hours_success) >= 2 else "low"
                matches.append((sev, "Successful login outside business hours"))
                self.last_successful_login[ip] = max(a.timestamp for a in successes)

        off_hours_failures = len(off_hours) - len(off_hours_success)
        if off_hours_failures >= 3 and len(off_hours) >= off_hours_failures:
            matches.append(("medium", "Multiple failed attempts during off-hours"))

        # matches only when the first criterion does, at equal severity, so it is never reported
        if len(successes) == 1 and known is None and not ctx.business_hours(successes[0].timestamp):
            matches.append((
                "low",
                "First successful connection from this IP occurred outside business hours",
            ))
            self.last_successful_login.setdefault(ip, successes[0].timestamp)

        if len(failures) >= 5:
            per_hour = Counter(to_local(a.timestamp, ctx.tz).hour for a in failures)
            for hour, count in sorted(per_hour.items()):
                if count >= 3 and (hour < 6 or hour > 22):
                    matches.append(("medium", f"High activity during unusual hours (hour {hour})"))
                    break

        picked = _strongest(matches)
        if picked is None:
            return None
        severity, reason = picked

        details = {
            "successful_connections": str(len(successes)),
            "failed_connections": str(len(failures)),
            "off_hours_success": str(len(off_hours_success)),
            "reason": reason,
        }
        username = ""
        if successes:
            username = successes[-1].username
            details["last_username"] = username

        return _alert(
            AlertType.TIME_ANOMALY,
            severity,
            ip,
            f"Time anomaly detected: {reason}",
            ctx.now,
            details,
            username=username,
        )


# ═══════════════════════════════════════════════════════════════════════════
#  5. Non-existent user
# ═══════════════════════════════════════════════════════════════════════════


def typo_distance(a: str, b: str) -> int:
    """Length difference plus positional mismatches over the shorter string.

    Not an edit distance: an inserted character shifts every later
    position, so ``adminn``/``admin`` scores 1 but ``aadmin``/``admin``
    scores 5.
    """
    return sum(1 for x, y in zip(a, b) if x != y) + abs(len(a) - len(b))


def likely_typo_of(username: str, common: Iterable[str], max_distance: int = 2) -> str | None:
    """First common username (alphabetical) within *max_distance* of *username*."""
    for candidate in sorted(common):
        if candidate == username or abs(len(candidate) - len(username)) > max_distance:
            continue
        if typo_distance(candidate, username) <= max_distance:
            return candidate
    return None


def detect_nonexistent_users(index: AttemptIndex, ctx: DetectionContext) -> list[AttackAlert]:
    common = ctx.settings.common_usernames
    alerts: list[AttackAlert] = []

    for ip, per_user in index.by_ip_user.items():
        for username, attempts in per_user.items():
            if ctx.registry.exists(username):
                continue
            total = len(attempts)
            failed = sum(1 for a in attempts if not a.success)
            typo = likely_typo_of(username, common) if total >= 2 else None

            if total >= 3:
                severity, reason = "medium", "Multiple attempts with non-existent username"
            elif failed >= 2 and total >= 2:
                severity, reason = "low", "Failed attempts with non-existent username"
            elif typo is not None:
                severity, reason = "low", f"Possible typo in common username '{typo}'"
            else:
                continue

            description = (
                f"Suspicious activity with non-existent user '{username}': "
                f"{reason} ({total} attempts)"
            )
            details = {
                "total_attempts": str(total),
                "failed_attempts": str(failed),
                "reason": reason,
            }
            if typo is not None:
                details["possible_typo_of"] = typo
                if typo not in reason:
                    description += f"; likely typo of '{typo}'"

            alerts.append(
                _alert(
                    AlertType.NONEXISTENT_USER,
                    severity,
                    ip,
                    description,
                    ctx.now,
                    details,
                    username=username,
                )
            )
    return alerts


# ═══════════════════════════════════════════════════════════════════════════
#  6. Root attempts
# ═══════════════════════════════════════════════════════════════════════════


def detect_root_attempts(index: AttemptIndex, ctx: DetectionContext) -> list[AttackAlert]:
    alerts: list[AttackAlert] = []

    for ip, attempts in index.by_ip.items():
        root = [a for a in attempts if a.username == _ROOT]
        if not root:
            continue
        others = {a.username for a in attempts if a.username != _ROOT}
        succeeded = sum(1 for a in root if a.success)
        failed = len(root) - succeeded

        matches: list[tuple[str, str]] = []
        if failed >= 3:
            matches.append(("high" if failed >= 5 else "medium", "Multiple failed root login attempts"))
        if succeeded and ctx.is_unusual_country(ctx.country(ip)):
            matches.append(("high", "Successful root login from unusual geographic location"))
        if others and failed >= 2:
            matches.append(("high", "Root login attempts combined with other username attempts"))
        if failed >= 2 and any(not ctx.business_hours(a.timestamp) for a in root):
            matches.append(("medium", "Root login attempts outside business hours"))
        if len(root) >= 3:
            rapid = sum(
                1
                for prev, cur in itertools.pairwise(_by_time(root))
                if cur.timestamp - prev.timestamp < timedelta(seconds=30)
            )
            if rapid >= 2:
                matches.append(("high", "Rapid sequential root login attempts"))

        picked = _strongest(matches)
        if picked is None:
            continue
        severity, reason = picked
        alerts.append(
            _alert(
                AlertType.ROOT_ATTACK,
                severity,
                ip,
                (
                    f"Root account attack detected: {reason} "
                    f"(Failed: {failed}, Successful: {succeeded})"
                ),
                ctx.now,
                {
                    "failed_root_attempts": str(failed),
                    "successful_root_attempts": str(succeeded),
                    "total_root_attempts": str(len(root)),
                    "other_usernames_tried": str(len(others)),
                    "reason": reason,
                },
                username=_ROOT,
            )
        )
    return alerts


# ═══════════════════════════════════════════════════════════════════════════
#  7. Non-standard port
# ═══════════════════════════════════════════════════════════════════════════


def detect_non_standard_ports(index: AttemptIndex, ctx: DetectionContext) -> list[AttackAlert]:
    standard = ctx.settings.standard_ports
    alerts: list[AttackAlert] = []

    for ip, per_port in index.by_ip_port.items():
        odd_ports = [p for p in per_port if p not in standard]
        if not odd_ports:
            continue
        scanning = len(per_port) >= 3 and len(odd_ports) >= 2

        for port in odd_ports:
            attempts = per_port[port]
            total = len(attempts)
            succeeded = sum(1 for a in attempts if a.success)
            usernames = {a.username for a in attempts}

            matches: list[tuple[str, str]] = []
            if total >= 3:
                matches.append(("medium", "Multiple connection attempts to non-standard port"))
            if scanning:
                matches.append(("high", "Port scanning activity detected"))
            if succeeded:
                matches.append(("medium", "Successful connection to non-standard port"))
            if total >= 2 and ctx.is_unusual_country(ctx.country(ip)):
                matches.append(("high", "Non-standard port attempts from unusual geographic location"))

            picked = _strongest(matches)
            if picked is None:
                continue
            severity, reason = picked
            alerts.append(
                _alert(
                    AlertType.NON_STANDARD_PORT,
                    severity,
                    ip,
                    f"Non-standard port activity: {reason} (Port: {port}, Attempts: {total})",
                    ctx.now,
                    {
                        "port": str(port),
                        "attempts_on_port": str(total),
                        "successful_connections": str(succeeded),
                        "failed_connections": str(total - succeeded),
                        "usernames_tried": str(len(usernames)),
                        "total_ports_scanned": str(len(per_port)),
                        "reason": reason,
                    },
                )
            )
    return alerts


# ═══════════════════════════════════════════════════════════════════════════
#  8. Post-login anomaly
# ═══════════════════════════════════════════════════════════════════════════


def detect_post_login_anomalies(index: AttemptIndex, ctx: DetectionContext) -> list[AttackAlert]:
    alerts: list[AttackAlert] = []

    for ip, successes in index.successes_by_ip.items():
        if len(successes) < 2:
            continue
        ordered = _by_time(successes)
        first = ordered[0].timestamp
        span_hours = (ordered[-1].timestamp - first).total_seconds() / 3600
        # rate is only meaningful over at least one full hour
        per_hour = len(ordered) / span_hours if span_hours >= 1 else None
        usernames = {a.username for a in ordered}
        country = ctx.country(ip)

        matches: list[tuple[str, str]] = []
        if len(ordered) >= 3:
            short = sum(
                1
                for prev, cur in itertools.pairwise(ordered)
                if cur.timestamp - prev.timestamp < timedelta(minutes=5)
            )
            if short >= 2:
                matches.append(("medium", "Frequent short sessions detected"))
        if any(
            a.timestamp - first > timedelta(hours=24) and not ctx.business_hours(a.timestamp)
            for a in ordered[1:]
        ):
            matches.append(("low", "Unusual timing pattern after initial login"))
        if len(usernames) >= 3 and len(ordered) >= 5:
            matches.append(("high", "Multiple different users from same IP after successful logins"))
        if len(ordered) >= 3 and ctx.is_unusual_country(country):
            matches.append(("medium", "Multiple successful logins from unusual geographic location"))
        if len(ordered) >= 5 and per_hour is not None and per_hour > 2.0:
            matches.append(("medium", "High frequency of logins from same IP"))

        picked = _strongest(matches)
        if picked is None:
            continue
        severity, reason = picked
        details = {
            "successful_logins": str(len(ordered)),
            "unique_users": str(len(usernames)),
            "country": country,
            "observation_period_hours": f"{span_hours:.2f}",
            "reason": reason,
        }
        if per_hour is not None:
            details["avg_logins_per_hour"] = f"{per_hour:.2f}"

        alerts.append(
            _alert(
                AlertType.POST_LOGIN_ANOMALY,
                severity,
                ip,
                f"Post-login anomaly detected: {reason} ({len(ordered)} successful logins)",
                ctx.now,
                details,
                username=ordered[-1].username,
            )
        )
    return alerts
