"""Звітування: консольний вивід (rich), JSONL, CSV, TXT, PNG."""

from __future__ import annotations

import logging
import os
import tempfile
from collections import Counter
from pathlib import Path

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from src.contracts.alert import AttackAlert
from src.contracts.enums import AlertType

log = logging.getLogger(__name__)

SEVERITY_STYLE: dict[str, str] = {
    "critical": "bold red",
    "high": "yellow",
    "medium": "cyan",
    "low": "white",
}

_TYPE_ORDER = [t.value for t in AlertType]


def _atomic_write(path: str, content: str) -> None:
    """Атомарно записує content у файл path."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(
        dir=str(target.parent),
        prefix=f".{target.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def _type_key(alert_type: str) -> int:
    try:
        return _TYPE_ORDER.index(alert_type)
    except ValueError:
        return len(_TYPE_ORDER)


def summarize(alerts: list[AttackAlert]) -> dict[str, int]:
    """Кількість оповіщень за типом, у порядку запуску детекторів."""
    counts = Counter(a.type for a in alerts)
    return {t: counts[t] for t in sorted(counts, key=lambda t: (_type_key(t), t))}


def format_alert_line(alert: AttackAlert) -> str:
    """One-line form used by the live monitor: ``[sev] type from ip (user: u): desc``."""
    user = f" (user: {alert.username})" if alert.username else ""
    return f"[{alert.severity}] {alert.type} from {alert.ip}{user}: {alert.description}"


# ═══════════════════════════════════════════════════════════════════════════
#  Console (rich)
# ═══════════════════════════════════════════════════════════════════════════


def render_alert(alert: AttackAlert, console: Console) -> None:
    style = SEVERITY_STYLE.get(alert.severity, "white")
    console.print(
        f"[{style}]\\[{alert.severity.upper()}][/{style}] "
        f"{escape(alert.ip)}  {escape(alert.description)}",
        highlight=False,
    )
    if alert.username:
        console.print(f"    user: {escape(alert.username)}", highlight=False)
    for key, value in alert.details.items():
        console.print(f"    {escape(key)}: {escape(value)}", highlight=False)
    if alert.recommended_action:
        console.print(
            f"    [dim]action: {escape(alert.recommended_action)}[/dim]", highlight=False
        )


def render_alerts(alerts: list[AttackAlert], console: Console | None = None) -> None:
    """Print alerts grouped by type, in the order the detectors ran."""
    console = console or Console()
    if not alerts:
        console.print("[green]No attacks detected.[/green]")
        return

    groups: dict[str, list[AttackAlert]] = {}
    for a in sorted(alerts, key=lambda a: _type_key(a.type)):
        groups.setdefault(a.type, []).append(a)

    for alert_type, items in groups.items():
        console.rule(f"[bold]{escape(alert_type.upper())}[/bold] ({len(items)})")
        for alert in items:
            render_alert(alert, console)


def render_summary(summary: dict[str, int], console: Console | None = None) -> None:
    console = console or Console()
    table = Table(title="Alerts by type", box=box.MINIMAL, show_header=True, header_style="bold")
    table.add_column("Type")
    table.add_column("Count", justify="right")
    for alert_type, count in summary.items():
        table.add_row(alert_type, str(count))
    table.add_row("[bold]total[/bold]", f"[bold]{sum(summary.values())}[/bold]")
    console.print(table)


# ═══════════════════════════════════════════════════════════════════════════
#  File writers
# ═══════════════════════════════════════════════════════════════════════════


def write_alerts_jsonl(alerts: list[AttackAlert], path: str) -> None:
    content = "".join(a.to_json() + "\n" for a in alerts)
    _atomic_write(path, content)
    log.info("Wrote alerts → %s (%d rows)", path, len(alerts))


def write_alerts_csv(alerts: list[AttackAlert], path: str) -> None:
    lines = [AttackAlert.csv_header()]
    for a in alerts:
        lines.append(a.to_csv_row())
    _atomic_write(path, "\n".join(lines) + "\n")
    log.info("Wrote alerts → %s (%d rows)", path, len(alerts))


def write_report_txt(
    alerts: list[AttackAlert],
    path: str,
    attempts_analysed: int = 0,
) -> None:
    """Генерує текстовий звіт."""
    summary = summarize(alerts)
    by_sev = Counter(a.severity for a in alerts)
    lines: list[str] = []

    lines.append("=" * 60)
    lines.append("  SSH Intrusion Detection Report")
    lines.append("=" * 60)
    lines.append("")
    lines.append(f"  Attempts analysed: {attempts_analysed}")
    lines.append(f"  Alerts total:      {len(alerts)}")
    sev_str = ", ".join(
        f"{s}={by_sev[s]}" for s in ("critical", "high", "medium", "low") if by_sev[s]
    )
    lines.append(f"  By severity:       {sev_str or '-'}")
    lines.append("")

    lines.append("--- Alerts by type ---")
    for alert_type, count in summary.items():
        lines.append(f"  {alert_type:<20} {count}")
    lines.append("")

    lines.append("--- Detailed alerts ---")
    for a in sorted(alerts, key=lambda a: _type_key(a.type)):
        lines.append(f"  {a.alert_id} {format_alert_line(a)}")
        for key, value in a.details.items():
            lines.append(f"      {key}: {value}")
        if a.recommended_action:
            lines.append(f"      action: {a.recommended_action}")
    lines.append("")
    lines.append("=" * 60)

    _atomic_write(path, "\n".join(lines) + "\n")
    log.info("Wrote report → %s", path)


# ═══════════════════════════════════════════════════════════════════════════
#  Plots (matplotlib)
# ═══════════════════════════════════════════════════════════════════════════


def write_plots(alerts: list[AttackAlert], out_dir: str) -> None:
    """Generate PNG charts into out_dir/plots/."""
    if not alerts:
        log.info("No alerts — skipping plots")
        return
    try:
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError:
        log.warning("matplotlib not installed — skipping plots")
        return

    plots_dir = Path(out_dir) / "plots"
    plots_dir.mkdir(parents=True, exist_ok=True)

    # ── 1. Alerts by type ────────────────────────────────────────────
    summary = summarize(alerts)
    types = list(summary)
    counts = [summary[t] for t in types]
    fig, ax = plt.subplots(figsize=(9, 5))
    bars = ax.bar(types, counts, color="#3498db", edgecolor="black", linewidth=0.5)
    for bar, v in zip(bars, counts):
        ax.text(
            bar.get_x() + bar.get_width() / 2,
            bar.get_height(),
            str(v),
            ha="center",
            va="bottom",
            fontweight="bold",
        )
    ax.set_ylabel("Alerts")
    ax.set_title("Alerts by Type")
    ax.tick_params(axis="x", labelrotation=30)
    fig.tight_layout()
    fig.savefig(str(plots_dir / "alerts_by_type.png"), dpi=150)
    plt.close(fig)
    log.info("Wrote plots/alerts_by_type.png")

    # ── 2. Alerts by severity ────────────────────────────────────────
    sev_order = ["low", "medium", "high", "critical"]
    by_sev = Counter(a.severity for a in alerts)
    colors = ["#95a5a6", "#1abc9c", "#f39c12", "#e74c3c"]
    fig, ax = plt.subplots(figsize=(7, 5))
    ax.bar(sev_order, [by_sev[s] for s in sev_order], color=colors,
           edgecolor="black", linewidth=0.5)
    ax.set_ylabel("Alerts")
    ax.set_title("Alerts by Severity")
    fig.tight_layout()
    fig.savefig(str(plots_dir / "alerts_by_severity.png"), dpi=150)
    plt.close(fig)
    log.info("Wrote plots/alerts_by_severity.png")
