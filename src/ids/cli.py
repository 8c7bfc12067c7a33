"""CLI entry-point for the SSH intrusion detector.

Usage examples
--------------
# Batch mode (CSV input), analysed as of the newest attempt:
python -m src.ids --input data/attempts.csv

# Batch mode (JSONL input) with explicit reference time:
python -m src.ids --input data/attempts.jsonl --now 2026-02-26T12:00:00Z

# Watch mode (tail JSONL written by a log shipper):
python -m src.ids --input data/attempts_live.jsonl --watch
"""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

from rich.console import Console

from src.contracts.alert import AttackAlert
from src.ids.pipeline import DetectionPipeline, run_batch
from src.ids.reporter import (
    SEVERITY_STYLE,
    format_alert_line,
    render_alerts,
    render_summary,
    write_alerts_csv,
    write_alerts_jsonl,
    write_plots,
    write_report_txt,
)
from src.ids.settings import load_settings
from src.shared.logger import setup_logging
from src.shared.timeutil import parse_ts

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ssh-ids",
        description="SSH intrusion detector — analyse connection attempts and report attacks",
    )
    p.add_argument(
        "--input",
        default="data/attempts.csv",
        help="Input file (CSV or JSONL). Format auto-detected by extension. "
             "Default: data/attempts.csv",
    )
    p.add_argument(
        "--config",
        default="config/detector.yaml",
        help="Detector configuration (YAML). Missing file means built-in defaults. "
             "Default: config/detector.yaml",
    )
    p.add_argument(
        "--out-dir",
        default=None,
        help="Write alerts.jsonl, alerts.csv, report.txt and plots/ here. "
             "Default: console output only",
    )
    p.add_argument(
        "--now",
        default=None,
        help="Reference time (ISO-8601) for batch analysis. "
             "Default: timestamp of the newest attempt in the input",
    )
    # Watch / live mode flags
    p.add_argument(
        "--watch",
        action="store_true",
        default=False,
        help="Enable watch mode: tail the input JSONL and analyse on every poll.",
    )
    p.add_argument(
        "--poll-interval-ms",
        type=int,
        default=5000,
        help="Poll interval for watch mode, ms (default: 5000).",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level. Default: INFO",
    )
    p.add_argument(
        "--json-logs",
        action="store_true",
        default=False,
        help="Emit log records as JSON lines on stderr.",
    )
    return p


def _watch(args: argparse.Namespace, console: Console) -> int:
    settings = load_settings(args.config)

    def on_alert(alert: AttackAlert) -> None:
        style = SEVERITY_STYLE.get(alert.severity, "white")
        console.print(format_alert_line(alert), style=style, highlight=False, markup=False)

    console.print(f"SSH detector watch mode -> {args.input}")
    console.print(f"  poll interval: {args.poll_interval_ms / 1000.0:.1f}s")
    console.print("  Press Ctrl+C to stop.")

    with DetectionPipeline(settings) as engine:
        delivered = engine.watch(
            args.input,
            on_alert,
            poll_interval_sec=args.poll_interval_ms / 1000.0,
            housekeeping_sec=60.0,
        )
    console.print(f"\nWatch stopped. Alerts raised: {delivered}")
    return EXIT_OK


def _batch(args: argparse.Namespace, console: Console) -> int:
    if not os.path.isfile(args.input):
        log.error("Input file not found: %s", args.input)
        return EXIT_USAGE

    now = None
    if args.now:
        try:
            now = parse_ts(args.now)
        except ValueError:
            log.error("Invalid --now value: %r (expected ISO-8601)", args.now)
            return EXIT_USAGE

    settings = load_settings(args.config)
    result = run_batch(args.input, settings, now=now)

    render_summary(result.summary, console)
    render_alerts(result.alerts, console)

    if args.out_dir:
        out = Path(args.out_dir)
        out.mkdir(parents=True, exist_ok=True)
        write_alerts_jsonl(result.alerts, str(out / "alerts.jsonl"))
        write_alerts_csv(result.alerts, str(out / "alerts.csv"))
        write_report_txt(result.alerts, str(out / "report.txt"), result.attempts)
        write_plots(result.alerts, str(out))
        log.info("Batch complete. Outputs in %s/", args.out_dir)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, json_lines=args.json_logs)
    console = Console()

    if args.watch:
        return _watch(args, console)
    return _batch(args, console)


if __name__ == "__main__":
    raise SystemExit(main())
