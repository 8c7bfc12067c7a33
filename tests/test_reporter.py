"""Tests for src.ids.reporter — console rendering, summaries, file outputs."""

from __future__ import annotations

import csv
import io
import json

import pytest
from rich.console import Console

from src.contracts.alert import ALERT_CSV_COLUMNS, AttackAlert
from src.ids.reporter import (
    format_alert_line,
    render_alerts,
    render_summary,
    summarize,
    write_alerts_csv,
    write_alerts_jsonl,
    write_plots,
    write_report_txt,
)
from src.shared.timeutil import parse_ts


def make_alert(type_="brute_force", severity="high", ip="1.2.3.4", username="", n=1, **kw):
    return AttackAlert(
        type=type_,
        severity=severity,
        ip=ip,
        username=username,
        description=kw.pop("description", f"{type_} detected"),
        timestamp=parse_ts("2026-02-26T10:05:00Z"),
        details=kw.pop("details", {"reason": "test"}),
        alert_id=f"ALR-{n:04d}",
        **kw,
    )


@pytest.fixture
def alerts():
    return [
        make_alert("root_attack", "medium", username="root", n=1),
        make_alert("brute_force", "high", n=2, recommended_action="block_ip"),
        make_alert("brute_force", "high", ip="5.6.7.8", n=3),
        make_alert("time_anomaly", "low", n=4),
    ]


def _console():
    buf = io.StringIO()
    return Console(file=buf, width=140, color_system=None), buf


class TestSummary:
    def test_counts_in_pipeline_order(self, alerts):
        summary = summarize(alerts)
        assert summary == {"brute_force": 2, "time_anomaly": 1, "root_attack": 1}
        assert list(summary) == ["brute_force", "time_anomaly", "root_attack"]

    def test_empty(self):
        assert summarize([]) == {}

    def test_render_summary(self, alerts):
        console, buf = _console()
        render_summary(summarize(alerts), console)
        out = buf.getvalue()
        assert "brute_force" in out
        assert "total" in out
        assert "4" in out


class TestRenderAlerts:
    def test_grouped_by_type(self, alerts):
        console, buf = _console()
        render_alerts(alerts, console)
        out = buf.getvalue()
        assert out.index("BRUTE_FORCE") < out.index("TIME_ANOMALY") < out.index("ROOT_ATTACK")
        assert "[HIGH]" in out
        assert "reason: test" in out
        assert "action: block_ip" in out
        assert "user: root" in out

    def test_no_alerts(self):
        console, buf = _console()
        render_alerts([], console)
        assert "No attacks detected" in buf.getvalue()

    def test_markup_in_data_is_escaped(self):
        console, buf = _console()
        render_alerts([make_alert(description="[bold]evil[/bold]")], console)
        assert "[bold]evil[/bold]" in buf.getvalue()

    def test_format_alert_line(self):
        line = format_alert_line(make_alert("root_attack", "medium", username="root"))
        assert line == "[medium] root_attack from 1.2.3.4 (user: root): root_attack detected"
        assert "(user:" not in format_alert_line(make_alert())


class TestWriters:
    def test_jsonl(self, tmp_path, alerts):
        path = tmp_path / "out" / "alerts.jsonl"
        write_alerts_jsonl(alerts, str(path))
        rows = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        assert [r["alert_id"] for r in rows] == ["ALR-0001", "ALR-0002", "ALR-0003", "ALR-0004"]

    def test_csv(self, tmp_path, alerts):
        path = tmp_path / "alerts.csv"
        write_alerts_csv(alerts, str(path))
        rows = list(csv.reader(io.StringIO(path.read_text(encoding="utf-8"))))
        assert rows[0] == ALERT_CSV_COLUMNS
        assert len(rows) == 5

    def test_report_txt(self, tmp_path, alerts):
        path = tmp_path / "report.txt"
        write_report_txt(alerts, str(path), attempts_analysed=42)
        text = path.read_text(encoding="utf-8")
        assert "Attempts analysed: 42" in text
        assert "Alerts total:      4" in text
        assert "high=2" in text
        assert "ALR-0004 [low] time_anomaly from 1.2.3.4" in text

    def test_atomic_write_leaves_no_temp_files(self, tmp_path, alerts):
        write_alerts_csv(alerts, str(tmp_path / "alerts.csv"))
        assert [p.name for p in tmp_path.iterdir()] == ["alerts.csv"]

    def test_plots(self, tmp_path, alerts):
        pytest.importorskip("matplotlib")
        write_plots(alerts, str(tmp_path))
        assert (tmp_path / "plots" / "alerts_by_type.png").is_file()
        assert (tmp_path / "plots" / "alerts_by_severity.png").is_file()

    def test_plots_skipped_without_alerts(self, tmp_path):
        write_plots([], str(tmp_path))
        assert not (tmp_path / "plots").exists()
