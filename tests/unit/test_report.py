"""Tests for core/report.py."""

from __future__ import annotations

import json
from pathlib import Path

from agentgate.core.aggregator import build_summary
from agentgate.core.report import export_report_json, render_markdown, save_report
from agentgate.models.finding import Finding, Severity
from agentgate.models.review import AgentResult, AgentStatus, ComponentFailure, ReviewReport, RunState


def _report(**updates) -> ReviewReport:
    finding = Finding(
        id="SECURITY_REVIEW-001",
        severity=Severity.CRITICAL,
        title="SQL injection",
        category="security",
        file="app/db.py",
        line=42,
        description="Query concatenates input.",
        suggested_fix="Bind parameters.",
        sources=("code-review", "security-review"),
    )
    report = ReviewReport(
        agent="review",
        findings=[finding],
        completed=["code-review", "security-review"],
        results=[
            AgentResult(agent="code-review", findings=[finding], raw_output="RAW TEXT"),
            AgentResult(agent="lint", status=AgentStatus.TIMEOUT, error="timed out after 5s"),
        ],
        failures=[ComponentFailure(agent="lint", kind="timeout", reason="timed out after 5s")],
        summary=build_summary([finding], 2, 3),
    )
    return report.model_copy(update=updates)


class TestRenderMarkdown:
    def test_contains_findings_and_verdict(self):
        md = render_markdown(_report())
        assert md.startswith("# Review Report: review")
        assert "**Verdict:** HOLD" in md
        assert "### SECURITY_REVIEW-001: SQL injection [CRITICAL]" in md
        assert "**Location:** `app/db.py:42`" in md
        assert "**Reported by:** code-review, security-review" in md
        assert "**Fix:** Bind parameters." in md

    def test_lists_incomplete_components(self):
        md = render_markdown(_report())
        assert "## Components that did not complete" in md
        assert "- **lint** (timeout): timed out after 5s" in md

    def test_partial_failure_status(self):
        md = render_markdown(_report(state=RunState.PARTIAL_FAILURE, findings=[]))
        assert "**Status:** PARTIAL FAILURE" in md
        assert "## Findings" not in md

    def test_no_failures_section_when_clean(self):
        md = render_markdown(_report(failures=[]))
        assert "did not complete" not in md


class TestExport:
    def test_json_omits_raw_output(self, tmp_path: Path):
        path = export_report_json(_report(), tmp_path / "out" / "report.json")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["agent"] == "review"
        assert data["state"] == "done"
        assert data["findings"][0]["severity"] == "critical"
        assert data["failures"][0]["kind"] == "timeout"
        assert all("raw_output" not in r for r in data["results"])

    def test_save_report_writes_markdown_and_archive(self, tmp_path: Path):
        reviews = tmp_path / "reviews"
        md_path = save_report(reviews, _report())
        assert md_path == reviews / "review-report.md"
        assert md_path.exists()
        archived = list((reviews / "archive").glob("*-review.json"))
        assert len(archived) == 1

    def test_same_second_runs_keep_separate_archives(self, tmp_path: Path):
        reviews = tmp_path / "reviews"
        report = _report()
        save_report(reviews, report)
        save_report(reviews, report)
        save_report(reviews, report)
        ts = report.timestamp.strftime("%Y%m%dT%H%M%S")
        names = sorted(p.name for p in (reviews / "archive").glob("*.json"))
        assert names == [f"{ts}-review-1.json", f"{ts}-review-2.json", f"{ts}-review.json"]
