"""Report rendering and export: markdown, JSON, and per-run archive."""

from __future__ import annotations

import json
from pathlib import Path

from .. import __version__
from ..models.finding import Severity
from ..models.review import ReviewReport, RunState

STATE_LABELS = {
    RunState.DONE: "DONE",
    RunState.PARTIAL_FAILURE: "PARTIAL FAILURE",
    RunState.FAILED: "FAILED",
}


def render_markdown(report: ReviewReport) -> str:
    """Render a ReviewReport as markdown."""
    timestamp = report.timestamp.strftime("%Y-%m-%d %H:%M:%S")
    s = report.summary

    lines: list[str] = []
    lines.append(f"# Review Report: {report.agent}")
    lines.append("")
    lines.append(f"**Date:** {timestamp}")
    lines.append(f"**Status:** {STATE_LABELS.get(report.state, report.state.value)}")
    lines.append(f"**Verdict:** {s.verdict.value.upper()}")
    lines.append(f"**Duration:** {round(report.duration_seconds, 1)}s")
    lines.append("")
    lines.append(s.text)
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append("| Severity | Count |")
    lines.append("|----------|-------|")
    for sev in Severity:
        lines.append(f"| {sev.value.upper():<8} | {getattr(s, sev.value)} |")
    lines.append(f"| **Total** | **{s.total}** |")
    lines.append("")

    if report.results:
        lines.append("## Agent Results")
        lines.append("")
        lines.append("| Agent | Status | Findings | Duration |")
        lines.append("|-------|--------|----------|----------|")
        for r in report.results:
            lines.append(
                f"| {r.agent} | {r.status.value} | {len(r.findings)} | {round(r.duration_seconds, 1)}s |"
            )
        lines.append("")

    if report.findings:
        lines.append("## Findings")
        lines.append("")
        for f in report.findings:
            lines.append(f"### {f.id}: {f.title} [{f.severity.value.upper()}]")
            if f.location:
                lines.append(f"**Location:** `{f.location}`")
            if f.category:
                lines.append(f"**Category:** {f.category}")
            if len(f.sources) > 1:
                lines.append(f"**Reported by:** {', '.join(f.sources)}")
            if f.description:
                lines.append(f"\n{f.description}")
            if f.suggested_fix:
                lines.append(f"\n**Fix:** {f.suggested_fix}")
            lines.append("")

    if report.failures:
        lines.append("## Components that did not complete")
        lines.append("")
        for failure in report.failures:
            lines.append(f"- **{failure.agent}** ({failure.kind}): {failure.reason}")
        lines.append("")

    lines.append("---")
    lines.append(f"*Generated by agentgate v{__version__} at {timestamp}*")
    return "\n".join(lines)


def export_report_json(report: ReviewReport, output_path: Path) -> Path:
    """Write a report to a JSON file (UTF-8, no BOM)."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    data = report.model_dump(mode="json", exclude={"results": {"__all__": {"raw_output"}}})
    output_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    return output_path


def export_run_archive(reviews_dir: Path, report: ReviewReport) -> Path:
    """Archive a completed run into a single timestamped JSON file.

    Runs finishing within the same second get a numeric suffix instead of
    overwriting each other.
    """
    archive_dir = reviews_dir / "archive"
    ts = report.timestamp.strftime("%Y%m%dT%H%M%S")
    path = archive_dir / f"{ts}-{report.agent}.json"
    n = 1
    while path.exists():
        path = archive_dir / f"{ts}-{report.agent}-{n}.json"
        n += 1
    return export_report_json(report, path)


def save_report(reviews_dir: Path, report: ReviewReport) -> Path:
    """Write the latest markdown report and archive the run. Returns the markdown path."""
    reviews_dir.mkdir(parents=True, exist_ok=True)
    md_path = reviews_dir / f"{report.agent}-report.md"
    md_path.write_text(render_markdown(report), encoding="utf-8")
    export_run_archive(reviews_dir, report)
    return md_path
