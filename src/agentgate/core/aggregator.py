"""Result aggregation: deduplicate and prioritize findings from subagents.

Two findings are duplicates when they point at the same location and their
significant words overlap enough. A duplicate group keeps its most severe
finding, with the distinct descriptions of every member merged in.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from ..models.finding import Finding, FindingSummary, Severity
from ..models.review import ReportSummary, ReviewReport, Verdict

DEFAULT_DEDUP_THRESHOLD = 0.5

STOPWORDS = frozenset(
    """
    the and for are but not you all any can had her was one our out has have
    its into than then them they this that with from there their which when
    what will would should could does also been being very more most such only
    over under uses used using use may might must each other some these those
    """.split()
)

_WORD_RE = re.compile(r"[a-z0-9_]+")


def keywords(finding: Finding) -> frozenset[str]:
    text = f"{finding.title} {finding.description}".lower()
    return frozenset(w for w in _WORD_RE.findall(text) if len(w) >= 3 and w not in STOPWORDS)


def keyword_overlap(a: frozenset[str], b: frozenset[str]) -> float:
    """Overlap coefficient: shared words over the smaller set."""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / min(len(a), len(b))


def _same_location(a: Finding, b: Finding) -> bool:
    return (a.file or "") == (b.file or "") and a.line == b.line


class _Group:
    def __init__(self, first: Finding, order: int):
        self.representative = first
        self.keywords = keywords(first)
        self.order = order
        self.members: list[Finding] = [first]

    def matches(self, finding: Finding, threshold: float) -> bool:
        return (
            _same_location(self.representative, finding)
            and keyword_overlap(self.keywords, keywords(finding)) >= threshold
        )

    def merged(self) -> Finding:
        # max() returns the first of equally severe members
        best = max(self.members, key=lambda f: f.severity.rank)
        descriptions: list[str] = []
        sources: list[str] = []
        for f in self.members:
            for part in f.description.split("\n\n"):
                part = part.strip()
                if part and part not in descriptions:
                    descriptions.append(part)
            for s in f.sources:
                if s not in sources:
                    sources.append(s)
        fix = best.suggested_fix or next((f.suggested_fix for f in self.members if f.suggested_fix), None)
        return best.model_copy(
            update={
                "description": "\n\n".join(descriptions),
                "sources": tuple(sources),
                "suggested_fix": fix,
            }
        )


def _sort_key(item: tuple[int, Finding]) -> tuple:
    order, f = item
    # Located findings first, by file then line
    return (-f.severity.rank, f.file is None, f.file or "", f.line if f.line is not None else -1, order)


def _dedup_pass(findings: Sequence[Finding], threshold: float) -> list[Finding]:
    groups: list[_Group] = []
    for finding in findings:
        for group in groups:
            if group.matches(finding, threshold):
                group.members.append(finding)
                break
        else:
            groups.append(_Group(finding, len(groups)))

    merged = [(g.order, g.merged()) for g in groups]
    merged.sort(key=_sort_key)
    return [f for _, f in merged]


def deduplicate(findings: Sequence[Finding], threshold: float = DEFAULT_DEDUP_THRESHOLD) -> list[Finding]:
    """Collapse duplicates and order by severity, location, discovery order."""
    result = _dedup_pass(findings, threshold)
    # A merged description can match a group it missed; repeat until stable
    while True:
        again = _dedup_pass(result, threshold)
        if len(again) == len(result):
            return again
        result = again


def summarize(findings: Sequence[Finding]) -> FindingSummary:
    summary = FindingSummary()
    for f in findings:
        setattr(summary, f.severity.value, getattr(summary, f.severity.value) + 1)
    summary.total = len(findings)
    return summary


def calculate_verdict(summary: FindingSummary) -> Verdict:
    """Calculate the review verdict.

    - HOLD: any critical
    - CONDITIONAL: no critical but >3 high
    - SHIP: everything else
    """
    if summary.critical > 0:
        return Verdict.HOLD
    if summary.high > 3:
        return Verdict.CONDITIONAL
    return Verdict.SHIP


def build_summary(findings: Sequence[Finding], completed: int, dispatched: int) -> ReportSummary:
    counts = summarize(findings)
    verdict = calculate_verdict(counts)
    breakdown = ", ".join(
        f"{getattr(counts, s.value)} {s.value}" for s in Severity if getattr(counts, s.value)
    )
    text = f"{counts.total} finding{'s' if counts.total != 1 else ''}"
    if breakdown:
        text += f" ({breakdown})"
    text += f" from {completed} of {dispatched} agent{'s' if dispatched != 1 else ''}"
    return ReportSummary(**counts.model_dump(), verdict=verdict, text=text)


def merge(
    finding_sets: Sequence[tuple[str, Sequence[Finding]]],
    threshold: float = DEFAULT_DEDUP_THRESHOLD,
) -> ReviewReport:
    """Merge (source_agent, findings) sets into one deduplicated report."""
    collected: list[Finding] = []
    completed: list[str] = []
    for source, findings in finding_sets:
        if source not in completed:
            completed.append(source)
        for f in findings:
            if source not in f.sources:
                f = f.model_copy(update={"sources": f.sources + (source,)})
            collected.append(f)

    deduped = deduplicate(collected, threshold)
    return ReviewReport(
        findings=deduped,
        summary=build_summary(deduped, len(completed), len(completed)),
        completed=completed,
    )
