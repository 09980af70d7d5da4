"""Findings parser: converts subagent markdown output to Finding records.

Expected shape of each finding:

    ### REVIEW-001: SQL built by string concatenation [HIGH]
    **Location:** `app/db.py:42`
    **Category:** security

    **Issue:**
    ...

    **Fix:**
    ...
"""

from __future__ import annotations

import re
from typing import Optional

from ..models.finding import Finding, Severity

FINDING_HEADER = re.compile(
    r"###\s+([A-Z][A-Z0-9_-]*-\d+):\s*(.+?)\s*\[(CRITICAL|BLOCKER|HIGH|MEDIUM|LOW|INFO)\]",
    re.IGNORECASE,
)

SEVERITY_ALIASES: dict[str, Severity] = {
    "BLOCKER": Severity.CRITICAL,
}


def parse_severity(value: str) -> Severity:
    key = value.strip().upper()
    if key in SEVERITY_ALIASES:
        return SEVERITY_ALIASES[key]
    return Severity(key.lower())


def _get_code_block_ranges(content: str) -> list[tuple[int, int]]:
    """Find all code block regions (```...```) in content."""
    return [(m.start(), m.end()) for m in re.finditer(r"```[\s\S]*?```", content)]


def _in_code_block(pos: int, ranges: list[tuple[int, int]]) -> bool:
    return any(start <= pos < end for start, end in ranges)


def _get_section_text(content: str, header: str) -> Optional[str]:
    """Extract text from a markdown section header within a finding."""
    pattern = (
        rf"(?:\*\*)?{header}(?:\*\*)?:?\*?\*?\s*\r?\n"
        r"([\s\S]*?)"
        r"(?=\r?\n\*\*[A-Z]|\r?\n---|\r?\nCOMPLETE:|\Z)"
    )
    m = re.search(pattern, content)
    if not m:
        return None
    text = m.group(1).strip()
    text = re.sub(r"^\s*```[a-z]*\s*\r?\n", "", text)
    text = re.sub(r"\r?\n\s*```\s*$", "", text)
    return text.strip() or None


def _get_inline_field(content: str, label: str) -> Optional[str]:
    m = re.search(rf"(?:\*\*)?{label}(?:\*\*)?:\*?\*?[ \t]*`?([^`\r\n*]+)`?", content)
    if not m:
        return None
    return m.group(1).strip() or None


def _split_location(loc: str) -> tuple[str, Optional[int]]:
    m = re.match(r"^(.+?):(\d+)(?:[-:]\d+)?$", loc)
    if m:
        return m.group(1), int(m.group(2))
    return loc, None


def parse_findings_markdown(content: str, agent: str) -> list[Finding]:
    """Parse one agent's markdown output into findings, in discovery order."""
    code_block_ranges = _get_code_block_ranges(content)
    headers = [m for m in FINDING_HEADER.finditer(content) if not _in_code_block(m.start(), code_block_ranges)]

    findings: list[Finding] = []
    for i, match in enumerate(headers):
        end_pos = headers[i + 1].start() if i + 1 < len(headers) else len(content)
        section = content[match.end():end_pos]

        file_val: Optional[str] = None
        line_val: Optional[int] = None
        loc = _get_inline_field(section, "(?:Location|File)")
        if loc:
            file_val, line_val = _split_location(loc.split()[0])
        if line_val is None:
            line_match = re.search(r"(?:\*\*)?Line(?:\*\*)?:?\*?\*?\s*(\d+)", section)
            if line_match:
                line_val = int(line_match.group(1))

        category = _get_inline_field(section, "Category") or agent
        description = _get_section_text(section, "(?:Issue|Description)")
        fix = _get_section_text(section, "(?:Fix|Suggested Fix|Recommendation|Remediation)")

        # Fallback: use remaining text as description
        if not description:
            plain = re.sub(
                r"\*\*(?:Location|File|Line|Category|Fix|Suggested Fix|Recommendation|Remediation)(?:\*\*)?:?[^\r\n]*",
                "",
                section,
            )
            plain = re.sub(r"```[\s\S]*?```", "", plain)
            plain = re.sub(r"^COMPLETE:.*$", "", plain, flags=re.MULTILINE)
            description = plain.replace("---", "").strip()

        findings.append(
            Finding(
                id=match.group(1).upper(),
                title=match.group(2).strip(),
                severity=parse_severity(match.group(3)),
                category=category.lower(),
                file=file_val,
                line=line_val,
                description=description or "",
                suggested_fix=fix,
                sources=(agent,),
            )
        )

    return findings
