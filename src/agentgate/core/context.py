"""Review input assembly, including git diff retrieval through the gated shell."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import Optional

from .tools import ToolDispatcher


@dataclass
class DiffContext:
    changed_files: list[str]
    diff: str
    base_ref: str
    truncated: bool = False

    @property
    def file_count(self) -> int:
        return len(self.changed_files)


async def collect_diff(
    tools: ToolDispatcher,
    base_branch: Optional[str] = None,
    max_kb: int = 200,
) -> Optional[DiffContext]:
    """Get the working diff against ``base_branch`` (or HEAD).

    Runs as the agent bound to ``tools`` so the permission gate applies.
    Returns None when git is unavailable or there is nothing to diff.
    """
    range_arg = f"{shlex.quote(base_branch)}...HEAD" if base_branch else "HEAD"

    names = await tools.bash(f"git diff --name-only {range_arg}")
    if not names.ok:
        return None
    changed = [line.strip() for line in names.stdout.splitlines() if line.strip()]
    if not changed:
        return None

    result = await tools.bash(f"git diff {range_arg}")
    if not result.ok:
        return None

    diff = result.stdout
    limit = max_kb * 1024
    truncated = len(diff.encode("utf-8")) > limit
    if truncated:
        diff = diff.encode("utf-8")[:limit].decode("utf-8", errors="ignore")

    return DiffContext(
        changed_files=changed,
        diff=diff,
        base_ref=base_branch or "HEAD",
        truncated=truncated,
    )


def build_review_input(request: str, diff: Optional[DiffContext] = None) -> str:
    """Combine the user's request with collected context."""
    parts = [f"# REQUEST\n\n{request.strip()}"]
    if diff:
        parts.append(
            "# CHANGED FILES\n\n" + "\n".join(f"- {f}" for f in diff.changed_files)
        )
        note = "\n\n(diff truncated)" if diff.truncated else ""
        parts.append(f"# GIT DIFF (against {diff.base_ref})\n\n```diff\n{diff.diff}\n```{note}")
    return "\n\n".join(parts) + "\n"
