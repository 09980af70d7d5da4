"""Permission gate: the checkpoint between a persona and any tool.

Decisions come from the requesting agent's ordered rules (first match wins),
then per-tool-class defaults. Destructive shell commands are escalated to at
least ``ask`` no matter which rule matched first. Every decision is appended
to the audit log.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Awaitable, Callable
from datetime import datetime
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from rich.console import Console

from ..models.agent import (
    DECISION_STRICTNESS,
    Decision,
    PermissionRule,
    ToolClass,
    ToolInvocationRequest,
    tool_class,
)
from .config import PROJECT_DIR
from .errors import ConfirmationRequired, ParseError, PermissionDenied

console = Console()

Confirmer = Callable[[ToolInvocationRequest], Awaitable[bool]]

# Global options may sit between ``git`` and its subcommand (git -C repo push).
_GIT = r"\bgit(?:\s+(?:-[Cc]\s+\S+|-\S+))*\s+"

DESTRUCTIVE_PATTERNS: list[str] = [
    # rm with both a recursive and a force flag, in any order or spelling
    r"\brm\b(?=[^;&|]*\s(?:-[a-zA-Z]*[rR]|--recursive\b))(?=[^;&|]*\s(?:-[a-zA-Z]*f|--force\b))",
    r"\brm\s+(?:.*\s)?--recursive\b",
    _GIT + r"push\b.*(?:--force\b|\s-f\b|\s\+\S)",
    _GIT + r"reset\s+(?:.*\s)?--hard\b",
    _GIT + r"clean\s+(?:.*\s)?-[a-zA-Z]*f",
    _GIT + r"branch\s+(?:.*\s)?-D\b",
    r"\bchmod\s+(?:-\S+\s+)*0?777\b",
    r"\bchmod\s+(?:.*\s)?-R\b",
    r"\bchown\s+(?:.*\s)?-R\b",
    r"(?:^|[;&|(])\s*sudo\b",
    r"(?:^|[;&|(])\s*su(?:\s|$)",
    r"(?:^|[;&|(])\s*doas\b",
    r"\bmkfs(?:\.\w+)?\b",
    r"\bdd\s+(?:.*\s)?if=",
    r">\s*/dev/(?:sd|nvme|disk)\w*",
    r":\(\)\s*\{",
    r"\b(?:curl|wget)\b[^|]*\|\s*(?:sudo\s+)?(?:ba|z|da)?sh\b",
]

DEFAULT_CLASS_DECISIONS: dict[ToolClass, Decision] = {
    ToolClass.READ: Decision.ALLOW,
    ToolClass.WRITE: Decision.DENY,
    ToolClass.EXECUTE: Decision.DENY,
    ToolClass.NETWORK: Decision.ASK,
    ToolClass.DELEGATE: Decision.ALLOW,
}


class AuditRecord(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.now)
    agent: str
    tool: str
    subject: str = ""
    decision: Decision
    reason: str = ""


class AuditLog:
    """Append-only decision log shared by all concurrent gate users.

    Appends are serialized; when ``path`` is set each record is also written
    as one JSON line.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = path
        self._records: list[AuditRecord] = []
        self._lock = threading.Lock()

    def append(self, record: AuditRecord) -> None:
        with self._lock:
            self._records.append(record)
            if self.path is not None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as fh:
                    fh.write(record.model_dump_json() + "\n")

    @property
    def records(self) -> list[AuditRecord]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class GateDecision(BaseModel):
    decision: Decision
    reason: str


def _strictest(decisions: list[Decision]) -> Decision:
    return max(decisions, key=lambda d: DECISION_STRICTNESS[d])


class PermissionGate:
    def __init__(
        self,
        audit: Optional[AuditLog] = None,
        class_defaults: Optional[dict[ToolClass, Decision]] = None,
        destructive_decision: Decision = Decision.ASK,
        extra_destructive_patterns: Optional[list[str]] = None,
        verbose: bool = False,
    ):
        if destructive_decision is Decision.ALLOW:
            raise ValueError("Destructive operations cannot default to allow")
        self.audit = audit if audit is not None else AuditLog()
        self.class_defaults = {**DEFAULT_CLASS_DECISIONS, **(class_defaults or {})}
        self.destructive_decision = destructive_decision
        self._destructive = [
            re.compile(p) for p in DESTRUCTIVE_PATTERNS + list(extra_destructive_patterns or [])
        ]
        self.verbose = verbose

    @classmethod
    def from_config(cls, config: dict, audit: Optional[AuditLog] = None, verbose: bool = False) -> PermissionGate:
        perms = config.get("permissions", {})
        try:
            class_defaults = {
                ToolClass(k): Decision(v) for k, v in (perms.get("class_defaults") or {}).items()
            }
            return cls(
                audit=audit,
                class_defaults=class_defaults,
                destructive_decision=Decision(perms.get("destructive_decision", "ask")),
                extra_destructive_patterns=perms.get("extra_destructive_patterns") or [],
                verbose=verbose,
            )
        except (ValueError, re.error) as e:
            source = Path(config.get("_project_path", ".")) / PROJECT_DIR / "config.yaml"
            raise ParseError(str(source), f"Invalid permissions setting ({e})") from e

    def is_destructive(self, request: ToolInvocationRequest) -> bool:
        if tool_class(request.tool) is not ToolClass.EXECUTE:
            return False
        command = request.subject
        return any(p.search(command) for p in self._destructive)

    def evaluate(self, request: ToolInvocationRequest) -> GateDecision:
        """Compute the decision for a request without recording it."""
        agent = request.agent
        tool = request.tool
        subject = request.subject

        enabled = agent.tools.get(tool)
        if enabled is False:
            return GateDecision(decision=Decision.DENY, reason=f"tool '{tool}' disabled for agent")

        rules = list(agent.permission.get(tool, ()))
        if enabled:
            rules.append(PermissionRule(pattern="*", decision=Decision.ALLOW))

        matching = [r for r in rules if fnmatchcase(subject, r.pattern)]
        if matching:
            decision = matching[0].decision
            reason = f"rule '{matching[0].pattern}'"
        else:
            cls = tool_class(tool)
            decision = self.class_defaults[cls]
            reason = f"default for {cls.value} tools"

        if self.is_destructive(request):
            escalated = _strictest([r.decision for r in matching] + [decision, self.destructive_decision])
            if escalated is not decision:
                reason = f"destructive command (was {decision.value} by {reason})"
            decision = escalated

        return GateDecision(decision=decision, reason=reason)

    def _authorize(self, request: ToolInvocationRequest) -> GateDecision:
        result = self.evaluate(request)
        self.audit.append(
            AuditRecord(
                agent=request.agent.name,
                tool=request.tool,
                subject=request.subject,
                decision=result.decision,
                reason=result.reason,
            )
        )
        if self.verbose:
            colors = {Decision.ALLOW: "green", Decision.ASK: "yellow", Decision.DENY: "red"}
            color = colors[result.decision]
            console.print(
                f"  [dim]gate[/dim] [{color}]{result.decision.value.upper()}[/{color}] "
                f"{request.agent.name}: {request.tool} {request.subject} [dim]({result.reason})[/dim]"
            )
        return result

    def authorize(self, request: ToolInvocationRequest) -> Decision:
        """Decide allow/deny/ask for a request and record it in the audit log."""
        return self._authorize(request).decision

    async def check(self, request: ToolInvocationRequest, confirm: Optional[Confirmer] = None) -> Decision:
        """Authorize a request, raising unless execution may proceed.

        ``ask`` suspends on ``confirm``; without a confirmation channel it
        raises ConfirmationRequired.
        """
        result = self._authorize(request)
        if result.decision is Decision.ALLOW:
            return result.decision
        if result.decision is Decision.DENY:
            raise PermissionDenied(request, result.reason)
        if confirm is None:
            raise ConfirmationRequired(request)
        if not await confirm(request):
            raise PermissionDenied(request, "declined at confirmation")
        return result.decision
