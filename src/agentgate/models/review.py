"""Orchestration run and report data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .finding import Finding, FindingSummary


class Verdict(str, Enum):
    SHIP = "ship"
    CONDITIONAL = "conditional"
    HOLD = "hold"


class RunState(str, Enum):
    PENDING = "pending"
    DISPATCHING = "dispatching"
    AWAITING_SUBAGENTS = "awaiting_subagents"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


class AgentStatus(str, Enum):
    COMPLETE = "complete"
    FAILED = "failed"
    TIMEOUT = "timeout"
    DENIED = "denied"
    CANCELLED = "cancelled"


class AgentInvocation(BaseModel):
    agent: str
    parent: str
    input: str
    timeout_seconds: float = 120


class AgentResult(BaseModel):
    agent: str
    status: AgentStatus = AgentStatus.COMPLETE
    findings: list[Finding] = []
    raw_output: str = ""
    duration_seconds: float = 0
    tokens: Optional[dict[str, int]] = None
    error: Optional[str] = None


class ComponentFailure(BaseModel):
    agent: str
    kind: str
    reason: str


class ReportSummary(FindingSummary):
    verdict: Verdict = Verdict.SHIP
    text: str = ""


class ReviewReport(BaseModel):
    agent: str = ""
    state: RunState = RunState.DONE
    findings: list[Finding] = []
    summary: ReportSummary = ReportSummary()
    completed: list[str] = []
    failures: list[ComponentFailure] = []
    results: list[AgentResult] = []
    duration_seconds: float = 0
    timestamp: datetime = Field(default_factory=datetime.now)
