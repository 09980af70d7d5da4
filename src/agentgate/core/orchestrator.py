"""Orchestrator: runs a primary agent by fanning out to its subagents.

States: pending -> dispatching -> awaiting_subagents -> synthesizing -> done,
with partial_failure when no subagent produced output and failed when the
primary agent cannot be resolved. Subagent failures never abort siblings;
they are reported under the components that did not complete.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from rich.console import Console

from ..models.agent import AgentDefinition
from ..models.review import (
    AgentInvocation,
    AgentResult,
    AgentStatus,
    ComponentFailure,
    ReviewReport,
    RunState,
)
from ..utils.sanitize import sanitize_error
from .aggregator import DEFAULT_DEDUP_THRESHOLD, build_summary, merge
from .errors import (
    ConfirmationRequired,
    InvalidInputError,
    PermissionDenied,
    RegistryLookupFailure,
    SubagentFailure,
)
from .executors import Executor
from .findings import parse_findings_markdown
from .permissions import Confirmer, PermissionGate
from .registry import AgentRegistry
from .tools import ToolDispatcher

console = Console()

FAILURE_KINDS: dict[AgentStatus, str] = {
    AgentStatus.TIMEOUT: "timeout",
    AgentStatus.DENIED: "denied",
    AgentStatus.FAILED: "error",
    AgentStatus.CANCELLED: "cancelled",
}


class Orchestrator:
    def __init__(
        self,
        registry: AgentRegistry,
        gate: PermissionGate,
        executor: Executor,
        config: Optional[dict] = None,
        cwd: Optional[Path] = None,
        confirm: Optional[Confirmer] = None,
        on_state: Optional[Callable[[RunState], None]] = None,
    ):
        orchestration = (config or {}).get("orchestration", {})
        self.registry = registry
        self.gate = gate
        self.executor = executor
        self.cwd = cwd
        self.confirm = confirm
        self.on_state = on_state
        self.timeout_seconds = float(orchestration.get("timeout_seconds", 120))
        self.max_concurrency = max(1, int(orchestration.get("max_concurrency", 4)))
        self.dedup_threshold = float(orchestration.get("dedup_threshold", DEFAULT_DEDUP_THRESHOLD))
        self.state = RunState.PENDING

    def _transition(self, state: RunState) -> None:
        self.state = state
        if self.on_state:
            self.on_state(state)

    def tools_for(self, agent: AgentDefinition) -> ToolDispatcher:
        return ToolDispatcher(self.gate, agent, cwd=self.cwd, confirm=self.confirm)

    async def _resolve_subagent(self, primary: AgentDefinition, name: str, tools: ToolDispatcher) -> AgentDefinition:
        if name == primary.name:
            return primary

        try:
            agent = self.registry.lookup(name)
        except RegistryLookupFailure:
            raise SubagentFailure(name, "error", "unknown agent") from None
        if not agent.invocable_as_subagent:
            raise SubagentFailure(name, "error", "agent is primary-only and cannot be dispatched")

        try:
            await self.gate.check(tools.request("task", agent=name), self.confirm)
        except PermissionDenied as e:
            raise SubagentFailure(name, "denied", e.reason or "task not permitted") from None
        except ConfirmationRequired:
            raise SubagentFailure(name, "denied", "dispatch needs confirmation and none was given") from None
        return agent

    async def _run_one(
        self,
        agent: AgentDefinition,
        invocation: AgentInvocation,
        semaphore: asyncio.Semaphore,
    ) -> AgentResult:
        async with semaphore:
            console.print(f"  [cyan]Running {agent.name}...[/cyan]")
            start = time.time()
            try:
                raw = await asyncio.wait_for(
                    self.executor.execute(agent, invocation, self.tools_for(agent)),
                    timeout=invocation.timeout_seconds,
                )
            except asyncio.TimeoutError:
                status, error = AgentStatus.TIMEOUT, f"timed out after {invocation.timeout_seconds:g}s"
            except PermissionDenied as e:
                status, error = AgentStatus.DENIED, str(e)
            except ConfirmationRequired as e:
                status, error = AgentStatus.DENIED, str(e)
            except SubagentFailure as e:
                status = AgentStatus.DENIED if e.kind == "denied" else AgentStatus.FAILED
                error = e.reason
            except Exception as e:
                # Executor errors are contained to this component
                status, error = AgentStatus.FAILED, f"{type(e).__name__}: {e}"
            else:
                duration = time.time() - start
                findings = parse_findings_markdown(raw, agent.name)
                tokens = getattr(self.executor, "last_tokens", {}).get(agent.name)
                console.print(
                    f"  [green]OK[/green] {agent.name}: {len(findings)} findings in {round(duration, 1)}s"
                )
                return AgentResult(
                    agent=agent.name,
                    findings=findings,
                    raw_output=raw,
                    duration_seconds=round(duration, 2),
                    tokens=tokens,
                )

            error = sanitize_error(error)
            console.print(f"  [red]FAILED[/red] {agent.name}: {error}")
            return AgentResult(
                agent=agent.name,
                status=status,
                duration_seconds=round(time.time() - start, 2),
                error=error,
            )

    async def run(self, primary_name: str, user_input: str) -> ReviewReport:
        """Run a primary agent and return the merged report.

        Raises RegistryLookupFailure for an unknown or subagent-only primary
        and InvalidInputError for empty input; everything else is reported.
        """
        start = time.time()
        self._transition(RunState.PENDING)

        try:
            primary = self.registry.primary(primary_name)
            if not user_input or not user_input.strip():
                raise InvalidInputError("Run input is empty")
        except (RegistryLookupFailure, InvalidInputError):
            self._transition(RunState.FAILED)
            raise

        tools = self.tools_for(primary)

        self._transition(RunState.DISPATCHING)
        names = list(primary.subagents) or [primary.name]
        failures: list[ComponentFailure] = []
        invocations: list[tuple[AgentDefinition, AgentInvocation]] = []
        for name in names:
            try:
                agent = await self._resolve_subagent(primary, name, tools)
            except SubagentFailure as e:
                reason = sanitize_error(e.reason)
                console.print(f"  [red]FAILED[/red] {name}: {reason}")
                failures.append(ComponentFailure(agent=name, kind=e.kind, reason=reason))
                continue
            invocations.append(
                (
                    agent,
                    AgentInvocation(
                        agent=agent.name,
                        parent=primary.name,
                        input=user_input,
                        timeout_seconds=self.timeout_seconds,
                    ),
                )
            )

        self._transition(RunState.AWAITING_SUBAGENTS)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [asyncio.create_task(self._run_one(agent, inv, semaphore)) for agent, inv in invocations]
        try:
            results: list[AgentResult] = list(await asyncio.gather(*tasks))
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        completed = [r for r in results if r.status is AgentStatus.COMPLETE]
        for r in results:
            if r.status is not AgentStatus.COMPLETE:
                failures.append(ComponentFailure(agent=r.agent, kind=FAILURE_KINDS[r.status], reason=r.error or ""))

        if completed:
            self._transition(RunState.SYNTHESIZING)
            report = merge([(r.agent, r.findings) for r in completed], self.dedup_threshold)
            final_state = RunState.DONE
        else:
            report = ReviewReport()
            final_state = RunState.PARTIAL_FAILURE

        report.agent = primary.name
        report.state = final_state
        report.failures = failures
        report.results = results
        report.summary = build_summary(report.findings, len(completed), len(names))
        report.duration_seconds = round(time.time() - start, 2)

        self._transition(final_state)
        return report
