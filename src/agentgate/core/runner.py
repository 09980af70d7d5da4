"""End-to-end run of a named agent: config, registry, gate, orchestration, output."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from .. import __version__
from ..models.agent import ToolInvocationRequest
from ..models.review import ReviewReport, RunState
from ..providers.base import get_ai_provider
from .config import PROJECT_DIR, get_effective_config
from .context import build_review_input, collect_diff
from .errors import (
    AgentGateError,
    ConfirmationRequired,
    InvalidInputError,
    ParseError,
    PermissionDenied,
    RegistryLookupFailure,
)
from .executors import DryRunExecutor, ProviderExecutor
from .orchestrator import Orchestrator
from .permissions import AuditLog, Confirmer, PermissionGate
from .registry import get_registry, init_registry, load_default_registry, teardown_registry
from .report import export_report_json, save_report

console = Console()

EXIT_DONE = 0
EXIT_FAILED = 1
EXIT_PARTIAL_FAILURE = 2


def initialize_project(project_path: Path) -> None:
    """Initialize .agentgate directory structure in a project."""
    ag_dir = project_path / PROJECT_DIR
    for subdir in ("agents", "reviews", "reviews/archive"):
        (ag_dir / subdir).mkdir(parents=True, exist_ok=True)

    config_path = ag_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text(
            "# agentgate project configuration\n"
            "\n"
            f'agentgate_version: "{__version__}"\n'
            "\n"
            "project:\n"
            f'  name: "{project_path.name}"\n'
            "\n"
            "orchestration:\n"
            "  timeout_seconds: 120\n"
            "  max_concurrency: 4\n"
            "\n"
            "ai:\n"
            "  provider: anthropic\n",
            encoding="utf-8",
        )

    console.print(f"  [green]Initialized[/green] {PROJECT_DIR}/ in {project_path.name}")


def make_confirmer(assume_yes: bool) -> Optional[Confirmer]:
    """Confirmation channel for ``ask`` decisions.

    ``--yes`` approves everything; an interactive terminal prompts; otherwise
    there is no channel and ``ask`` surfaces as ConfirmationRequired.
    """
    if assume_yes:
        async def approve(request: ToolInvocationRequest) -> bool:
            return True
        return approve

    if not sys.stdin.isatty():
        return None

    async def prompt(request: ToolInvocationRequest) -> bool:
        question = f"  Allow {request.agent.name} to run {request.tool}: {request.subject}?"
        return await asyncio.to_thread(click.confirm, question, default=False)

    return prompt


def print_report(report: ReviewReport) -> None:
    s = report.summary
    verdict_colors = {"ship": "green", "conditional": "yellow", "hold": "red"}
    color = verdict_colors.get(s.verdict.value, "white")
    console.print()
    console.print(f"  {s.text}")
    for f in report.findings:
        loc = f" [dim]{f.location}[/dim]" if f.location else ""
        console.print(f"  [bold]{f.severity.value.upper():<8}[/bold] {f.id}: {f.title}{loc}")
    if report.failures:
        console.print("\n  [yellow]Components that did not complete:[/yellow]")
        for failure in report.failures:
            console.print(f"  - {failure.agent} ({failure.kind}): {failure.reason}")
    if report.state is RunState.PARTIAL_FAILURE:
        console.print("\n  [red]No agent produced output[/red]")
    else:
        console.print(f"\n  [{color}]Verdict: {s.verdict.value.upper()}[/{color}]")


async def run_agent(
    project_path: Path,
    agent: str,
    user_input: str,
    dry_run: bool = False,
    diff: bool = False,
    base_branch: Optional[str] = None,
    timeout: Optional[int] = None,
    max_concurrency: Optional[int] = None,
    ai_provider: Optional[str] = None,
    ai_model: Optional[str] = None,
    ai_endpoint: Optional[str] = None,
    assume_yes: bool = False,
    json_path: Optional[Path] = None,
    verbose: bool = False,
) -> int:
    """Run a named agent against the input. Returns exit code."""
    project_path = Path(project_path).resolve()
    if not project_path.exists():
        console.print(f"  [red]ERROR[/red] Project path does not exist: {project_path}")
        return EXIT_FAILED

    cli_overrides: dict = {}
    if timeout:
        cli_overrides.setdefault("orchestration", {})["timeout_seconds"] = timeout
    if max_concurrency:
        cli_overrides.setdefault("orchestration", {})["max_concurrency"] = max_concurrency
    if ai_provider:
        cli_overrides.setdefault("ai", {})["provider"] = ai_provider

    try:
        config = get_effective_config(project_path, cli_overrides=cli_overrides or None)
        init_registry(load_default_registry(project_path))
        registry = get_registry()
    except ParseError as e:
        console.print(f"  [red]ERROR[/red] {e}")
        return EXIT_FAILED

    try:
        for err in registry.errors:
            console.print(f"  [yellow]WARN[/yellow] Skipped agent definition: {err}")

        audit_cfg = config.get("audit", {})
        audit_path = project_path / audit_cfg["path"] if audit_cfg.get("enabled") and audit_cfg.get("path") else None
        gate = PermissionGate.from_config(config, audit=AuditLog(audit_path), verbose=verbose)

        if dry_run:
            executor = DryRunExecutor()
            provider_name = "dry-run"
        else:
            try:
                provider = get_ai_provider(
                    config,
                    provider_override=ai_provider,
                    model_override=ai_model,
                    endpoint_override=ai_endpoint,
                )
            except ValueError as e:
                console.print(f"  [red]ERROR[/red] Failed to initialize AI provider: {e}")
                return EXIT_FAILED
            executor = ProviderExecutor(
                provider,
                max_tool_rounds=int(config.get("orchestration", {}).get("max_tool_rounds", 8)),
            )
            provider_name = provider.name

        orchestrator = Orchestrator(
            registry,
            gate,
            executor,
            config=config,
            cwd=project_path,
            confirm=make_confirmer(assume_yes),
        )

        console.print()
        console.print(f"  [bold cyan]AGENTGATE[/bold cyan] v{__version__}")
        console.print(f"  Agent:    [white]{agent}[/white]")
        console.print(f"  Provider: [white]{provider_name}[/white]")
        console.print()

        try:
            review_input = user_input
            if diff:
                primary = registry.primary(agent)
                try:
                    diff_context = await collect_diff(orchestrator.tools_for(primary), base_branch)
                except (PermissionDenied, ConfirmationRequired) as e:
                    console.print(f"  [yellow]WARN[/yellow] Diff not collected: {e}")
                    diff_context = None
                if diff_context:
                    console.print(f"  [green]OK[/green] Diff: {diff_context.file_count} changed files")
                review_input = build_review_input(user_input, diff_context)

            report = await orchestrator.run(agent, review_input)
        except (RegistryLookupFailure, InvalidInputError) as e:
            console.print(f"  [red]ERROR[/red] {e}")
            return EXIT_FAILED

        print_report(report)

        if config.get("output", {}).get("save_reports", True):
            md_path = save_report(project_path / PROJECT_DIR / "reviews", report)
            console.print(f"  Report: {md_path}")
        if json_path:
            export_report_json(report, Path(json_path))
            console.print(f"  JSON:   {json_path}")
        console.print()

        return EXIT_DONE if report.state is RunState.DONE else EXIT_PARTIAL_FAILURE
    except AgentGateError as e:
        console.print(f"  [red]ERROR[/red] {e}")
        return EXIT_FAILED
    finally:
        teardown_registry()
