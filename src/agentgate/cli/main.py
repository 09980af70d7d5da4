"""agentgate command line: run personas, inspect them, query the gate."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.group()
@click.version_option(package_name="agentgate")
def cli() -> None:
    """agentgate - permission-gated runtime for declarative agent personas."""


@cli.command()
@click.argument("agent")
@click.argument("user_input", metavar="INPUT")
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), default=".", help="Project path")
@click.option("--diff", is_flag=True, help="Attach the git diff to the input")
@click.option("--base-branch", type=str, help="Base branch for --diff")
@click.option("--dry-run", is_flag=True, help="Use canned findings (no API calls)")
@click.option("--timeout", type=int, help="Per-subagent timeout in seconds")
@click.option("--max-concurrency", type=int, help="Subagents running at once")
@click.option("--ai-provider", type=click.Choice(["anthropic", "openai", "ollama"]))
@click.option("--ai-model", type=str, help="Model override")
@click.option("--ai-endpoint", type=str, help="Endpoint override")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Approve every 'ask' decision")
@click.option("--json", "json_path", type=click.Path(dir_okay=False), help="Also write the report as JSON")
@click.option("--verbose", "-v", is_flag=True, help="Print every permission decision")
@click.pass_context
def run(
    ctx: click.Context,
    agent: str,
    user_input: str,
    project: str,
    diff: bool,
    base_branch: str | None,
    dry_run: bool,
    timeout: int | None,
    max_concurrency: int | None,
    ai_provider: str | None,
    ai_model: str | None,
    ai_endpoint: str | None,
    assume_yes: bool,
    json_path: str | None,
    verbose: bool,
) -> None:
    """Run AGENT with the free-text INPUT.

    Example: agentgate run review "Check the login changes" --diff -p ./repo
    """
    from ..core.runner import run_agent

    exit_code = asyncio.run(
        run_agent(
            project_path=Path(project),
            agent=agent,
            user_input=user_input,
            dry_run=dry_run,
            diff=diff,
            base_branch=base_branch,
            timeout=timeout,
            max_concurrency=max_concurrency,
            ai_provider=ai_provider,
            ai_model=ai_model,
            ai_endpoint=ai_endpoint,
            assume_yes=assume_yes,
            json_path=Path(json_path) if json_path else None,
            verbose=verbose,
        )
    )
    ctx.exit(exit_code)


@cli.command()
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), default=".")
def agents(project: str) -> None:
    """List the personas available to this project."""
    from ..core.registry import load_default_registry

    registry = load_default_registry(Path(project))

    table = Table(title="Agents")
    table.add_column("Name", style="cyan")
    table.add_column("Mode")
    table.add_column("Subagents")
    table.add_column("Description")
    for name in sorted(registry):
        a = registry[name]
        table.add_row(name, a.mode.value, ", ".join(a.subagents), a.description)
    console.print(table)

    for err in registry.errors:
        console.print(f"  [yellow]WARN[/yellow] Skipped agent definition: {err}")


@cli.command()
@click.argument("agent")
@click.argument("tool")
@click.argument("subject", required=False, default="")
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), default=".")
@click.pass_context
def check(ctx: click.Context, agent: str, tool: str, subject: str, project: str) -> None:
    """Show the gate decision for AGENT using TOOL on SUBJECT.

    Example: agentgate check review bash "git push --force"
    """
    from ..core.config import get_effective_config
    from ..core.errors import AgentGateError
    from ..core.permissions import PermissionGate
    from ..core.registry import load_default_registry
    from ..models.agent import SUBJECT_KEYS, ToolInvocationRequest

    project_path = Path(project)
    try:
        config = get_effective_config(project_path)
        definition = load_default_registry(project_path).lookup(agent)
        gate = PermissionGate.from_config(config)
    except AgentGateError as e:
        console.print(f"  [red]ERROR[/red] {e}")
        ctx.exit(1)

    request = ToolInvocationRequest(
        tool=tool,
        arguments={SUBJECT_KEYS.get(tool, "command"): subject},
        agent=definition,
    )
    result = gate.evaluate(request)
    colors = {"allow": "green", "ask": "yellow", "deny": "red"}
    color = colors[result.decision.value]
    console.print(f"  [{color}]{result.decision.value.upper()}[/{color}] [dim]({result.reason})[/dim]")


@cli.command()
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), required=True)
def init(project: str) -> None:
    """Initialize agentgate in a project."""
    from ..core.runner import initialize_project

    initialize_project(Path(project))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
