"""Subagent executors: run one persona against its input.

ProviderExecutor sends the persona to the configured inference provider and
runs the tool calls the model asks for through the agent's ToolDispatcher,
feeding results back until the model answers without calling a tool.
DryRunExecutor returns canned findings so runs can be exercised offline.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Optional, Protocol

import httpx
from pydantic import BaseModel

from ..models.agent import AgentDefinition
from ..models.review import AgentInvocation
from ..providers.base import BaseProvider
from ..utils.sanitize import sanitize_error
from .errors import ConfirmationRequired, PermissionDenied, SubagentFailure
from .tools import ShellResult, ToolDispatcher

DEFAULT_MAX_TOOL_ROUNDS = 8
MAX_TOOL_OUTPUT_CHARS = 20_000

TOOL_PROTOCOL = """# Tools

You may call tools before writing your report. To call one, reply with one
or more fenced blocks tagged `tool`, each holding a single JSON object:

```tool
{"tool": "read", "path": "app/db.py"}
```

Available tools and their arguments:
- bash: command
- read: path
- write, edit: path, content
- webfetch: url

Every call is checked against your permissions. Results arrive in the next
message under "# TOOL RESULTS"; a refused call comes back as DENIED. Reply
without any tool block once you are ready to report.
"""

OUTPUT_CONTRACT = """# Output Format

Report every issue as its own section:

### PREFIX-NNN: Short title [CRITICAL|HIGH|MEDIUM|LOW|INFO]
**Location:** `path/to/file.ext:line`
**Category:** security | correctness | performance | style | tests | docs

**Issue:**
What is wrong and why it matters.

**Fix:**
The concrete change that resolves it.

Use the agent name in upper case as PREFIX. If there is nothing to report,
say so in one sentence. End with:
COMPLETE: N findings
"""


class Executor(Protocol):
    async def execute(
        self,
        agent: AgentDefinition,
        invocation: AgentInvocation,
        tools: ToolDispatcher,
    ) -> str: ...


def build_system_prompt(agent: AgentDefinition) -> str:
    return (
        f"You are {agent.name}: {agent.description}\n\n"
        f"{agent.prompt}\n\n"
        f"{TOOL_PROTOCOL}\n"
        f"{OUTPUT_CONTRACT}"
    )


class ToolCall(BaseModel):
    tool: str = ""
    arguments: dict[str, Any] = {}
    error: Optional[str] = None

    def label(self) -> str:
        return f"{self.tool} {json.dumps(self.arguments, sort_keys=True)}" if self.tool else "invalid call"


_TOOL_BLOCK_RE = re.compile(r"```tool[ \t]*\r?\n(.*?)\r?\n?```", re.DOTALL)


def parse_tool_calls(content: str) -> list[ToolCall]:
    """Extract the tool calls in ``tool`` fenced blocks, in order.

    A block that is not a JSON object naming a tool yields a ToolCall with
    ``error`` set, so the model can be told what went wrong.
    """
    calls: list[ToolCall] = []
    for m in _TOOL_BLOCK_RE.finditer(content):
        try:
            raw = json.loads(m.group(1))
        except json.JSONDecodeError as e:
            calls.append(ToolCall(error=f"invalid JSON ({e.msg})"))
            continue
        if not isinstance(raw, dict) or not isinstance(raw.get("tool"), str):
            calls.append(ToolCall(error="expected a JSON object with a 'tool' name"))
            continue
        name = raw.pop("tool")
        calls.append(ToolCall(tool=name, arguments=raw))
    return calls


def format_tool_output(outcome: Any) -> str:
    if isinstance(outcome, ShellResult):
        text = f"exit code {outcome.exit_code}\n{outcome.stdout}"
        if outcome.stderr:
            text += f"\n[stderr]\n{outcome.stderr}"
    elif outcome is True:
        text = "ok"
    else:
        text = str(outcome)
    if len(text) > MAX_TOOL_OUTPUT_CHARS:
        text = text[:MAX_TOOL_OUTPUT_CHARS] + "\n[output truncated]"
    return text


class ProviderExecutor:
    def __init__(self, provider: BaseProvider, max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS):
        self.provider = provider
        self.max_tool_rounds = max_tool_rounds
        self.last_tokens: dict[str, dict[str, int]] = {}

    async def run_tool(self, call: ToolCall, tools: ToolDispatcher) -> str:
        """Run one call through the dispatcher and describe the outcome for the model."""
        if call.error:
            return f"ERROR: {call.error}"
        try:
            outcome = await tools.invoke(call.tool, **call.arguments)
        except (PermissionDenied, ConfirmationRequired) as e:
            return f"DENIED: {e}"
        except (ValueError, TypeError, OSError, httpx.HTTPError, asyncio.TimeoutError) as e:
            return f"ERROR: {sanitize_error(str(e)) or type(e).__name__}"
        return format_tool_output(outcome)

    async def execute(
        self,
        agent: AgentDefinition,
        invocation: AgentInvocation,
        tools: ToolDispatcher,
    ) -> str:
        system_prompt = build_system_prompt(agent)
        transcript = invocation.input
        tokens: dict[str, int] = {}

        for _ in range(self.max_tool_rounds + 1):
            result = await self.provider.complete_with_retry(
                system_prompt=system_prompt,
                user_prompt=transcript,
                temperature=agent.temperature,
                model=agent.model,
            )
            if not result.success:
                raise SubagentFailure(agent.name, "error", result.error or "completion failed")
            for key, value in (result.tokens_used or {}).items():
                tokens[key] = tokens.get(key, 0) + value
            if tokens:
                self.last_tokens[agent.name] = dict(tokens)

            content = result.content or ""
            calls = parse_tool_calls(content)
            if not calls:
                return content

            outputs = [f"## {call.label()}\n{await self.run_tool(call, tools)}" for call in calls]
            transcript += f"\n\n# ASSISTANT\n{content}\n\n# TOOL RESULTS\n" + "\n\n".join(outputs)

        raise SubagentFailure(
            agent.name, "error", f"still calling tools after {self.max_tool_rounds} tool rounds"
        )


# ---------------------------------------------------------------------------
# Canned output for dry runs
# ---------------------------------------------------------------------------

MOCK_OUTPUTS: dict[str, str] = {
    "code-review": """# CODE-REVIEW

### CODE-REVIEW-001: SQL query built by string concatenation [HIGH]
**Location:** `app/db.py:42`
**Category:** security

**Issue:**
User input is concatenated into the SQL query string, allowing injection.

**Fix:**
Use parameterized queries.

### CODE-REVIEW-002: Exception swallowed in retry loop [MEDIUM]
**Location:** `app/client.py:88`
**Category:** correctness

**Issue:**
A bare except hides connection errors and retries forever.

**Fix:**
Catch the specific exception and cap the number of retries.

COMPLETE: 2 findings
""",
    "security-review": """# SECURITY-REVIEW

### SECURITY-REVIEW-001: SQL injection through concatenated query [CRITICAL]
**Location:** `app/db.py:42`
**Category:** security

**Issue:**
The query string concatenates user input; an attacker controls the SQL.

**Fix:**
Bind parameters through the driver instead of formatting strings.

### SECURITY-REVIEW-002: Token written to debug log [HIGH]
**Location:** `app/auth.py:17`
**Category:** security

**Issue:**
The bearer token is logged at debug level.

**Fix:**
Drop the token from the log message.

COMPLETE: 2 findings
""",
    "performance-review": """# PERFORMANCE-REVIEW

### PERFORMANCE-REVIEW-001: Query executed inside loop [MEDIUM]
**Location:** `app/report.py:30`
**Category:** performance

**Issue:**
One query per row produces N+1 round trips.

**Fix:**
Fetch all rows with a single query.

COMPLETE: 1 findings
""",
    "lint": """# LINT

### LINT-001: Unused import [LOW]
**Location:** `app/client.py:3`
**Category:** style

**Issue:**
`json` is imported but never used.

**Fix:**
Remove the import.

COMPLETE: 1 findings
""",
}


class DryRunExecutor:
    def __init__(self, outputs: Optional[dict[str, str]] = None):
        self.outputs = outputs if outputs is not None else MOCK_OUTPUTS

    async def execute(
        self,
        agent: AgentDefinition,
        invocation: AgentInvocation,
        tools: ToolDispatcher,
    ) -> str:
        return self.outputs.get(
            agent.name,
            f"# {agent.name.upper()}\n\nNo findings.\n\nCOMPLETE: 0 findings\n",
        )
