"""Agent and tool-permission data models."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class AgentMode(str, Enum):
    PRIMARY = "primary"
    SUBAGENT = "subagent"
    ALL = "all"


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


# Most permissive first; used to pick the strictest of several decisions.
DECISION_STRICTNESS: dict[Decision, int] = {
    Decision.ALLOW: 0,
    Decision.ASK: 1,
    Decision.DENY: 2,
}


class ToolClass(str, Enum):
    READ = "read"
    WRITE = "write"
    EXECUTE = "execute"
    NETWORK = "network"
    DELEGATE = "delegate"


TOOL_CLASSES: dict[str, ToolClass] = {
    "read": ToolClass.READ,
    "glob": ToolClass.READ,
    "grep": ToolClass.READ,
    "list": ToolClass.READ,
    "write": ToolClass.WRITE,
    "edit": ToolClass.WRITE,
    "patch": ToolClass.WRITE,
    "bash": ToolClass.EXECUTE,
    "webfetch": ToolClass.NETWORK,
    "task": ToolClass.DELEGATE,
}

# Argument that permission patterns are matched against, per tool.
SUBJECT_KEYS: dict[str, str] = {
    "bash": "command",
    "read": "path",
    "glob": "pattern",
    "grep": "pattern",
    "list": "path",
    "write": "path",
    "edit": "path",
    "patch": "path",
    "webfetch": "url",
    "task": "agent",
}


def tool_class(tool: str) -> ToolClass:
    """Classify a tool name; unknown tools are treated as executable."""
    return TOOL_CLASSES.get(tool, ToolClass.EXECUTE)


class PermissionRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern: str
    decision: Decision


class AgentDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    mode: AgentMode
    tools: dict[str, bool] = {}
    permission: dict[str, tuple[PermissionRule, ...]] = {}
    temperature: Optional[float] = None
    model: Optional[str] = None
    subagents: tuple[str, ...] = ()
    prompt: str = ""
    source: str = "builtin"

    @property
    def invocable_as_primary(self) -> bool:
        return self.mode in (AgentMode.PRIMARY, AgentMode.ALL)

    @property
    def invocable_as_subagent(self) -> bool:
        return self.mode in (AgentMode.SUBAGENT, AgentMode.ALL)


class ToolInvocationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool: str
    arguments: dict[str, Any] = {}
    agent: AgentDefinition

    @property
    def subject(self) -> str:
        key = SUBJECT_KEYS.get(self.tool, "command")
        value = self.arguments.get(key, "")
        return str(value) if value is not None else ""
