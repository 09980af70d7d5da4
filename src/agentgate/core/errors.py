"""Error taxonomy for agent loading, tool gating and orchestration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..models.agent import ToolInvocationRequest


class AgentGateError(Exception):
    """Base user-facing application error."""


class ParseError(AgentGateError):
    def __init__(self, source: str, message: str) -> None:
        self.source = source
        self.message = message
        super().__init__(f"{message}: {source}")


class RegistryLookupFailure(AgentGateError):
    def __init__(self, name: str, reason: str = "Unknown agent") -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"{reason}: {name}")


class InvalidInputError(AgentGateError):
    """Top-level run input is missing or malformed."""


class PermissionDenied(AgentGateError):
    def __init__(self, request: ToolInvocationRequest, reason: str = "") -> None:
        self.request = request
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(
            f"Permission denied for {request.agent.name}: "
            f"{request.tool} {request.subject}".rstrip() + detail
        )


class ConfirmationRequired(AgentGateError):
    """The gate answered ``ask`` and no confirmation channel was supplied.

    Not a failure of the request itself: the caller must obtain consent and
    retry with a confirmation callback.
    """

    def __init__(self, request: ToolInvocationRequest) -> None:
        self.request = request
        super().__init__(
            f"Confirmation required for {request.agent.name}: "
            f"{request.tool} {request.subject}".rstrip()
        )


class SubagentFailure(AgentGateError):
    def __init__(self, agent: str, kind: str, reason: str) -> None:
        self.agent = agent
        self.kind = kind
        self.reason = reason
        super().__init__(f"{agent} {kind}: {reason}")
