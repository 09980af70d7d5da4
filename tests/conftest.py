"""Shared fixtures for agentgate tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from agentgate.models.agent import AgentDefinition, AgentMode, Decision, PermissionRule


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create a minimal project structure for testing."""
    project = tmp_path / "test-project"
    project.mkdir()
    (project / "src").mkdir()
    (project / "src" / "main.py").write_text("print('hello')\n", encoding="utf-8")
    (project / "README.md").write_text("# Test Project\n", encoding="utf-8")
    return project


@pytest.fixture
def initialized_project(tmp_project: Path) -> Path:
    """Create a project with .agentgate initialized."""
    ag_dir = tmp_project / ".agentgate"
    (ag_dir / "agents").mkdir(parents=True)
    (ag_dir / "reviews" / "archive").mkdir(parents=True)
    (ag_dir / "config.yaml").write_text(
        'project:\n  name: "test-project"\n\norchestration:\n  timeout_seconds: 30\n',
        encoding="utf-8",
    )
    return tmp_project


@pytest.fixture
def make_agent() -> Callable[..., AgentDefinition]:
    """Factory for AgentDefinition with permission rules given as dicts."""

    def _make(
        name: str = "tester",
        mode: str = "primary",
        tools: dict[str, bool] | None = None,
        permission: dict[str, dict[str, str]] | None = None,
        subagents: tuple[str, ...] = (),
    ) -> AgentDefinition:
        return AgentDefinition(
            name=name,
            description=f"{name} agent",
            mode=AgentMode(mode),
            tools=tools or {},
            permission={
                tool: tuple(PermissionRule(pattern=p, decision=Decision(d)) for p, d in rules.items())
                for tool, rules in (permission or {}).items()
            },
            subagents=subagents,
        )

    return _make


@pytest.fixture
def sample_definition() -> str:
    return """---
description: Reviews code changes
mode: subagent
temperature: 0.1
tools:
  write: false
  bash: true
permission:
  bash:
    "git diff*": allow
    "git *": ask
    "*": deny
  webfetch: ask
---
You are a meticulous reviewer.

Report findings in the requested format.
"""


@pytest.fixture
def sample_findings_markdown() -> str:
    """Return a sample agent findings markdown."""
    return """# SECURITY-REVIEW

### SECURITY-001: Hardcoded API Key [CRITICAL]

**Location:** `src/config.py:42`
**Category:** security

**Issue:**
API key is hardcoded in source code.

**Fix:**
Move to environment variables.

### SECURITY-002: Missing HTTPS [medium]

**Location:** src/api.py:10

**Issue:**
HTTP used instead of HTTPS for API calls.

**Recommendation:**
Switch to HTTPS.

COMPLETE: 2 findings
"""
