"""Tests for core/tools.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from agentgate.core.errors import ConfirmationRequired, PermissionDenied
from agentgate.core.permissions import PermissionGate
from agentgate.core.tools import ToolDispatcher
from agentgate.models.agent import Decision


@pytest.fixture
def gate() -> PermissionGate:
    return PermissionGate()


class TestGateEnforcement:
    @pytest.mark.asyncio
    async def test_denied_shell_never_runs(self, gate, make_agent, tmp_path: Path):
        agent = make_agent(permission={"bash": {"ls*": "allow"}})
        tools = ToolDispatcher(gate, agent, cwd=tmp_path)
        with pytest.raises(PermissionDenied):
            await tools.bash("touch created.txt")
        assert not (tmp_path / "created.txt").exists()

    @pytest.mark.asyncio
    async def test_denied_write_leaves_file_untouched(self, gate, make_agent, tmp_path: Path):
        target = tmp_path / "keep.txt"
        target.write_text("original", encoding="utf-8")
        tools = ToolDispatcher(gate, make_agent(), cwd=tmp_path)
        with pytest.raises(PermissionDenied):
            await tools.write("keep.txt", "changed")
        assert target.read_text(encoding="utf-8") == "original"

    @pytest.mark.asyncio
    async def test_ask_without_confirmer(self, gate, make_agent, tmp_path: Path):
        agent = make_agent(permission={"write": {"*": "ask"}})
        tools = ToolDispatcher(gate, agent, cwd=tmp_path)
        with pytest.raises(ConfirmationRequired):
            await tools.write("new.txt", "x")
        assert not (tmp_path / "new.txt").exists()

    @pytest.mark.asyncio
    async def test_ask_with_confirmer(self, gate, make_agent, tmp_path: Path):
        agent = make_agent(permission={"write": {"*": "ask"}})

        async def yes(request):
            return True

        tools = ToolDispatcher(gate, agent, cwd=tmp_path, confirm=yes)
        assert await tools.write("new.txt", "x") is True
        assert (tmp_path / "new.txt").read_text(encoding="utf-8") == "x"

    @pytest.mark.asyncio
    async def test_every_call_audited(self, gate, make_agent, tmp_path: Path):
        (tmp_path / "a.txt").write_text("hi", encoding="utf-8")
        tools = ToolDispatcher(gate, make_agent(name="reader"), cwd=tmp_path)
        await tools.read("a.txt")
        with pytest.raises(PermissionDenied):
            await tools.bash("ls")
        assert [(r.tool, r.decision) for r in gate.audit.records] == [
            ("read", Decision.ALLOW),
            ("bash", Decision.DENY),
        ]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, gate, make_agent):
        with pytest.raises(ValueError, match="Unknown tool"):
            await ToolDispatcher(gate, make_agent()).invoke("teleport", target="x")


class TestCollaborators:
    @pytest.mark.asyncio
    async def test_read(self, gate, make_agent, tmp_path: Path):
        (tmp_path / "notes.md").write_text("# Notes\n", encoding="utf-8")
        tools = ToolDispatcher(gate, make_agent(), cwd=tmp_path)
        assert await tools.read("notes.md") == "# Notes\n"

    @pytest.mark.asyncio
    async def test_write_creates_parents(self, gate, make_agent, tmp_path: Path):
        agent = make_agent(permission={"write": {"tests/*": "allow"}})
        tools = ToolDispatcher(gate, agent, cwd=tmp_path)
        await tools.write("tests/deep/test_x.py", "def test(): pass\n")
        assert (tmp_path / "tests" / "deep" / "test_x.py").exists()

    @pytest.mark.asyncio
    async def test_bash_captures_output(self, gate, make_agent, tmp_path: Path):
        agent = make_agent(permission={"bash": {"echo *": "allow"}})
        tools = ToolDispatcher(gate, agent, cwd=tmp_path)
        result = await tools.bash("echo hello")
        assert result.ok
        assert result.stdout.strip() == "hello"

    @pytest.mark.asyncio
    async def test_bash_nonzero_exit(self, gate, make_agent, tmp_path: Path):
        agent = make_agent(permission={"bash": {"exit *": "allow"}})
        result = await ToolDispatcher(gate, agent, cwd=tmp_path).bash("exit 3")
        assert not result.ok
        assert result.exit_code == 3
