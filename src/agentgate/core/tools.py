"""Gated tool collaborators: shell, file read/write and web fetch.

ToolDispatcher is the only execution path for tools; every call builds a
ToolInvocationRequest and passes the permission gate before running.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import httpx

from ..models.agent import AgentDefinition, ToolInvocationRequest
from .permissions import Confirmer, PermissionGate


@dataclass
class ShellResult:
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ToolDispatcher:
    """Runs tools on behalf of one agent."""

    def __init__(
        self,
        gate: PermissionGate,
        agent: AgentDefinition,
        cwd: Optional[Path] = None,
        confirm: Optional[Confirmer] = None,
        shell_timeout: float = 120,
        fetch_timeout: float = 30,
    ):
        self.gate = gate
        self.agent = agent
        self.cwd = Path(cwd) if cwd else Path.cwd()
        self.confirm = confirm
        self.shell_timeout = shell_timeout
        self.fetch_timeout = fetch_timeout

    def request(self, tool: str, **arguments: Any) -> ToolInvocationRequest:
        return ToolInvocationRequest(tool=tool, arguments=arguments, agent=self.agent)

    async def invoke(self, tool: str, **arguments: Any) -> Any:
        handlers = {
            "bash": self._run_shell,
            "read": self._read_file,
            "write": self._write_file,
            "edit": self._write_file,
            "webfetch": self._fetch,
        }
        handler = handlers.get(tool)
        if handler is None:
            raise ValueError(f"Unknown tool: {tool}")
        request = self.request(tool, **arguments)
        await self.gate.check(request, self.confirm)
        return await handler(**arguments)

    async def bash(self, command: str) -> ShellResult:
        return await self.invoke("bash", command=command)

    async def read(self, path: str) -> str:
        return await self.invoke("read", path=path)

    async def write(self, path: str, content: str) -> bool:
        return await self.invoke("write", path=path, content=content)

    async def webfetch(self, url: str) -> str:
        return await self.invoke("webfetch", url=url)

    # -- collaborators ------------------------------------------------------

    def _resolve(self, path: str) -> Path:
        p = Path(path)
        return p if p.is_absolute() else self.cwd / p

    async def _run_shell(self, command: str) -> ShellResult:
        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=str(self.cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.shell_timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            proc.kill()
            await proc.wait()
            raise
        return ShellResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=proc.returncode if proc.returncode is not None else -1,
        )

    async def _read_file(self, path: str) -> str:
        return self._resolve(path).read_text(encoding="utf-8", errors="replace")

    async def _write_file(self, path: str, content: str) -> bool:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return True

    async def _fetch(self, url: str) -> str:
        async with httpx.AsyncClient(timeout=self.fetch_timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.text
