"""Agent registry: parses persona definitions and holds the process-wide table.

A definition is a markdown document with a YAML front-matter header:

    ---
    description: Reviews code changes
    mode: subagent
    temperature: 0.1
    tools:
      write: false
    permission:
      bash:
        "git diff*": allow
        "*": deny
    ---
    You are a meticulous reviewer...

The bundled personas ship in ``agentgate/data/agents``; a project can add or
replace personas in ``.agentgate/agents``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Optional, Union

import yaml
from pydantic import ValidationError

from ..models.agent import AgentDefinition, AgentMode, Decision, PermissionRule
from .config import PROJECT_DIR
from .errors import ParseError, RegistryLookupFailure

_FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)", re.DOTALL)

REQUIRED_FIELDS = ("description", "mode")

Source = Union[str, Path]


def _parse_decision(value: object, source: str, where: str) -> Decision:
    try:
        return Decision(str(value).strip().lower())
    except ValueError:
        raise ParseError(
            source, f"Invalid permission '{value}' for {where} (expected allow, deny or ask)"
        ) from None


def _parse_permission(raw: object, source: str) -> dict[str, tuple[PermissionRule, ...]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ParseError(source, "'permission' must be a mapping of tool to rules")

    permission: dict[str, tuple[PermissionRule, ...]] = {}
    for tool, rules in raw.items():
        tool = str(tool)
        if isinstance(rules, dict):
            permission[tool] = tuple(
                PermissionRule(
                    pattern=str(pattern),
                    decision=_parse_decision(decision, source, f"{tool} '{pattern}'"),
                )
                for pattern, decision in rules.items()
            )
        else:
            # A bare decision applies to every invocation of the tool
            permission[tool] = (
                PermissionRule(pattern="*", decision=_parse_decision(rules, source, tool)),
            )
    return permission


def _parse_tools(raw: object, source: str) -> dict[str, bool]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ParseError(source, "'tools' must be a mapping of tool name to true/false")
    tools: dict[str, bool] = {}
    for tool, enabled in raw.items():
        if not isinstance(enabled, bool):
            raise ParseError(source, f"Tool '{tool}' must be true or false")
        tools[str(tool)] = enabled
    return tools


def parse_agent_text(text: str, name: str, source: str = "builtin") -> AgentDefinition:
    """Parse a definition document into an AgentDefinition."""
    match = _FRONTMATTER_RE.match(text)
    if not match:
        raise ParseError(source, "Missing front-matter header")

    try:
        raw = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise ParseError(source, f"Invalid YAML header ({e})") from e
    if not isinstance(raw, dict):
        raise ParseError(source, "Front-matter header must be a mapping")

    missing = [f for f in REQUIRED_FIELDS if not raw.get(f)]
    if missing:
        raise ParseError(source, f"Missing required field(s) {', '.join(missing)}")

    try:
        mode = AgentMode(str(raw["mode"]).strip().lower())
    except ValueError:
        raise ParseError(
            source, f"Invalid mode '{raw['mode']}' (expected primary, subagent or all)"
        ) from None

    temperature = raw.get("temperature")
    if temperature is not None:
        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
            raise ParseError(source, "'temperature' must be a number")
        if not 0 <= temperature <= 2:
            raise ParseError(source, "'temperature' must be between 0 and 2")

    subagents = raw.get("subagents") or []
    if isinstance(subagents, str):
        subagents = [subagents]
    if not isinstance(subagents, list):
        raise ParseError(source, "'subagents' must be a list of agent names")

    try:
        return AgentDefinition(
            name=str(raw.get("name") or name),
            description=str(raw["description"]).strip(),
            mode=mode,
            tools=_parse_tools(raw.get("tools"), source),
            permission=_parse_permission(raw.get("permission"), source),
            temperature=temperature,
            model=str(raw["model"]) if raw.get("model") else None,
            subagents=tuple(str(s) for s in subagents),
            prompt=text[match.end():].strip(),
            source=source,
        )
    except ValidationError as e:
        raise ParseError(source, f"Invalid definition ({e.error_count()} errors)") from e


def parse_agent(path: Path) -> AgentDefinition:
    return parse_agent_text(path.read_text(encoding="utf-8-sig"), path.stem, str(path))


def _same_definition(a: AgentDefinition, b: AgentDefinition) -> bool:
    return a.model_dump(exclude={"source"}) == b.model_dump(exclude={"source"})


def _expand_sources(sources: Iterable[Source]) -> list[Path]:
    paths: list[Path] = []
    for src in sources:
        path = Path(src)
        if path.is_dir():
            paths.extend(sorted(path.glob("*.md")))
        else:
            paths.append(path)
    return paths


class AgentRegistry(Mapping[str, AgentDefinition]):
    """Read-only name -> AgentDefinition table."""

    def __init__(
        self,
        definitions: Mapping[str, AgentDefinition],
        errors: Optional[list[ParseError]] = None,
    ) -> None:
        self._definitions = MappingProxyType(dict(definitions))
        self.errors: list[ParseError] = list(errors or [])

    def __getitem__(self, name: str) -> AgentDefinition:
        return self._definitions[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def lookup(self, name: str) -> AgentDefinition:
        try:
            return self._definitions[name]
        except KeyError:
            raise RegistryLookupFailure(name) from None

    def primary(self, name: str) -> AgentDefinition:
        """Resolve an agent a user may invoke directly."""
        agent = self.lookup(name)
        if not agent.invocable_as_primary:
            raise RegistryLookupFailure(name, "Agent is subagent-only and cannot be invoked directly")
        return agent


def _load_layer(
    documents: Iterable[tuple[str, str, str]],
    errors: list[ParseError],
) -> dict[str, AgentDefinition]:
    """Parse one layer of (text, default_name, source) documents."""
    layer: dict[str, AgentDefinition] = {}
    for text, name, source in documents:
        try:
            agent = parse_agent_text(text, name, source)
        except ParseError as e:
            errors.append(e)
            continue
        existing = layer.get(agent.name)
        if existing is not None and not _same_definition(existing, agent):
            raise ParseError(
                source, f"Conflicting definition for agent '{agent.name}' (also in {existing.source})"
            )
        layer.setdefault(agent.name, agent)
    return layer


def _read_paths(paths: Iterable[Path], errors: list[ParseError]) -> Iterator[tuple[str, str, str]]:
    for path in paths:
        try:
            text = path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            errors.append(ParseError(str(path), f"Unreadable definition ({e})"))
            continue
        yield text, path.stem, str(path)


def _read_builtin() -> Iterator[tuple[str, str, str]]:
    data_pkg = resources.files("agentgate.data.agents")
    entries = sorted(
        (e for e in data_pkg.iterdir() if e.name.endswith(".md")),
        key=lambda e: e.name,
    )
    for entry in entries:
        yield entry.read_text(encoding="utf-8"), entry.name[:-3], f"builtin:{entry.name}"


def load(sources: Iterable[Source]) -> AgentRegistry:
    """Load definitions from files and directories into a registry.

    A malformed definition is recorded in ``registry.errors`` and skipped;
    conflicting duplicate names abort the load with ParseError.
    """
    errors: list[ParseError] = []
    definitions = _load_layer(_read_paths(_expand_sources(sources), errors), errors)
    return AgentRegistry(definitions, errors)


def load_default_registry(
    project_path: Optional[Path] = None,
    extra_sources: Optional[Iterable[Source]] = None,
) -> AgentRegistry:
    """Bundled personas, overridden by project personas, then extra sources."""
    errors: list[ParseError] = []
    definitions = _load_layer(_read_builtin(), errors)

    layers: list[list[Path]] = []
    if project_path:
        override_dir = project_path / PROJECT_DIR / "agents"
        if override_dir.is_dir():
            layers.append(_expand_sources([override_dir]))
    if extra_sources:
        layers.append(_expand_sources(extra_sources))

    for paths in layers:
        definitions.update(_load_layer(_read_paths(paths, errors), errors))

    return AgentRegistry(definitions, errors)


# ---------------------------------------------------------------------------
# Process-wide registry
# ---------------------------------------------------------------------------

_registry: Optional[AgentRegistry] = None


def init_registry(registry: AgentRegistry) -> AgentRegistry:
    global _registry
    _registry = registry
    return registry


def get_registry() -> AgentRegistry:
    if _registry is None:
        raise RuntimeError("Agent registry not initialized")
    return _registry


def teardown_registry() -> None:
    global _registry
    _registry = None
