"""3-layer configuration system for agentgate.

Loads and merges configuration from:
1. Default settings (built-in)
2. Project config (.agentgate/config.yaml)
3. CLI parameters (override)
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Optional

import yaml

from .errors import ParseError

PROJECT_DIR = ".agentgate"

DEFAULT_CONFIG: dict = {
    "project": {
        "name": "",
    },
    "orchestration": {
        "timeout_seconds": 120,
        "max_concurrency": 4,
        "dedup_threshold": 0.5,
        "max_tool_rounds": 8,
    },
    "permissions": {
        "destructive_decision": "ask",
        "extra_destructive_patterns": [],
        "class_defaults": {
            "read": "allow",
            "write": "deny",
            "execute": "deny",
            "network": "ask",
            "delegate": "allow",
        },
    },
    "audit": {
        "enabled": True,
        "path": f"{PROJECT_DIR}/audit.jsonl",
    },
    "output": {
        "save_reports": True,
    },
    "ai": {
        "provider": "anthropic",
        "temperature": 0.3,
        "timeout_seconds": 300,
        "retry_attempts": 3,
        "retry_delay_seconds": 5,
        "anthropic": {
            "model": "claude-sonnet-4-5-20250929",
            "api_key_env": "ANTHROPIC_API_KEY",
            "max_tokens": 16000,
        },
        "openai": {
            "model": "gpt-4o",
            "api_key_env": "OPENAI_API_KEY",
            "max_tokens": 16000,
        },
        "ollama": {
            "endpoint": "http://localhost:11434",
            "model": "llama3.1:70b",
        },
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Arrays are replaced, not merged."""
    result = {}
    for key in base:
        result[key] = base[key]
    for key, value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            result[key] = deep_merge(base_value, value)
        else:
            result[key] = value
    return result


def load_project_config(project_path: Path) -> dict:
    """Load project configuration from .agentgate/config.yaml.

    A missing or empty file yields ``{}``; unparseable YAML is a ParseError
    so a broken config never silently falls back to defaults.
    """
    config_path = project_path / PROJECT_DIR / "config.yaml"
    if not config_path.exists():
        return {}
    content = config_path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
    try:
        data = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise ParseError(str(config_path), f"Invalid YAML ({e})") from e
    if not isinstance(data, dict):
        raise ParseError(str(config_path), "Config root must be a mapping")
    return data


def get_effective_config(
    project_path: Path,
    cli_overrides: Optional[dict] = None,
) -> dict:
    """Get the fully resolved configuration for a run."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    project_config = load_project_config(project_path)
    if project_config:
        config = deep_merge(config, project_config)

    if cli_overrides:
        config = deep_merge(config, cli_overrides)

    config["_project_path"] = str(project_path)

    return config
