"""
Configuration loader for QUILL.
Merges defaults with per-repo .quill/config.yaml overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class RoutingConfig(BaseModel):
    model: str = "gemini/gemini-2.5-flash"


class LLMConfig(BaseModel):
    temperature: float = 0.2
    max_tokens: int = 4096


class LimitsConfig(BaseModel):
    max_steps: int = 10
    max_tokens_per_session: int = 500_000
    max_dollars_per_session: float = 10.0


class PermissionsConfig(BaseModel):
    autopilot: bool = False
    gated_tools: list[str] = Field(default_factory=lambda: [
        "create_file",
        "write_file",
        "edit_file",
        "create_dir",
        "run_command",
        "git_commit",
        "test_run",
        "format_file",
    ])


class WorkspaceConfig(BaseModel):
    state_dir: str = ".quill"
    backup_dir: str = ".quill/backups"
    log_dir: str = ".quill/logs"


class ContextConfig(BaseModel):
    max_files: int = 200
    extra_ignores: list[str] = Field(default_factory=list)


class ToolsConfig(BaseModel):
    command_timeout: int = 120
    test_command: str | None = None
    format_command: str = "npx prettier --write {path}"
    search_max_results: int = 50
    summary_lines: int = 100


class QuillConfig(BaseModel):
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

_TRUTHY = {"1", "true", "yes", "on"}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    model = os.environ.get("QUILL_MODEL")
    if model:
        overrides["routing"] = {"model": model}
    autopilot = os.environ.get("QUILL_AUTOPILOT")
    if autopilot is not None:
        overrides["permissions"] = {"autopilot": autopilot.strip().lower() in _TRUTHY}
    return overrides


def load_config(repo_path: Path | None = None) -> QuillConfig:
    """
    Load config by merging:
      1. Built-in defaults (quill/config.yaml)
      2. Repo-level overrides (<repo>/.quill/config.yaml)
      3. Environment variable overrides (QUILL_MODEL, QUILL_AUTOPILOT)
    """
    # 1. Built-in defaults
    with open(_DEFAULT_CONFIG_PATH, "r", encoding="utf-8") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    # 2. Repo overrides
    if repo_path:
        repo_config = repo_path / ".quill" / "config.yaml"
        if repo_config.exists():
            with open(repo_config, "r", encoding="utf-8") as f:
                overrides: dict[str, Any] = yaml.safe_load(f) or {}
            base = _deep_merge(base, overrides)

    # 3. Env overrides
    base = _deep_merge(base, _env_overrides())

    return QuillConfig(**base)


def validate_api_keys() -> dict[str, bool]:
    """Check which API keys are available."""
    return {
        "ANTHROPIC_API_KEY": bool(os.environ.get("ANTHROPIC_API_KEY")),
        "OPENAI_API_KEY":    bool(os.environ.get("OPENAI_API_KEY")),
        "GEMINI_API_KEY":    bool(os.environ.get("GEMINI_API_KEY")),
        "COHERE_API_KEY":    bool(os.environ.get("COHERE_API_KEY")),
    }
