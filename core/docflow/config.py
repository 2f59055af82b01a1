"""Shared docflow configuration.

Reads ``~/.docflow/configuration.json`` once per call so the CLI, the
orchestrator and the inference providers share one source of defaults::

    {
      "orchestrator": {"max_concurrent_nodes": 5, "timeout_per_node": 60},
      "llm": {"model": "openai/gpt-4o-mini", "api_key_env_var": "OPENAI_API_KEY"}
    }
"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from docflow.errors import ConfigError

DOCFLOW_CONFIG_FILE = Path.home() / ".docflow" / "configuration.json"

DEFAULT_MODEL = "openai/gpt-4o-mini"
DEFAULT_MAX_TOKENS = 4096

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------


def get_docflow_config() -> dict[str, Any]:
    """Load configuration from ~/.docflow/configuration.json ({} if absent or unreadable)."""
    if not DOCFLOW_CONFIG_FILE.exists():
        return {}
    try:
        with open(DOCFLOW_CONFIG_FILE, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def get_preferred_model() -> str:
    llm = get_docflow_config().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return llm.get("model") or DEFAULT_MODEL


def get_max_tokens() -> int:
    return get_docflow_config().get("llm", {}).get("max_tokens", DEFAULT_MAX_TOKENS)


def get_api_key() -> str | None:
    """Return the API key from the environment variable named in configuration."""
    api_key_env_var = get_docflow_config().get("llm", {}).get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


# ---------------------------------------------------------------------------
# Orchestrator settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrchestratorConfig:
    """Execution settings for a multi-node document run."""

    enable_parallel_execution: bool = True
    max_concurrent_nodes: int = 5
    timeout_per_node: float = 60.0  # seconds
    fallback_to_legacy: bool = True
    # Refuse catalogs where two nodes write the same report field
    strict_target_fields: bool = False
    # Report field that carries the legacy analysis on the fallback path
    legacy_field: str = "medicalAnalysis"

    def __post_init__(self) -> None:
        if self.max_concurrent_nodes < 1:
            raise ConfigError(
                f"max_concurrent_nodes must be >= 1, got {self.max_concurrent_nodes}"
            )
        if self.timeout_per_node <= 0:
            raise ConfigError(f"timeout_per_node must be > 0, got {self.timeout_per_node}")
        if not self.legacy_field:
            raise ConfigError("legacy_field must not be empty")

    @classmethod
    def load(cls, **overrides: Any) -> "OrchestratorConfig":
        """Build a config from the ``orchestrator`` section of the config file.

        Unknown keys in the file are ignored; explicit ``overrides`` win.
        """
        known = {f.name for f in fields(cls)}
        section = get_docflow_config().get("orchestrator", {})
        values = {k: v for k, v in section.items() if k in known}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


# ---------------------------------------------------------------------------
# RuntimeConfig – inference collaborator settings
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Inference settings loaded from ~/.docflow/configuration.json."""

    model: str = field(default_factory=get_preferred_model)
    temperature: float = 0.2
    max_tokens: int = field(default_factory=get_max_tokens)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = None
    language: str = "English"
