"""
Assistant configuration.

Loaded once at startup and passed explicitly into the pipeline; nothing
downstream reads the process environment.
"""
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from backend.services.errors import ConfigError, UpstreamAuthError

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DEFAULT_LLM_API_BASE = "https://ai.gateway.lovable.dev/v1"
DEFAULT_LLM_MODEL = "google/gemini-3-flash-preview"
DEFAULT_READONLY_FUNCTION = "run_readonly_query"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number") from exc


@dataclass(frozen=True)
class AssistantConfig:
    """Settings for the LLM gateway, the data store and the fallback bounds"""
    llm_api_key: str
    database_url: str
    llm_api_base: str = DEFAULT_LLM_API_BASE
    llm_model: str = DEFAULT_LLM_MODEL

    # Empty disables the read-only function path; every query then goes to the fallback.
    readonly_function: Optional[str] = DEFAULT_READONLY_FUNCTION

    history_turns: int = 10
    default_limit: int = 20
    max_limit: int = 50

    # Transport timeouts for the gateway client (seconds)
    llm_connect_timeout_s: float = 5.0
    llm_read_timeout_s: float = 45.0

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "AssistantConfig":
        load_dotenv(env_file or Path(__file__).parent.parent.parent / ".env")
        readonly_function = os.getenv("READONLY_QUERY_FUNCTION", DEFAULT_READONLY_FUNCTION).strip()
        return cls(
            llm_api_key=(os.getenv("LLM_API_KEY") or os.getenv("LOVABLE_API_KEY") or "").strip(),
            database_url=(os.getenv("DATABASE_URL") or "").strip(),
            llm_api_base=(os.getenv("LLM_API_BASE") or DEFAULT_LLM_API_BASE).rstrip("/"),
            llm_model=os.getenv("LLM_MODEL") or DEFAULT_LLM_MODEL,
            readonly_function=readonly_function or None,
            history_turns=_env_int("ASSISTANT_HISTORY_TURNS", 10),
            default_limit=_env_int("FALLBACK_DEFAULT_LIMIT", 20),
            max_limit=_env_int("FALLBACK_MAX_LIMIT", 50),
            llm_connect_timeout_s=_env_float("LLM_CONNECT_TIMEOUT_S", 5.0),
            llm_read_timeout_s=_env_float("LLM_READ_TIMEOUT_S", 45.0),
        )

    def validate(self) -> "AssistantConfig":
        """Fail fast on missing credentials or unusable bounds. Returns self."""
        if not (self.llm_api_key or "").strip():
            raise UpstreamAuthError()
        if not (self.database_url or "").strip():
            raise ConfigError("DATABASE_URL is not configured")
        if self.readonly_function and not _IDENTIFIER_RE.match(self.readonly_function):
            raise ConfigError(f"Invalid read-only function name: {self.readonly_function!r}")
        if self.history_turns < 0:
            raise ConfigError("ASSISTANT_HISTORY_TURNS must not be negative")
        if self.default_limit <= 0 or self.max_limit <= 0:
            raise ConfigError("Fallback limits must be positive")
        if self.default_limit > self.max_limit:
            raise ConfigError("FALLBACK_DEFAULT_LIMIT must not exceed FALLBACK_MAX_LIMIT")
        return self
