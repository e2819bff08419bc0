from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


def _optional_float(name: str) -> float | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _optional_int(name: str) -> int | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        parsed = int(raw)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _load_system_prompt() -> str:
    prompt_path = Path(os.environ.get("SYSTEM_PROMPT_FILE", ".system_prompt"))
    if prompt_path.is_file():
        content = prompt_path.read_text(encoding="utf-8").strip()
        if content:
            return content
    return os.environ.get("SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT


def _load_mcp_supabase_env() -> dict[str, str]:
    """Read ``mcpServers.supabase.env`` from the MCP client config, if present."""
    config_path = Path(os.environ.get("MCP_CONFIG_FILE", ".mcp_config.json"))
    if not config_path.is_file():
        return {}
    try:
        document = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}

    servers = document.get("mcpServers") if isinstance(document, dict) else None
    supabase = servers.get("supabase") if isinstance(servers, dict) else None
    env = supabase.get("env") if isinstance(supabase, dict) else None
    if not isinstance(env, dict):
        return {}
    return {str(key): str(value) for key, value in env.items() if value}


def _supabase_setting(
    env_name: str, mcp_key: str, mcp_env: Mapping[str, str]
) -> str | None:
    # Environment variables win over the MCP config file.
    return os.environ.get(env_name) or mcp_env.get(mcp_key) or None


def _supabase_url(mcp_env: Mapping[str, str]) -> str | None:
    url = _supabase_setting("SUPABASE_URL", "DATABASE_URL", mcp_env)
    if url:
        return url
    project_ref = _supabase_setting(
        "SUPABASE_PROJECT_REF", "SUPABASE_PROJECT_REF", mcp_env
    )
    return f"https://{project_ref}.supabase.co" if project_ref else None


_MCP_SUPABASE_ENV = _load_mcp_supabase_env()


@dataclass(frozen=True)
class Settings:
    http_host: str = os.environ.get("HTTP_HOST", "0.0.0.0")
    http_port: int = _optional_int("HTTP_PORT") or 3001
    log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()
    openai_api_key: str | None = os.environ.get("OPENAI_API_KEY") or os.environ.get(
        "OPENAI_KEY"
    )
    openai_model: str = (
        os.environ.get("OPENAI_MODEL") or os.environ.get("MODEL") or "gpt-4o-mini"
    )
    max_tokens: int | None = _optional_int("MAX_TOKENS")
    llm_temperature: float | None = _optional_float("LLM_TEMPERATURE")
    top_p: float | None = _optional_float("TOP_P")
    presence_penalty: float | None = _optional_float("PRESENCE_PENALTY")
    frequency_penalty: float | None = _optional_float("FREQUENCY_PENALTY")
    reasoning_effort: str | None = os.environ.get("REASONING_EFFORT") or None
    system_prompt: str = _load_system_prompt()
    supabase_url: str | None = _supabase_url(_MCP_SUPABASE_ENV)
    supabase_anon_key: str | None = _supabase_setting(
        "SUPABASE_ANON_KEY", "SUPABASE_ANON_KEY", _MCP_SUPABASE_ENV
    )
    supabase_project_ref: str | None = _supabase_setting(
        "SUPABASE_PROJECT_REF", "SUPABASE_PROJECT_REF", _MCP_SUPABASE_ENV
    )

    def with_temperature(self, temperature: float | None) -> Settings:
        """Return a copy for a single request; only the temperature is overridable."""
        if temperature is None:
            return self
        return replace(self, llm_temperature=temperature)


settings = Settings()
