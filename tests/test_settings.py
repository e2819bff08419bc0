import json
from dataclasses import FrozenInstanceError

import pytest

from app.services.settings import (
    DEFAULT_SYSTEM_PROMPT,
    _load_mcp_supabase_env,
    _load_system_prompt,
    _supabase_setting,
    _supabase_url,
)


def test_with_temperature_overrides_only_temperature(config):
    overridden = config.with_temperature(0.1)

    assert overridden.llm_temperature == 0.1
    assert overridden.openai_model == config.openai_model
    assert overridden.system_prompt == config.system_prompt
    assert config.llm_temperature is None


def test_with_temperature_none_keeps_snapshot(config):
    assert config.with_temperature(None) is config


def test_system_prompt_file_takes_precedence(tmp_path, monkeypatch):
    prompt_file = tmp_path / "prompt.txt"
    prompt_file.write_text("Answer like a pirate.\n", encoding="utf-8")
    monkeypatch.setenv("SYSTEM_PROMPT_FILE", str(prompt_file))
    monkeypatch.setenv("SYSTEM_PROMPT", "ignored")

    assert _load_system_prompt() == "Answer like a pirate."


def test_system_prompt_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("SYSTEM_PROMPT_FILE", str(tmp_path / "missing"))
    monkeypatch.delenv("SYSTEM_PROMPT", raising=False)

    assert _load_system_prompt() == DEFAULT_SYSTEM_PROMPT


def test_settings_are_frozen(config):
    with pytest.raises(FrozenInstanceError):
        config.openai_model = "other"  # type: ignore[misc]


def _write_mcp_config(tmp_path, env):
    config_file = tmp_path / "mcp.json"
    config_file.write_text(
        json.dumps({"mcpServers": {"supabase": {"command": "npx", "env": env}}}),
        encoding="utf-8",
    )
    return config_file


def test_mcp_config_supplies_supabase_settings(tmp_path, monkeypatch):
    config_file = _write_mcp_config(
        tmp_path,
        {
            "DATABASE_URL": "https://abc.supabase.co",
            "SUPABASE_ANON_KEY": "anon-from-file",
            "SUPABASE_PROJECT_REF": "abc",
        },
    )
    monkeypatch.setenv("MCP_CONFIG_FILE", str(config_file))
    for name in ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_PROJECT_REF"):
        monkeypatch.delenv(name, raising=False)

    mcp_env = _load_mcp_supabase_env()

    assert _supabase_url(mcp_env) == "https://abc.supabase.co"
    assert _supabase_setting("SUPABASE_ANON_KEY", "SUPABASE_ANON_KEY", mcp_env) == "anon-from-file"


def test_environment_wins_over_mcp_config(tmp_path, monkeypatch):
    config_file = _write_mcp_config(
        tmp_path, {"DATABASE_URL": "https://file.supabase.co", "SUPABASE_ANON_KEY": "file"}
    )
    monkeypatch.setenv("MCP_CONFIG_FILE", str(config_file))
    monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "env")

    mcp_env = _load_mcp_supabase_env()

    assert _supabase_url(mcp_env) == "https://env.supabase.co"
    assert _supabase_setting("SUPABASE_ANON_KEY", "SUPABASE_ANON_KEY", mcp_env) == "env"


def test_project_ref_derives_url(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_PROJECT_REF", raising=False)

    assert _supabase_url({"SUPABASE_PROJECT_REF": "xyz"}) == "https://xyz.supabase.co"
    assert _supabase_url({}) is None


def test_missing_or_malformed_mcp_config_is_ignored(tmp_path, monkeypatch):
    monkeypatch.setenv("MCP_CONFIG_FILE", str(tmp_path / "absent.json"))
    assert _load_mcp_supabase_env() == {}

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    monkeypatch.setenv("MCP_CONFIG_FILE", str(broken))
    assert _load_mcp_supabase_env() == {}
