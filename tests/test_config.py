from __future__ import annotations

from pathlib import Path

from apexclaw.config import Settings, allowed_users


def _settings(**overrides) -> Settings:  # noqa: ANN003
    values = {"OPENROUTER_API_KEY": "key", "TELEGRAM_BOT_TOKEN": "token", "OWNER_ID": "42"}
    values.update(overrides)
    return Settings(**values)


def test_defaults():
    settings = _settings()
    assert settings.model_id == "z-ai/glm-4.7"
    assert settings.max_iterations == 10
    assert settings.history_ceiling == 60
    assert settings.agent_timeout_seconds == 720.0
    assert settings.heartbeat_timeout_seconds == 180.0
    assert settings.heartbeat_tick_seconds == 15.0
    assert settings.heartbeat_path == Path.home() / ".apexclaw" / "heartbeat.json"


def test_overrides_by_env_name(tmp_path):
    settings = _settings(OPENROUTER_MODEL="other/model", MAX_HISTORY="20", HEARTBEAT_PATH=str(tmp_path / "hb.json"))
    assert settings.model_id == "other/model"
    assert settings.history_ceiling == 20
    assert settings.heartbeat_path == tmp_path / "hb.json"


def test_allowed_users_always_includes_owner():
    assert allowed_users(_settings()) == frozenset({"42"})
    assert allowed_users(_settings(ALLOWED_USERS=" 7, 8 ,,")) == frozenset({"42", "7", "8"})
