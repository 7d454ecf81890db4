# pylint: disable=missing-module-docstring,missing-function-docstring

import dataclasses

import pytest

from config import AppConfig
from constants import (
    DEFAULT_AGENT_INSTRUCTIONS,
    DEFAULT_AGENT_NAME,
    DEFAULT_PORT,
    DEFAULT_REALTIME_MODEL,
)


def test_defaults_apply_when_only_the_credential_is_set():
    cfg = AppConfig.load_from_env({"OPENAI_EPHEMERAL_KEY": "ek_123"})

    assert cfg.openai_ephemeral_key == "ek_123"
    assert cfg.realtime_model == DEFAULT_REALTIME_MODEL
    assert cfg.agent_name == DEFAULT_AGENT_NAME
    assert cfg.agent_instructions == DEFAULT_AGENT_INSTRUCTIONS
    assert cfg.port == DEFAULT_PORT
    assert cfg.enable_json_logs is True


def test_overrides_are_read():
    cfg = AppConfig.load_from_env({
        "OPENAI_EPHEMERAL_KEY": "ek_123",
        "OPENAI_REALTIME_MODEL": "gpt-realtime-mini",
        "OPENAI_AGENT_NAME": "Coach",
        "OPENAI_AGENT_INSTRUCTIONS": "Count reps out loud.",
        "PORT": "8080",
        "ENABLE_JSON_LOGS": "0",
    })

    assert cfg.realtime_model == "gpt-realtime-mini"
    assert cfg.agent_name == "Coach"
    assert cfg.agent_instructions == "Count reps out loud."
    assert cfg.port == 8080
    assert cfg.enable_json_logs is False


@pytest.mark.parametrize("env", [{}, {"OPENAI_EPHEMERAL_KEY": ""}])
def test_missing_credential_fails_fast(env: dict[str, str]):
    with pytest.raises(RuntimeError, match="OPENAI_EPHEMERAL_KEY"):
        AppConfig.load_from_env(env)


def test_invalid_port_is_rejected():
    with pytest.raises(ValueError):
        AppConfig.load_from_env({"OPENAI_EPHEMERAL_KEY": "ek", "PORT": "eighty"})


def test_process_environment_is_the_default_source(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("OPENAI_EPHEMERAL_KEY", "ek_env")
    monkeypatch.setenv("OPENAI_AGENT_NAME", "FromEnv")

    cfg = AppConfig.load_from_env()

    assert cfg.openai_ephemeral_key == "ek_env"
    assert cfg.agent_name == "FromEnv"


def test_config_is_immutable():
    cfg = AppConfig(openai_ephemeral_key="ek")

    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.realtime_model = "other"  # type: ignore[misc]
