"""Settings: environment parsing and startup validation."""
import pytest

from app.core.config import _int_env, validate_settings


class ValidSettings:
    DECISION_ENGINE = "local"
    REMOTE_POLICY_URL = ""
    STT_PROVIDER = "http"
    RUN_HISTORY_LIMIT = 200
    CONVERSATION_LIMIT = 1000


def test_defaults_are_valid():
    validate_settings(ValidSettings())


def test_remote_engine_without_url_is_rejected():
    cfg = ValidSettings()
    cfg.DECISION_ENGINE = "remote"
    with pytest.raises(ValueError, match="REMOTE_POLICY_URL"):
        validate_settings(cfg)

    cfg.REMOTE_POLICY_URL = "http://policy.local/check"
    validate_settings(cfg)


@pytest.mark.parametrize("field,value", [
    ("DECISION_ENGINE", "llm"),
    ("STT_PROVIDER", "whisper.cpp"),
    ("RUN_HISTORY_LIMIT", 0),
    ("CONVERSATION_LIMIT", 0),
])
def test_invalid_values_are_rejected(field, value):
    cfg = ValidSettings()
    setattr(cfg, field, value)
    with pytest.raises(ValueError, match=field):
        validate_settings(cfg)


def test_int_env_minimum(monkeypatch):
    monkeypatch.setenv("RUN_HISTORY_LIMIT", "0")
    with pytest.raises(ValueError, match="RUN_HISTORY_LIMIT must be >= 1"):
        _int_env("RUN_HISTORY_LIMIT", 200, minimum=1)

    monkeypatch.setenv("RUN_HISTORY_LIMIT", "5")
    assert _int_env("RUN_HISTORY_LIMIT", 200, minimum=1) == 5


def test_int_env_rejects_garbage(monkeypatch):
    monkeypatch.setenv("CHECKOUT_SESSION_TTL_SECONDS", "ten")
    with pytest.raises(ValueError, match="must be an integer"):
        _int_env("CHECKOUT_SESSION_TTL_SECONDS", 0)
    monkeypatch.delenv("CHECKOUT_SESSION_TTL_SECONDS")
    assert _int_env("CHECKOUT_SESSION_TTL_SECONDS", 0) == 0
