"""Tests for configuration and timeout policy."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from relay.config import PROJECT_ROOT, Settings
from relay.timeouts import Timeouts
from relay.utils import normalize_base_url


def test_default_settings():
    """Settings should have the relay's defaults."""
    settings = Settings(_env_file=None)

    assert settings.port == 7860
    assert settings.default_model == "llama-3.1-70b-versatile"
    assert settings.upstream_timeout_seconds == Timeouts.UPSTREAM_REQUEST
    assert settings.upstream_max_attempts == 2
    assert settings.upstream_retry_backoff_seconds == 0.3


def test_env_overrides(monkeypatch):
    """Environment variables should override defaults."""
    monkeypatch.setenv("GROQ_API_KEY", "gsk-from-env")
    monkeypatch.setenv("AIPIPE_URL", "  https://pipe.example.com/run  ")
    monkeypatch.setenv("UPSTREAM_MAX_ATTEMPTS", "4")

    settings = Settings(_env_file=None)

    assert settings.groq_api_key == "gsk-from-env"
    assert settings.aipipe_url == "https://pipe.example.com/run"
    assert settings.upstream_max_attempts == 4


def test_invalid_attempts_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, upstream_max_attempts=0)


def test_provider_urls():
    settings = Settings(
        _env_file=None,
        openai_base_url="https://api.openai.com/v1/",
        gemini_base_url="https://gemini.example.com/v1beta//",
    )

    assert settings.chat_completions_url == "https://api.openai.com/v1/chat/completions"
    assert settings.gemini_generate_url() == (
        "https://gemini.example.com/v1beta/models/gemini-2.0-flash:generateContent"
    )
    assert settings.gemini_generate_url("gemini-pro").endswith("/models/gemini-pro:generateContent")


def test_relative_dirs_anchored_to_project():
    settings = Settings(_env_file=None, log_dir="var/logs", static_dir=Path("/srv/ui"))

    assert settings.log_dir == (PROJECT_ROOT / "var" / "logs").resolve()
    assert settings.static_dir == Path("/srv/ui")


def test_normalize_base_url():
    assert normalize_base_url(" https://host/api/ ") == "https://host/api"
    assert normalize_base_url("https://host") == "https://host"
    assert normalize_base_url(None) == ""


def test_timeouts_validate():
    assert Timeouts.validate()
