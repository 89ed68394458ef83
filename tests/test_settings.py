from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path

import pytest

from falgen_engine.config import DEFAULT_OUTPUT_DIR, MAX_CONCURRENCY, load_settings
from falgen_engine.credentials import (
    DRYRUN_API_KEY,
    CredentialsError,
    mask_api_key,
    resolve_credentials,
    validate_api_key_format,
)
from falgen_engine.generation.orchestrator import ConfigurationError
from falgen_engine.session import SessionConfig
from falgen_engine.utils import load_dotenv

VALID_KEY = "12345678-1234-1234-1234-123456789abc:" + "b" * 32

_ENV_KEYS = (
    "FAL_KEY",
    "FAL_API_KEY",
    "FALGEN_MODELS_DIR",
    "FALGEN_SPENDING_LIMIT",
    "FALGEN_CONCURRENCY",
    "FALGEN_OUTPUT_DIR",
    "FALGEN_DRYRUN",
    "FALGEN_REQUEST_TIMEOUT",
    "FALGEN_POLL_TIMEOUT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_settings_defaults() -> None:
    settings = load_settings()
    assert settings.spending_limit == Decimal("5.00")
    assert settings.concurrency == 1
    assert settings.output_dir == DEFAULT_OUTPUT_DIR
    assert settings.dry_run is False
    assert settings.models_dir is None


def test_settings_from_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("FALGEN_SPENDING_LIMIT", "12.5")
    monkeypatch.setenv("FALGEN_CONCURRENCY", "50")
    monkeypatch.setenv("FALGEN_OUTPUT_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("FALGEN_MODELS_DIR", str(tmp_path / "models"))
    monkeypatch.setenv("FALGEN_DRYRUN", "yes")
    monkeypatch.setenv("FALGEN_POLL_TIMEOUT", "not-a-number")
    settings = load_settings()
    assert settings.spending_limit == Decimal("12.5")
    assert settings.concurrency == MAX_CONCURRENCY
    assert settings.output_dir == tmp_path / "out"
    assert settings.models_dir == tmp_path / "models"
    assert settings.dry_run is True
    assert settings.poll_timeout == 300.0


def test_load_dotenv_does_not_override(monkeypatch, tmp_path: Path) -> None:
    env_path = tmp_path / ".env"
    env_path.write_text('# comment\nexport FALGEN_CONCURRENCY="3"\nFAL_KEY=from-file\n', encoding="utf-8")
    monkeypatch.setenv("FAL_KEY", "from-env")
    # registers FALGEN_CONCURRENCY with monkeypatch so teardown removes it again
    monkeypatch.setenv("FALGEN_CONCURRENCY", "1")
    monkeypatch.delenv("FALGEN_CONCURRENCY")
    assert load_dotenv(env_path)
    assert os.environ["FALGEN_CONCURRENCY"] == "3"
    assert os.environ["FAL_KEY"] == "from-env"


def test_api_key_format() -> None:
    assert validate_api_key_format(VALID_KEY)
    assert not validate_api_key_format("not-a-key")
    assert not validate_api_key_format("12345678-1234-1234-1234-123456789abc:short")
    assert not validate_api_key_format(None)


def test_resolve_credentials(monkeypatch) -> None:
    with pytest.raises(CredentialsError, match="No FAL API key"):
        resolve_credentials()
    monkeypatch.setenv("FAL_KEY", "bad")
    with pytest.raises(CredentialsError, match="Invalid API key format"):
        resolve_credentials()
    monkeypatch.setenv("FAL_KEY", VALID_KEY)
    credentials = resolve_credentials()
    assert credentials.api_key == VALID_KEY
    assert credentials.source == "env"
    assert VALID_KEY not in repr(credentials)
    assert resolve_credentials(VALID_KEY).source == "argument"


def test_dry_run_credentials_need_no_key() -> None:
    credentials = resolve_credentials(dry_run=True)
    assert credentials.api_key == DRYRUN_API_KEY
    assert credentials.source == "dryrun"


def test_mask_api_key() -> None:
    assert mask_api_key(VALID_KEY) == "1234...bbbb"
    assert mask_api_key("short") == "****"


def test_session_config_is_immutable_and_expands_tasks() -> None:
    base = SessionConfig()
    session = (
        base.with_models(["fal-ai/a", "fal-ai/b", "fal-ai/a"])
        .with_prompts(["one", "  ", "two"])
        .with_iterations(2)
        .with_parameters("fal-ai/b", {"num_images": 2})
    )
    assert base.model_ids == ()
    assert session.model_ids == ("fal-ai/a", "fal-ai/b")
    assert session.prompts == ("one", "two")
    tasks = session.tasks()
    assert len(tasks) == 8
    assert tasks[2].model_id == "fal-ai/b"
    assert tasks[2].image_count == 2
    with pytest.raises(TypeError):
        session.parameters["fal-ai/b"]["num_images"] = 3  # type: ignore[index]


def test_session_config_rejects_bad_values() -> None:
    with pytest.raises(ConfigurationError):
        SessionConfig().with_concurrency(0)
    with pytest.raises(ConfigurationError):
        SessionConfig().with_iterations(0)
    with pytest.raises(ConfigurationError):
        SessionConfig().with_prompts(["x"]).tasks()
    with pytest.raises(ConfigurationError):
        SessionConfig().with_models(["fal-ai/a"]).tasks()
