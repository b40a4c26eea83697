"""Tests for ChangeflowConfig and logging setup."""

from __future__ import annotations

import logging

import pytest

ENV_VARS = (
    "CHANGEFLOW_PROVIDER",
    "CHANGEFLOW_MODEL",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "OPENAI_BASE_URL",
    "ANTHROPIC_BASE_URL",
    "CHANGEFLOW_LOCAL_BASE_URL",
    "CHANGEFLOW_TIMEOUT",
    "CHANGEFLOW_CLASSIFICATION_STEP",
    "CHANGEFLOW_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove every changeflow-related environment variable."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.mark.unit
class TestChangeflowConfig:
    """Tests for ChangeflowConfig."""

    def test_defaults(self) -> None:
        """Test the default configuration."""
        from litestar_changeflow.config import ChangeflowConfig

        config = ChangeflowConfig()

        assert config.provider == "mock"
        assert config.model is None
        assert config.request_timeout == 60.0
        assert config.classification_step == "classify"

    def test_unknown_provider_rejected(self) -> None:
        """Test that an unknown provider name is rejected."""
        from litestar_changeflow.config import ChangeflowConfig

        with pytest.raises(ValueError, match="Unknown provider"):
            ChangeflowConfig(provider="skynet")

    def test_provider_name_normalised(self) -> None:
        """Test that provider names are case-insensitive."""
        from litestar_changeflow.config import ChangeflowConfig

        assert ChangeflowConfig(provider="OpenAI").provider == "openai"

    def test_from_env_defaults(self, clean_env: pytest.MonkeyPatch) -> None:
        """Test that an empty environment yields the defaults."""
        from litestar_changeflow.config import ChangeflowConfig

        assert ChangeflowConfig.from_env() == ChangeflowConfig()

    def test_from_env(self, clean_env: pytest.MonkeyPatch) -> None:
        """Test loading every setting from the environment."""
        from litestar_changeflow.config import ChangeflowConfig

        clean_env.setenv("CHANGEFLOW_PROVIDER", "anthropic")
        clean_env.setenv("CHANGEFLOW_MODEL", "claude-test")
        clean_env.setenv("ANTHROPIC_API_KEY", "ak-secret")
        clean_env.setenv("ANTHROPIC_BASE_URL", "https://proxy.internal/v1")
        clean_env.setenv("CHANGEFLOW_TIMEOUT", "12.5")
        clean_env.setenv("CHANGEFLOW_CLASSIFICATION_STEP", "triage")
        clean_env.setenv("CHANGEFLOW_LOG_LEVEL", "debug")

        config = ChangeflowConfig.from_env()

        assert config.provider == "anthropic"
        assert config.model == "claude-test"
        assert config.anthropic_api_key == "ak-secret"
        assert config.anthropic_base_url == "https://proxy.internal/v1"
        assert config.request_timeout == 12.5
        assert config.classification_step == "triage"
        assert config.log_level == "DEBUG"

    def test_invalid_timeout_falls_back(self, clean_env: pytest.MonkeyPatch) -> None:
        """Test that an unparsable timeout keeps the default."""
        from litestar_changeflow.config import ChangeflowConfig

        clean_env.setenv("CHANGEFLOW_TIMEOUT", "soon")

        assert ChangeflowConfig.from_env().request_timeout == 60.0

    def test_to_dict_masks_keys(self) -> None:
        """Test that credentials are masked when the configuration is dumped."""
        from litestar_changeflow.config import ChangeflowConfig

        data = ChangeflowConfig(provider="openai", openai_api_key="sk-secret").to_dict()

        assert data["openai_api_key"] == "***"
        assert data["anthropic_api_key"] is None
        assert "sk-secret" not in str(data)


@pytest.mark.unit
class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_handler_installed_once(self) -> None:
        """Test that repeated calls do not stack handlers."""
        from litestar_changeflow.config import configure_logging

        logger = logging.getLogger("litestar_changeflow")
        before = list(logger.handlers)
        try:
            configure_logging("debug")
            configure_logging("INFO")

            added = [handler for handler in logger.handlers if handler not in before]
            assert len(added) <= 1
            assert logger.level == logging.INFO
        finally:
            for handler in [handler for handler in logger.handlers if handler not in before]:
                logger.removeHandler(handler)
            logger.setLevel(logging.NOTSET)
