"""Configuration for litestar-changeflow.

This module provides the :class:`ChangeflowConfig` dataclass, loadable from
environment variables, and a small helper to install a logging handler for
scripts and examples.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

__all__ = ["PROVIDER_NAMES", "ChangeflowConfig", "configure_logging"]

PROVIDER_NAMES = ("mock", "openai", "anthropic", "local")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class ChangeflowConfig:
    """Engine and provider configuration.

    Attributes:
        provider: Completion provider to use: ``mock``, ``openai``, ``anthropic`` or ``local``.
        model: Default model when a step carries no model hint.
        openai_api_key: API key for the OpenAI provider.
        anthropic_api_key: API key for the Anthropic provider.
        openai_base_url: Base URL of the chat-completions API.
        anthropic_base_url: Base URL of the messages API.
        local_base_url: Base URL of a local OpenAI-compatible server such as Ollama.
        request_timeout: Timeout in seconds for provider HTTP calls.
        classification_step: Id of the agent step whose answer seeds the scope variable.
        entry_step: Optional entry step override. Defaults to the manifest's first input step.
        terminal_step: Optional terminal step override. Defaults to the manifest's first output step.
        log_level: Level used by :func:`configure_logging`.
    """

    provider: str = "mock"
    model: str | None = None
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    anthropic_base_url: str = "https://api.anthropic.com/v1"
    local_base_url: str = "http://localhost:11434/v1"
    request_timeout: float = 60.0
    classification_step: str = "classify"
    entry_step: str | None = None
    terminal_step: str | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.provider = self.provider.lower()
        if self.provider not in PROVIDER_NAMES:
            raise ValueError(f"Unknown provider '{self.provider}', expected one of {', '.join(PROVIDER_NAMES)}")

    @classmethod
    def from_env(cls) -> ChangeflowConfig:
        """Load configuration from environment variables.

        Environment variables:
        - CHANGEFLOW_PROVIDER: Provider name (default ``mock``)
        - CHANGEFLOW_MODEL: Default model name
        - OPENAI_API_KEY / ANTHROPIC_API_KEY: Provider credentials
        - OPENAI_BASE_URL / ANTHROPIC_BASE_URL / CHANGEFLOW_LOCAL_BASE_URL: Endpoint overrides
        - CHANGEFLOW_TIMEOUT: Provider request timeout in seconds (float)
        - CHANGEFLOW_CLASSIFICATION_STEP: Classification step id
        - CHANGEFLOW_LOG_LEVEL: Log level name

        Returns:
            ChangeflowConfig instance with environment values
        """

        def parse_float(value: str | None, default: float) -> float:
            if value is None:
                return default
            try:
                return float(value)
            except ValueError:
                return default

        defaults = cls()
        return cls(
            provider=os.getenv("CHANGEFLOW_PROVIDER", defaults.provider),
            model=os.getenv("CHANGEFLOW_MODEL") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            openai_base_url=os.getenv("OPENAI_BASE_URL", defaults.openai_base_url),
            anthropic_base_url=os.getenv("ANTHROPIC_BASE_URL", defaults.anthropic_base_url),
            local_base_url=os.getenv("CHANGEFLOW_LOCAL_BASE_URL", defaults.local_base_url),
            request_timeout=parse_float(os.getenv("CHANGEFLOW_TIMEOUT"), defaults.request_timeout),
            classification_step=os.getenv("CHANGEFLOW_CLASSIFICATION_STEP", defaults.classification_step),
            log_level=os.getenv("CHANGEFLOW_LOG_LEVEL", defaults.log_level).upper(),
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary, masking credentials."""
        return {
            "provider": self.provider,
            "model": self.model,
            "openai_api_key": "***" if self.openai_api_key else None,
            "anthropic_api_key": "***" if self.anthropic_api_key else None,
            "openai_base_url": self.openai_base_url,
            "anthropic_base_url": self.anthropic_base_url,
            "local_base_url": self.local_base_url,
            "request_timeout": self.request_timeout,
            "classification_step": self.classification_step,
            "entry_step": self.entry_step,
            "terminal_step": self.terminal_step,
            "log_level": self.log_level,
        }


def configure_logging(level: str | int = "INFO") -> None:
    """Install a console handler on the ``litestar_changeflow`` logger.

    Intended for scripts and examples; the library itself never configures
    logging on import.

    Args:
        level: Log level name or number.
    """
    logger = logging.getLogger("litestar_changeflow")
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    if not any(getattr(handler, "_changeflow", False) for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._changeflow = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
