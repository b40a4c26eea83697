"""Completion provider adapters.

One adapter per backend, all returning :class:`CompletionResponse`. Use
:func:`get_provider` to build the adapter selected by a
:class:`~litestar_changeflow.config.ChangeflowConfig`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from litestar_changeflow.providers.anthropic import AnthropicProvider
from litestar_changeflow.providers.base import (
    BaseCompletionProvider,
    CompletionResponse,
    HTTPCompletionProvider,
    MockProvider,
    ToolCallRequest,
)
from litestar_changeflow.providers.local import LocalProvider
from litestar_changeflow.providers.openai import OpenAIProvider

if TYPE_CHECKING:
    import httpx

    from litestar_changeflow.config import ChangeflowConfig

__all__ = [
    "AnthropicProvider",
    "BaseCompletionProvider",
    "CompletionResponse",
    "HTTPCompletionProvider",
    "LocalProvider",
    "MockProvider",
    "OpenAIProvider",
    "ToolCallRequest",
    "get_provider",
]

logger = logging.getLogger(__name__)


def get_provider(config: ChangeflowConfig, client: httpx.AsyncClient | None = None) -> BaseCompletionProvider:
    """Build the completion provider selected by ``config``.

    API providers without a configured key fall back to :class:`MockProvider`.

    Args:
        config: The changeflow configuration.
        client: Optional shared HTTP client for HTTP adapters.

    Returns:
        A provider instance.

    Example:
        >>> provider = get_provider(ChangeflowConfig(provider="openai", openai_api_key="sk-..."))
        >>> provider.name
        'openai'
    """
    common = {"model": config.model, "timeout": config.request_timeout, "client": client}
    if config.provider == "openai":
        if config.openai_api_key:
            return OpenAIProvider(api_key=config.openai_api_key, base_url=config.openai_base_url, **common)
        logger.warning("No OpenAI API key configured, using the mock provider")
    elif config.provider == "anthropic":
        if config.anthropic_api_key:
            return AnthropicProvider(api_key=config.anthropic_api_key, base_url=config.anthropic_base_url, **common)
        logger.warning("No Anthropic API key configured, using the mock provider")
    elif config.provider == "local":
        return LocalProvider(base_url=config.local_base_url, **common)
    return MockProvider()
