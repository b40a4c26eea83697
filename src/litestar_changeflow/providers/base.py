"""Completion provider base classes.

Every backend adapter maps its own request and response shape onto the common
:class:`CompletionResponse`, so the node executor never knows which backend is
active. HTTP adapters share :class:`HTTPCompletionProvider`, which owns the
``httpx.AsyncClient`` plumbing and the error mapping to
:class:`~litestar_changeflow.exceptions.ProviderError`.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx

from litestar_changeflow.exceptions import ProviderError

__all__ = [
    "BaseCompletionProvider",
    "CompletionResponse",
    "HTTPCompletionProvider",
    "MockProvider",
    "ToolCallRequest",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool call requested by the backend.

    Attributes:
        name: Tool name.
        arguments: Keyword arguments for the tool.
    """

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CompletionResponse:
    """Backend-independent completion result.

    Attributes:
        content: Text content, if the backend produced any.
        tool_calls: Requested tool calls in the order the backend returned them.
    """

    content: str | None = None
    tool_calls: tuple[ToolCallRequest, ...] = ()


class BaseCompletionProvider(ABC):
    """Base class for completion provider adapters."""

    name: ClassVar[str] = "base"

    @abstractmethod
    async def complete(
        self,
        system: str,
        user: str,
        tool_schemas: Sequence[Mapping[str, Any]] = (),
        *,
        model: str | None = None,
    ) -> CompletionResponse:
        """Request one completion. See :class:`~litestar_changeflow.core.protocols.CompletionProvider`."""

    async def aclose(self) -> None:
        """Release any resources held by the provider."""


class MockProvider(BaseCompletionProvider):
    """Canned provider used when no credentials are configured.

    Attributes:
        content: Text returned for every request.
        tool_calls: Tool calls returned for every request.
        requests: Every ``(system, user, model)`` request received, for inspection.

    Example:
        >>> provider = MockProvider()
        >>> response = await provider.complete("Classify", "Make the card border thicker")
        >>> "UI_SAFE" in response.content
        True
    """

    name = "mock"

    DEFAULT_CONTENT = (
        "Classified as UI_SAFE. Plan: 1) Search for the affected component, "
        "2) Generate a minimal diff, 3) Run checks."
    )

    def __init__(self, content: str | None = None, tool_calls: Sequence[ToolCallRequest] = ()) -> None:
        self.content = content if content is not None else self.DEFAULT_CONTENT
        self.tool_calls = tuple(tool_calls)
        self.requests: list[tuple[str, str, str | None]] = []

    async def complete(
        self,
        system: str,
        user: str,
        tool_schemas: Sequence[Mapping[str, Any]] = (),
        *,
        model: str | None = None,
    ) -> CompletionResponse:
        self.requests.append((system, user, model))
        return CompletionResponse(content=self.content, tool_calls=self.tool_calls)


class HTTPCompletionProvider(BaseCompletionProvider):
    """Shared plumbing for adapters talking to an HTTP JSON API.

    Attributes:
        base_url: API base URL without trailing slash.
        default_model: Model used when the request carries no override.

    Provide ``client`` to control timeouts, proxies or transports (tests pass an
    ``httpx.AsyncClient`` wrapping ``httpx.MockTransport``). A client created by
    the provider is closed by :meth:`aclose`.
    """

    default_base_url: ClassVar[str] = ""
    fallback_model: ClassVar[str] = ""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.default_model = model or self.fallback_model
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(timeout=timeout)

    @abstractmethod
    def _headers(self) -> dict[str, str]:
        """Request headers, including credentials."""

    async def _post(self, path: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        """POST ``payload`` as JSON and return the decoded JSON body.

        Raises:
            ProviderError: On transport errors, non-success status codes or a
                body that is not a JSON object.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug("POST %s (provider=%s)", url, self.name)
        try:
            response = await self._http.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.error("%s request to %s failed: %s", self.name, url, exc)
            raise ProviderError(self.name, f"request failed: {exc}") from exc

        if response.is_error:
            detail = response.text[:500] or response.reason_phrase
            logger.error("%s returned HTTP %s: %s", self.name, response.status_code, detail)
            raise ProviderError(self.name, detail, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(self.name, "response body is not valid JSON", response.status_code) from exc
        if not isinstance(data, dict):
            raise ProviderError(self.name, "response body is not a JSON object", response.status_code)
        return data

    def _parse_arguments(self, raw: Any) -> dict[str, Any]:
        """Decode tool call arguments given as a JSON string or an object."""
        if raw is None or raw == "":
            return {}
        if isinstance(raw, dict):
            return raw
        if isinstance(raw, str):
            try:
                decoded = json.loads(raw)
            except ValueError as exc:
                raise ProviderError(self.name, f"tool call arguments are not valid JSON: {raw[:200]}") from exc
            if isinstance(decoded, dict):
                return decoded
        raise ProviderError(self.name, f"tool call arguments must be an object, got {type(raw).__name__}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
