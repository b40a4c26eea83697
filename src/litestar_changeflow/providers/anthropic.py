"""Messages API adapter with ``tool_use`` content blocks."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from litestar_changeflow.exceptions import ProviderError
from litestar_changeflow.providers.base import CompletionResponse, HTTPCompletionProvider, ToolCallRequest

__all__ = ["AnthropicProvider"]

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(HTTPCompletionProvider):
    """Adapter for the Anthropic ``/messages`` API.

    The system prompt travels as the top-level ``system`` field and tool
    schemas are re-wrapped with an ``input_schema`` key. The response is a list
    of content blocks: ``text`` blocks are joined into the content, ``tool_use``
    blocks become tool call requests with already-decoded ``input`` arguments.

    Attributes:
        max_tokens: Completion token limit sent with every request.
    """

    name = "anthropic"
    default_base_url = "https://api.anthropic.com/v1"
    fallback_model = "claude-3-5-haiku-latest"

    def __init__(self, *, max_tokens: int = 1024, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.max_tokens = max_tokens

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "anthropic-version": ANTHROPIC_VERSION}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def build_payload(
        self,
        system: str,
        user: str,
        tool_schemas: Sequence[Mapping[str, Any]],
        model: str | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model or self.default_model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": user}],
        }
        if tool_schemas:
            payload["tools"] = [
                {
                    "name": schema["name"],
                    "description": schema.get("description", ""),
                    "input_schema": schema.get("parameters") or {"type": "object", "properties": {}},
                }
                for schema in tool_schemas
            ]
        return payload

    def parse_response(self, data: Mapping[str, Any]) -> CompletionResponse:
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise ProviderError(self.name, "response contains no content blocks")
        texts: list[str] = []
        calls: list[ToolCallRequest] = []
        for block in blocks:
            kind = block.get("type")
            if kind == "text" and block.get("text"):
                texts.append(block["text"])
            elif kind == "tool_use":
                if not block.get("name"):
                    raise ProviderError(self.name, "tool_use block without a name")
                calls.append(ToolCallRequest(name=block["name"], arguments=self._parse_arguments(block.get("input"))))
        return CompletionResponse(content="\n".join(texts) or None, tool_calls=tuple(calls))

    async def complete(
        self,
        system: str,
        user: str,
        tool_schemas: Sequence[Mapping[str, Any]] = (),
        *,
        model: str | None = None,
    ) -> CompletionResponse:
        data = await self._post("messages", self.build_payload(system, user, tool_schemas, model))
        return self.parse_response(data)
