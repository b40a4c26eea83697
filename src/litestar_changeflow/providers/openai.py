"""Chat-completions adapter with function calling."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from litestar_changeflow.exceptions import ProviderError
from litestar_changeflow.providers.base import CompletionResponse, HTTPCompletionProvider, ToolCallRequest

__all__ = ["OpenAIProvider"]


class OpenAIProvider(HTTPCompletionProvider):
    """Adapter for the OpenAI ``/chat/completions`` API.

    Tool schemas are offered as ``{"type": "function", "function": schema}``
    entries; tool calls come back under ``choices[0].message.tool_calls`` with
    JSON-encoded arguments.

    Example:
        >>> provider = OpenAIProvider(api_key="sk-...")
        >>> response = await provider.complete("You classify changes.", "Make the border thicker", TOOL_SCHEMAS)
    """

    name = "openai"
    default_base_url = "https://api.openai.com/v1"
    fallback_model = "gpt-4o-mini"
    completions_path = "chat/completions"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
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
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        if tool_schemas:
            payload["tools"] = [{"type": "function", "function": dict(schema)} for schema in tool_schemas]
            payload["tool_choice"] = "auto"
        return payload

    def parse_message(self, message: Mapping[str, Any]) -> CompletionResponse:
        """Map a chat ``message`` object onto the common response shape."""
        calls: list[ToolCallRequest] = []
        for raw in message.get("tool_calls") or []:
            function = raw.get("function") or {}
            name = function.get("name")
            if not name:
                raise ProviderError(self.name, "tool call without a function name")
            calls.append(ToolCallRequest(name=name, arguments=self._parse_arguments(function.get("arguments"))))
        content = message.get("content") or None
        return CompletionResponse(content=content, tool_calls=tuple(calls))

    def parse_response(self, data: Mapping[str, Any]) -> CompletionResponse:
        choices = data.get("choices")
        if not choices:
            raise ProviderError(self.name, "response contains no choices")
        return self.parse_message(choices[0].get("message") or {})

    async def complete(
        self,
        system: str,
        user: str,
        tool_schemas: Sequence[Mapping[str, Any]] = (),
        *,
        model: str | None = None,
    ) -> CompletionResponse:
        data = await self._post(self.completions_path, self.build_payload(system, user, tool_schemas, model))
        return self.parse_response(data)
