"""Adapter for local OpenAI-compatible chat servers such as Ollama."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from litestar_changeflow.exceptions import ProviderError
from litestar_changeflow.providers.base import CompletionResponse
from litestar_changeflow.providers.openai import OpenAIProvider

__all__ = ["LocalProvider"]


class LocalProvider(OpenAIProvider):
    """Adapter for a local chat endpoint.

    Speaks the OpenAI chat-completions dialect, needs no API key, and also
    accepts Ollama's native ``/api/chat`` reply, where the message sits at the
    top level and tool call arguments are objects rather than JSON strings.
    """

    name = "local"
    default_base_url = "http://localhost:11434/v1"
    fallback_model = "llama3.1"

    def build_payload(
        self,
        system: str,
        user: str,
        tool_schemas: Sequence[Mapping[str, Any]],
        model: str | None,
    ) -> dict[str, Any]:
        payload = super().build_payload(system, user, tool_schemas, model)
        payload["stream"] = False
        return payload

    def parse_response(self, data: Mapping[str, Any]) -> CompletionResponse:
        if data.get("choices"):
            return super().parse_response(data)
        message = data.get("message")
        if isinstance(message, Mapping):
            return self.parse_message(message)
        raise ProviderError(self.name, "response contains neither choices nor message")
