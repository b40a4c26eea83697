"""Core protocols for litestar-changeflow.

This module defines the Protocol-based interfaces for the external
collaborators of the engine: observers, completion providers and tools. Using
Protocol allows duck typing while maintaining type safety.
"""

from __future__ import annotations

from collections.abc import Awaitable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from litestar_changeflow.core.events import Message, RunSnapshot
    from litestar_changeflow.providers.base import CompletionResponse

__all__ = ["CompletionProvider", "Observer", "Tool"]


@runtime_checkable
class Observer(Protocol):
    """Receives fire-and-forget notifications from a running workflow.

    Both callbacks are synchronous and must return quickly. Exceptions raised by
    an observer are logged by the controller and never abort the run.

    Example:
        >>> class PrintObserver:
        ...     def on_state_change(self, snapshot: RunSnapshot) -> None:
        ...         print(snapshot.status, snapshot.current_step)
        ...
        ...     def on_message(self, message: Message) -> None:
        ...         print(f"[{message.role}] {message.text}")
    """

    def on_state_change(self, snapshot: RunSnapshot) -> None:
        """Called whenever the run state changes."""
        ...

    def on_message(self, message: Message) -> None:
        """Called for every human-readable message the run emits."""
        ...


@runtime_checkable
class CompletionProvider(Protocol):
    """Normalised interface over a text and tool-calling backend.

    Attributes:
        name: Short provider name used in logs and errors.
    """

    name: str

    async def complete(
        self,
        system: str,
        user: str,
        tool_schemas: Sequence[Mapping[str, Any]] = (),
        *,
        model: str | None = None,
    ) -> CompletionResponse:
        """Request one completion.

        Args:
            system: System instructions.
            user: User context.
            tool_schemas: JSON-schema tool descriptions offered to the backend.
            model: Optional model override.

        Returns:
            The response mapped onto the common content/tool-calls shape.

        Raises:
            ProviderError: On transport errors or non-success responses.
        """
        ...


class Tool(Protocol):
    """A named external capability callable with keyword arguments.

    Tools may be plain or async callables. Their return value becomes the
    ``result`` payload of the tool call record.
    """

    def __call__(self, **kwargs: Any) -> Any | Awaitable[Any]: ...
