"""Uniform invocation wrapper around named tools.

The :class:`ToolInvoker` maps tool names to plain or async callables and turns
every invocation into a :class:`~litestar_changeflow.core.state.ToolCallRecord`,
whether the tool succeeded or raised.
"""

from __future__ import annotations

import copy
import inspect
import logging
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from litestar_changeflow.core.state import ToolCallRecord
from litestar_changeflow.exceptions import UnknownToolError
from litestar_changeflow.tools.schemas import get_schema

if TYPE_CHECKING:
    from litestar_changeflow.core.protocols import Tool

__all__ = ["ToolInvoker"]

logger = logging.getLogger(__name__)


class ToolInvoker:
    """Registry and async call wrapper for named tools.

    Tools are called with keyword arguments. A tool raising any exception
    produces a record with ``ok=False`` and the error text instead of
    propagating, as does invoking a name that was never registered.

    Example:
        >>> invoker = ToolInvoker()
        >>> @invoker.tool("run_linter")
        ... async def run_linter() -> dict:
        ...     return {"ok": True, "errors": []}
        >>> record = await invoker.invoke("run_linter", {})
        >>> record.ok, record.result["ok"]
        (True, True)
    """

    def __init__(self, tools: Mapping[str, Tool] | None = None) -> None:
        """Initialize the invoker.

        Args:
            tools: Optional initial mapping of tool name to callable.
        """
        self._tools: dict[str, Tool] = {}
        self._schemas: dict[str, dict[str, Any]] = {}
        for name, fn in (tools or {}).items():
            self.register(name, fn)

    def register(self, name: str, fn: Tool, schema: Mapping[str, Any] | None = None) -> None:
        """Register a tool under ``name``.

        Args:
            name: Tool name as referenced by manifests and completion providers.
            fn: Plain or async callable accepting keyword arguments.
            schema: Optional JSON-schema description. Defaults to the catalogue
                entry of the same name, when there is one.
        """
        self._tools[name] = fn
        resolved = dict(schema) if schema is not None else get_schema(name)
        if resolved is not None:
            self._schemas[name] = resolved
        logger.debug("Registered tool %s", name)

    def tool(self, name: str, schema: Mapping[str, Any] | None = None) -> Callable[[Tool], Tool]:
        """Decorator form of :meth:`register`."""

        def decorator(fn: Tool) -> Tool:
            self.register(name, fn, schema)
            return fn

        return decorator

    def unregister(self, name: str) -> None:
        """Remove a tool.

        Raises:
            UnknownToolError: If the tool is not registered.
        """
        if name not in self._tools:
            raise UnknownToolError(name)
        del self._tools[name]
        self._schemas.pop(name, None)

    def get(self, name: str) -> Tool:
        """Look up a tool by name.

        Raises:
            UnknownToolError: If the tool is not registered.
        """
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def schemas(self, names: Sequence[str] | None = None) -> list[dict[str, Any]]:
        """Return JSON-schema descriptions of the registered tools.

        Args:
            names: Restrict the result to these tool names.

        Returns:
            Schemas in registration order, skipping tools without one.
        """
        selected = self._tools if names is None else [name for name in names if name in self._tools]
        return [self._schemas[name] for name in selected if name in self._schemas]

    async def invoke(self, name: str, args: Mapping[str, Any] | None = None) -> ToolCallRecord:
        """Invoke a tool and record the outcome.

        Args:
            name: Tool name.
            args: Keyword arguments for the tool.

        Returns:
            The call record. ``ok`` is False when the tool is unknown or raised.
        """
        call_args = copy.deepcopy(dict(args or {}))
        timestamp = datetime.now(timezone.utc)
        start = time.perf_counter()
        try:
            fn = self.get(name)
            result = fn(**copy.deepcopy(call_args))
            if inspect.isawaitable(result):
                result = await result
            result = copy.deepcopy(result)
        except Exception as exc:
            duration = (time.perf_counter() - start) * 1000
            logger.warning("Tool %s failed after %.1fms: %s", name, duration, exc)
            return ToolCallRecord(
                tool=name,
                args=call_args,
                result=None,
                ok=False,
                timestamp=timestamp,
                duration=duration,
                error=str(exc) or type(exc).__name__,
            )

        duration = (time.perf_counter() - start) * 1000
        logger.debug("Tool %s completed in %.1fms", name, duration)
        return ToolCallRecord(
            tool=name,
            args=call_args,
            result=result,
            ok=True,
            timestamp=timestamp,
            duration=duration,
        )
