"""Deterministic stand-ins for the change pipeline tools.

:class:`SimulatedTools` answers every catalogue tool with a canned payload so
the built-in pipeline can run end to end without a repository, sandbox, flag
service or metrics backend. Check outcomes, metrics and failures are
configurable, which makes it the usual fixture for driving specific branches.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import count
from typing import Any

from litestar_changeflow.tools.invoker import ToolInvoker

__all__ = ["SimulatedTools"]

_DIFF_FILE_RE = re.compile(r"^\+\+\+ (?:b/)?(\S+)", re.MULTILINE)


@dataclass
class SimulatedTools:
    """Configurable simulated tool set.

    Attributes:
        checks: Outcome reported by each check tool, keyed by tool name.
        metrics: Payload returned by ``collect_metrics``.
        failing: Tool names that raise instead of answering.
        calls: Names of the tools called so far, in order.

    Example:
        >>> tools = SimulatedTools()
        >>> tools.checks["run_linter"] = False
        >>> invoker = tools.as_invoker()
    """

    checks: dict[str, bool] = field(
        default_factory=lambda: {"run_linter": True, "run_typecheck": True, "run_tests": True, "run_smoke": True}
    )
    metrics: dict[str, Any] = field(
        default_factory=lambda: {
            "error_rate_5xx": 0.3,
            "vitals": {"LCP_p75_delta": 0.05, "FID_p75_delta": -0.02, "CLS_p75_delta": 0.01},
        }
    )
    failing: set[str] = field(default_factory=set)
    calls: list[str] = field(default_factory=list)
    _sandbox_ids: count = field(default_factory=lambda: count(1), repr=False)

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise RuntimeError(f"{name} is unavailable")

    def _check(self, name: str) -> dict[str, Any]:
        self._enter(name)
        passed = self.checks.get(name, True)
        return {
            "ok": passed,
            "errors": [] if passed else [f"{name} reported failures"],
            "warnings": [],
        }

    async def code_search(self, query: str = "", globs: list[str] | None = None) -> dict[str, Any]:
        self._enter("code_search")
        return {
            "matches": [
                {"file": "src/features/nodes/PersonNode.tsx", "line": 45, "snippet": '<Card className="w-64">'},
                {"file": "src/components/ui/card.tsx", "line": 12, "snippet": "const Card = React.forwardRef("},
            ],
            "totalMatches": 2,
            "query": query,
        }

    async def write_diff(
        self, unified_diff: str = "", rationale: str = "", scope: str | None = None
    ) -> dict[str, Any]:
        self._enter("write_diff")
        return {"applied": True, "filesChanged": _DIFF_FILE_RE.findall(unified_diff), "scope": scope}

    async def sandbox_start(self, kind: str = "container", net: str = "off") -> dict[str, Any]:
        self._enter("sandbox_start")
        return {"id": f"sandbox_{next(self._sandbox_ids)}", "status": "running", "kind": kind, "net": net}

    async def run_linter(self) -> dict[str, Any]:
        return self._check("run_linter")

    async def run_typecheck(self) -> dict[str, Any]:
        return self._check("run_typecheck")

    async def run_tests(self, selectors: list[str] | None = None, budget_seconds: int = 180) -> dict[str, Any]:
        result = self._check("run_tests")
        result.update(passed=12 if result["ok"] else 10, failed=0 if result["ok"] else 2, skipped=1)
        return result

    async def run_smoke(self, url: str = "http://localhost:5173") -> dict[str, Any]:
        result = self._check("run_smoke")
        result.update(statusCode=200 if result["ok"] else 500, url=url)
        return result

    async def run_app_preview(self) -> dict[str, Any]:
        self._enter("run_app_preview")
        return {"url": "http://localhost:5173", "hmr": True, "status": "ready"}

    async def create_flag(self, key: str, description: str = "") -> dict[str, Any]:
        self._enter("create_flag")
        return {"key": key, "created": True}

    async def toggle_flag(self, key: str, onoff: str, audience: str = "self") -> dict[str, Any]:
        self._enter("toggle_flag")
        return {"key": key, "created": False, "audience": audience, "state": onoff}

    async def collect_metrics(self, window_minutes: int = 10) -> dict[str, Any]:
        self._enter("collect_metrics")
        payload = dict(self.metrics)
        payload.update(timestamp=datetime.now(timezone.utc).isoformat(), windowMinutes=window_minutes)
        return payload

    async def commit_or_pr(self, title: str = "", body: str = "", reviewers: list[str] | None = None) -> dict[str, Any]:
        self._enter("commit_or_pr")
        return {"pr_number": 42, "url": "https://example.invalid/pulls/42", "title": title}

    def as_invoker(self, invoker: ToolInvoker | None = None) -> ToolInvoker:
        """Register every simulated tool on ``invoker`` (or a new one) and return it."""
        invoker = invoker or ToolInvoker()
        for name in (
            "code_search",
            "write_diff",
            "sandbox_start",
            "run_linter",
            "run_typecheck",
            "run_tests",
            "run_smoke",
            "run_app_preview",
            "create_flag",
            "toggle_flag",
            "collect_metrics",
            "commit_or_pr",
        ):
            invoker.register(name, getattr(self, name))
        return invoker
