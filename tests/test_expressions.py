"""Tests for guard expressions, the condition context and edge effects."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest


def _record(tool: str, result: Any, ok: bool = True, args: dict | None = None) -> Any:
    from litestar_changeflow.core.state import ToolCallRecord

    return ToolCallRecord(
        tool=tool,
        args=args or {},
        result=result,
        ok=ok,
        timestamp=datetime.now(timezone.utc),
        duration=1.0,
    )


@pytest.mark.unit
class TestEvaluateCondition:
    """Tests for evaluate_condition."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("retries < 3", True),
            ("retries >= 3", False),
            ("retries == 1", True),
            ("retries != 1", False),
            ("scope == 'UI_SAFE'", True),
            ('scope == "DATA_ONLY"', False),
            ("linter.ok && tests.ok", True),
            ("linter.ok && smoke.ok", False),
            ("smoke.ok || linter.ok", True),
            ("!smoke.ok", True),
            ("not smoke.ok and linter.ok", True),
            ("(retries > 5 || linter.ok) && retries < 2", True),
            ("vitals.LCP_p75_delta <= 0.2", True),
            ("delta > -1", True),
            ("enabled == true", True),
            ("missing == null", False),
        ],
    )
    def test_grammar(self, expression: str, expected: bool) -> None:
        """Test the supported operators against a fixed context."""
        from litestar_changeflow.core.expressions import evaluate_condition

        context = {
            "retries": 1,
            "scope": "UI_SAFE",
            "linter": {"ok": True},
            "tests": {"ok": True},
            "smoke": {"ok": False},
            "vitals": {"LCP_p75_delta": 0.05},
            "delta": 0,
            "enabled": True,
        }

        assert evaluate_condition(expression, context) is expected

    @pytest.mark.parametrize(
        "expression",
        ["retries <", "retries < 3 <= 4", "(retries < 3", "retries $ 3", "", "__import__('os')"],
    )
    def test_malformed_expressions_fail_closed(self, expression: str) -> None:
        """Test that syntax errors evaluate to False instead of raising."""
        from litestar_changeflow.core.expressions import evaluate_condition

        assert evaluate_condition(expression, {"retries": 0}) is False

    def test_unknown_field_fails_closed(self) -> None:
        """Test that referencing a missing field evaluates to False."""
        from litestar_changeflow.core.expressions import evaluate_condition

        assert evaluate_condition("vitals.LCP_p75_delta > 0.2", {"vitals": {}}) is False
        assert evaluate_condition("vitals.LCP_p75_delta <= 0.2", {"vitals": {}}) is False

    def test_type_error_fails_closed(self) -> None:
        """Test that comparing incompatible types evaluates to False."""
        from litestar_changeflow.core.expressions import evaluate_condition

        assert evaluate_condition("scope < 3", {"scope": "UI_SAFE"}) is False

    def test_compile_condition_raises_on_syntax_error(self) -> None:
        """Test that compiling reports syntax errors explicitly."""
        from litestar_changeflow.core.expressions import ConditionSyntaxError, compile_condition

        with pytest.raises(ConditionSyntaxError):
            compile_condition("linter.ok &&")

    def test_compile_condition_is_cached(self) -> None:
        """Test that the same expression compiles to the same AST object."""
        from litestar_changeflow.core.expressions import compile_condition

        assert compile_condition("retries < 3") is compile_condition("retries < 3")


@pytest.mark.unit
class TestBuildConditionContext:
    """Tests for build_condition_context."""

    def test_checks_default_to_failed(self) -> None:
        """Test that checks which never ran are reported as not ok."""
        from litestar_changeflow.core.expressions import build_condition_context
        from litestar_changeflow.core.state import RunState

        context = build_condition_context(RunState(manifest_id="m", variables={"retries": 0}))

        assert context["retries"] == 0
        assert context["linter"] == {"ok": False, "tool": "run_linter"}
        assert context["error_rate_5xx"] == 0
        assert context["vitals"] == {}

    def test_latest_result_wins(self) -> None:
        """Test that the most recent call of a check tool decides its outcome."""
        from litestar_changeflow.core.expressions import build_condition_context
        from litestar_changeflow.core.state import RunState

        state = RunState(manifest_id="m")
        state.record(_record("run_linter", {"ok": False}))
        state.record(_record("run_linter", {"ok": True}))
        state.record(_record("run_tests", None, ok=False))

        context = build_condition_context(state)

        assert context["linter"]["ok"] is True
        assert context["tests"]["ok"] is False

    def test_metrics_exposed(self) -> None:
        """Test that the latest metrics payload is flattened into the context."""
        from litestar_changeflow.core.expressions import build_condition_context
        from litestar_changeflow.core.state import RunState

        state = RunState(manifest_id="m")
        state.record(_record("collect_metrics", {"error_rate_5xx": 1.7, "vitals": {"LCP_p75_delta": 0.3}}))

        context = build_condition_context(state)

        assert context["error_rate_5xx"] == 1.7
        assert context["vitals"]["LCP_p75_delta"] == 0.3
        assert context["metrics"]["error_rate_5xx"] == 1.7

    def test_context_is_a_copy(self) -> None:
        """Test that mutating the context leaves the run variables alone."""
        from litestar_changeflow.core.expressions import build_condition_context
        from litestar_changeflow.core.state import RunState

        state = RunState(manifest_id="m", variables={"retries": 0})
        build_condition_context(state)["retries"] = 99

        assert state.variables["retries"] == 0


@pytest.mark.unit
class TestApplyEffects:
    """Tests for apply_effects."""

    def test_increment(self) -> None:
        """Test that ``var + N`` increments the current value."""
        from litestar_changeflow.core.expressions import apply_effects

        variables = {"retries": 2}

        assert apply_effects({"retries": "retries + 1"}, variables) == {"retries": 3}
        assert variables["retries"] == 3

    def test_increment_missing_counts_from_zero(self) -> None:
        """Test that incrementing an unset variable starts from zero."""
        from litestar_changeflow.core.expressions import apply_effects

        variables: dict[str, Any] = {}
        apply_effects({"attempts": "attempts + 2"}, variables)

        assert variables == {"attempts": 2}

    def test_increment_non_numeric_counts_from_zero(self) -> None:
        """Test that incrementing a non-numeric value restarts from zero."""
        from litestar_changeflow.core.expressions import apply_effects

        variables: dict[str, Any] = {"retries": "many"}
        apply_effects({"retries": "retries + 1"}, variables)

        assert variables["retries"] == 1

    def test_literal_assignment(self) -> None:
        """Test that other expressions are assigned literally."""
        from litestar_changeflow.core.expressions import apply_effects

        variables: dict[str, Any] = {"scope": "DATA_ONLY"}
        apply_effects({"scope": "LOGIC_STRICT", "note": "retries * 2"}, variables)

        assert variables == {"scope": "LOGIC_STRICT", "note": "retries * 2"}

    def test_no_effects(self) -> None:
        """Test that absent effects change nothing."""
        from litestar_changeflow.core.expressions import apply_effects

        variables = {"retries": 0}

        assert apply_effects(None, variables) == {}
        assert variables == {"retries": 0}
