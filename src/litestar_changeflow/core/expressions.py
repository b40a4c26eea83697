"""Guard expressions and edge effects.

Edge conditions are written in a small boolean language::

    linter.ok && typecheck.ok && tests.ok && smoke.ok
    error_rate_5xx > 1 || vitals.LCP_p75_delta > 0.2
    retries < 3

The grammar supports ``&&``/``and``, ``||``/``or``, ``!``/``not``, the six
comparison operators, parentheses, dotted field lookup and number, string,
``true``, ``false`` and ``null`` literals. Expressions are tokenized, parsed
into a small AST and interpreted against a read-only context; nothing is ever
handed to ``eval``. Evaluation fails closed: a malformed or erroring
expression evaluates to ``False``.
"""

from __future__ import annotations

import logging
import operator
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Union

from litestar_changeflow.core.state import CHECK_TOOLS

if TYPE_CHECKING:
    from litestar_changeflow.core.state import RunState
    from litestar_changeflow.core.types import RunVariables

__all__ = [
    "ConditionSyntaxError",
    "apply_effects",
    "build_condition_context",
    "compile_condition",
    "evaluate_condition",
]

logger = logging.getLogger(__name__)


class ConditionSyntaxError(ValueError):
    """Raised when a guard expression cannot be parsed."""


class _LookupFailed(LookupError):
    """A dotted name does not resolve in the evaluation context."""


_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<number>\d+\.\d*|\.\d+|\d+)
      | (?P<string>"[^"]*"|'[^']*')
      | (?P<op>&&|\|\||==|!=|<=|>=|<|>|!|\(|\)|-)
      | (?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
    )""",
    re.VERBOSE,
)

_KEYWORDS = {"and": "&&", "or": "||", "not": "!"}
_LITERALS: dict[str, Any] = {"true": True, "false": False, "null": None, "True": True, "False": False, "None": None}
_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@dataclass(frozen=True)
class _Token:
    kind: str
    value: Any


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Name:
    path: tuple[str, ...]


@dataclass(frozen=True)
class Not:
    operand: Node


@dataclass(frozen=True)
class BoolOp:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class Compare:
    op: str
    left: Node
    right: Node


Node = Union[Literal, Name, Not, BoolOp, Compare]


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    end = len(text.rstrip())
    while pos < end:
        match = _TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise ConditionSyntaxError(f"Unexpected character at {pos} in {text!r}")
        pos = match.end()
        if match.group("number") is not None:
            raw = match.group("number")
            tokens.append(_Token("literal", float(raw) if "." in raw else int(raw)))
        elif match.group("string") is not None:
            tokens.append(_Token("literal", match.group("string")[1:-1]))
        elif match.group("op") is not None:
            tokens.append(_Token("op", match.group("op")))
        else:
            name = match.group("name")
            if name in _KEYWORDS:
                tokens.append(_Token("op", _KEYWORDS[name]))
            elif name in _LITERALS:
                tokens.append(_Token("literal", _LITERALS[name]))
            else:
                tokens.append(_Token("name", tuple(name.split("."))))
    return tokens


class _Parser:
    """Recursive-descent parser producing the expression AST."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise ConditionSyntaxError("Empty expression")
        node = self._or()
        if self.pos != len(self.tokens):
            raise ConditionSyntaxError(f"Unexpected token {self.tokens[self.pos].value!r} in {self.text!r}")
        return node

    def _peek(self) -> _Token | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _accept(self, *ops: str) -> str | None:
        token = self._peek()
        if token is not None and token.kind == "op" and token.value in ops:
            self.pos += 1
            return token.value
        return None

    def _or(self) -> Node:
        node = self._and()
        while self._accept("||"):
            node = BoolOp("||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._not()
        while self._accept("&&"):
            node = BoolOp("&&", node, self._not())
        return node

    def _not(self) -> Node:
        if self._accept("!"):
            return Not(self._not())
        return self._comparison()

    def _comparison(self) -> Node:
        node = self._primary()
        op = self._accept(*_COMPARISONS)
        if op is not None:
            node = Compare(op, node, self._primary())
            if self._accept(*_COMPARISONS):
                raise ConditionSyntaxError(f"Chained comparisons are not supported in {self.text!r}")
        return node

    def _primary(self) -> Node:
        token = self._peek()
        if token is None:
            raise ConditionSyntaxError(f"Unexpected end of expression in {self.text!r}")
        self.pos += 1
        if token.kind == "literal":
            return Literal(token.value)
        if token.kind == "name":
            return Name(token.value)
        if token.value == "(":
            node = self._or()
            if not self._accept(")"):
                raise ConditionSyntaxError(f"Missing closing parenthesis in {self.text!r}")
            return node
        if token.value == "-":
            operand = self._peek()
            if operand is not None and operand.kind == "literal" and isinstance(operand.value, (int, float)):
                self.pos += 1
                return Literal(-operand.value)
        raise ConditionSyntaxError(f"Unexpected token {token.value!r} in {self.text!r}")


@lru_cache(maxsize=256)
def compile_condition(text: str) -> Node:
    """Parse a guard expression into its AST.

    Args:
        text: The expression source.

    Returns:
        The root AST node. Results are cached per expression string.

    Raises:
        ConditionSyntaxError: If the expression is malformed.
    """
    return _Parser(text).parse()


def _lookup(path: tuple[str, ...], context: Mapping[str, Any]) -> Any:
    value: Any = context
    for part in path:
        if not isinstance(value, Mapping) or part not in value:
            raise _LookupFailed(".".join(path))
        value = value[part]
    return value


def _evaluate(node: Node, context: Mapping[str, Any]) -> Any:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Name):
        return _lookup(node.path, context)
    if isinstance(node, Not):
        return not _evaluate(node.operand, context)
    if isinstance(node, BoolOp):
        left = bool(_evaluate(node.left, context))
        if node.op == "&&":
            return left and bool(_evaluate(node.right, context))
        return left or bool(_evaluate(node.right, context))
    return _COMPARISONS[node.op](_evaluate(node.left, context), _evaluate(node.right, context))


def evaluate_condition(expression: str, context: Mapping[str, Any]) -> bool:
    """Evaluate a guard expression, failing closed.

    Args:
        expression: The guard expression.
        context: Read-only evaluation context, see :func:`build_condition_context`.

    Returns:
        The boolean outcome. Syntax errors, unknown names and type errors all
        yield ``False``.

    Example:
        >>> evaluate_condition("retries < 3", {"retries": 1})
        True
        >>> evaluate_condition("retries <", {"retries": 1})
        False
    """
    try:
        return bool(_evaluate(compile_condition(expression), context))
    except ConditionSyntaxError as exc:
        logger.warning("Malformed condition %r: %s", expression, exc)
    except _LookupFailed as exc:
        logger.debug("Condition %r references unknown field %s", expression, exc)
    except (TypeError, ValueError, ArithmeticError) as exc:
        logger.debug("Condition %r failed to evaluate: %s", expression, exc)
    return False


def build_condition_context(state: RunState) -> dict[str, Any]:
    """Build the evaluation context for guard expressions.

    The context exposes the run variables, one ``{"ok": bool}`` entry per
    quality check (``linter``, ``typecheck``, ``tests``, ``smoke``) taken from
    the latest matching tool result, and the latest collected metrics as
    ``error_rate_5xx`` and ``vitals`` (plus the full payload under ``metrics``).

    Args:
        state: The run state to read.

    Returns:
        A fresh dict; mutating it does not affect the run.
    """
    context: dict[str, Any] = dict(state.variables)
    for check, passed in state.check_results().items():
        context[check] = {"ok": passed, "tool": CHECK_TOOLS[check]}
    metrics = state.latest_metrics() or {}
    context["error_rate_5xx"] = metrics.get("error_rate_5xx", 0)
    context["vitals"] = metrics.get("vitals", {})
    context["metrics"] = metrics
    return context


_INCREMENT_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*\+\s*(-?\d+)\s*$")


def apply_effects(effects: Mapping[str, str] | None, variables: RunVariables) -> dict[str, Any]:
    """Apply edge effects to the run variables in place.

    ``var + N`` increments the current numeric value of ``var`` (missing or
    non-numeric values count as 0). Any other expression is assigned as a
    literal string.

    Args:
        effects: Mapping of variable name to effect expression.
        variables: Run variables to mutate.

    Returns:
        The assignments that were made.

    Example:
        >>> variables = {"retries": 0}
        >>> apply_effects({"retries": "retries + 1", "scope": "UI_SAFE"}, variables)
        {'retries': 1, 'scope': 'UI_SAFE'}
    """
    if not effects:
        return {}
    changes: dict[str, Any] = {}
    for name, expression in effects.items():
        match = _INCREMENT_RE.match(expression)
        if match is None:
            value: Any = expression
        else:
            current = variables.get(match.group(1), 0)
            if isinstance(current, bool) or not isinstance(current, (int, float)):
                logger.warning("Effect %r on non-numeric value %r, counting from 0", expression, current)
                current = 0
            value = current + int(match.group(2))
        variables[name] = value
        changes[name] = value
    return changes
