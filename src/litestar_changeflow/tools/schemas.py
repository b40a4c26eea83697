"""JSON-schema descriptions of the change pipeline tools.

These are offered to completion providers so an agent step can request tool
calls. The format is the ``name``/``description``/``parameters`` shape used by
function-calling APIs; provider adapters re-wrap it for their backend.
"""

from __future__ import annotations

from typing import Any

__all__ = ["TOOL_SCHEMAS", "get_schema"]

_SCOPES = ["DATA_ONLY", "UI_SAFE", "LOGIC_STRICT"]
_NO_PARAMETERS: dict[str, Any] = {"type": "object", "properties": {}}

TOOL_SCHEMAS: list[dict[str, Any]] = [
    {
        "name": "code_search",
        "description": "Search repository code. Returns brief matches with file paths and line spans.",
        "parameters": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 2},
                "globs": {
                    "type": "array",
                    "items": {"type": "string"},
                    "default": ["src/**/*.tsx", "src/**/*.ts", "src/**/*.jsx", "src/**/*.js"],
                },
            },
            "required": ["query"],
        },
    },
    {
        "name": "write_diff",
        "description": "Apply a minimal unified diff within allowed paths. Rejects edits outside scope.",
        "parameters": {
            "type": "object",
            "properties": {
                "unified_diff": {"type": "string", "minLength": 10},
                "rationale": {"type": "string", "minLength": 5},
                "scope": {"type": "string", "enum": _SCOPES},
            },
            "required": ["unified_diff", "rationale", "scope"],
        },
    },
    {
        "name": "sandbox_start",
        "description": "Start an ephemeral sandbox to build and run tests. Defaults to no network.",
        "parameters": {
            "type": "object",
            "properties": {
                "kind": {"type": "string", "enum": ["wasm", "container"], "default": "container"},
                "net": {"type": "string", "enum": ["off", "egress-allowlist"], "default": "off"},
            },
        },
    },
    {"name": "run_linter", "description": "Run the linter and formatter check.", "parameters": _NO_PARAMETERS},
    {"name": "run_typecheck", "description": "Run the type checker.", "parameters": _NO_PARAMETERS},
    {
        "name": "run_tests",
        "description": "Run unit and integration tests.",
        "parameters": {
            "type": "object",
            "properties": {
                "selectors": {"type": "array", "items": {"type": "string"}},
                "budget_seconds": {"type": "integer", "minimum": 5, "maximum": 600, "default": 180},
            },
        },
    },
    {
        "name": "run_smoke",
        "description": "Run smoke checks against a local preview server.",
        "parameters": {
            "type": "object",
            "properties": {"url": {"type": "string", "format": "uri", "default": "http://localhost:5173"}},
        },
    },
    {
        "name": "run_app_preview",
        "description": "Start the app in preview mode and return a shareable URL.",
        "parameters": _NO_PARAMETERS,
    },
    {
        "name": "create_flag",
        "description": "Create a feature flag key.",
        "parameters": {
            "type": "object",
            "properties": {"key": {"type": "string"}, "description": {"type": "string", "default": ""}},
            "required": ["key"],
        },
    },
    {
        "name": "toggle_flag",
        "description": "Toggle a feature flag for an audience.",
        "parameters": {
            "type": "object",
            "properties": {
                "key": {"type": "string"},
                "onoff": {"type": "string", "enum": ["on", "off"]},
                "audience": {
                    "type": "string",
                    "enum": ["self", "dev", "canary1", "p1", "p10", "all"],
                    "default": "self",
                },
            },
            "required": ["key", "onoff"],
        },
    },
    {
        "name": "collect_metrics",
        "description": "Return the current 5xx error rate and web-vitals deltas against baseline.",
        "parameters": {
            "type": "object",
            "properties": {"window_minutes": {"type": "integer", "minimum": 1, "maximum": 120, "default": 10}},
        },
    },
    {
        "name": "commit_or_pr",
        "description": "Create a commit or pull request with plan, diffs, logs and reviewers.",
        "parameters": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "body": {"type": "string"},
                "reviewers": {"type": "array", "items": {"type": "string"}, "default": []},
            },
            "required": ["title", "body"],
        },
    },
]


def get_schema(name: str) -> dict[str, Any] | None:
    """Return the schema for tool ``name``, if it is part of the catalogue."""
    for schema in TOOL_SCHEMAS:
        if schema["name"] == name:
            return schema
    return None
