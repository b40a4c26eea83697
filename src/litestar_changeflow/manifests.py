"""Built-in manifests and manifest (de)serialisation helpers.

``CHANGE_PIPELINE`` is the reference change pipeline: classify the request,
search and diff, run the sandboxed quality checks, reflect and retry up to
three times on failure, ask a human, then roll the change out behind a feature
flag with a metrics check that either widens the rollout or rolls it back.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from litestar_changeflow.core.definition import WorkflowManifest

__all__ = ["CHANGE_PIPELINE", "default_manifest", "dump_manifest", "load_manifest"]


def _toggle(step_id: str, onoff: str, audience: str) -> dict[str, Any]:
    return {
        "id": step_id,
        "kind": "tool",
        "label": "toggle_flag",
        "defaults": {"key": "{{feature_key}}", "onoff": onoff, "audience": audience},
    }


CHANGE_PIPELINE: dict[str, Any] = {
    "id": "vibe-coder-live",
    "version": "1.0",
    "variables": {"scope": "DATA_ONLY", "feature_key": "feature.vibe_change", "retries": 0},
    "nodes": [
        {"id": "start", "kind": "input", "label": "User Message"},
        {
            "id": "classify",
            "kind": "agent",
            "label": "Classify & Plan",
            "model": "gpt-4o-mini",
            "instructions": (
                "Classify into DATA_ONLY | UI_SAFE | LOGIC_STRICT; draft a numbered plan with acceptance "
                "criteria; never write files directly, only propose minimal unified diffs via write_diff; "
                "cap retries at 3 on failures."
            ),
        },
        {"id": "code_search", "kind": "tool", "label": "code_search"},
        {"id": "write_diff", "kind": "tool", "label": "write_diff"},
        {"id": "sandbox_start", "kind": "tool", "label": "sandbox_start", "defaults": {"kind": "container", "net": "off"}},
        {"id": "run_linter", "kind": "tool", "label": "run_linter"},
        {"id": "run_typecheck", "kind": "tool", "label": "run_typecheck"},
        {"id": "run_tests", "kind": "tool", "label": "run_tests", "defaults": {"budget_seconds": 180}},
        {"id": "run_smoke", "kind": "tool", "label": "run_smoke", "defaults": {"url": "http://localhost:5173/healthz"}},
        {"id": "gate_checks", "kind": "gate", "label": "All checks green?"},
        {"id": "run_preview", "kind": "tool", "label": "run_app_preview"},
        {"id": "approval_gate", "kind": "human_approval", "label": "Ship this change?"},
        {
            "id": "create_flag",
            "kind": "tool",
            "label": "create_flag",
            "defaults": {"key": "{{feature_key}}", "description": "Safe rollout of a generated change"},
        },
        _toggle("flag_self", "on", "self"),
        {"id": "metrics_canary", "kind": "tool", "label": "collect_metrics", "defaults": {"window_minutes": 10}},
        _toggle("flag_canary", "on", "canary1"),
        _toggle("flag_p10", "on", "p10"),
        _toggle("flag_all", "on", "all"),
        {"id": "commit_or_pr", "kind": "tool", "label": "commit_or_pr"},
        _toggle("rollback", "off", "all"),
        {
            "id": "reflect",
            "kind": "agent",
            "label": "Reflect & Repair",
            "model": "gpt-4o-mini",
            "instructions": (
                "Summarize failing checks; propose a smaller corrective diff strictly within scope; "
                "stop after 3 total retries."
            ),
        },
        {"id": "done", "kind": "output", "label": "Done"},
    ],
    "edges": [
        {"from": "start", "to": "classify"},
        {"from": "classify", "to": "code_search"},
        {"from": "code_search", "to": "write_diff"},
        {"from": "write_diff", "to": "sandbox_start"},
        {"from": "sandbox_start", "to": "run_linter"},
        {"from": "run_linter", "to": "run_typecheck"},
        {"from": "run_typecheck", "to": "run_tests"},
        {"from": "run_tests", "to": "run_smoke"},
        {"from": "run_smoke", "to": "gate_checks"},
        {"from": "gate_checks", "to": "run_preview", "condition": "linter.ok && typecheck.ok && tests.ok && smoke.ok"},
        {"from": "run_preview", "to": "approval_gate"},
        {"from": "approval_gate", "to": "create_flag", "condition": "approved"},
        {"from": "create_flag", "to": "flag_self"},
        {"from": "flag_self", "to": "metrics_canary"},
        {
            "from": "metrics_canary",
            "to": "flag_canary",
            "condition": "error_rate_5xx <= 1 && vitals.LCP_p75_delta <= 0.2",
        },
        {"from": "flag_canary", "to": "flag_p10"},
        {"from": "flag_p10", "to": "flag_all"},
        {"from": "flag_all", "to": "commit_or_pr"},
        {"from": "commit_or_pr", "to": "done"},
        {
            "from": "metrics_canary",
            "to": "rollback",
            "condition": "error_rate_5xx > 1 || vitals.LCP_p75_delta > 0.2",
        },
        {"from": "rollback", "to": "done"},
        {"from": "gate_checks", "to": "reflect", "condition": "otherwise"},
        {"from": "reflect", "to": "write_diff", "condition": "retries < 3", "effects": {"retries": "retries + 1"}},
        {"from": "reflect", "to": "done", "condition": "retries >= 3"},
    ],
}
"""The reference change pipeline in manifest format."""


def default_manifest() -> WorkflowManifest:
    """Return the built-in change pipeline as a validated manifest."""
    manifest = WorkflowManifest.from_dict(CHANGE_PIPELINE)
    manifest.validate_or_raise()
    return manifest


def load_manifest(source: str | Path | Mapping[str, Any], tools: Iterable[str] | None = None) -> WorkflowManifest:
    """Load and validate a manifest.

    Args:
        source: A dict in manifest format, a JSON document, or a path to a JSON file.
        tools: Optional tool catalogue to validate tool steps against.

    Returns:
        The validated manifest.

    Raises:
        ManifestValidationError: If the manifest is malformed or structurally invalid.
        ValueError: If ``source`` is a string that is neither JSON nor an existing path.

    Example:
        >>> manifest = load_manifest(Path("pipelines/change.json"), tools=invoker.names())
    """
    if isinstance(source, Mapping):
        data = source
    elif isinstance(source, Path):
        data = json.loads(source.read_text(encoding="utf-8"))
    elif source.lstrip().startswith("{"):
        data = json.loads(source)
    elif Path(source).is_file():
        data = json.loads(Path(source).read_text(encoding="utf-8"))
    else:
        raise ValueError(f"Cannot load manifest from {source[:80]!r}")

    manifest = WorkflowManifest.from_dict(data)
    manifest.validate_or_raise(tools)
    return manifest


def dump_manifest(manifest: WorkflowManifest, indent: int | None = 2) -> str:
    """Serialise a manifest to JSON in the format :func:`load_manifest` accepts."""
    return json.dumps(manifest.to_dict(), indent=indent, ensure_ascii=False)
