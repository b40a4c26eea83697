"""Manifest registry.

This module provides a registry for storing and retrieving workflow manifests
by id and version. Manifests are validated when they are registered, so a run
never discovers a dangling edge halfway through.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from litestar_changeflow.exceptions import ManifestNotFoundError

if TYPE_CHECKING:
    from litestar_changeflow.core.definition import WorkflowManifest

__all__ = ["ManifestRegistry"]

logger = logging.getLogger(__name__)


def _version_key(version: str) -> tuple[tuple[int, object], ...]:
    """Sort key ordering ``1.10`` after ``1.9`` and numbers before labels."""
    return tuple((0, int(part)) if part.isdigit() else (1, part) for part in version.split("."))


class ManifestRegistry:
    """Registry for storing and retrieving workflow manifests.

    Attributes:
        _manifests: Nested dict mapping id -> version -> WorkflowManifest.

    Example:
        >>> registry = ManifestRegistry()
        >>> registry.register(default_manifest(), tools=invoker.names())
        >>> registry.get("vibe-coder-live").version
        '1.0'
    """

    def __init__(self, manifests: Iterable[WorkflowManifest] | None = None) -> None:
        """Initialize the registry.

        Args:
            manifests: Optional manifests to register right away.
        """
        self._manifests: dict[str, dict[str, WorkflowManifest]] = {}
        for manifest in manifests or ():
            self.register(manifest)

    def register(self, manifest: WorkflowManifest, tools: Iterable[str] | None = None) -> None:
        """Validate and register a manifest.

        Args:
            manifest: The manifest to register.
            tools: Optional tool catalogue to validate tool steps against.

        Raises:
            ManifestValidationError: If the manifest is structurally invalid.
        """
        manifest.validate_or_raise(tools)
        self._manifests.setdefault(manifest.id, {})[manifest.version] = manifest
        logger.debug("Registered manifest %s version %s", manifest.id, manifest.version)

    def get(self, manifest_id: str, version: str | None = None) -> WorkflowManifest:
        """Retrieve a manifest by id and optional version.

        Args:
            manifest_id: The manifest id.
            version: The version. If None, returns the latest version.

        Returns:
            The requested manifest.

        Raises:
            ManifestNotFoundError: If the id or version is not registered.
        """
        versions = self._manifests.get(manifest_id)
        if not versions:
            raise ManifestNotFoundError(manifest_id)
        if version is None:
            version = max(versions, key=_version_key)
        if version not in versions:
            raise ManifestNotFoundError(manifest_id, version)
        return versions[version]

    def list_manifests(self, latest_only: bool = True) -> list[WorkflowManifest]:
        """List registered manifests.

        Args:
            latest_only: If True, only return the latest version of each manifest.

        Returns:
            List of manifests.
        """
        manifests: list[WorkflowManifest] = []
        for versions in self._manifests.values():
            if latest_only:
                manifests.append(versions[max(versions, key=_version_key)])
            else:
                manifests.extend(versions.values())
        return manifests

    def unregister(self, manifest_id: str, version: str | None = None) -> None:
        """Remove a manifest, or one version of it.

        Args:
            manifest_id: The manifest id.
            version: The specific version to remove. If None, removes all versions.
        """
        if manifest_id not in self._manifests:
            return
        if version is None:
            del self._manifests[manifest_id]
            return
        self._manifests[manifest_id].pop(version, None)
        if not self._manifests[manifest_id]:
            del self._manifests[manifest_id]

    def has_manifest(self, manifest_id: str, version: str | None = None) -> bool:
        if manifest_id not in self._manifests:
            return False
        return version is None or version in self._manifests[manifest_id]

    def get_versions(self, manifest_id: str) -> list[str]:
        """Get all registered versions of a manifest.

        Raises:
            ManifestNotFoundError: If the id is not registered.
        """
        if manifest_id not in self._manifests:
            raise ManifestNotFoundError(manifest_id)
        return list(self._manifests[manifest_id])
