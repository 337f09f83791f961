"""
Error Taxonomy
==============
Typed exceptions for pipeline resolution and execution.

Components raise these; only the run orchestrator turns them into a run
outcome and only the CLI turns that outcome into a process exit code.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SecPipeError(Exception):
    """Base exception for all secpipe errors.

    Attributes:
        message: Human-readable message.
        details: Extra context (stage, tool, container name, captured stream, ...).
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        super().__init__(message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": dict(self.details),
        }


class DependencyMissing(SecPipeError):
    """Raised when a required binary or catalog file is absent."""


class CatalogError(SecPipeError):
    """Raised when a catalog file cannot be read, parsed or fails its schema."""


# Resolution-time errors


class ValidationError(SecPipeError):
    """Raised when a run request does not resolve against the catalogs."""


class MissingRequiredField(ValidationError):
    """Raised when a run request lacks a required field."""


class UnknownProfile(ValidationError):
    """Raised when the requested pipeline profile is not in the pipeline catalog."""


class UnknownTool(ValidationError):
    """Raised when a stage entry names a tool missing from the tool catalog."""


class UnknownToolProfile(ValidationError):
    """Raised when a stage entry names a tool profile the tool does not declare."""


class EmptyPipeline(ValidationError):
    """Raised when a pipeline profile has no entry in its Pipeline stage."""


class InvalidParameterValue(ValidationError):
    """Raised when a bound parameter value does not fit its declared data type."""


class UnresolvedTokenError(ValidationError):
    """Raised for an unknown {token} placeholder when strict tokens are enabled."""


class InvalidHostPath(ValidationError):
    """Raised when a volume, source or report path cannot be mounted."""


# Run-time errors


class ImageSyncFailure(SecPipeError):
    """Raised when listing or pulling tool images fails."""


class StorageError(SecPipeError):
    """Raised when the run's storage cannot be prepared."""


class VolumeCreateFailure(StorageError):
    """Raised when the ephemeral data volume cannot be created."""


class PermissionFixFailure(StorageError):
    """Raised when the ownership fix-up helper container fails."""


class StorageLockTimeout(StorageError):
    """Raised when another run holds the external storage path for too long."""


class ContainerLaunchFailure(SecPipeError):
    """Raised when a tool container exits non-zero, fails to spawn or times out."""

    def __init__(
        self,
        message: str,
        *,
        container_name: str,
        stderr: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        merged.setdefault("container_name", container_name)
        merged.setdefault("stderr", stderr)
        super().__init__(message, merged)
        self.container_name = container_name
        self.stderr = stderr


__all__ = [
    "SecPipeError",
    "DependencyMissing",
    "CatalogError",
    "ValidationError",
    "MissingRequiredField",
    "UnknownProfile",
    "UnknownTool",
    "UnknownToolProfile",
    "EmptyPipeline",
    "InvalidParameterValue",
    "UnresolvedTokenError",
    "InvalidHostPath",
    "ImageSyncFailure",
    "StorageError",
    "VolumeCreateFailure",
    "PermissionFixFailure",
    "StorageLockTimeout",
    "ContainerLaunchFailure",
]
