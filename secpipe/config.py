"""
Centralized Configuration
=========================
Centralized configuration values and constants for secpipe.

This module provides:
- Catalog and log locations
- Container runtime conventions (in-container paths, service user, helper image)
- Timeout configuration for runtime calls
- Environment variable defaults

Every value can be overridden through a SECPIPE_* environment variable.
"""

import os
from dataclasses import dataclass


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class PathsConfig:
    """Where catalogs are read from and where logs are written."""

    CATALOG_DIR: str = os.getenv("SECPIPE_CATALOG_DIR", "./catalogs")
    LOG_DIR: str = os.getenv("SECPIPE_LOG_DIR", "./logs")

    # Main catalog file names inside CATALOG_DIR
    PIPELINE_CATALOG: str = os.getenv("SECPIPE_PIPELINE_CATALOG", "pipelines.yaml")
    TOOL_CATALOG: str = os.getenv("SECPIPE_TOOL_CATALOG", "tools.yaml")

    # App overlays: <app-name><suffix> inside CATALOG_DIR
    APP_PIPELINE_SUFFIX: str = "-pipeline.yaml"
    APP_TOOL_SUFFIX: str = "-tool.yaml"


@dataclass(frozen=True)
class ContainerConfig:
    """Container runtime conventions shared by every tool image."""

    RUNTIME_BINARY: str = os.getenv("SECPIPE_RUNTIME", "docker")

    # Mount point of the run's storage inside every container
    CONTAINER_ROOT: str = "/opt/appsecpipeline"
    SOURCE_SUBDIR: str = "source"
    REPORTS_SUBDIR: str = "reports"

    # Non-root account the tool images run as
    SERVICE_USER: str = os.getenv("SECPIPE_SERVICE_USER", "appsecpipeline")

    # Image used by the ownership fix-up helper container
    BASE_IMAGE: str = os.getenv("SECPIPE_BASE_IMAGE", "appsecpipeline/base:1.4")

    NETWORK_MODE: str = "host"
    VOLUME_PREFIX: str = "data_"
    PERMS_CONTAINER_PREFIX: str = "set-perms_"


@dataclass(frozen=True)
class TimeoutConfig:
    """Centralized timeout configuration in seconds."""

    # One tool container, start to exit
    CONTAINER_RUN: int = int(os.getenv("SECPIPE_CONTAINER_TIMEOUT", "3600"))

    # Volume create, image listing and the permission helper
    RUNTIME_CALL: int = int(os.getenv("SECPIPE_RUNTIME_TIMEOUT", "300"))

    # A single image pull
    IMAGE_PULL: int = int(os.getenv("SECPIPE_PULL_TIMEOUT", "1800"))

    # Waiting for another run to release an external storage path
    STORAGE_LOCK: int = int(os.getenv("SECPIPE_STORAGE_LOCK_TIMEOUT", "30"))


@dataclass(frozen=True)
class ImageSyncConfig:
    """Image pull retry settings."""

    PULL_ATTEMPTS: int = int(os.getenv("SECPIPE_PULL_ATTEMPTS", "3"))
    PULL_BACKOFF_MAX: int = int(os.getenv("SECPIPE_PULL_BACKOFF_MAX", "30"))


@dataclass(frozen=True)
class CompilerConfig:
    """Command compilation policy."""

    # Unknown {token} placeholders fail the run instead of warning
    STRICT_TOKENS: bool = _env_flag("SECPIPE_STRICT_TOKENS")

    # Guards against runaway recursive token expansion
    MAX_TOKEN_DEPTH: int = 10


@dataclass(frozen=True)
class LoggingConfig:
    """Console and file logging levels."""

    LEVEL: str = os.getenv("SECPIPE_LOG_LEVEL", "INFO").upper()
    FILE_LEVEL: str = os.getenv("SECPIPE_FILE_LOG_LEVEL", "DEBUG").upper()


@dataclass(frozen=True)
class TracingConfig:
    """Tracing configuration."""

    SERVICE_NAME: str = "secpipe"
    OTLP_ENDPOINT: str = os.getenv("OTLP_ENDPOINT", "http://localhost:4318/v1/traces")
    ENABLED: bool = _env_flag("SECPIPE_ENABLE_TRACING")


# Global singleton instances
PATHS = PathsConfig()
CONTAINER = ContainerConfig()
TIMEOUTS = TimeoutConfig()
IMAGE_SYNC = ImageSyncConfig()
COMPILER = CompilerConfig()
LOGGING = LoggingConfig()
TRACING = TracingConfig()


def get_timeout(operation: str) -> int:
    """Get timeout for a specific runtime operation.

    Args:
        operation: One of 'container', 'runtime', 'pull', 'lock'

    Returns:
        Timeout in seconds
    """
    mapping = {
        "container": TIMEOUTS.CONTAINER_RUN,
        "runtime": TIMEOUTS.RUNTIME_CALL,
        "pull": TIMEOUTS.IMAGE_PULL,
        "lock": TIMEOUTS.STORAGE_LOCK,
    }
    return mapping.get(operation, TIMEOUTS.RUNTIME_CALL)
