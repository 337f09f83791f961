"""
Subprocess Environment Utilities
================================
Builds the minimal environment handed to container runtime subprocesses.

Only an allowlist is inherited from the parent so tool secrets exported in the
operator's shell do not leak into runtime calls by accident.
"""

from __future__ import annotations

import os
from typing import Dict, Iterable, Optional


RUNTIME_ENV_ALLOWLIST = frozenset(
    {
        "PATH",
        "HOME",
        "LANG",
        "LC_ALL",
        "LC_CTYPE",
        "TMPDIR",
        "USER",
        "XDG_RUNTIME_DIR",
        # docker client configuration
        "DOCKER_HOST",
        "DOCKER_CONFIG",
        "DOCKER_CONTEXT",
        "DOCKER_CERT_PATH",
        "DOCKER_TLS_VERIFY",
        "SSL_CERT_FILE",
        "SSL_CERT_DIR",
        "HTTP_PROXY",
        "HTTPS_PROXY",
        "NO_PROXY",
    }
)


def build_minimal_subprocess_env(
    *,
    sanitize_env: bool = True,
    allowlist: Optional[Iterable[str]] = None,
) -> Dict[str, str]:
    """Return an environment dict for a runtime subprocess.

    Args:
        sanitize_env: If False, inherits the full parent env.
        allowlist: Optional extra keys to inherit.
    """
    keys = set(RUNTIME_ENV_ALLOWLIST)
    if allowlist is not None:
        keys.update(k for k in allowlist if isinstance(k, str) and k)

    parent = os.environ
    if not sanitize_env:
        return dict(parent)

    return {key: parent[key] for key in keys if key in parent}
