"""
Run Request
===========
The user's request for one pipeline run, as produced by the CLI.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from secpipe.errors import MissingRequiredField


REQUIRED_FIELDS = ("profile", "app_name")


@dataclass(frozen=True)
class RunRequest:
    """What to run and how.

    volume selects the storage strategy: None means an ephemeral volume is
    created for the run, otherwise it is the external path mounted as-is.
    """

    profile: str
    app_name: str
    target: str = ""
    dry_run: bool = False
    keep: bool = False
    volume: Optional[str] = None
    source_path: Optional[str] = None
    report_path: Optional[str] = None
    raw_parameters: str = ""
    tool_profile_override: Optional[str] = None
    strict_tokens: Optional[bool] = None

    def validate(self) -> "RunRequest":
        """Raise MissingRequiredField when profile or app_name is blank."""
        for name in REQUIRED_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise MissingRequiredField(f"Missing required field: {name}", {"field": name})
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
