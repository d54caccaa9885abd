"""Mode Control version and dev-build detection."""
from __future__ import annotations

import os
import re
from typing import Optional

from .preferences import _coerce_bool

__all__ = ["__version__", "is_dev_build", "DEV_MODE_ENV_VAR"]

__version__ = "0.3.0"
DEV_MODE_ENV_VAR = "MODE_CONTROL_DEV_MODE"

# PEP 440 dev releases ("0.4.0.dev1") and the "0.4.0-dev" spelling used on branches.
_DEV_RELEASE = re.compile(r"[.\-_]dev\d*$", re.IGNORECASE)


def is_dev_build(version: Optional[str] = None) -> bool:
    """Dev builds log at DEBUG.

    A non-empty ``MODE_CONTROL_DEV_MODE`` decides on its own; anything it does
    not recognise as true counts as false. Otherwise the version string must be
    a dev release.
    """
    override = (os.getenv(DEV_MODE_ENV_VAR) or "").strip()
    if override:
        return _coerce_bool(override, False)
    return bool(_DEV_RELEASE.search((version or __version__).strip()))
