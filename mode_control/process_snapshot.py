"""Live process-name snapshots backed by psutil."""
from __future__ import annotations

import logging
import os
from typing import Iterable, Optional, Set

import psutil

from .errors import ScanError
from .process_patterns import strip_exe_suffix

LOGGER = logging.getLogger(__name__)


def short_process_name(raw_name: Optional[str]) -> str:
    """Reduce a reported process name to its short form (no directory, no ``.exe``)."""
    text = (raw_name or "").strip()
    if not text:
        return ""
    text = text.replace("\\", "/")
    text = os.path.basename(text)
    return strip_exe_suffix(text)


def _iter_process_names() -> Iterable[Optional[str]]:
    for proc in psutil.process_iter(["name"]):
        try:
            yield proc.info.get("name")
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue


def snapshot_process_names() -> Set[str]:
    """Return the de-duplicated set of running process names.

    Raises :class:`ScanError` when the process table cannot be read at all.
    """
    names: Set[str] = set()
    try:
        for raw_name in _iter_process_names():
            name = short_process_name(raw_name)
            if name:
                names.add(name)
    except psutil.Error as exc:
        raise ScanError(f"process enumeration failed: {exc}") from exc
    except OSError as exc:
        raise ScanError(f"process enumeration failed: {exc}") from exc
    return names
