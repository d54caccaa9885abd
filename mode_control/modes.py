"""Mode and origin value types shared by the server, client and arbiter."""
from __future__ import annotations

from enum import Enum, IntEnum
from typing import Optional

from .errors import ProtocolError


class Mode(IntEnum):
    """Performance mode class.

    The integer values are the indices the actuator expects and must not be
    renumbered.
    """

    BALANCED = 0
    TURBO = 1
    SILENT = 2

    @property
    def token(self) -> str:
        return _TOKENS[self]

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


class ModeOrigin(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"

    @property
    def prefix(self) -> str:
        return "[M]" if self is ModeOrigin.MANUAL else "[A]"


_TOKENS = {
    Mode.BALANCED: "performance",
    Mode.TURBO: "turbo",
    Mode.SILENT: "silent",
}

_DISPLAY_NAMES = {
    Mode.BALANCED: "Balanced",
    Mode.TURBO: "Turbo",
    Mode.SILENT: "Silent",
}

_BY_TOKEN = {token: mode for mode, token in _TOKENS.items()}

MODE_TOKENS = tuple(_TOKENS[mode] for mode in (Mode.TURBO, Mode.BALANCED, Mode.SILENT))


def find_mode(token: Optional[str]) -> Optional[Mode]:
    """Return the mode for ``token`` (case-insensitive) or None when unknown."""
    text = (token or "").strip().lower()
    return _BY_TOKEN.get(text)


def parse_mode(token: Optional[str]) -> Mode:
    mode = find_mode(token)
    if mode is None:
        raise ProtocolError(f"Unknown mode {token!r}; expected one of {', '.join(MODE_TOKENS)}")
    return mode


def mode_from_index(index: int) -> Mode:
    try:
        return Mode(int(index))
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"Unknown mode index {index!r}") from exc

