"""Process-name pattern lists and matching.

Pattern lists come straight from user settings, e.g.::

    game.exe; Steam*
    obs64

Tokens are separated by newlines, commas or semicolons. A trailing ``.exe`` is
ignored so Windows-style names match the short process name, and ``*`` matches
any run of characters. Matching is case-insensitive and covers the whole name.
"""
from __future__ import annotations

import logging
import re
from typing import AbstractSet, Iterable, List, Optional, Tuple

LOGGER = logging.getLogger(__name__)

PatternSet = Tuple["re.Pattern[str]", ...]

EMPTY_PATTERN_SET: PatternSet = ()

_SEPARATORS = re.compile(r"[\r\n;,]")
_EXE_SUFFIX = ".exe"


def split_tokens(raw_text: Optional[str]) -> List[str]:
    """Split a raw pattern list into unique tokens, keeping first-seen order."""
    if raw_text is None or not str(raw_text).strip():
        return []
    tokens: List[str] = []
    seen: set[str] = set()
    for piece in _SEPARATORS.split(str(raw_text)):
        token = piece.strip()
        if not token:
            continue
        key = token.casefold()
        if key in seen:
            continue
        seen.add(key)
        tokens.append(token)
    return tokens


def strip_exe_suffix(name: str) -> str:
    if name.lower().endswith(_EXE_SUFFIX):
        return name[: -len(_EXE_SUFFIX)]
    return name


def compile_token(token: str) -> "re.Pattern[str]":
    """Compile one token into an anchored, case-insensitive matcher."""
    name = strip_exe_suffix(token.strip())
    if not name:
        raise ValueError(f"pattern {token!r} is empty once .exe is removed")
    body = ".*".join(re.escape(part) for part in name.split("*"))
    return re.compile(f"^{body}$", re.IGNORECASE)


def compile_patterns(raw_text: Optional[str]) -> PatternSet:
    """Build a PatternSet from a raw delimited string.

    A token that cannot be compiled is dropped on its own; the rest of the
    list still applies.
    """
    compiled: List["re.Pattern[str]"] = []
    for token in split_tokens(raw_text):
        try:
            compiled.append(compile_token(token))
        except (re.error, ValueError) as exc:
            LOGGER.debug("Skipping process pattern %r: %s", token, exc)
    return tuple(compiled)


def ordered_names(live_names: Iterable[str]) -> List[str]:
    return sorted(live_names, key=lambda name: (name.casefold(), name))


def first_match(live_names: AbstractSet[str], patterns: PatternSet) -> Optional[str]:
    """Return the first live process name matched by any pattern, if any.

    Names are visited in case-insensitive sorted order so the result is stable
    for a given process list.
    """
    if not patterns or not live_names:
        return None
    for name in ordered_names(live_names):
        for pattern in patterns:
            if pattern.match(name):
                return name
    return None
