"""Line protocol spoken between the command client and server.

One request and one response per connection, each a single UTF-8 line::

    -> mode:turbo
    <- OK

Recognised tokens are ``turbo``, ``performance`` and ``silent``. The command
prefix and token are case-insensitive, but nothing else may surround them:
``mode: turbo`` and ``mode:turbo `` are invalid. Only the LF or CRLF line
terminator is removed. Failures are answered with ``ERROR`` or
``ERROR: <reason>``.
"""
from __future__ import annotations

from typing import Optional

from .errors import ProtocolError
from .modes import Mode, find_mode

COMMAND_PREFIX = "mode:"
RESPONSE_OK = "OK"
RESPONSE_ERROR = "ERROR"
RESPONSE_INVALID = "ERROR: Invalid command"
ENCODING = "utf-8"
MAX_LINE_BYTES = 1024


def encode_request(token: str) -> bytes:
    return f"{COMMAND_PREFIX}{token}\n".encode(ENCODING)


def encode_response(text: str) -> bytes:
    return f"{text}\n".encode(ENCODING)


def decode_line(raw: bytes) -> str:
    return raw.decode(ENCODING).rstrip("\r\n")


def parse_request(line: Optional[str]) -> Mode:
    """Return the requested mode or raise :class:`ProtocolError`."""
    text = (line or "").rstrip("\r\n")
    if not text.lower().startswith(COMMAND_PREFIX):
        raise ProtocolError(f"Invalid command {text!r}")
    token = text[len(COMMAND_PREFIX):]
    mode = find_mode(token) if token == token.strip() else None
    if mode is None:
        raise ProtocolError(f"Invalid mode in command {text!r}")
    return mode


def is_ok(response: Optional[str]) -> bool:
    return response == RESPONSE_OK
