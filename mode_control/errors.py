"""Exception types raised inside Mode Control.

None of these escape the background services: the command server turns them
into ``ERROR`` replies and the arbiter logs them and backs off.
"""
from __future__ import annotations


class ModeControlError(Exception):
    """Base class for Mode Control failures."""


class ProtocolError(ModeControlError, ValueError):
    """A command line was malformed or named an unknown mode."""


class ScanError(ModeControlError, RuntimeError):
    """Enumerating the live process list failed."""


class ActuatorError(ModeControlError, RuntimeError):
    """The mode actuator could not apply the requested mode."""
