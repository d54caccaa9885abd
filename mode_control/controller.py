"""Single entry point for mode changes coming from IPC, the CLI or the arbiter."""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .actuator import ModeActuator
from .errors import ActuatorError, ProtocolError
from .modes import Mode, ModeOrigin, parse_mode

LOGGER = logging.getLogger(__name__)

ChangeCallback = Callable[[Mode, ModeOrigin], None]


class ModeController:
    """Record the origin of a change, then hand it to the actuator."""

    def __init__(
        self,
        actuator: ModeActuator,
        preferences: Any = None,
        *,
        on_change: Optional[ChangeCallback] = None,
    ) -> None:
        self._actuator = actuator
        self._preferences = preferences
        self._on_change = on_change

    @property
    def actuator(self) -> ModeActuator:
        return self._actuator

    def apply(self, mode: Mode, origin: ModeOrigin) -> None:
        """Apply ``mode``; raises :class:`ActuatorError` when the actuator fails."""
        self._record_origin(origin)
        try:
            self._actuator.apply_mode(int(mode), origin is ModeOrigin.AUTO)
        except ActuatorError:
            raise
        except Exception as exc:
            raise ActuatorError(f"Applying {mode.token} failed: {exc}") from exc
        LOGGER.info("Mode set to %s (%s)", mode.token, self.status_text())
        if self._on_change is not None:
            try:
                self._on_change(mode, origin)
            except Exception:
                LOGGER.warning("Mode change callback raised", exc_info=True)

    def try_apply(self, mode: Mode, origin: ModeOrigin = ModeOrigin.MANUAL) -> bool:
        try:
            self.apply(mode, origin)
        except ActuatorError as exc:
            LOGGER.error("Error setting mode to %s: %s", mode.token, exc)
            return False
        return True

    def apply_token(self, token: str, origin: ModeOrigin = ModeOrigin.MANUAL) -> bool:
        """Apply a mode named by its external token, returning success."""
        try:
            mode = parse_mode(token)
        except ProtocolError as exc:
            LOGGER.warning("Invalid mode: %s", exc)
            return False
        return self.try_apply(mode, origin)

    def status_text(self) -> str:
        manual = bool(getattr(self._preferences, "mode_manual", False))
        prefix = ModeOrigin.MANUAL.prefix if manual else ModeOrigin.AUTO.prefix
        try:
            name = self._actuator.current_mode_name()
        except Exception:
            LOGGER.debug("Actuator could not report the current mode", exc_info=True)
            name = "Unknown"
        return f"{prefix} {name}"

    def _record_origin(self, origin: ModeOrigin) -> None:
        prefs = self._preferences
        if prefs is None:
            return
        manual = origin is ModeOrigin.MANUAL
        if bool(getattr(prefs, "mode_manual", False)) == manual:
            return
        try:
            prefs.set("mode_manual", manual)
            prefs.save_keys("mode_manual")
        except Exception:
            LOGGER.warning("Failed to persist mode_manual=%s", manual, exc_info=True)
