"""Process-wide wiring of settings, actuator, command server and arbiter."""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from .actuator import CommandActuator, ModeActuator
from .command_server import ModeCommandServer
from .controller import ModeController
from .mode_arbiter import ProcessModeArbiter
from .modes import Mode, ModeOrigin
from .preferences import Preferences

LOGGER = logging.getLogger(__name__)

ServerFactory = Callable[..., ModeCommandServer]
ArbiterFactory = Callable[..., ProcessModeArbiter]


class ModeControlRuntime:
    """Owns the long-lived services of one Mode Control instance."""

    def __init__(
        self,
        preferences: Preferences,
        *,
        actuator: Optional[ModeActuator] = None,
        enable_ipc: bool = True,
        enable_watcher: bool = True,
        ipc_port: Optional[int] = None,
        server_factory: Optional[ServerFactory] = None,
        arbiter_factory: Optional[ArbiterFactory] = None,
    ) -> None:
        self.preferences = preferences
        self.actuator = actuator or CommandActuator(preferences.mode_apply_command)
        self.controller = ModeController(self.actuator, preferences)
        self._enable_ipc = enable_ipc
        self._enable_watcher = enable_watcher
        self._ipc_port_override = ipc_port
        self._server_factory = server_factory or ModeCommandServer
        self._arbiter_factory = arbiter_factory or ProcessModeArbiter
        self.server: Optional[ModeCommandServer] = None
        self.arbiter: Optional[ProcessModeArbiter] = None
        self._lock = threading.Lock()
        self._running = False

    @classmethod
    def from_settings_dir(cls, settings_dir: Path, **kwargs: Any) -> "ModeControlRuntime":
        return cls(Preferences(settings_dir), **kwargs)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def ipc_port(self) -> int:
        if self._ipc_port_override is not None:
            return int(self._ipc_port_override)
        return int(self.preferences.ipc_port)

    @property
    def ipc_available(self) -> bool:
        return self.server is not None and self.server.running

    # Lifecycle ------------------------------------------------------------

    def start(self) -> bool:
        with self._lock:
            if self._running:
                return True
            self._running = True
            if self._enable_ipc:
                self._start_ipc_listener()
            if self._enable_watcher:
                self._start_watcher()
        LOGGER.info("Mode Control started (%s)", self.controller.status_text())
        return True

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            server, self.server = self.server, None
            arbiter, self.arbiter = self.arbiter, None
        if server is not None:
            try:
                server.stop()
            except Exception as exc:
                LOGGER.error("Error stopping IPC listener: %s", exc, exc_info=exc)
        if arbiter is not None:
            try:
                arbiter.stop()
            except Exception as exc:
                LOGGER.error("Failed to stop process mode watcher: %s", exc, exc_info=exc)
        LOGGER.info("Mode Control stopped")

    def _start_ipc_listener(self) -> None:
        prefs = self.preferences
        server = self._server_factory(
            command_handler=self._handle_ipc_mode,
            port=self.ipc_port,
            read_timeout=float(prefs.ipc_read_timeout),
        )
        try:
            started = server.start()
        except Exception as exc:
            LOGGER.error("Failed to start IPC listener: %s", exc, exc_info=exc)
            started = False
        if started:
            self.server = server
        else:
            LOGGER.warning("Continuing without IPC; mode commands from other processes will not be received")

    def _start_watcher(self) -> None:
        arbiter = self._arbiter_factory(self.controller.apply, self.preferences)
        try:
            arbiter.start()
        except Exception as exc:
            LOGGER.error("Failed to start process mode watcher: %s", exc, exc_info=exc)
            return
        self.arbiter = arbiter

    def _handle_ipc_mode(self, mode: Mode) -> bool:
        return self.controller.try_apply(mode, ModeOrigin.MANUAL)

    # Operations -----------------------------------------------------------

    def apply_startup_mode(self, token: str) -> bool:
        """Apply a ``-mode`` argument locally once the services are up."""
        return self.controller.apply_token(token, ModeOrigin.MANUAL)

    def reload_settings(self) -> None:
        """Re-read the settings file and push the changes into live services."""
        prefs = self.preferences
        previous_port = prefs.ipc_port
        try:
            prefs.reload()
        except Exception as exc:
            LOGGER.error("Settings reload failed: %s", exc, exc_info=exc)
            return
        if isinstance(self.actuator, CommandActuator):
            self.actuator.set_command(prefs.mode_apply_command)
        arbiter = self.arbiter
        if arbiter is not None:
            arbiter.reload_mappings()
        if prefs.ipc_port != previous_port:
            LOGGER.info("ipc_port changed to %s; restart Mode Control to rebind the listener", prefs.ipc_port)
        LOGGER.info("Settings reloaded from %s", prefs.path)
