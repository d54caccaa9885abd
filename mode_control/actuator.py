"""Mode actuator interface and the default hook-running implementation.

Everything that actually changes hardware or application state lives behind
:class:`ModeActuator`. The command server and the arbiter only ever call
``apply_mode`` and may do so concurrently.
"""
from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from typing import Callable, Optional, Protocol

from .errors import ActuatorError, ProtocolError
from .modes import Mode, ModeOrigin, mode_from_index

LOGGER = logging.getLogger(__name__)

DEFAULT_HOOK_TIMEOUT = 15.0

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


class ModeActuator(Protocol):
    def apply_mode(self, mode_index: int, automatic: bool) -> None: ...
    def current_mode_name(self) -> str: ...


class CommandActuator:
    """Remember the active mode and optionally run a user-configured command.

    ``command`` is split with :func:`shlex.split` and each argument is
    formatted with ``{mode}`` (``turbo``/``performance``/``silent``),
    ``{index}``, ``{name}`` and ``{origin}`` before it runs. An empty command
    only records the mode.
    """

    def __init__(
        self,
        command: str = "",
        *,
        timeout: float = DEFAULT_HOOK_TIMEOUT,
        runner: Optional[Runner] = None,
    ) -> None:
        self._command = (command or "").strip()
        self._timeout = timeout
        self._runner = runner or subprocess.run
        self._lock = threading.Lock()
        self._current: Optional[Mode] = None

    @property
    def command(self) -> str:
        return self._command

    def set_command(self, command: str) -> None:
        with self._lock:
            self._command = (command or "").strip()

    def apply_mode(self, mode_index: int, automatic: bool) -> None:
        try:
            mode = mode_from_index(mode_index)
        except ProtocolError as exc:
            raise ActuatorError(str(exc)) from exc
        origin = ModeOrigin.AUTO if automatic else ModeOrigin.MANUAL
        with self._lock:
            if self._command:
                self._run_hook(mode, origin)
            self._current = mode

    def current_mode_name(self) -> str:
        current = self._current
        return current.display_name if current is not None else "Unknown"

    def build_argv(self, mode: Mode, origin: ModeOrigin) -> list[str]:
        try:
            parts = shlex.split(self._command)
        except ValueError as exc:
            raise ActuatorError(f"Invalid mode_apply_command {self._command!r}: {exc}") from exc
        values = {
            "mode": mode.token,
            "index": int(mode),
            "name": mode.display_name,
            "origin": origin.value,
        }
        try:
            return [part.format(**values) for part in parts]
        except (KeyError, IndexError, ValueError) as exc:
            raise ActuatorError(f"Invalid placeholder in mode_apply_command: {exc}") from exc

    def _run_hook(self, mode: Mode, origin: ModeOrigin) -> None:
        argv = self.build_argv(mode, origin)
        if not argv:
            return
        LOGGER.debug("Running mode hook: %s", argv)
        try:
            self._runner(argv, check=True, timeout=self._timeout, capture_output=True, text=True)
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or exc.stdout or "").strip()
            raise ActuatorError(f"Mode hook exited with code {exc.returncode}: {detail}") from exc
        except subprocess.TimeoutExpired as exc:
            raise ActuatorError(f"Mode hook timed out after {self._timeout}s") from exc
        except OSError as exc:
            raise ActuatorError(f"Mode hook could not be started: {exc}") from exc
