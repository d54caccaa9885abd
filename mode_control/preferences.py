"""JSON-backed settings store for Mode Control."""
from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

PREFERENCES_FILE = "mode_control_settings.json"
HOME_ENV_VAR = "MODE_CONTROL_HOME"
DEFAULT_HOME_DIRNAME = ".mode_control"
DEFAULT_IPC_PORT = 12345
DEFAULT_IPC_READ_TIMEOUT = 5.0
IPC_READ_TIMEOUT_MIN = 0.1
IPC_READ_TIMEOUT_MAX = 300.0
NO_MATCH_SILENT = "silent"
NO_MATCH_KEEP = "keep"
NO_MATCH_POLICIES = (NO_MATCH_SILENT, NO_MATCH_KEEP)

LOGGER = logging.getLogger(__name__)


def default_settings_dir() -> Path:
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / DEFAULT_HOME_DIRNAME


def _coerce_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        token = value.strip().lower()
        if token in {"1", "true", "yes", "on"}:
            return True
        if token in {"0", "false", "no", "off"}:
            return False
    return default


def _coerce_int(value: Any, default: int, *, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    if isinstance(value, bool):
        numeric = default
    else:
        try:
            numeric = int(value)
        except (TypeError, ValueError):
            numeric = default
    if minimum is not None:
        numeric = max(minimum, numeric)
    if maximum is not None:
        numeric = min(maximum, numeric)
    return numeric


def _coerce_float(
    value: Any,
    default: float,
    *,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
) -> float:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        numeric = default
    if numeric != numeric:  # NaN
        numeric = default
    if minimum is not None:
        numeric = max(minimum, numeric)
    if maximum is not None:
        numeric = min(maximum, numeric)
    return numeric


def _coerce_str(
    value: Any,
    default: str,
    *,
    transform: Optional[Callable[[str], str]] = None,
) -> str:
    if value is None:
        return default
    if not isinstance(value, str):
        try:
            value = str(value)
        except Exception:
            return default
    if transform is not None:
        try:
            value = transform(value)
        except Exception:
            return default
    return value


def _normalise_no_match_policy(value: str) -> str:
    token = value.strip().lower()
    if token not in NO_MATCH_POLICIES:
        raise ValueError(f"unknown no-match policy {value!r}")
    return token


@dataclass
class Preferences:
    """Simple JSON-backed preferences store.

    Field names double as the configuration keys read by the arbiter and the
    command server, so ``prefs.get("process_map_enabled")`` and
    ``prefs.process_map_enabled`` are the same value.
    """

    settings_dir: Path
    process_map_enabled: bool = False
    process_map_silent: str = ""
    process_map_performance: str = ""
    process_map_turbo: str = ""
    process_map_verbose: bool = False
    process_map_no_match: str = NO_MATCH_SILENT
    mode_manual: bool = False
    ipc_port: int = DEFAULT_IPC_PORT
    ipc_read_timeout: float = DEFAULT_IPC_READ_TIMEOUT
    mode_apply_command: str = ""
    log_level: str = ""
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.settings_dir = Path(self.settings_dir)
        self._path = self.settings_dir / PREFERENCES_FILE
        self._load_from_json()

    @property
    def path(self) -> Path:
        return self._path

    # Persistence ---------------------------------------------------------

    def _load_from_json(self, *, silent: bool = False) -> None:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as exc:
            if not silent:
                LOGGER.warning("%s could not be read (%s); using defaults.", self._path, exc)
            return
        if not isinstance(data, Mapping):
            LOGGER.warning("%s does not hold a JSON object; using defaults.", self._path)
            return
        self._apply_raw_data(data)

    def _apply_raw_data(self, data: Mapping[str, Any]) -> None:
        with self._lock:
            self.process_map_enabled = _coerce_bool(data.get("process_map_enabled"), self.process_map_enabled)
            self.process_map_silent = _coerce_str(data.get("process_map_silent"), self.process_map_silent)
            self.process_map_performance = _coerce_str(
                data.get("process_map_performance"),
                self.process_map_performance,
            )
            self.process_map_turbo = _coerce_str(data.get("process_map_turbo"), self.process_map_turbo)
            self.process_map_verbose = _coerce_bool(data.get("process_map_verbose"), self.process_map_verbose)
            self.process_map_no_match = _coerce_str(
                data.get("process_map_no_match"),
                self.process_map_no_match,
                transform=_normalise_no_match_policy,
            )
            self.mode_manual = _coerce_bool(data.get("mode_manual"), self.mode_manual)
            self.ipc_port = _coerce_int(data.get("ipc_port"), self.ipc_port, minimum=0, maximum=65535)
            self.ipc_read_timeout = _coerce_float(
                data.get("ipc_read_timeout"),
                self.ipc_read_timeout,
                minimum=IPC_READ_TIMEOUT_MIN,
                maximum=IPC_READ_TIMEOUT_MAX,
            )
            self.mode_apply_command = _coerce_str(data.get("mode_apply_command"), self.mode_apply_command).strip()
            self.log_level = _coerce_str(data.get("log_level"), self.log_level).strip()

    def reload(self) -> None:
        """Re-read the settings file, keeping current values for missing keys."""
        self._load_from_json()

    def save(self) -> None:
        self._write_payload(self._shadow_payload())

    def save_keys(self, *keys: str) -> None:
        """Write only ``keys`` to disk, keeping every other value already in the file.

        A running instance uses this so edits made by another process (for
        example ``mode-control --set``) survive until the next reload.
        """
        with self._lock:
            current = self._shadow_payload()
            unknown = [key for key in keys if key not in current]
            if unknown:
                raise KeyError(f"unknown setting(s) {', '.join(unknown)}")
            try:
                on_disk = json.loads(self._path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                on_disk = None
            except (OSError, json.JSONDecodeError) as exc:
                LOGGER.warning("%s could not be read (%s); rewriting it from memory.", self._path, exc)
                on_disk = None
            if not isinstance(on_disk, Mapping):
                self._write_payload(current)
                return
            payload = dict(on_disk)
            payload.update({key: current[key] for key in keys})
            self._write_payload(payload)

    def _write_payload(self, payload: Mapping[str, Any]) -> None:
        with self._lock:
            self.settings_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._path)

    def _shadow_payload(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "process_map_enabled": bool(self.process_map_enabled),
                "process_map_silent": str(self.process_map_silent or ""),
                "process_map_performance": str(self.process_map_performance or ""),
                "process_map_turbo": str(self.process_map_turbo or ""),
                "process_map_verbose": bool(self.process_map_verbose),
                "process_map_no_match": str(self.process_map_no_match or NO_MATCH_SILENT),
                "mode_manual": bool(self.mode_manual),
                "ipc_port": int(self.ipc_port),
                "ipc_read_timeout": float(self.ipc_read_timeout),
                "mode_apply_command": str(self.mode_apply_command or ""),
                "log_level": str(self.log_level or ""),
            }

    # Key/value access ----------------------------------------------------

    def as_dict(self) -> Dict[str, Any]:
        return self._shadow_payload()

    def get(self, key: str, default: Any = None) -> Any:
        return self._shadow_payload().get(key, default)

    def is_enabled(self, key: str) -> bool:
        return _coerce_bool(self.get(key), False)

    def set(self, key: str, value: Any) -> None:
        """Update one key through the same coercion used when loading."""
        if key not in self._shadow_payload():
            raise KeyError(f"unknown setting {key!r}")
        self._apply_raw_data({key: value})
