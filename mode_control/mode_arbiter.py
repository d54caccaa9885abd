"""Background watcher that picks a mode from the running processes.

Every tick the arbiter snapshots the live process names and checks them against
the Turbo, Performance and Silent pattern lists, in that priority order. The
first list with a hit decides the mode. When nothing matches, the configured
no-match policy either falls back to Silent or leaves the mode alone.

The arbiter only remembers what it applied itself. A manual change made in the
meantime is not undone until the computed mode changes.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Set

from .modes import Mode, ModeOrigin
from .preferences import NO_MATCH_KEEP, NO_MATCH_POLICIES, NO_MATCH_SILENT
from .process_patterns import EMPTY_PATTERN_SET, PatternSet, compile_patterns, first_match
from .process_snapshot import snapshot_process_names

LOGGER = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 1.5
ERROR_BACKOFF_SECONDS = 3.0
STOP_JOIN_TIMEOUT = 5.0

ApplyFn = Callable[[Mode, ModeOrigin], None]
SnapshotFn = Callable[[], Set[str]]


@dataclass(frozen=True)
class PatternSets:
    turbo: PatternSet = EMPTY_PATTERN_SET
    performance: PatternSet = EMPTY_PATTERN_SET
    silent: PatternSet = EMPTY_PATTERN_SET

    def counts(self) -> str:
        return f"silent={len(self.silent)} perf={len(self.performance)} turbo={len(self.turbo)}"


@dataclass(frozen=True)
class Decision:
    """Outcome of one evaluation: ``mode`` is None when nothing should change."""

    mode: Optional[Mode]
    matched_name: Optional[str] = None


class ProcessModeArbiter:
    """Owns the watcher state: pattern sets, last applied mode and the worker thread."""

    def __init__(
        self,
        apply_mode: ApplyFn,
        settings: Any,
        *,
        snapshot: Optional[SnapshotFn] = None,
        interval: float = POLL_INTERVAL_SECONDS,
        error_interval: float = ERROR_BACKOFF_SECONDS,
        no_match_policy: Optional[str] = None,
    ) -> None:
        self._apply_mode = apply_mode
        self._settings = settings
        self._snapshot = snapshot or snapshot_process_names
        self.interval = float(interval)
        self.error_interval = float(error_interval)
        self._no_match_override = no_match_policy
        self._patterns = PatternSets()
        self._last_applied: Optional[Mode] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()

    # Properties ----------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def last_applied(self) -> Optional[Mode]:
        return self._last_applied

    @property
    def patterns(self) -> PatternSets:
        return self._patterns

    @property
    def no_match_policy(self) -> str:
        raw = self._no_match_override
        if raw is None:
            raw = getattr(self._settings, "process_map_no_match", NO_MATCH_SILENT)
        token = str(raw or "").strip().lower()
        return token if token in NO_MATCH_POLICIES else NO_MATCH_SILENT

    @no_match_policy.setter
    def no_match_policy(self, value: Optional[str]) -> None:
        self._no_match_override = value

    # Lifecycle -----------------------------------------------------------

    def start(self) -> bool:
        """Compile the mappings, apply once immediately, then start polling."""
        with self._state_lock:
            if self.running:
                return True
            self.reload_mappings()
            self._stop_event = threading.Event()
            stop_event = self._stop_event
            try:
                self.poll_once()
            except Exception:
                LOGGER.warning("Process mode watcher initial apply failed", exc_info=True)
            thread = threading.Thread(
                target=self._run,
                args=(stop_event,),
                name="ModeControl-Arbiter",
                daemon=True,
            )
            self._thread = thread
            thread.start()
        LOGGER.info("Process mode watcher started (interval=%.1fs)", self.interval)
        return True

    def stop(self) -> None:
        """Stop polling and forget the last applied mode. Safe to call repeatedly."""
        with self._state_lock:
            self._stop_event.set()
            worker = self._thread
            self._thread = None
            if worker is not None and worker is not threading.current_thread():
                worker.join(timeout=STOP_JOIN_TIMEOUT)
                if worker.is_alive():
                    LOGGER.warning("Process mode watcher did not stop within %.0fs", STOP_JOIN_TIMEOUT)
            self._last_applied = None
        if worker is not None:
            LOGGER.info("Process mode watcher stopped")

    def reload_mappings(self) -> PatternSets:
        """Rebuild all three pattern sets and swap them in as one unit."""
        settings = self._settings
        patterns = PatternSets(
            turbo=compile_patterns(getattr(settings, "process_map_turbo", "")),
            performance=compile_patterns(getattr(settings, "process_map_performance", "")),
            silent=compile_patterns(getattr(settings, "process_map_silent", "")),
        )
        self._patterns = patterns
        LOGGER.info("Process mode mappings: %s", patterns.counts())
        return patterns

    # Decision ------------------------------------------------------------

    def _enabled(self) -> bool:
        return bool(getattr(self._settings, "process_map_enabled", False))

    def _verbose(self) -> bool:
        return bool(getattr(self._settings, "process_map_verbose", False))

    def decide(self, live_names: Set[str]) -> Decision:
        """Resolve the target mode for a process-name snapshot."""
        patterns = self._patterns
        verbose = self._verbose()
        for mode, pattern_set in (
            (Mode.TURBO, patterns.turbo),
            (Mode.BALANCED, patterns.performance),
            (Mode.SILENT, patterns.silent),
        ):
            matched = first_match(live_names, pattern_set)
            if matched is not None:
                if verbose:
                    LOGGER.info("Process match '%s' -> %s (%d)", matched, mode.display_name, int(mode))
                return Decision(mode, matched)
        if self.no_match_policy == NO_MATCH_KEEP:
            if verbose:
                LOGGER.info("No process matches -> keeping current mode")
            return Decision(None)
        if verbose:
            LOGGER.info("No process matches -> fallback to Silent (%d)", int(Mode.SILENT))
        return Decision(Mode.SILENT)

    def poll_once(self, stop_event: Optional[threading.Event] = None) -> Optional[Mode]:
        """Run one decision-and-apply pass.

        Returns the mode applied during this pass, or None when nothing was
        applied. Errors from the snapshot or the actuator propagate to the caller.
        """
        if not self._enabled():
            self._last_applied = None
            return None
        live_names = self._snapshot()
        decision = self.decide(live_names)
        target = decision.mode
        if target is None or target == self._last_applied:
            return None
        if stop_event is not None and stop_event.is_set():
            return None
        self._apply_mode(target, ModeOrigin.AUTO)
        self._last_applied = target
        return target

    # Worker --------------------------------------------------------------

    def _run(self, stop_event: threading.Event) -> None:
        delay = self.interval
        while not stop_event.wait(delay):
            try:
                self.poll_once(stop_event)
                delay = self.interval
            except Exception:
                LOGGER.warning(
                    "Process mode watcher cycle failed; retrying in %.1fs",
                    self.error_interval,
                    exc_info=True,
                )
                delay = self.error_interval
