from __future__ import annotations

import threading
import time
from types import SimpleNamespace

import pytest

from mode_control.errors import ActuatorError, ScanError
from mode_control.mode_arbiter import ProcessModeArbiter
from mode_control.modes import Mode, ModeOrigin


class _Recorder:
    def __init__(self, fail: bool = False) -> None:
        self.calls: list[tuple[Mode, ModeOrigin]] = []
        self.fail = fail
        self._lock = threading.Lock()

    def __call__(self, mode: Mode, origin: ModeOrigin) -> None:
        with self._lock:
            self.calls.append((mode, origin))
        if self.fail:
            raise ActuatorError("hardware said no")


class _Processes:
    def __init__(self, *names: str) -> None:
        self.names = set(names)
        self.error: Exception | None = None
        self.calls = 0

    def __call__(self) -> set[str]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return set(self.names)


def _settings(**overrides):
    values = {
        "process_map_enabled": True,
        "process_map_turbo": "game*; bench.exe",
        "process_map_performance": "blender",
        "process_map_silent": "notepad",
        "process_map_verbose": False,
        "process_map_no_match": "silent",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _arbiter(settings, processes, recorder, **kwargs):
    arbiter = ProcessModeArbiter(recorder, settings, snapshot=processes, **kwargs)
    arbiter.reload_mappings()
    return arbiter


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_turbo_beats_silent():
    recorder = _Recorder()
    arbiter = _arbiter(_settings(), _Processes("GameLauncher", "notepad"), recorder)

    assert arbiter.poll_once() is Mode.TURBO
    assert recorder.calls == [(Mode.TURBO, ModeOrigin.AUTO)]


def test_performance_beats_silent():
    recorder = _Recorder()
    arbiter = _arbiter(_settings(), _Processes("blender", "notepad"), recorder)

    assert arbiter.poll_once() is Mode.BALANCED
    assert recorder.calls[0][0] == 0


def test_decision_reports_matching_process():
    arbiter = _arbiter(_settings(), _Processes(), _Recorder())

    decision = arbiter.decide({"bench", "notepad"})

    assert decision.mode is Mode.TURBO
    assert decision.matched_name == "bench"


def test_no_match_falls_back_to_silent_by_default():
    recorder = _Recorder()
    arbiter = _arbiter(_settings(), _Processes("bash"), recorder)

    assert arbiter.poll_once() is Mode.SILENT
    assert recorder.calls == [(Mode.SILENT, ModeOrigin.AUTO)]


def test_no_match_keep_policy_leaves_mode_alone():
    recorder = _Recorder()
    arbiter = _arbiter(_settings(process_map_no_match="keep"), _Processes("bash"), recorder)

    assert arbiter.no_match_policy == "keep"
    assert arbiter.poll_once() is None
    assert recorder.calls == []


def test_no_match_policy_override_wins_over_settings():
    recorder = _Recorder()
    arbiter = _arbiter(_settings(), _Processes("bash"), recorder, no_match_policy="keep")

    assert arbiter.poll_once() is None
    assert recorder.calls == []


def test_unknown_no_match_policy_behaves_as_silent():
    arbiter = _arbiter(_settings(process_map_no_match="sometimes"), _Processes(), _Recorder())

    assert arbiter.no_match_policy == "silent"


def test_unchanged_target_is_applied_once():
    recorder = _Recorder()
    arbiter = _arbiter(_settings(), _Processes("game"), recorder)

    arbiter.poll_once()
    arbiter.poll_once()

    assert recorder.calls == [(Mode.TURBO, ModeOrigin.AUTO)]


def test_target_change_is_applied():
    recorder = _Recorder()
    processes = _Processes("game")
    arbiter = _arbiter(_settings(), processes, recorder)

    arbiter.poll_once()
    processes.names = {"blender"}
    arbiter.poll_once()

    assert [mode for mode, _ in recorder.calls] == [Mode.TURBO, Mode.BALANCED]
    assert arbiter.last_applied is Mode.BALANCED


def test_disable_then_enable_forces_reapply():
    recorder = _Recorder()
    settings = _settings()
    arbiter = _arbiter(settings, _Processes("game"), recorder)

    arbiter.poll_once()
    settings.process_map_enabled = False
    assert arbiter.poll_once() is None
    assert arbiter.last_applied is None
    settings.process_map_enabled = True
    arbiter.poll_once()

    assert [mode for mode, _ in recorder.calls] == [Mode.TURBO, Mode.TURBO]


def test_disabled_watcher_does_not_scan():
    processes = _Processes("game")
    arbiter = _arbiter(_settings(process_map_enabled=False), processes, _Recorder())

    arbiter.poll_once()

    assert processes.calls == 0


def test_actuator_failure_is_retried_on_next_poll():
    recorder = _Recorder(fail=True)
    arbiter = _arbiter(_settings(), _Processes("game"), recorder)

    with pytest.raises(ActuatorError):
        arbiter.poll_once()
    assert arbiter.last_applied is None

    recorder.fail = False
    assert arbiter.poll_once() is Mode.TURBO
    assert len(recorder.calls) == 2


def test_reload_mappings_swaps_patterns_without_touching_memory():
    recorder = _Recorder()
    settings = _settings()
    arbiter = _arbiter(settings, _Processes("blender"), recorder)
    arbiter.poll_once()

    settings.process_map_turbo = "blender"
    patterns = arbiter.reload_mappings()

    assert arbiter.patterns is patterns
    assert len(patterns.turbo) == 1
    assert arbiter.last_applied is Mode.BALANCED
    assert arbiter.poll_once() is Mode.TURBO


def test_verbose_logging_names_the_match(caplog):
    arbiter = _arbiter(_settings(process_map_verbose=True), _Processes("notepad"), _Recorder())

    with caplog.at_level("INFO", logger="mode_control"):
        arbiter.poll_once()

    assert any("notepad" in record.getMessage() for record in caplog.records)


def test_start_applies_immediately_and_stop_is_prompt():
    recorder = _Recorder()
    arbiter = ProcessModeArbiter(recorder, _settings(), snapshot=_Processes("game"), interval=30.0)

    assert arbiter.start() is True
    assert recorder.calls == [(Mode.TURBO, ModeOrigin.AUTO)]
    assert arbiter.running

    started = time.monotonic()
    arbiter.stop()

    assert time.monotonic() - started < 2.0
    assert not arbiter.running
    assert arbiter.last_applied is None


def test_stop_is_idempotent():
    arbiter = ProcessModeArbiter(_Recorder(), _settings(), snapshot=_Processes())

    arbiter.stop()
    arbiter.stop()

    assert not arbiter.running


def test_start_twice_keeps_single_worker():
    recorder = _Recorder()
    arbiter = ProcessModeArbiter(recorder, _settings(), snapshot=_Processes("game"), interval=30.0)
    try:
        arbiter.start()
        arbiter.start()
        assert len(recorder.calls) == 1
    finally:
        arbiter.stop()


def test_restart_after_stop_reapplies():
    recorder = _Recorder()
    arbiter = ProcessModeArbiter(recorder, _settings(), snapshot=_Processes("game"), interval=30.0)
    arbiter.start()
    arbiter.stop()
    arbiter.start()
    arbiter.stop()

    assert [mode for mode, _ in recorder.calls] == [Mode.TURBO, Mode.TURBO]


def test_loop_polls_and_survives_scan_errors():
    recorder = _Recorder()
    processes = _Processes("bash")
    processes.error = ScanError("process table unavailable")
    arbiter = ProcessModeArbiter(
        recorder,
        _settings(),
        snapshot=processes,
        interval=0.01,
        error_interval=0.02,
    )
    arbiter.start()
    try:
        assert _wait_for(lambda: processes.calls >= 3)
        assert recorder.calls == []
        processes.error = None
        processes.names = {"blender"}
        assert _wait_for(lambda: recorder.calls == [(Mode.BALANCED, ModeOrigin.AUTO)])
    finally:
        arbiter.stop()
    assert not arbiter.running


def test_no_apply_after_stop_returns():
    recorder = _Recorder()
    processes = _Processes("game")
    arbiter = ProcessModeArbiter(recorder, _settings(), snapshot=processes, interval=0.01)
    arbiter.start()
    arbiter.stop()
    count = len(recorder.calls)
    processes.names = {"blender"}
    time.sleep(0.1)

    assert len(recorder.calls) == count
