"""Command-line entry point.

``mode-control -mode turbo`` first hands the mode to an already running
instance over the loopback command port. When nothing is listening it starts a
new instance and applies the mode locally once the services are up.
"""
from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Optional, Sequence

from .command_client import DEFAULT_CONNECT_TIMEOUT, ModeCommandClient
from .logging_setup import configure_logging
from .modes import MODE_TOKENS, find_mode
from .preferences import Preferences, default_settings_dir
from .runtime import ModeControlRuntime
from .version import __version__

CLI_TAG = "[mode-control]"
WAIT_SLICE_SECONDS = 1.0


def _print_step(message: str) -> None:
    print(f"{CLI_TAG} {message}")


def _fail(message: str, *, code: int = 1) -> None:
    print(f"{CLI_TAG} ERROR: {message}", file=sys.stderr)
    raise SystemExit(code)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mode-control",
        description="Switch performance modes over a loopback command port and by watching running processes.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        allow_abbrev=False,
    )
    parser.add_argument(
        "-mode",
        "--mode",
        dest="mode",
        metavar="MODE",
        help=f"Mode to apply: {', '.join(MODE_TOKENS)}",
    )
    parser.add_argument(
        "--send-only",
        action="store_true",
        help="Only deliver -mode to a running instance; never start one",
    )
    parser.add_argument(
        "--settings-dir",
        type=Path,
        default=None,
        help="Directory holding mode_control_settings.json (default: $MODE_CONTROL_HOME or ~/.mode_control)",
    )
    parser.add_argument("--port", type=int, default=None, help="Command port override (default: ipc_port setting)")
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_CONNECT_TIMEOUT,
        help="Seconds to wait when connecting to a running instance",
    )
    log_group = parser.add_mutually_exclusive_group()
    log_group.add_argument("-log", "--log", dest="file_log", action="store_true", default=True, help="Write mode-control.log")
    log_group.add_argument("-nolog", "--no-log", dest="file_log", action="store_false", help="Disable the log file")
    parser.add_argument("--no-ipc", action="store_true", help="Do not open the command port")
    parser.add_argument("--no-watcher", action="store_true", help="Do not start the process watcher")
    parser.add_argument(
        "--set",
        dest="assignments",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Update a setting and exit (repeatable)",
    )
    parser.add_argument("--show-settings", action="store_true", help="Print the current settings and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _apply_assignments(prefs: Preferences, assignments: Sequence[str]) -> None:
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        key = key.strip()
        if not sep or not key:
            _fail(f"--set expects KEY=VALUE, got {assignment!r}", code=2)
        try:
            prefs.set(key, value)
        except KeyError:
            _fail(f"Unknown setting {key!r}", code=2)
        _print_step(f"{key} = {prefs.get(key)!r}")
    prefs.save()
    _print_step(f"Saved {prefs.path}. Send SIGHUP to a running instance (or restart it) to pick up the change.")


def _show_settings(prefs: Preferences) -> None:
    _print_step(f"Settings file: {prefs.path}")
    for key, value in prefs.as_dict().items():
        print(f"  {key} = {value!r}")


def _wait_for_shutdown(runtime: ModeControlRuntime) -> None:
    stop_event = threading.Event()

    def _request_stop(_signum, _frame) -> None:
        stop_event.set()

    def _request_reload(_signum, _frame) -> None:
        threading.Thread(target=runtime.reload_settings, name="ModeControl-Reload", daemon=True).start()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _request_reload)
    while not stop_event.wait(WAIT_SLICE_SECONDS):
        pass


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings_dir = args.settings_dir or default_settings_dir()
    prefs = Preferences(settings_dir)

    if args.assignments or args.show_settings:
        if args.assignments:
            _apply_assignments(prefs, args.assignments)
        if args.show_settings:
            _show_settings(prefs)
        return 0

    token = None
    if args.mode is not None:
        mode = find_mode(args.mode)
        if mode is None:
            _fail(f"Invalid mode {args.mode!r}. Use: {', '.join(MODE_TOKENS)}", code=2)
        token = mode.token
    elif args.send_only:
        _fail("--send-only needs -mode", code=2)

    configure_logging(level=prefs.log_level, log_dir=settings_dir if args.file_log and not args.send_only else None)
    port = args.port if args.port is not None else prefs.ipc_port

    if token is not None:
        client = ModeCommandClient(port=port, timeout=args.timeout)
        if client.send_mode(token):
            _print_step(f"Sent mode command '{token}' to running instance.")
            return 0
        if args.send_only:
            detail = f" (responded with: {client.last_response})" if client.last_response else ""
            _fail(f"Failed to send command. Make sure Mode Control is running{detail}.")
        _print_step(f"No running instance found. Starting Mode Control and setting mode to {token}.")

    runtime = ModeControlRuntime(
        prefs,
        enable_ipc=not args.no_ipc,
        enable_watcher=not args.no_watcher,
        ipc_port=args.port,
    )
    runtime.start()
    try:
        if token is not None and not runtime.apply_startup_mode(token):
            print(f"{CLI_TAG} ERROR: Could not apply mode {token}; see the log for details.", file=sys.stderr)
        _wait_for_shutdown(runtime)
    finally:
        runtime.stop()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
