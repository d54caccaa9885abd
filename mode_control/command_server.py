"""Threaded loopback command server for mode changes.

The server binds to ``127.0.0.1`` only and does not authenticate callers: any
local process can request a mode change. Loopback binding is the whole trust
boundary.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Set

from .errors import ProtocolError
from .modes import Mode
from .preferences import DEFAULT_IPC_PORT, DEFAULT_IPC_READ_TIMEOUT
from .protocol import (
    MAX_LINE_BYTES,
    RESPONSE_ERROR,
    RESPONSE_INVALID,
    RESPONSE_OK,
    decode_line,
    encode_response,
    parse_request,
)

LOGGER = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"
READY_TIMEOUT_SECONDS = 5.0

CommandFunc = Callable[[Mode], bool]


@dataclass
class ModeCommandServer:
    """Runs a background TCP server that answers one ``mode:<name>`` command per connection."""

    command_handler: CommandFunc
    host: str = LOOPBACK_HOST
    port: int = DEFAULT_IPC_PORT
    read_timeout: Optional[float] = DEFAULT_IPC_READ_TIMEOUT
    _loop: Optional[asyncio.AbstractEventLoop] = field(default=None, init=False)
    _thread: Optional[threading.Thread] = field(default=None, init=False)
    _ready_event: threading.Event = field(default_factory=threading.Event, init=False)
    _shutdown: Optional[asyncio.Event] = field(default=None, init=False)
    _handlers: Set["asyncio.Task[Any]"] = field(default_factory=set, init=False)
    _start_error: Optional[BaseException] = field(default=None, init=False)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def active_connections(self) -> int:
        return len(self._handlers)

    def start(self) -> bool:
        """Start the listener on a background thread.

        Returns ``True`` when the listener is ready, ``False`` when it could not
        bind (for example because another instance owns the port).
        """
        if self.running:
            return True

        self._ready_event.clear()
        self._start_error = None
        self._thread = threading.Thread(target=self._run, name="ModeControl-IPC", daemon=True)
        self._thread.start()
        if not self._ready_event.wait(timeout=READY_TIMEOUT_SECONDS):
            LOGGER.error("IPC listener did not signal readiness within %.0fs; shutting down", READY_TIMEOUT_SECONDS)
            self.stop()
            return False

        if self._start_error is not None:
            LOGGER.error("Failed to start IPC listener on %s:%s: %s", self.host, self.port, self._start_error)
            self.stop()
            return False

        LOGGER.info("IPC listener started on %s:%s", self.host, self.port)
        return True

    def stop(self) -> None:
        """Stop accepting, cancel in-flight handlers and join the server thread."""
        loop = self._loop
        shutdown = self._shutdown
        if loop is not None and shutdown is not None:
            try:
                loop.call_soon_threadsafe(shutdown.set)
            except RuntimeError:
                # Loop already closed.
                pass
        worker = self._thread
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=READY_TIMEOUT_SECONDS)
            if worker.is_alive():
                LOGGER.warning("IPC listener thread failed to terminate cleanly; abandoning join")
        was_running = self._loop is not None
        self._loop = None
        self._thread = None
        self._shutdown = None
        if was_running and self._start_error is None:
            LOGGER.info("IPC listener stopped")

    # Internal helpers -----------------------------------------------------

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        self._loop = loop
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._server_main())
        except Exception as exc:
            if not self._ready_event.is_set():
                self._start_error = exc
            else:
                LOGGER.error("IPC listener loop terminated with error: %s", exc, exc_info=exc)
        finally:
            self._ready_event.set()
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    async def _server_main(self) -> None:
        self._shutdown = asyncio.Event()
        server = await asyncio.start_server(
            self._handle_client,
            self.host,
            self.port,
            limit=MAX_LINE_BYTES,
        )
        sockets = server.sockets or []
        if sockets:
            self.port = sockets[0].getsockname()[1]
        self._ready_event.set()

        async with server:
            await self._shutdown.wait()
            handlers = list(self._handlers)
            for task in handlers:
                task.cancel()
            if handlers:
                await asyncio.gather(*handlers, return_exceptions=True)
        self._handlers.clear()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)
        try:
            try:
                raw = await asyncio.wait_for(reader.readline(), timeout=self.read_timeout)
            except asyncio.TimeoutError:
                LOGGER.warning("IPC client %s sent no command within %ss; closing", peer, self.read_timeout)
                return
            except ValueError:
                # Line longer than MAX_LINE_BYTES.
                LOGGER.warning("IPC client %s sent an oversized command", peer)
                await self._reply(writer, RESPONSE_INVALID)
                return
            except (ConnectionError, asyncio.IncompleteReadError) as exc:
                LOGGER.debug("IPC client %s disconnected before sending a command: %s", peer, exc)
                return
            response = await self._dispatch(raw)
            await self._reply(writer, response)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("IPC client handling error: %s", exc, exc_info=exc)
        finally:
            if task is not None:
                self._handlers.discard(task)
            await self._close_writer(writer)

    async def _dispatch(self, raw: bytes) -> str:
        try:
            line = decode_line(raw)
        except UnicodeDecodeError:
            LOGGER.warning("Received IPC command that is not valid UTF-8")
            return RESPONSE_INVALID
        LOGGER.info("Received IPC command: %s", line)
        try:
            mode = parse_request(line)
        except ProtocolError as exc:
            LOGGER.warning("Rejected IPC command: %s", exc)
            return RESPONSE_INVALID
        loop = asyncio.get_running_loop()
        try:
            succeeded = await loop.run_in_executor(None, self.command_handler, mode)
        except Exception as exc:
            LOGGER.error("IPC mode handler raised error: %s", exc, exc_info=exc)
            succeeded = False
        return RESPONSE_OK if succeeded else RESPONSE_ERROR

    async def _reply(self, writer: asyncio.StreamWriter, text: str) -> None:
        try:
            writer.write(encode_response(text))
            await writer.drain()
        except (ConnectionError, OSError) as exc:
            LOGGER.debug("Could not send IPC response %r: %s", text, exc)

    async def _close_writer(self, writer: asyncio.StreamWriter) -> None:
        try:
            writer.close()
            await writer.wait_closed()
        except (ConnectionError, OSError) as exc:
            LOGGER.debug("Error closing IPC connection: %s", exc)
