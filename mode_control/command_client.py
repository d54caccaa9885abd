"""Client side of the loopback mode command protocol."""
from __future__ import annotations

import logging
import socket
from typing import Callable, Optional

from .preferences import DEFAULT_IPC_PORT
from .protocol import COMMAND_PREFIX, ENCODING, is_ok

LOGGER = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 2.0
LOOPBACK_HOST = "127.0.0.1"

ConnectFn = Callable[..., object]


class ModeCommandClient:
    """Send ``mode:<name>`` to a running instance.

    A refused or timed-out connection is the normal "no instance running" case
    and is reported as ``False``, never raised.
    """

    def __init__(
        self,
        *,
        port: int = DEFAULT_IPC_PORT,
        host: str = LOOPBACK_HOST,
        timeout: float = DEFAULT_CONNECT_TIMEOUT,
        connect: Optional[ConnectFn] = None,
    ) -> None:
        self.port = port
        self.host = host
        self.timeout = timeout
        self._connect = connect or socket.create_connection
        self.last_response: Optional[str] = None

    def send_mode(self, name: str) -> bool:
        self.last_response = None
        message = f"{COMMAND_PREFIX}{name}"
        try:
            with self._connect((self.host, self.port), timeout=self.timeout) as sock:
                try:
                    sock.settimeout(self.timeout)
                except OSError:
                    pass
                writer = sock.makefile("w", encoding=ENCODING, newline="\n")
                reader = sock.makefile("r", encoding=ENCODING, newline="\n")
                with writer, reader:
                    writer.write(message)
                    writer.write("\n")
                    writer.flush()
                    line = reader.readline()
        except OSError as exc:
            LOGGER.debug("No mode command listener on %s:%s (%s)", self.host, self.port, exc)
            return False
        except UnicodeDecodeError as exc:
            LOGGER.debug("Unreadable response from %s:%s (%s)", self.host, self.port, exc)
            return False
        response = line.rstrip("\r\n") if line else ""
        self.last_response = response
        if not is_ok(response):
            LOGGER.debug("Mode command %r answered with %r", message, response)
            return False
        return True


def send_mode(name: str, *, port: int = DEFAULT_IPC_PORT, timeout: float = DEFAULT_CONNECT_TIMEOUT) -> bool:
    return ModeCommandClient(port=port, timeout=timeout).send_mode(name)
