from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Callable, Optional

from .constants import DEFAULT_RETRY_INTERVAL_S
from .errors import TransportError
from .net import TcpStream
from .session import StreamSession

logger = logging.getLogger(__name__)


class LinkState(enum.Enum):
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class ReconnectSupervisor:
    """Replaces a broken TCP connection without ending the session.

    ``acquire`` blocks until it has a new connection: ``accept`` on the
    listening side, ``connect`` on the connecting side. Attempts that fail
    with ``OSError`` are retried every ``retry_interval_s`` with no upper
    bound. Only ``stop`` ends the wait early.
    """

    def __init__(
        self,
        acquire: Callable[[], TcpStream],
        retry_interval_s: float = DEFAULT_RETRY_INTERVAL_S,
        stop: Optional[threading.Event] = None,
    ):
        self._acquire = acquire
        self.retry_interval_s = retry_interval_s
        self.stop = stop
        self.state = LinkState.CONNECTED
        self.attempts = 0

    def recover(self, session: StreamSession, cause: Optional[BaseException] = None) -> TcpStream:
        self.state = LinkState.RECONNECTING
        self.attempts = 0
        logger.warning("TCP: connection lost (%s); waiting for a new peer", cause or "unknown")
        session.close()

        while True:
            if self.stop is not None and self.stop.is_set():
                raise TransportError("stopped while reconnecting")
            self.attempts += 1
            logger.info("TCP: reconnect attempt %d", self.attempts)
            try:
                stream = self._acquire()
            except OSError as exc:
                logger.warning("TCP: reconnect attempt %d failed: %s", self.attempts, exc)
                self._wait()
                continue
            break

        session.replace_stream(stream)
        session.stats.reconnects += 1
        self.state = LinkState.CONNECTED
        logger.info("TCP: peer reconnected after %d attempt(s)", self.attempts)
        return stream

    def _wait(self) -> None:
        if self.stop is not None:
            self.stop.wait(self.retry_interval_s)
        else:
            time.sleep(self.retry_interval_s)
