from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from .constants import (
    ALTERNATION_FIXED,
    ALTERNATION_PING_PONG,
    DEFAULT_PAYLOAD_SIZE,
    DEFAULT_REPORT_EVERY,
    DEFAULT_RETRY_INTERVAL_S,
    DEFAULT_TIMEOUT_S,
    FRAMING_EXACT,
    FRAMING_SINGLE_READ,
    RECV_BUFFER,
    SHA256_LEN,
    TRANSPORTS,
    UNITS,
)
from .errors import ConfigError

logger = logging.getLogger(__name__)

Address = Tuple[str, int]


def parse_address(text: str) -> Address:
    """Parse ``host:port`` (``[v6]:port`` also accepted)."""
    host, sep, port = text.strip().rpartition(":")
    if not sep or not host:
        raise ConfigError(f"expected HOST:PORT, got {text!r}")
    host = host.strip("[]")
    try:
        port_num = int(port)
    except ValueError:
        raise ConfigError(f"invalid port in {text!r}") from None
    if not 0 <= port_num <= 65535:
        raise ConfigError(f"port out of range in {text!r}")
    return host, port_num


@dataclass(frozen=True, slots=True)
class SessionConfig:
    transport: str
    unit: str
    bind_address: Optional[Address] = None
    peer_address: Optional[Address] = None
    abort_on_fail: bool = False
    payload_size: int = DEFAULT_PAYLOAD_SIZE
    timeout_s: float = DEFAULT_TIMEOUT_S
    framing: str = FRAMING_EXACT
    alternation: str = ALTERNATION_FIXED
    reconnect: bool = True
    retry_interval_s: float = DEFAULT_RETRY_INTERVAL_S
    report_every: int = DEFAULT_REPORT_EVERY
    report: bool = True

    @property
    def frame_size(self) -> int:
        return self.payload_size + SHA256_LEN

    @property
    def is_server(self) -> bool:
        return self.unit == "server"

    def validate(self) -> "SessionConfig":
        if self.transport not in TRANSPORTS:
            raise ConfigError(f"unknown transport {self.transport!r}; use one of {TRANSPORTS}")
        if self.unit not in UNITS:
            raise ConfigError(f"unknown unit {self.unit!r}; use one of {UNITS}")
        if self.framing not in (FRAMING_EXACT, FRAMING_SINGLE_READ):
            raise ConfigError(f"unknown framing {self.framing!r}")
        if self.alternation not in (ALTERNATION_FIXED, ALTERNATION_PING_PONG):
            raise ConfigError(f"unknown alternation {self.alternation!r}")
        if self.payload_size <= 0:
            raise ConfigError("payload size must be positive")
        if self.timeout_s <= 0:
            raise ConfigError("timeout must be positive")
        if self.retry_interval_s < 0:
            raise ConfigError("retry interval must not be negative")
        if self.transport == "udp" and self.frame_size > RECV_BUFFER:
            raise ConfigError(f"a {self.frame_size} byte frame does not fit a {RECV_BUFFER} byte datagram read")
        if self.transport == "tcp" and self.framing == FRAMING_SINGLE_READ and self.frame_size > RECV_BUFFER:
            raise ConfigError("single-read framing needs a frame no larger than the read buffer")

        if self.transport == "udp":
            if self.alternation != ALTERNATION_FIXED:
                raise ConfigError("UDP sessions only support fixed alternation")
            if self.bind_address is None:
                raise ConfigError("UDP needs a bind address")
            if self.is_server and self.peer_address is None:
                raise ConfigError("The UDP server MUST specify a send address to send data to.")
            if not self.is_server and self.peer_address is not None:
                logger.warning("as a UDP client, the send address %s will be ignored", self.peer_address)
        else:
            if self.is_server and self.bind_address is None:
                raise ConfigError("TCP server needs a bind address")
            if not self.is_server and self.peer_address is None:
                raise ConfigError("TCP client needs a server address to connect to")
        return self
