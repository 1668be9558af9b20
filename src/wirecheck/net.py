from __future__ import annotations

import random
import socket
import time
from dataclasses import dataclass, field
from typing import Tuple

from .constants import RECV_BUFFER

Address = Tuple[str, int]


@dataclass(frozen=True, slots=True)
class Impairment:
    """Fault injection for outbound traffic. Drops only make sense for UDP."""

    loss_rate: float = 0.0
    delay_ms: int = 0
    corrupt_rate: float = 0.0
    rng: random.Random = field(default_factory=random.Random, compare=False)

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and self.rng.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)

    def corrupt(self, data: bytes) -> bytes:
        if not data or self.corrupt_rate <= 0 or self.rng.random() >= self.corrupt_rate:
            return data
        buf = bytearray(data)
        buf[self.rng.randrange(len(buf))] ^= 0xFF
        return bytes(buf)


class UdpEndpoint:
    def __init__(self, sock: socket.socket, impairment: Impairment | None = None):
        self.sock = sock
        self.impairment = impairment or Impairment()

    @classmethod
    def bound(
        cls,
        host: str,
        port: int,
        timeout_s: float = 0.0,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        family, sockaddr = resolve_passive(host, port, socket.SOCK_DGRAM)
        sock = socket.socket(family, socket.SOCK_DGRAM)
        try:
            sock.bind(sockaddr)
        except OSError:
            sock.close()
            raise
        if timeout_s > 0:
            sock.settimeout(timeout_s)
        return cls(sock, impairment)

    @property
    def address(self) -> Address:
        return self.sock.getsockname()[:2]

    def sendto(self, data: bytes, addr: Address) -> None:
        if self.impairment.should_drop():
            return
        self.impairment.sleep_if_needed()
        self.sock.sendto(self.impairment.corrupt(data), addr)

    def recvfrom(self, bufsize: int = RECV_BUFFER) -> Tuple[bytes, Address]:
        data, addr = self.sock.recvfrom(bufsize)
        return data, addr

    def discard_pending(self, grace_s: float = 0.0) -> int:
        """Drop queued datagrams, and any arriving within ``grace_s``.

        Used to flush acknowledgments that belong to a round that already
        timed out.
        """
        timeout = self.sock.gettimeout()
        deadline = time.monotonic() + grace_s
        dropped = 0
        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining > 0:
                    self.sock.settimeout(remaining)
                else:
                    self.sock.setblocking(False)
                try:
                    self.sock.recvfrom(RECV_BUFFER)
                except (BlockingIOError, TimeoutError):
                    return dropped
                dropped += 1
        finally:
            self.sock.settimeout(timeout)

    def close(self) -> None:
        self.sock.close()


def resolve_passive(host: str, port: int, socktype: int) -> Tuple[int, tuple]:
    """Address family and sockaddr to bind ``host:port``, IPv4 or IPv6."""
    infos = socket.getaddrinfo(host, port, socket.AF_UNSPEC, socktype, 0, socket.AI_PASSIVE)
    family, _, _, _, sockaddr = infos[0]
    return family, sockaddr


def listen(host: str, port: int, backlog: int = 1) -> socket.socket:
    family, sockaddr = resolve_passive(host, port, socket.SOCK_STREAM)
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(sockaddr)
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise
    return sock


class TcpStream:
    def __init__(self, sock: socket.socket, impairment: Impairment | None = None):
        self.sock = sock
        self.impairment = impairment or Impairment()

    @classmethod
    def connect(cls, addr: Address, impairment: Impairment | None = None) -> "TcpStream":
        sock = socket.create_connection(addr)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        return cls(sock, impairment)

    @classmethod
    def accept(cls, listener: socket.socket, impairment: Impairment | None = None) -> "TcpStream":
        sock, _ = listener.accept()
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        return cls(sock, impairment)

    @property
    def peer(self) -> Address:
        return self.sock.getpeername()[:2]

    def sendall(self, data: bytes) -> None:
        self.impairment.sleep_if_needed()
        self.sock.sendall(self.impairment.corrupt(data))

    def recv_once(self, bufsize: int = RECV_BUFFER) -> bytes:
        data = self.sock.recv(bufsize)
        if not data:
            raise ConnectionError("peer closed the connection")
        return data

    def recv_exact(self, n: int) -> bytes:
        buf = bytearray()
        while len(buf) < n:
            chunk = self.sock.recv(n - len(buf))
            if not chunk:
                raise ConnectionError(f"peer closed the connection after {len(buf)}/{n} bytes")
            buf += chunk
        return bytes(buf)

    def close(self) -> None:
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()
