from __future__ import annotations

import enum
import itertools
import logging
from dataclasses import dataclass
from typing import Iterator, Optional

from .constants import (
    ACK_LEN,
    ACK_NEGATIVE,
    ALTERNATION_FIXED,
    DEFAULT_TIMEOUT_S,
    FRAMING_EXACT,
    FRAMING_SINGLE_READ,
    RECV_BUFFER,
    SHA256_LEN,
)
from .errors import ConfigError, FrameError, IntegrityError, TransportError
from .net import Address, TcpStream, UdpEndpoint
from .packet import PayloadGenerator, ack_for, digest, frame, is_positive, split, verify
from .stats import SessionStats

logger = logging.getLogger(__name__)


class Role(enum.Enum):
    SENDER = "sender"
    RECEIVER = "receiver"

    @property
    def other(self) -> "Role":
        return Role.RECEIVER if self is Role.SENDER else Role.SENDER


class Verdict(enum.Enum):
    ACKNOWLEDGED = "acknowledged"
    VERIFIED = "verified"
    NEGATIVE_ACK = "negative-ack"
    UNKNOWN_ACK = "unknown-ack"
    MISMATCH = "mismatch"
    MALFORMED = "malformed"
    TIMEOUT = "timeout"


@dataclass(frozen=True, slots=True)
class RoundOutcome:
    role: Role
    ok: bool
    verdict: Verdict

    @property
    def timed_out(self) -> bool:
        return self.verdict is Verdict.TIMEOUT

    def __bool__(self) -> bool:
        return self.ok


def role_schedule(first: Role, alternation: str = ALTERNATION_FIXED) -> Iterator[Role]:
    """Infinite role order. ``fixed`` repeats ``first``; ``ping-pong`` alternates."""
    if alternation == ALTERNATION_FIXED:
        return itertools.repeat(first)
    return itertools.cycle((first, first.other))


class ValidationSession:
    """One peer of a validation exchange.

    ``run_round`` picks the next role from the schedule, runs exactly one
    send/verify/acknowledge cycle and counts it. Timeouts and integrity
    failures come back as a falsy ``RoundOutcome``; ``IntegrityError`` is
    raised instead when ``abort_on_fail`` is set, and any socket failure is
    raised as ``TransportError``.
    """

    transport_name = "?"

    def __init__(
        self,
        first_role: Role,
        *,
        alternation: str = ALTERNATION_FIXED,
        abort_on_fail: bool = False,
        generator: Optional[PayloadGenerator] = None,
        stats: Optional[SessionStats] = None,
    ):
        self.first_role = first_role
        self.alternation = alternation
        self.abort_on_fail = abort_on_fail
        self.generator = generator or PayloadGenerator()
        self.stats = stats or SessionStats()
        self._schedule = role_schedule(first_role, alternation)

    def restart(self) -> None:
        self._schedule = role_schedule(self.first_role, self.alternation)

    def run_round(self) -> RoundOutcome:
        role = next(self._schedule)
        try:
            if role is Role.SENDER:
                outcome = self.sender_round()
            else:
                outcome = self.receiver_round()
        except OSError as exc:
            raise TransportError(f"{self.transport_name} {role.value} round failed: {exc}") from exc

        if self.stats.record(outcome.ok, outcome.timed_out):
            self.on_first_success()

        if not outcome.ok and not outcome.timed_out and self.abort_on_fail:
            raise IntegrityError(f"Data corruption detected ({outcome.verdict.value})")
        return outcome

    def on_first_success(self) -> None:
        pass

    def sender_round(self) -> RoundOutcome:
        raise NotImplementedError

    def receiver_round(self) -> RoundOutcome:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def _next_frame(self) -> bytes:
        payload = self.generator.generate()
        checksum = digest(payload)
        logger.debug("checksum: %s", checksum.hex())
        logger.debug("sending %d bytes of data not including checksum", len(payload))
        return frame(payload, checksum)

    def _check(self, raw: bytes) -> Verdict:
        try:
            data, checksum = split(raw)
        except FrameError as exc:
            logger.warning("malformed frame: %s", exc)
            return Verdict.MALFORMED
        logger.debug("received checksum: %s", checksum.hex())
        if verify(data, checksum):
            return Verdict.VERIFIED
        logger.warning("Data corruption detected!")
        return Verdict.MISMATCH

    @staticmethod
    def _ack_verdict(tag: bytes) -> Verdict:
        if is_positive(tag):
            return Verdict.ACKNOWLEDGED
        if tag == ACK_NEGATIVE:
            return Verdict.NEGATIVE_ACK
        return Verdict.UNKNOWN_ACK


class StreamSession(ValidationSession):
    transport_name = "TCP"

    def __init__(
        self,
        stream: TcpStream,
        first_role: Role,
        *,
        framing: str = FRAMING_EXACT,
        **kwargs,
    ):
        super().__init__(first_role, **kwargs)
        self.stream = stream
        self.framing = framing

    def replace_stream(self, stream: TcpStream) -> None:
        """Install a new connection. Counters stay, the role order restarts."""
        self.stream = stream
        self.restart()

    def sender_round(self) -> RoundOutcome:
        self.stream.sendall(self._next_frame())
        tag = self.stream.recv_exact(ACK_LEN)
        verdict = self._ack_verdict(tag)
        if verdict is Verdict.ACKNOWLEDGED:
            logger.debug("peer acknowledged data receipt")
            return RoundOutcome(Role.SENDER, True, verdict)
        logger.warning("peer failed to acknowledge (got %r)", tag)
        return RoundOutcome(Role.SENDER, False, verdict)

    def receiver_round(self) -> RoundOutcome:
        if self.framing == FRAMING_SINGLE_READ:
            # one read is trusted to be one whole frame
            raw = self.stream.recv_once(RECV_BUFFER)
        else:
            raw = self.stream.recv_exact(self.generator.size + SHA256_LEN)
        logger.debug("received %d bytes", len(raw))

        verdict = self._check(raw)
        ok = verdict is Verdict.VERIFIED
        if ok:
            logger.debug("data integrity verified")
        self.stream.sendall(ack_for(ok))
        return RoundOutcome(Role.RECEIVER, ok, verdict)

    def close(self) -> None:
        self.stream.close()


class DatagramSession(ValidationSession):
    transport_name = "UDP"

    def __init__(
        self,
        endpoint: UdpEndpoint,
        first_role: Role,
        *,
        peer: Optional[Address] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        **kwargs,
    ):
        super().__init__(first_role, **kwargs)
        self.endpoint = endpoint
        self.peer = peer
        self.timeout_s = timeout_s
        self.endpoint.sock.settimeout(timeout_s)
        self._ack_overdue = False

    def on_first_success(self) -> None:
        logger.info(
            "UDP: connection established with %s:%d after %d failed round(s)",
            self.peer[0],
            self.peer[1],
            self.stats.failures,
        )

    def sender_round(self) -> RoundOutcome:
        if self.peer is None:
            raise ConfigError("UDP sender has no peer address to send to")

        # an ack for a timed-out round may still be in flight
        grace = self.timeout_s if self._ack_overdue else 0.0
        self._ack_overdue = False
        stale = self.endpoint.discard_pending(grace)
        if stale:
            logger.debug("discarded %d stale datagram(s)", stale)

        self.endpoint.sendto(self._next_frame(), self.peer)
        try:
            tag, _ = self.endpoint.recvfrom()
        except TimeoutError:
            logger.warning(
                "no acknowledgement within %.1fs. If this happens early on, "
                "make sure the client is running first, then the server.",
                self.timeout_s,
            )
            self._ack_overdue = True
            return RoundOutcome(Role.SENDER, False, Verdict.TIMEOUT)

        verdict = self._ack_verdict(tag)
        if verdict is Verdict.ACKNOWLEDGED:
            logger.info("Client acknowledged data receipt.")
            return RoundOutcome(Role.SENDER, True, verdict)
        logger.warning("Client failed to acknowledge (got %r)", tag)
        return RoundOutcome(Role.SENDER, False, verdict)

    def receiver_round(self) -> RoundOutcome:
        try:
            raw, addr = self.endpoint.recvfrom()
        except TimeoutError:
            logger.debug("no datagram within %.1fs", self.timeout_s)
            return RoundOutcome(Role.RECEIVER, False, Verdict.TIMEOUT)
        logger.debug("received %d bytes from %s:%d", len(raw), addr[0], addr[1])

        if addr != self.peer:
            logger.info("UDP: receiving from %s:%d", addr[0], addr[1])
            self.peer = addr

        verdict = self._check(raw)
        ok = verdict is Verdict.VERIFIED
        if ok:
            logger.info("Data integrity verified!")
        self.endpoint.sendto(ack_for(ok), addr)
        return RoundOutcome(Role.RECEIVER, ok, verdict)

    def close(self) -> None:
        self.endpoint.close()
