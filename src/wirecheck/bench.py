from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Literal

from .config import SessionConfig
from .constants import DEFAULT_PAYLOAD_SIZE
from .errors import WirecheckError
from .net import Impairment, UdpEndpoint, listen
from .runner import run_datagram_client, run_datagram_server, run_stream_client, run_stream_server

logger = logging.getLogger(__name__)

LOOPBACK = ("127.0.0.1", 0)


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    transport: str
    rounds: int
    successes: int
    failures: int
    timeouts: int
    duration_s: float
    throughput_mbps: float


def run_benchmark(
    *,
    transport: Literal["tcp", "udp"] = "tcp",
    rounds: int = 1000,
    payload_size: int = DEFAULT_PAYLOAD_SIZE,
    corrupt_rate: float = 0.0,
    loss_rate: float = 0.0,
    delay_ms: int = 0,
    timeout_s: float = 0.25,
    abort_on_fail: bool = False,
) -> BenchmarkResult:
    """Run both peers over loopback; faults are injected on the sending side only."""
    impair = Impairment(loss_rate=loss_rate, delay_ms=delay_ms, corrupt_rate=corrupt_rate)
    stop = threading.Event()
    recv_holder: dict = {}

    if transport == "tcp":
        send_cfg = SessionConfig(
            "tcp", "server", bind_address=LOOPBACK, abort_on_fail=abort_on_fail,
            payload_size=payload_size, reconnect=False, report=False,
        ).validate()
        recv_cfg = SessionConfig(
            "tcp", "client", peer_address=LOOPBACK, abort_on_fail=abort_on_fail,
            payload_size=payload_size, reconnect=False, report=False,
        ).validate()

        listener = listen(*LOOPBACK)
        addr = listener.getsockname()[:2]
        send_cfg = replace(send_cfg, bind_address=addr)
        recv_cfg = replace(recv_cfg, peer_address=addr)

        def recv_runner():
            try:
                recv_holder["stats"] = run_stream_client(recv_cfg, max_rounds=rounds, stop=stop)
            except WirecheckError as exc:
                recv_holder["error"] = exc

        def send_runner():
            return run_stream_server(send_cfg, listener=listener, impairment=impair, max_rounds=rounds, stop=stop)
    else:
        send_cfg = SessionConfig(
            "udp", "server", bind_address=LOOPBACK, peer_address=LOOPBACK,
            abort_on_fail=abort_on_fail, payload_size=payload_size, timeout_s=timeout_s, report=False,
        ).validate()
        recv_cfg = SessionConfig(
            "udp", "client", bind_address=LOOPBACK, abort_on_fail=abort_on_fail,
            payload_size=payload_size, timeout_s=timeout_s, report=False,
        ).validate()

        recv_ep = UdpEndpoint.bound(*LOOPBACK, timeout_s=timeout_s)
        try:
            send_ep = UdpEndpoint.bound(*LOOPBACK, timeout_s=timeout_s, impairment=impair)
        except OSError:
            recv_ep.close()
            raise
        send_cfg = replace(send_cfg, bind_address=send_ep.address, peer_address=recv_ep.address)
        recv_cfg = replace(recv_cfg, bind_address=recv_ep.address)

        def recv_runner():
            try:
                recv_holder["stats"] = run_datagram_client(recv_cfg, endpoint=recv_ep, stop=stop)
            except WirecheckError as exc:
                recv_holder["error"] = exc

        def send_runner():
            return run_datagram_server(send_cfg, endpoint=send_ep, max_rounds=rounds, stop=stop)

    t = threading.Thread(target=recv_runner, daemon=True)
    t.start()
    try:
        send_stats = send_runner()
    finally:
        stop.set()
        t.join(timeout=timeout_s * 4 + 1.0)

    if "error" in recv_holder:
        logger.warning("receiver ended with: %s", recv_holder["error"])

    duration_s = max(0.001, send_stats.duration_s)
    throughput_mbps = (send_stats.successes * payload_size * 8 / 1_000_000) / duration_s
    return BenchmarkResult(
        transport=transport,
        rounds=send_stats.rounds,
        successes=send_stats.successes,
        failures=send_stats.failures,
        timeouts=send_stats.timeouts,
        duration_s=duration_s,
        throughput_mbps=throughput_mbps,
    )
