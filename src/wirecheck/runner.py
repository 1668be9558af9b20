from __future__ import annotations

import logging
import socket
import threading
from typing import Optional

from .config import SessionConfig
from .errors import TransportError
from .net import Impairment, TcpStream, UdpEndpoint, listen
from .packet import PayloadGenerator
from .reconnect import ReconnectSupervisor
from .session import DatagramSession, Role, StreamSession
from .stats import StatsReporter, StatsSnapshot

logger = logging.getLogger(__name__)


def _keep_going(session, max_rounds: Optional[int], stop: Optional[threading.Event]) -> bool:
    if stop is not None and stop.is_set():
        return False
    return max_rounds is None or session.stats.rounds < max_rounds


def run_stream_loop(
    session: StreamSession,
    supervisor: Optional[ReconnectSupervisor] = None,
    reporter: Optional[StatsReporter] = None,
    *,
    max_rounds: Optional[int] = None,
    stop: Optional[threading.Event] = None,
) -> StatsSnapshot:
    reporter = reporter or StatsReporter(enabled=False)
    while _keep_going(session, max_rounds, stop):
        try:
            outcome = session.run_round()
        except TransportError as exc:
            if supervisor is None:
                raise
            supervisor.recover(session, exc)
            continue
        reporter.record(outcome, session.stats.snapshot())
    return session.stats.snapshot()


def run_datagram_loop(
    session: DatagramSession,
    reporter: Optional[StatsReporter] = None,
    *,
    max_rounds: Optional[int] = None,
    stop: Optional[threading.Event] = None,
) -> StatsSnapshot:
    reporter = reporter or StatsReporter(enabled=False)
    while _keep_going(session, max_rounds, stop):
        outcome = session.run_round()
        reporter.record(outcome, session.stats.snapshot())
    return session.stats.snapshot()


def _reporter(config: SessionConfig) -> StatsReporter:
    return StatsReporter(report_every=config.report_every, enabled=config.report)


def _session_kwargs(config: SessionConfig) -> dict:
    return {
        "abort_on_fail": config.abort_on_fail,
        "generator": PayloadGenerator(size=config.payload_size),
    }


def run_stream_server(
    config: SessionConfig,
    *,
    listener: Optional[socket.socket] = None,
    impairment: Optional[Impairment] = None,
    max_rounds: Optional[int] = None,
    stop: Optional[threading.Event] = None,
) -> StatsSnapshot:
    """Listening side of a TCP session. Sends first."""
    try:
        if listener is None:
            listener = listen(*config.bind_address)
        host, port = listener.getsockname()[:2]
        logger.info("TCP: listening on %s:%d", host, port)
        stream = TcpStream.accept(listener, impairment)
    except OSError as exc:
        if listener is not None:
            listener.close()
        raise TransportError(f"TCP server could not start: {exc}") from exc

    logger.info("TCP: Client connected from %s:%d", *stream.peer)
    session = StreamSession(
        stream,
        Role.SENDER,
        framing=config.framing,
        alternation=config.alternation,
        **_session_kwargs(config),
    )
    supervisor = None
    if config.reconnect:
        supervisor = ReconnectSupervisor(
            lambda: TcpStream.accept(listener, impairment),
            retry_interval_s=config.retry_interval_s,
            stop=stop,
        )
    try:
        return run_stream_loop(session, supervisor, _reporter(config), max_rounds=max_rounds, stop=stop)
    finally:
        session.close()
        listener.close()


def run_stream_client(
    config: SessionConfig,
    *,
    impairment: Optional[Impairment] = None,
    max_rounds: Optional[int] = None,
    stop: Optional[threading.Event] = None,
) -> StatsSnapshot:
    """Connecting side of a TCP session. Receives first."""
    try:
        stream = TcpStream.connect(config.peer_address, impairment)
    except OSError as exc:
        raise TransportError(f"TCP client could not connect to {config.peer_address}: {exc}") from exc

    logger.info("TCP: Connected to server %s:%d", *stream.peer)
    session = StreamSession(
        stream,
        Role.RECEIVER,
        framing=config.framing,
        alternation=config.alternation,
        **_session_kwargs(config),
    )
    supervisor = None
    if config.reconnect:
        supervisor = ReconnectSupervisor(
            lambda: TcpStream.connect(config.peer_address, impairment),
            retry_interval_s=config.retry_interval_s,
            stop=stop,
        )
    try:
        return run_stream_loop(session, supervisor, _reporter(config), max_rounds=max_rounds, stop=stop)
    finally:
        session.close()


def _open_endpoint(config: SessionConfig, impairment: Optional[Impairment]) -> UdpEndpoint:
    try:
        return UdpEndpoint.bound(*config.bind_address, timeout_s=config.timeout_s, impairment=impairment)
    except OSError as exc:
        raise TransportError(f"UDP could not bind {config.bind_address}: {exc}") from exc


def run_datagram_server(
    config: SessionConfig,
    *,
    endpoint: Optional[UdpEndpoint] = None,
    impairment: Optional[Impairment] = None,
    max_rounds: Optional[int] = None,
    stop: Optional[threading.Event] = None,
) -> StatsSnapshot:
    """UDP side that sends frames to the configured peer."""
    endpoint = endpoint or _open_endpoint(config, impairment)
    logger.info("UDP: sending from %s:%d to %s:%d", *endpoint.address, *config.peer_address)
    session = DatagramSession(
        endpoint,
        Role.SENDER,
        peer=config.peer_address,
        timeout_s=config.timeout_s,
        **_session_kwargs(config),
    )
    try:
        return run_datagram_loop(session, _reporter(config), max_rounds=max_rounds, stop=stop)
    finally:
        session.close()


def run_datagram_client(
    config: SessionConfig,
    *,
    endpoint: Optional[UdpEndpoint] = None,
    impairment: Optional[Impairment] = None,
    max_rounds: Optional[int] = None,
    stop: Optional[threading.Event] = None,
) -> StatsSnapshot:
    """UDP side that verifies frames and acknowledges to whoever sent them."""
    endpoint = endpoint or _open_endpoint(config, impairment)
    logger.info("UDP: waiting for data on %s:%d", *endpoint.address)
    session = DatagramSession(
        endpoint,
        Role.RECEIVER,
        timeout_s=config.timeout_s,
        **_session_kwargs(config),
    )
    try:
        return run_datagram_loop(session, _reporter(config), max_rounds=max_rounds, stop=stop)
    finally:
        session.close()


def run(
    config: SessionConfig,
    *,
    impairment: Optional[Impairment] = None,
    max_rounds: Optional[int] = None,
) -> StatsSnapshot:
    config.validate()
    if config.transport == "tcp":
        if config.is_server:
            return run_stream_server(config, impairment=impairment, max_rounds=max_rounds)
        return run_stream_client(config, impairment=impairment, max_rounds=max_rounds)
    if config.is_server:
        return run_datagram_server(config, impairment=impairment, max_rounds=max_rounds)
    return run_datagram_client(config, impairment=impairment, max_rounds=max_rounds)
