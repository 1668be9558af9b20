from __future__ import annotations

import socket
import threading
import time

import pytest

from wirecheck.net import UdpEndpoint, listen


def test_udp_endpoint_ipv4():
    ep = UdpEndpoint.bound("127.0.0.1", 0)
    try:
        assert ep.sock.family == socket.AF_INET
        assert ep.address[0] == "127.0.0.1"
    finally:
        ep.close()


def test_ipv6_addresses_pick_ipv6_sockets():
    try:
        ep = UdpEndpoint.bound("::1", 0)
    except OSError:
        pytest.skip("no IPv6 loopback")
    try:
        assert ep.sock.family == socket.AF_INET6
        assert ep.address[0] == "::1"
    finally:
        ep.close()

    listener = listen("::1", 0)
    try:
        assert listener.family == socket.AF_INET6
    finally:
        listener.close()


def test_udp_port_cannot_be_shared():
    first = UdpEndpoint.bound("127.0.0.1", 0)
    try:
        with pytest.raises(OSError):
            UdpEndpoint.bound(*first.address)
    finally:
        first.close()


def test_discard_pending_waits_for_late_datagrams():
    ep = UdpEndpoint.bound("127.0.0.1", 0, timeout_s=1.0)
    other = UdpEndpoint.bound("127.0.0.1", 0)
    try:
        other.sendto(b"early", ep.address)
        time.sleep(0.05)
        late = threading.Timer(0.1, other.sendto, args=(b"late", ep.address))
        late.start()
        assert ep.discard_pending(0.3) == 2
        late.join()
        assert ep.sock.gettimeout() == 1.0
    finally:
        ep.close()
        other.close()


def test_discard_pending_without_grace_only_takes_queued():
    ep = UdpEndpoint.bound("127.0.0.1", 0, timeout_s=1.0)
    other = UdpEndpoint.bound("127.0.0.1", 0)
    try:
        assert ep.discard_pending() == 0
        other.sendto(b"queued", ep.address)
        time.sleep(0.05)
        assert ep.discard_pending() == 1
    finally:
        ep.close()
        other.close()
