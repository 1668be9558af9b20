from __future__ import annotations

import json
import socket

import pytest

from wirecheck import bench
from wirecheck.bench import run_benchmark
from wirecheck.cli import main
from wirecheck.errors import ConfigError, IntegrityError


@pytest.mark.parametrize("transport", ["tcp", "udp"])
def test_clean_loopback(transport):
    r = run_benchmark(transport=transport, rounds=20, timeout_s=1.0)
    assert r.rounds == 20
    assert r.successes == 20
    assert r.failures == 0
    assert r.throughput_mbps > 0


@pytest.mark.parametrize("transport", ["tcp", "udp"])
def test_corruption_counted(transport):
    r = run_benchmark(transport=transport, rounds=5, corrupt_rate=1.0, timeout_s=1.0)
    assert r.rounds == 5
    assert r.successes == 0
    assert r.failures == 5
    assert r.timeouts == 0


def test_corruption_aborts():
    with pytest.raises(IntegrityError):
        run_benchmark(transport="tcp", rounds=5, corrupt_rate=1.0, abort_on_fail=True)


def test_udp_loss_becomes_timeouts():
    r = run_benchmark(transport="udp", rounds=3, loss_rate=1.0, timeout_s=0.1)
    assert r.rounds == 3
    assert r.timeouts == 3
    assert r.successes == 0


def test_cli_bench_json(capsys):
    assert main(["--quiet", "bench", "--rounds", "5", "--json"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["role"] == "bench"
    assert out["successes"] == 5


def test_cli_config_error_exit():
    assert main(["udp", "server", "127.0.0.1:0"]) == 1
    assert main(["tcp", "client", "no-port-here"]) == 1


def test_cli_transport_error_exit():
    # nothing listens on a freshly released port
    s = socket.socket()
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    assert main(["tcp", "client", f"127.0.0.1:{port}", "--rounds", "1"]) == 1


def test_config_checked_before_sockets_open(monkeypatch):
    class NoSockets:
        @classmethod
        def bound(cls, *args, **kwargs):
            raise AssertionError("socket opened before validation")

    monkeypatch.setattr(bench, "UdpEndpoint", NoSockets)
    monkeypatch.setattr(bench, "listen", NoSockets.bound)
    with pytest.raises(ConfigError):
        run_benchmark(transport="udp", rounds=1, payload_size=4096)
    with pytest.raises(ConfigError):
        run_benchmark(transport="tcp", rounds=1, payload_size=0)
