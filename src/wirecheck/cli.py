from __future__ import annotations

import argparse
import json
import logging

from .bench import run_benchmark
from .config import SessionConfig, parse_address
from .constants import (
    ALTERNATION_FIXED,
    ALTERNATION_PING_PONG,
    DEFAULT_PAYLOAD_SIZE,
    DEFAULT_REPORT_EVERY,
    DEFAULT_RETRY_INTERVAL_S,
    DEFAULT_TIMEOUT_S,
    FRAMING_EXACT,
    FRAMING_SINGLE_READ,
)
from .errors import WirecheckError
from .runner import run

logger = logging.getLogger(__name__)


def _common_config(args: argparse.Namespace) -> dict:
    return {
        "abort_on_fail": args.abort_on_fail,
        "payload_size": args.payload_size,
        "report_every": args.report_every,
        "report": not args.quiet,
    }


def cmd_tcp(args: argparse.Namespace) -> int:
    address = parse_address(args.address)
    config = SessionConfig(
        "tcp",
        args.unit,
        bind_address=address if args.unit == "server" else None,
        peer_address=address if args.unit == "client" else None,
        framing=args.framing,
        alternation=args.alternate,
        reconnect=not args.no_reconnect,
        retry_interval_s=args.retry_interval,
        **_common_config(args),
    )
    stats = run(config, max_rounds=args.rounds)
    logger.info("done; rounds=%d ok=%d failed=%d", stats.rounds, stats.successes, stats.failures)
    return 0


def cmd_udp(args: argparse.Namespace) -> int:
    config = SessionConfig(
        "udp",
        args.unit,
        bind_address=parse_address(args.bind_address),
        peer_address=parse_address(args.send_address) if args.send_address else None,
        timeout_s=args.timeout,
        **_common_config(args),
    )
    stats = run(config, max_rounds=args.rounds)
    logger.info(
        "done; rounds=%d ok=%d failed=%d timeouts=%d",
        stats.rounds,
        stats.successes,
        stats.failures,
        stats.timeouts,
    )
    return 0


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(
        transport=args.transport,
        rounds=args.rounds,
        payload_size=args.payload_size,
        corrupt_rate=args.corrupt_rate,
        loss_rate=args.loss_rate,
        delay_ms=args.delay_ms,
        timeout_s=args.timeout,
        abort_on_fail=args.abort_on_fail,
    )
    payload = {"role": "bench", **{k: getattr(r, k) for k in r.__dataclass_fields__}}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="wirecheck",
        description="Validate data sent through TCP or UDP with SHA-256 checksummed frames.",
    )
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    p.add_argument("--abort-on-fail", action="store_true", help="treat any integrity failure as fatal")
    p.add_argument("--payload-size", type=int, default=DEFAULT_PAYLOAD_SIZE)
    p.add_argument("--report-every", type=int, default=DEFAULT_REPORT_EVERY, help="successes between stats lines")
    p.add_argument("--quiet", action="store_true", help="no periodic stats lines")
    sub = p.add_subparsers(dest="cmd", required=True)

    tcp = sub.add_parser("tcp", help="validate over a TCP connection")
    tcp.add_argument("unit", choices=["server", "client"])
    tcp.add_argument(
        "address",
        help="bind address for the server, connect address for the client (e.g. 0.0.0.0:8080, 127.0.0.1:8080)",
    )
    tcp.add_argument("--framing", choices=[FRAMING_EXACT, FRAMING_SINGLE_READ], default=FRAMING_EXACT)
    tcp.add_argument("--alternate", choices=[ALTERNATION_FIXED, ALTERNATION_PING_PONG], default=ALTERNATION_FIXED)
    tcp.add_argument("--no-reconnect", action="store_true", help="exit instead of waiting for a new peer")
    tcp.add_argument("--retry-interval", type=float, default=DEFAULT_RETRY_INTERVAL_S)
    tcp.add_argument("--rounds", type=int, default=None)
    tcp.set_defaults(func=cmd_tcp)

    udp = sub.add_parser("udp", help="validate over UDP datagrams")
    udp.add_argument("unit", choices=["server", "client"])
    udp.add_argument("bind_address", help="e.g. 0.0.0.0:8080 (server), 0.0.0.0:8081 (client)")
    udp.add_argument("send_address", nargs="?", default=None, help="server only, e.g. 127.0.0.1:8081")
    udp.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_S)
    udp.add_argument("--rounds", type=int, default=None)
    udp.set_defaults(func=cmd_udp)

    bench = sub.add_parser("bench", help="run both peers on loopback")
    bench.add_argument("--transport", choices=["tcp", "udp"], default="tcp")
    bench.add_argument("--rounds", type=int, default=1000)
    bench.add_argument("--corrupt-rate", type=float, default=0.0)
    bench.add_argument("--loss-rate", type=float, default=0.0)
    bench.add_argument("--delay-ms", type=int, default=0)
    bench.add_argument("--timeout", type=float, default=0.25)
    bench.add_argument("--json", action="store_true")
    bench.set_defaults(func=cmd_bench)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    logger.debug("running %s", args.cmd)
    try:
        return int(args.func(args))
    except WirecheckError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
