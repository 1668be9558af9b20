from __future__ import annotations

SHA256_LEN = 32
ACK_LEN = 4

ACK_POSITIVE = b"ACK\x00"
ACK_NEGATIVE = b"NACK"

DEFAULT_PAYLOAD_SIZE = 1024
DEFAULT_TIMEOUT_S = 1.0
DEFAULT_RETRY_INTERVAL_S = 1.0
DEFAULT_REPORT_EVERY = 100

RECV_BUFFER = 2048  # upper bound for a single frame read

TRANSPORTS = ("tcp", "udp")
UNITS = ("server", "client")
FRAMING_EXACT = "exact"
FRAMING_SINGLE_READ = "single-read"
ALTERNATION_FIXED = "fixed"
ALTERNATION_PING_PONG = "ping-pong"
