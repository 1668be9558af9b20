"""wirecheck: point-to-point data integrity validation over TCP or UDP.

Each round a fixed-size pseudorandom payload is sent with its SHA-256
digest appended; the peer recomputes the digest and answers with a
4-byte acknowledgment. The package keeps the pieces apart:
- frame codec and acknowledgment tags (packet)
- one session type per transport, driven one round at a time (session)
- reconnection for the stream transport (reconnect)
- counters and periodic summaries (stats)
"""

__all__ = []
