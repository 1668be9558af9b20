from __future__ import annotations

import hashlib
import hmac
import random
from dataclasses import dataclass, field

from .constants import ACK_LEN, ACK_NEGATIVE, ACK_POSITIVE, DEFAULT_PAYLOAD_SIZE, SHA256_LEN
from .errors import FrameError


@dataclass(slots=True)
class PayloadGenerator:
    """Fresh pseudorandom payload per round. Not a secret, so no CSPRNG."""

    size: int = DEFAULT_PAYLOAD_SIZE
    rng: random.Random = field(default_factory=random.Random)

    def generate(self) -> bytes:
        return self.rng.randbytes(self.size)


def digest(payload: bytes) -> bytes:
    return hashlib.sha256(payload).digest()


def frame(payload: bytes, checksum: bytes) -> bytes:
    if len(checksum) != SHA256_LEN:
        raise FrameError(f"checksum must be {SHA256_LEN} bytes, got {len(checksum)}")
    return bytes(payload) + bytes(checksum)


def split(raw: bytes) -> tuple[bytes, bytes]:
    """Trailing 32 bytes are the checksum, everything before is data."""
    if len(raw) < SHA256_LEN:
        raise FrameError(f"buffer too small to hold a checksum: {len(raw)} bytes")
    cut = len(raw) - SHA256_LEN
    return bytes(raw[:cut]), bytes(raw[cut:])


def verify(data: bytes, checksum: bytes) -> bool:
    return hmac.compare_digest(digest(data), bytes(checksum))


def build_frame(payload: bytes) -> bytes:
    return frame(payload, digest(payload))


def ack_for(ok: bool) -> bytes:
    return ACK_POSITIVE if ok else ACK_NEGATIVE


def is_positive(tag: bytes) -> bool:
    return len(tag) == ACK_LEN and bytes(tag) == ACK_POSITIVE
