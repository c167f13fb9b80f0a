from __future__ import annotations

import os
import time
import uuid


def generate_uuid7() -> str:
    """
    Return a time-ordered UUIDv7 string.

    Used as the primary-key default for every table so that rows sort by
    creation time without an extra index.

    Layout: 48-bit Unix time in milliseconds, 4-bit version (0b0111),
    2-bit variant (0b10), then random bits.
    """
    millis = int(time.time() * 1000)
    raw = bytearray(millis.to_bytes(6, "big", signed=False) + os.urandom(10))
    raw[6] = 0x70 | (raw[6] & 0x0F)
    raw[8] = 0x80 | (raw[8] & 0x3F)
    return str(uuid.UUID(bytes=bytes(raw)))
