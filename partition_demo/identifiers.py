"""
partition_demo/identifiers.py
=============================
Time-ordered record identifiers (UUID version 7).

Layout, most significant bit first:

    48 bits  unix_ts_ms   big-endian milliseconds since the epoch
     4 bits  version      0b0111
    12 bits  rand_a       sequence / random field
     2 bits  variant      0b10
    62 bits  rand_b       random

Because the timestamp is the most significant part, identifiers created more
than a millisecond apart compare in creation order both as `uuid.UUID`
objects and as raw bytes. Ordering inside a single millisecond is not
guaranteed.

`extract_timestamp()` is the exact inverse of the timestamp half of
`generate()`, so the creation time of a row never has to be stored
separately.
"""

import os
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Union

from partition_demo.errors import InvalidFormat, SourceUnavailable

VERSION = 7

_TIMESTAMP_MAX = (1 << 48) - 1
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

IdentifierLike = Union[uuid.UUID, str, bytes, bytearray, memoryview]


def generate(
    clock: Callable[[], int] = time.time_ns,
    entropy: Callable[[int], bytes] = os.urandom,
) -> uuid.UUID:
    """
    Return a new version 7 identifier.

    `clock` returns nanoseconds since the epoch and `entropy(n)` returns n
    random bytes; both default to the system sources. If either source fails
    SourceUnavailable is raised and nothing is returned.
    """
    try:
        timestamp_ms = clock() // 1_000_000
        random_bytes = entropy(10)
    except (OSError, NotImplementedError) as exc:
        raise SourceUnavailable(f"clock or randomness source failed: {exc}") from exc

    if not 0 <= timestamp_ms <= _TIMESTAMP_MAX:
        raise SourceUnavailable(f"clock returned an unusable timestamp: {timestamp_ms} ms")
    if len(random_bytes) != 10:
        raise SourceUnavailable(
            f"randomness source returned {len(random_bytes)} bytes, expected 10"
        )

    rand = int.from_bytes(random_bytes, "big")
    rand_a = rand >> 68                      # top 12 of 80 random bits
    rand_b = rand & ((1 << 62) - 1)          # bottom 62

    value = timestamp_ms << 80
    value |= VERSION << 76
    value |= rand_a << 64
    value |= 0b10 << 62
    value |= rand_b
    return uuid.UUID(int=value)


def parse(value: IdentifierLike) -> uuid.UUID:
    """Turn canonical text, 32 hex digits, 16 raw bytes or a UUID into a validated v7 UUID."""
    if isinstance(value, uuid.UUID):
        ident = value
    elif isinstance(value, str):
        try:
            ident = uuid.UUID(value)
        except ValueError:
            raise InvalidFormat(f"not a UUID: {value!r}") from None
    elif isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if len(raw) != 16:
            raise InvalidFormat(f"expected 16 bytes, got {len(raw)}")
        ident = uuid.UUID(bytes=raw)
    else:
        raise InvalidFormat(f"unsupported identifier type: {type(value).__name__}")

    # uuid.UUID.version is None unless the variant bits are 0b10
    if ident.variant != uuid.RFC_4122:
        raise InvalidFormat(f"{ident} does not carry the RFC 4122 variant bits")
    if ident.version != VERSION:
        raise InvalidFormat(f"{ident} is not a version 7 identifier")
    return ident


def extract_timestamp(value: IdentifierLike) -> datetime:
    """Decode the embedded creation time as a UTC datetime with millisecond precision."""
    ident = parse(value)
    timestamp_ms = ident.int >> 80
    try:
        return _EPOCH + timedelta(milliseconds=timestamp_ms)
    except OverflowError:
        raise InvalidFormat(f"{ident} carries a timestamp past year 9999") from None


def to_canonical(ident: uuid.UUID) -> str:
    return str(ident)


def to_bytes(ident: uuid.UUID) -> bytes:
    return ident.bytes
