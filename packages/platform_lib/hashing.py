# packages/platform_lib/hashing.py

import hashlib
import math
import struct
from enum import Enum
from typing import Any

MASK64 = (1 << 64) - 1

# Cycled by position when folding ordered fields into a checksum
PRIMES = (
    2654435761,
    2246822519,
    3266489917,
    668265263,
    374761393,
    4294967291,
    1000000007,
    998244353,
    2147483647,
    1099511628211,
    6700417,
    3010349,
    433494437,
    2971215073,
    87178291199,
    15485863,
)


def u64(value: int) -> int:
    return value & MASK64


def _encode(value: Any, out: bytearray) -> None:
    """Canonical, type-tagged byte encoding. Equal content -> equal bytes."""
    if value is None:
        out += b"N"
    elif isinstance(value, bool):
        out += b"B1" if value else b"B0"
    elif isinstance(value, Enum):
        out += b"E"
        _encode(value.value, out)
    elif isinstance(value, int):
        out += b"I" + str(value).encode("ascii") + b";"
    elif isinstance(value, float):
        # NaN payloads differ between platforms; fold them into one encoding
        out += b"F" + (b"nan" if math.isnan(value) else struct.pack("<d", value))
    elif isinstance(value, str):
        raw = value.encode("utf-8")
        out += b"S" + str(len(raw)).encode("ascii") + b":" + raw
    elif isinstance(value, bytes):
        out += b"Y" + str(len(value)).encode("ascii") + b":" + value
    elif isinstance(value, (list, tuple)):
        out += b"[" + str(len(value)).encode("ascii") + b":"
        for item in value:
            _encode(item, out)
        out += b"]"
    elif isinstance(value, dict):
        out += b"{" + str(len(value)).encode("ascii") + b":"
        for key in sorted(value, key=str):
            _encode(str(key), out)
            _encode(value[key], out)
        out += b"}"
    elif hasattr(value, "checksum_fields"):
        _encode(dict(value.checksum_fields()), out)
    else:
        raise TypeError(f"Cannot hash value of type {type(value).__name__}")


def stable_hash(value: Any) -> int:
    """
    64-bit content hash that does not depend on the interpreter process.
    Python's builtin hash() is salted per process, so it is never used here.
    """
    buf = bytearray()
    _encode(value, buf)
    return int.from_bytes(
        hashlib.blake2b(bytes(buf), digest_size=8).digest(), "little"
    )


def digest_bytes(*chunks: bytes) -> int:
    h = hashlib.blake2b(digest_size=8)
    for chunk in chunks:
        h.update(chunk)
    return int.from_bytes(h.digest(), "little")
