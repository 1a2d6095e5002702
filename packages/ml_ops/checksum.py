# packages/ml_ops/checksum.py

from typing import Any, Dict, Optional, Sequence

from packages.contracts.parameters import ModelParameters
from packages.frames.keystore import DKV, KeyStore
from packages.platform_lib.hashing import PRIMES, stable_hash, u64

SEED = 0x600D
ARRAY_SALT = 0xDECAF
SCALAR_SALT = 0x1337
NO_VALIDATION = 17


class ChecksumEngine:
    """
    Stable 64-bit identity for a model configuration.

    Fields are enumerated by name, never by declaration order, so two
    parameter objects with equal field values always agree. Sequences are
    hashed by content. Absent values contribute a per-position constant.
    """

    def __init__(self, store: KeyStore = DKV, known: Optional[Dict[str, int]] = None):
        self.store = store
        # Fallback checksums for frames that are no longer in the store
        self.known = dict(known or {})

    def checksum(self, parameters: ModelParameters) -> int:
        xs = self.fields_checksum(parameters.checksum_fields())
        train_cs = self._frame_checksum(parameters.train)
        if parameters.valid is None:
            valid_cs = NO_VALIDATION
        else:
            valid_cs = self._frame_checksum(parameters.valid)
        return xs ^ u64(train_cs * valid_cs)

    @staticmethod
    def fields_checksum(fields: Sequence[tuple]) -> int:
        xs = SEED
        for count, (_, value) in enumerate(sorted(fields, key=lambda f: f[0])):
            prime = PRIMES[count % len(PRIMES)]
            xs ^= _contribution(value, prime)
        return xs

    def _frame_checksum(self, key: Optional[str]) -> int:
        frame = self.store.get(key)
        if frame is None and key in self.known:
            return self.known[key]
        if frame is None:
            raise KeyError(f"Frame '{key}' referenced by the parameters is not in the store")
        return frame.checksum()


def _contribution(value: Any, prime: int) -> int:
    salt = ARRAY_SALT if isinstance(value, (list, tuple)) else SCALAR_SALT
    if value is None:
        return u64(salt + prime)
    return u64(salt + prime * stable_hash(value))


def output_checksum(names, domains, category_ordinal: int) -> int:
    """Schema half of a model's identity: names, domains and category."""
    names_cs = 13 if names is None else stable_hash(list(names))
    domains_cs = 17 if domains is None else stable_hash(list(domains))
    return u64(names_cs * domains_cs * category_ordinal)
