# packages/frames/vec.py

import math
from typing import Iterable, List, Optional, Sequence

import numpy as np
import polars as pl

from packages.platform_lib.hashing import digest_bytes, stable_hash
from .keystore import make_key


class Vec:
    """
    One column of a Frame.
    Values are always float64; categorical columns hold level codes and a
    domain (ordered level names). Missing values are NaN.
    """

    def __init__(
        self,
        values: Iterable[float] | pl.Series | np.ndarray,
        domain: Optional[Sequence[str]] = None,
        key: str | None = None,
    ):
        series = values if isinstance(values, pl.Series) else pl.Series(values)
        series = series.cast(pl.Float64).fill_null(math.nan)
        self._values = series.rename("")
        self._domain = list(domain) if domain is not None else None
        self.key = key or make_key("vec")
        self.removed = False

    # --- Constructors ---

    @classmethod
    def from_strings(
        cls, strings: Iterable[str | None], domain: Optional[Sequence[str]] = None
    ) -> "Vec":
        """Encodes strings against `domain` (default: sorted distinct levels)."""
        strings = list(strings)
        if domain is None:
            domain = sorted({s for s in strings if s is not None})
        index = {level: i for i, level in enumerate(domain)}
        codes = [math.nan if s is None else float(index[s]) for s in strings]
        return cls(codes, domain)

    @classmethod
    def make_con(
        cls, value: float, length: int, domain: Optional[Sequence[str]] = None
    ) -> "Vec":
        return cls(np.full(length, value, dtype=np.float64), domain)

    # --- Accessors ---

    @property
    def values(self) -> pl.Series:
        return self._values

    @property
    def domain(self) -> Optional[List[str]]:
        return self._domain

    @domain.setter
    def domain(self, domain: Optional[Sequence[str]]):
        self._domain = list(domain) if domain is not None else None

    @property
    def is_categorical(self) -> bool:
        return self._domain is not None

    def __len__(self) -> int:
        return self._values.len()

    def at(self, row: int) -> float:
        return self._values[row]

    def to_numpy(self) -> np.ndarray:
        return self._values.to_numpy()

    def sigma(self) -> float:
        std = self._values.fill_nan(None).std()
        return math.nan if std is None else float(std)

    def decoded(self, name: str = "") -> pl.Series:
        """Level strings for categorical columns, raw values otherwise."""
        if self._domain is None:
            return self._values.rename(name)
        labels = [
            None if math.isnan(code) else self._domain[int(code)]
            for code in self._values.to_list()
        ]
        return pl.Series(name, labels, dtype=pl.Enum(self._domain))

    # --- Derivations ---

    def remap(self, code_map: Sequence[int], domain: Sequence[str]) -> "Vec":
        """
        New categorical Vec whose code c becomes code_map[c] under `domain`.
        The receiver is left untouched.
        """
        lookup = np.asarray(code_map, dtype=np.float64)
        raw = self.to_numpy()
        out = np.full(raw.shape, np.nan)
        present = ~np.isnan(raw)
        if lookup.size:
            out[present] = lookup[raw[present].astype(np.int64)]
        return Vec(out, domain)

    def checksum(self) -> int:
        """Content checksum: equal values and domain give equal checksums."""
        raw = np.ascontiguousarray(self.to_numpy(), dtype="<f8")
        raw = np.where(np.isnan(raw), np.nan, raw)
        domain_hash = stable_hash(self._domain).to_bytes(8, "little")
        return digest_bytes(raw.tobytes(), domain_hash)

    def remove(self):
        self.removed = True

    def __repr__(self):
        kind = f"enum[{len(self._domain)}]" if self._domain is not None else "real"
        return f"Vec({self.key}, {kind}, rows={len(self)})"
