# packages/frames/frame.py

from typing import List, Optional, Sequence, Tuple

import polars as pl

from packages.platform_lib.hashing import PRIMES, stable_hash, u64
from .keystore import DKV, KeyStore, make_key
from .lockable import Lockable
from .vec import Vec


class Frame(Lockable):
    """
    A named, ordered collection of Vecs.
    Frame(other) makes a shallow copy: new name list, same Vec objects.
    """

    def __init__(
        self,
        names: "Sequence[str] | Frame | None" = None,
        vecs: Optional[Sequence[Vec]] = None,
        key: str | None = None,
    ):
        super().__init__(key or make_key("frame"))
        if isinstance(names, Frame):
            vecs = names.vecs()
            names = names.names
        names = list(names or [])
        vecs = list(vecs or [])
        if len(names) != len(vecs):
            raise ValueError(f"{len(names)} names for {len(vecs)} vecs")
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate column names: {names}")
        rows = {len(v) for v in vecs}
        if len(rows) > 1:
            raise ValueError(f"Vecs have different lengths: {sorted(rows)}")
        self._names: List[str] = names
        self._vecs: List[Vec] = vecs

    # --- Construction from / to polars ---

    @classmethod
    def from_polars(cls, df: pl.DataFrame, key: str | None = None) -> "Frame":
        """
        Strings and categoricals become categorical Vecs: pl.Enum keeps its
        declared level order, everything else gets sorted distinct levels.
        """
        vecs = []
        for name in df.columns:
            series = df[name]
            dtype = series.dtype
            if isinstance(dtype, pl.Enum):
                vecs.append(
                    Vec.from_strings(
                        series.cast(pl.Utf8).to_list(), list(dtype.categories)
                    )
                )
            elif dtype in (pl.Utf8, pl.Categorical):
                vecs.append(Vec.from_strings(series.cast(pl.Utf8).to_list()))
            else:
                vecs.append(Vec(series))
        return cls(df.columns, vecs, key)

    def to_polars(self) -> pl.DataFrame:
        return pl.DataFrame([v.decoded(n) for n, v in zip(self._names, self._vecs)])

    def raw_polars(self) -> pl.DataFrame:
        """Float64 codes/values under positional column names."""
        return pl.DataFrame(
            {f"c{i}": v.values for i, v in enumerate(self._vecs)},
            schema={f"c{i}": pl.Float64 for i in range(len(self._vecs))},
        )

    # --- Shape & lookup ---

    @property
    def names(self) -> List[str]:
        return self._names

    def vecs(self) -> List[Vec]:
        return list(self._vecs)

    @property
    def num_cols(self) -> int:
        return len(self._vecs)

    @property
    def num_rows(self) -> int:
        return len(self._vecs[0]) if self._vecs else 0

    def vec(self, name: str) -> Optional[Vec]:
        try:
            return self._vecs[self._names.index(name)]
        except ValueError:
            return None

    def find(self, target: "Vec | str") -> int:
        """Column index of a Vec (by identity) or of a name; -1 when absent."""
        if isinstance(target, Vec):
            for i, v in enumerate(self._vecs):
                if v is target:
                    return i
            return -1
        return self._names.index(target) if target in self._names else -1

    def domains(self) -> List[Optional[List[str]]]:
        return [v.domain for v in self._vecs]

    def any_vec(self) -> Optional[Vec]:
        return self._vecs[0] if self._vecs else None

    def last_vec(self) -> Optional[Vec]:
        return self._vecs[-1] if self._vecs else None

    # --- Mutation ---

    def add(self, name: str, vec: Vec) -> "Frame":
        if name in self._names:
            raise ValueError(f"Column '{name}' already exists")
        if self._vecs and len(vec) != self.num_rows:
            raise ValueError(f"Vec has {len(vec)} rows, frame has {self.num_rows}")
        self._names.append(name)
        self._vecs.append(vec)
        return self

    def replace(self, index: int, vec: Vec) -> Vec:
        old = self._vecs[index]
        self._vecs[index] = vec
        return old

    def restructure(self, names: Sequence[str], vecs: Sequence[Vec]):
        """Swaps the whole column list in place."""
        if len(names) != len(vecs):
            raise ValueError(f"{len(names)} names for {len(vecs)} vecs")
        self._names = list(names)
        self._vecs = list(vecs)

    # --- Partitioning ---

    def partitions(self, n: int) -> List[Tuple[int, int]]:
        """
        `n` contiguous (offset, length) row ranges covering every row once.
        Ranges may be empty when n exceeds the row count.
        """
        rows = self.num_rows
        bounds = [i * rows // n for i in range(n + 1)]
        return [(bounds[i], bounds[i + 1] - bounds[i]) for i in range(n)]

    # --- Identity & lifetime ---

    def checksum(self) -> int:
        cs = 0
        for i, (name, vec) in enumerate(zip(self._names, self._vecs)):
            cs ^= u64((stable_hash(name) + vec.checksum()) * PRIMES[i % len(PRIMES)])
        return cs

    def install(self, store: KeyStore = DKV) -> "Frame":
        store.put(self.key, self)
        return self

    def delete(self, store: KeyStore = DKV):
        """Removes every Vec and the frame's key. Read-locked frames refuse."""
        self._check_unlocked()
        for vec in self._vecs:
            vec.remove()
        store.remove(self.key)

    def __repr__(self):
        return f"Frame({self.key}, cols={self._names}, rows={self.num_rows})"
