# packages/frames/keystore.py

import threading
import uuid
from typing import Any, Callable, Dict, Iterator, Optional


def make_key(prefix: str = "key") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class KeyStore:
    """
    In-process key/value store standing in for the distributed one.
    Every mutation holds the store lock; values themselves are not copied.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._values: Dict[str, Any] = {}

    def put(self, key: str, value: Any) -> Any:
        with self._lock:
            self._values[key] = value
        return value

    def put_if_absent(self, key: str, factory: Callable[[], Any]) -> Any:
        """Atomically installs factory() unless the key already has a value."""
        with self._lock:
            if key not in self._values:
                self._values[key] = factory()
            return self._values[key]

    def get(self, key: Optional[str]) -> Any:
        if key is None:
            return None
        with self._lock:
            return self._values.get(key)

    def remove(self, key: str) -> Any:
        with self._lock:
            return self._values.pop(key, None)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def keys(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._values))

    def clear(self):
        with self._lock:
            self._values.clear()


# Process-wide default store, like the cluster-wide DKV
DKV = KeyStore()
