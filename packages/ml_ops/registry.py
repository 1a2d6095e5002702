# packages/ml_ops/registry.py

import threading
from typing import Dict, List

from packages.frames.keystore import DKV, KeyStore


class MetricsRegistry:
    """
    The set of metric artifacts that belong to one model.

    Identity is the artifact key, never its content. Registration is
    append-only and serialised, so two scorers racing on the same artifact
    key leave exactly one entry. Entries are only dropped all at once, when
    the owning model is deleted.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._artifacts: Dict[str, object] = {}

    def register(self, artifact):
        with self._lock:
            existing = self._artifacts.get(artifact.key)
            if existing is not None:  # Dup removal
                return existing
            self._artifacts[artifact.key] = artifact
            return artifact

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._artifacts)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._artifacts

    def __len__(self) -> int:
        with self._lock:
            return len(self._artifacts)

    def release_all(self, store: KeyStore = DKV) -> int:
        """Removes every registered artifact from the store."""
        with self._lock:
            keys = list(self._artifacts)
            self._artifacts.clear()
        for key in keys:
            store.remove(key)
        return len(keys)

    # The lock is process-local; rebuild it when a model crosses processes
    def __getstate__(self):
        with self._lock:
            return {"_artifacts": dict(self._artifacts)}

    def __setstate__(self, state):
        self._lock = threading.Lock()
        self._artifacts = state["_artifacts"]
