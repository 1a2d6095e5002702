# packages/frames/lockable.py

import threading
from contextlib import contextmanager
from typing import Set


class FrameLockedError(RuntimeError):
    pass


class Lockable:
    """
    Read locks keyed by the Job that holds them.
    A read-locked object may be read by anyone but not deleted.
    """

    def __init__(self, key: str):
        self.key = key
        self._lock_guard = threading.Lock()
        self._readers: Set[str] = set()

    def read_lock(self, job_key: str):
        with self._lock_guard:
            self._readers.add(job_key)

    def unlock(self, job_key: str):
        with self._lock_guard:
            self._readers.discard(job_key)

    @property
    def is_locked(self) -> bool:
        with self._lock_guard:
            return bool(self._readers)

    def lockers(self) -> Set[str]:
        with self._lock_guard:
            return set(self._readers)

    @contextmanager
    def read_locked(self, job_key: str):
        self.read_lock(job_key)
        try:
            yield self
        finally:
            self.unlock(job_key)

    def _check_unlocked(self):
        held = self.lockers()
        if held:
            raise FrameLockedError(
                f"'{self.key}' is read-locked by {sorted(held)} and cannot be deleted."
            )

    # Lockables carry a threading.Lock; keep them picklable for loky workers
    def __getstate__(self):
        state = self.__dict__.copy()
        state.pop("_lock_guard", None)
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._lock_guard = threading.Lock()
