# packages/frames/job.py

from dataclasses import dataclass, field
from datetime import datetime, timezone

from packages.contracts.vocabulary.general import JobState
from .keystore import make_key


@dataclass
class Job:
    """A caller identity. Owns read locks and records how its work ended."""

    description: str
    key: str = field(default_factory=lambda: make_key("job"))
    state: JobState = JobState.CREATED
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def start(self) -> "Job":
        self.state = JobState.RUNNING
        self.started_at = datetime.now(timezone.utc)
        return self

    def done(self):
        self._finish(JobState.DONE)

    def fail(self):
        self._finish(JobState.FAILED)

    def cancel(self):
        self._finish(JobState.CANCELLED)

    def _finish(self, state: JobState):
        self.state = state
        self.finished_at = datetime.now(timezone.utc)

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.fail()
        elif self.state == JobState.RUNNING:
            self.done()
