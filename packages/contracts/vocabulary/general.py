from enum import Enum


class StrEnum(str, Enum):
    """Base class to make enums behave like strings for easy use in Pydantic/JSON."""

    def __str__(self):
        return self.value


class ModelCategory(StrEnum):
    """The prediction SHAPE of a model. Picks the metric builder and output layout."""

    UNKNOWN = "Unknown"
    BINOMIAL = "Binomial"  # Two classes
    MULTINOMIAL = "Multinomial"  # More than two classes
    REGRESSION = "Regression"  # One real value
    CLUSTERING = "Clustering"  # Cluster index, no response

    @property
    def ordinal(self) -> int:
        # Declaration order is part of the model checksum
        return list(type(self)).index(self)


class JobState(StrEnum):
    """Lifecycle of a Job and of the model it builds."""

    CREATED = "CREATED"
    RUNNING = "RUNNING"
    DONE = "DONE"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
