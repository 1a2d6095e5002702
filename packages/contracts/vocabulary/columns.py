from enum import Enum


class StrEnum(str, Enum):
    def __str__(self):
        return self.value


class PredictCol(StrEnum):
    """Standard columns of a predictions frame."""

    PREDICT = "predict"  # Class (classifiers), value (regression) or cluster index
