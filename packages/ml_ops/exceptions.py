# packages/ml_ops/exceptions.py

from typing import List, Sequence


class ScoringError(Exception):
    """Base class for every error raised by the scoring core."""


class SchemaIncompatible(ScoringError, ValueError):
    """
    The scored frame cannot be reconciled with the trained schema:
    no columns in common, a categorical column with no shared levels,
    or a categorical/numeric type mismatch.
    """

    def __init__(self, message: str, columns: Sequence[str] = ()):
        super().__init__(message)
        self.columns: List[str] = list(columns)


class SchemaDegraded(ScoringError):
    """
    Adaptation is possible but lossy (missing columns, unseen levels).
    Raised by probe calls; re-run with expensive=True to commit.
    """

    def __init__(self, warnings: Sequence[str]):
        self.warnings: List[str] = list(warnings)
        super().__init__("; ".join(self.warnings))


class UnsupportedExport(ScoringError, NotImplementedError):
    """The model type has no code-emission specialization."""


class ExportCompilationError(ScoringError, RuntimeError):
    """Generated scoring code could not be compiled or loaded."""
