# packages/ml_ops/evaluation/metrics.py

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from packages.contracts.vocabulary.general import ModelCategory
from packages.frames.keystore import DKV, KeyStore


@dataclass
class ConfusionMatrix:
    """Counts of actual (rows) vs predicted (columns) over one domain."""

    counts: np.ndarray
    domain: List[str]

    @property
    def size(self) -> int:
        return len(self.domain)

    def to_table(self) -> pd.DataFrame:
        """Confusion matrix with per-row error rates, totals last."""
        table = pd.DataFrame(self.counts, index=self.domain, columns=self.domain)
        totals = table.sum(axis=1)
        wrong = totals - np.diag(self.counts)
        table["Error"] = (wrong / totals.replace(0, np.nan)).fillna(0.0)
        table["Rate"] = [f"{w:,} / {t:,}" for w, t in zip(wrong, totals)]
        table.loc["Totals"] = list(self.counts.sum(axis=0)) + [
            wrong.sum() / max(totals.sum(), 1),
            f"{wrong.sum():,} / {totals.sum():,}",
        ]
        table.index.name = "actual"
        return table


@dataclass
class ModelMetrics:
    """
    Aggregate quality of one model on one frame.
    The key is derived from both checksums, so re-scoring an unchanged frame
    with an unchanged model lands on the same key.
    """

    key: str
    model_key: str
    frame_key: str
    model_category: ModelCategory
    nobs: int
    metrics: Dict[str, Any]
    cm: Optional[ConfusionMatrix] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @staticmethod
    def build_key(model, frame) -> str:
        return (
            f"modelmetrics_{model.key}@{model.checksum()}"
            f"_on_{frame.key}@{frame.checksum()}"
        )

    @classmethod
    def get_from_dkv(cls, model, frame, store: KeyStore = DKV) -> Optional["ModelMetrics"]:
        return store.get(cls.build_key(model, frame))

    def log_summary(self, logger, max_cm_size: int = 20):
        logger.info(
            f"--- Metrics for '{self.model_key}' on '{self.frame_key}' "
            f"({self.model_category}, nobs={self.nobs}) ---"
        )
        for name, value in self.metrics.items():
            if isinstance(value, float):
                logger.info(f"  {name}: {value:.6f}")
            else:
                logger.info(f"  {name}: {value}")

        # Only print modest confusion matrices
        if self.cm is not None and self.cm.size < max_cm_size:
            logger.info(f"  Confusion Matrix:\n{self.cm.to_table()}")
