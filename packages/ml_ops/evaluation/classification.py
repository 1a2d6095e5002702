import math
from typing import Sequence

import numpy as np

from .base import ExactSum, MetricBuilder

# Probability floor so one confident miss cannot make log loss infinite
EPS = 1e-15


class ClassificationMetricBuilder(MetricBuilder):
    """
    Metric builder for binomial and multinomial classifiers.

    Counts a confusion matrix over the prediction domain (training classes
    followed by any classes only present in the scored frame) and the log
    loss over the training classes.
    """

    def __init__(self, domain: Sequence[str], nclasses: int | None = None):
        if not domain:
            raise ValueError("Classification metrics need the prediction domain")
        super().__init__(domain)
        self.nclasses = nclasses if nclasses is not None else len(self.domain)
        size = len(self.domain)
        self.cm = np.zeros((size, size), dtype=np.int64)  # actual x predicted
        self.logloss = ExactSum()

    def per_row(self, preds: Sequence[float], actual: Sequence[float], model=None):
        y = actual[0]
        if y != y:
            return
        ai = int(y)
        pi = int(preds[0])
        self.cm[ai, pi] += 1
        self.nobs += 1

        # Classes unseen in training have no probability column
        p = preds[1 + ai] if ai < self.nclasses else 0.0
        self.logloss.add(-math.log(max(p, EPS)))

    def reduce(self, other: "ClassificationMetricBuilder") -> "ClassificationMetricBuilder":
        self.cm += other.cm
        self.nobs += other.nobs
        self.logloss.merge(other.logloss)
        return self

    def post_global(self):
        n = self.nobs
        if n == 0:
            self.metrics = {
                "accuracy": math.nan,
                "error": math.nan,
                "logloss": math.nan,
                "mean_per_class_error": math.nan,
                "per_class_error": {},
            }
            return

        correct = int(np.trace(self.cm))
        row_totals = self.cm.sum(axis=1)
        per_class_error = {
            level: float(1.0 - self.cm[i, i] / row_totals[i])
            for i, level in enumerate(self.domain)
            if row_totals[i] > 0
        }

        self.metrics = {
            "accuracy": correct / n,
            "error": 1.0 - correct / n,
            "logloss": self.logloss.value / n,
            "mean_per_class_error": float(np.mean(list(per_class_error.values()))),
            "per_class_error": per_class_error,
        }

    def confusion_matrix(self):
        from .metrics import ConfusionMatrix

        return ConfusionMatrix(self.cm.copy(), list(self.domain))
