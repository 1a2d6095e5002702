from abc import ABC, abstractmethod
import math
from typing import Any, Dict, List, Optional, Sequence

from packages.frames.keystore import DKV, KeyStore


class ExactSum:
    """
    Running float sum that is exact until it is read.

    Keeps Shewchuk's non-overlapping partials, so merging two sums in any
    order or grouping gives the same correctly rounded total. This is what
    makes the metric reduce associative.
    """

    __slots__ = ("partials", "special")

    def __init__(self):
        self.partials: List[float] = []
        self.special = 0.0  # inf/nan never mix with the partials

    def add(self, x: float):
        if not math.isfinite(x):
            self.special += x
            return
        partials = self.partials
        i = 0
        for y in partials:
            if abs(x) < abs(y):
                x, y = y, x
            hi = x + y
            lo = y - (hi - x)
            if lo:
                partials[i] = lo
                i += 1
            x = hi
        partials[i:] = [x]

    def merge(self, other: "ExactSum") -> "ExactSum":
        for p in other.partials:
            self.add(p)
        self.special += other.special
        return self

    @property
    def value(self) -> float:
        if self.special:
            return self.special
        return math.fsum(self.partials)


class MetricBuilder(ABC):
    """
    Per-partition accumulator of scoring quality.

    The scorer creates one per map task, folds every row into it with
    `per_row`, merges tasks with `reduce` and calls `post_global` once on the
    merged result. `reduce` must be associative and commutative.
    """

    def __init__(self, domain: Optional[Sequence[str]] = None):
        self.domain = list(domain) if domain is not None else None
        self.nobs = 0
        self.metrics: Dict[str, Any] = {}
        # Prediction buffer: slot 0 for the prediction, then one per class
        self.work: List[float] = [0.0] * ((len(self.domain) if self.domain else 1) + 1)

    # Supervised builders read the response; clustering reads the feature row
    supervised: bool = True

    @abstractmethod
    def per_row(self, preds: Sequence[float], actual: Sequence[float], model=None):
        pass

    @abstractmethod
    def reduce(self, other: "MetricBuilder") -> "MetricBuilder":
        pass

    @abstractmethod
    def post_global(self):
        """Turns the merged running counts into final metric values."""
        pass

    def make_model_metrics(self, model, frame, store: KeyStore = DKV):
        """Materialises the artifact for (model, frame) and stores it."""
        from .metrics import ModelMetrics

        key = ModelMetrics.build_key(model, frame)

        def create():
            return ModelMetrics(
                key=key,
                model_key=model.key,
                frame_key=frame.key,
                model_category=model.output.model_category,
                nobs=self.nobs,
                metrics=dict(self.metrics),
                cm=self.confusion_matrix(),
            )

        # Re-scoring an unchanged frame finds the artifact already there
        return store.put_if_absent(key, create)

    def confusion_matrix(self):
        return None
