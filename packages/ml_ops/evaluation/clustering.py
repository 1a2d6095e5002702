import math
from typing import List, Sequence

from .base import ExactSum, MetricBuilder


class ClusteringMetricBuilder(MetricBuilder):
    """
    Cluster sizes and within-cluster sums of squares.
    The 'actual' of a clustering row is the feature row itself.
    """

    supervised = False

    def __init__(self, k: int):
        super().__init__(None)
        self.k = k
        self.size: List[int] = [0] * k
        self.within: List[ExactSum] = [ExactSum() for _ in range(k)]

    def per_row(self, preds: Sequence[float], actual: Sequence[float], model=None):
        cluster = preds[0]
        if cluster != cluster:
            return
        c = int(cluster)
        self.size[c] += 1
        self.nobs += 1
        self.within[c].add(model.distance(actual, c))

    def reduce(self, other: "ClusteringMetricBuilder") -> "ClusteringMetricBuilder":
        self.nobs += other.nobs
        for c in range(self.k):
            self.size[c] += other.size[c]
            self.within[c].merge(other.within[c])
        return self

    def post_global(self):
        total = ExactSum()
        for ss in self.within:
            total.merge(ss)
        self.metrics = {
            "tot_withinss": total.value if self.nobs else math.nan,
            "within_ss": [ss.value for ss in self.within],
            "size": list(self.size),
        }
