# packages/ml_ops/modeling/kmeans.py

import math
from typing import List, Sequence

from packages.contracts.vocabulary.general import ModelCategory
from packages.ml_ops.codegen.source_builder import SourceBuilder, literal
from packages.ml_ops.evaluation.base import MetricBuilder
from packages.ml_ops.evaluation.factory import create_metric_builder
from .model import Model, Output


class KMeansOutput(Output):
    """Cluster centers over the expanded (one-hot) features."""

    def __init__(self, builder):
        super().__init__(builder)
        self.centers: List[List[float]] = []

    @property
    def k(self) -> int:
        return len(self.centers)

    @property
    def model_category(self) -> ModelCategory:
        return ModelCategory.CLUSTERING


class KMeansModel(Model):
    output: KMeansOutput

    def distance(self, data: Sequence[float], c: int) -> float:
        """Squared euclidean distance to center `c`; missing values are skipped."""
        out = self.output
        center = out.centers[c]
        d = 0.0
        off = 0
        for i in range(out.nfeatures):
            x = data[i]
            dom = out.domains[i]
            if dom is not None:
                n = len(dom)
                if x == x:
                    code = int(x)
                    for j in range(n):
                        diff = (1.0 if j == code else 0.0) - center[off + j]
                        d += diff * diff
                off += n
            else:
                if x == x:
                    diff = x - center[off]
                    d += diff * diff
                off += 1
        return d

    def score0(self, data, preds):
        best = 0
        best_d = math.inf
        for c in range(self.output.k):
            d = self.distance(data, c)
            if d < best_d:
                best = c
                best_d = d
        preds[0] = float(best)
        return preds

    def make_metric_builder(self, domain) -> MetricBuilder:
        return create_metric_builder(ModelCategory.CLUSTERING, k=self.output.k)

    # --- Code export ---

    def emit_init(self, sb: SourceBuilder):
        sb.line("# Number of clusters.")
        sb.line(f"K = {self.output.k}").nl()
        sb.line("# Cluster centers over the expanded features.")
        sb.line("CENTERS = (")
        sb.ii()
        for center in self.output.centers:
            sb.line(f"{literal(center)},")
        sb.di()
        sb.line(")").nl()

    def emit_predict_body(self, body: SourceBuilder, cls_ctx: SourceBuilder):
        self._emit_distance(cls_ctx)
        body.line("best = 0")
        body.line("best_d = math.inf")
        body.line("for c in range(K):")
        body.line("    d = _distance(data, c)")
        body.line("    if d < best_d:")
        body.line("        best = c")
        body.line("        best_d = d")
        body.line("preds[0] = float(best)")

    def _emit_distance(self, sb: SourceBuilder):
        out = self.output
        sb.nl()
        sb.line("def _distance(data, c):")
        sb.ii()
        sb.line("center = CENTERS[c]")
        sb.line("d = 0.0")
        for i, off in enumerate(out.offsets()):
            dom = out.domains[i]
            sb.line(f"# {out.names[i]}")
            sb.line(f"x = data[{i}]")
            sb.line("if x == x:")
            sb.ii()
            if dom is not None:
                sb.line("code = int(x)")
                sb.line(f"for j in range({len(dom)}):")
                sb.line(f"    diff = (1.0 if j == code else 0.0) - center[{off} + j]")
                sb.line("    d += diff * diff")
            else:
                sb.line(f"diff = x - center[{off}]")
                sb.line("d += diff * diff")
            sb.di()
        sb.line("return d")
        sb.di()
        sb.nl()
