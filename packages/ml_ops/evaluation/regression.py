import math
from typing import Sequence

from .base import ExactSum, MetricBuilder


class RegressionMetricBuilder(MetricBuilder):
    """
    Error statistics for regression models.
    Calculates MSE, RMSE, MAE and R-squared from exact running sums.
    """

    def __init__(self, domain=None):
        super().__init__(None)
        self.sse = ExactSum()  # squared error
        self.sae = ExactSum()  # absolute error
        self.sy = ExactSum()
        self.syy = ExactSum()

    def per_row(self, preds: Sequence[float], actual: Sequence[float], model=None):
        y, p = actual[0], preds[0]
        # Rows without an actual (or prediction) do not count
        if y != y or p != p:
            return
        err = y - p
        self.nobs += 1
        self.sse.add(err * err)
        self.sae.add(abs(err))
        self.sy.add(y)
        self.syy.add(y * y)

    def reduce(self, other: "RegressionMetricBuilder") -> "RegressionMetricBuilder":
        self.nobs += other.nobs
        self.sse.merge(other.sse)
        self.sae.merge(other.sae)
        self.sy.merge(other.sy)
        self.syy.merge(other.syy)
        return self

    def post_global(self):
        n = self.nobs
        if n == 0:
            self.metrics = {"mse": math.nan, "rmse": math.nan, "mae": math.nan, "r2": math.nan}
            return

        mse = self.sse.value / n
        mean_y = self.sy.value / n
        var_y = self.syy.value / n - mean_y * mean_y
        r2 = 1.0 - mse / var_y if var_y > 0 else math.nan

        self.metrics = {
            "mse": mse,
            "rmse": math.sqrt(mse),
            "mae": self.sae.value / n,
            "r2": r2,
        }
