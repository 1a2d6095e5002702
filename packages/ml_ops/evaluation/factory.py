# packages/ml_ops/evaluation/factory.py

from typing import Optional, Sequence

from packages.contracts.vocabulary.general import ModelCategory
from .base import MetricBuilder
from .classification import ClassificationMetricBuilder
from .clustering import ClusteringMetricBuilder
from .regression import RegressionMetricBuilder

# Maps a model's prediction category to its accumulator
_BUILDER_REGISTRY = {
    ModelCategory.BINOMIAL: ClassificationMetricBuilder,
    ModelCategory.MULTINOMIAL: ClassificationMetricBuilder,
    ModelCategory.REGRESSION: RegressionMetricBuilder,
    ModelCategory.CLUSTERING: ClusteringMetricBuilder,
}


def create_metric_builder(
    category: ModelCategory,
    domain: Optional[Sequence[str]] = None,
    nclasses: int | None = None,
    k: int | None = None,
) -> MetricBuilder:
    builder_class = _BUILDER_REGISTRY.get(category)
    if not builder_class:
        raise ValueError(f"No metric builder for model category '{category}'")

    if builder_class is ClassificationMetricBuilder:
        return builder_class(domain, nclasses)
    if builder_class is ClusteringMetricBuilder:
        return builder_class(k)
    return builder_class(domain)
