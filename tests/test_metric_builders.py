import math
import threading
from types import SimpleNamespace

import numpy as np
import pytest

from packages.contracts.vocabulary.general import ModelCategory
from packages.frames.keystore import KeyStore
from packages.ml_ops.evaluation.base import ExactSum
from packages.ml_ops.evaluation.classification import ClassificationMetricBuilder
from packages.ml_ops.evaluation.factory import create_metric_builder
from packages.ml_ops.evaluation.metrics import ConfusionMatrix, ModelMetrics
from packages.ml_ops.evaluation.regression import RegressionMetricBuilder
from packages.ml_ops.registry import MetricsRegistry


class ListLogger:
    def __init__(self):
        self.messages = []

    def info(self, msg):
        self.messages.append(msg)


def test_exact_sum_is_independent_of_grouping():
    values = [1e16, 1.0, -1e16, 3.25, 1e-8] * 20
    whole = ExactSum()
    for v in values:
        whole.add(v)

    left, right = ExactSum(), ExactSum()
    for v in values[::2]:
        left.add(v)
    for v in values[1::2]:
        right.add(v)

    assert whole.value == math.fsum(values)
    assert left.merge(right).value == whole.value


def test_exact_sum_keeps_infinities():
    s = ExactSum()
    s.add(1.0)
    s.add(math.inf)
    assert s.value == math.inf


def test_regression_metrics():
    mb = RegressionMetricBuilder()
    for pred, actual in [(1.0, 2.0), (2.0, 2.0), (5.0, 3.0), (0.0, math.nan)]:
        mb.per_row([pred, 0.0], [actual])
    mb.post_global()

    assert mb.nobs == 3
    assert mb.metrics["mse"] == pytest.approx(5.0 / 3)
    assert mb.metrics["mae"] == pytest.approx(1.0)
    assert mb.metrics["rmse"] == pytest.approx(math.sqrt(5.0 / 3))
    # var(y) = 2/9
    assert mb.metrics["r2"] == pytest.approx(1 - (5.0 / 3) / (2.0 / 9))


def test_regression_without_rows_is_nan():
    mb = RegressionMetricBuilder()
    mb.post_global()
    assert math.isnan(mb.metrics["mse"])


def test_classification_reduce_matches_single_pass():
    rows = [
        ([0, 0.9, 0.1], [0]),
        ([1, 0.2, 0.8], [1]),
        ([1, 0.4, 0.6], [0]),
        ([0, 0.7, 0.3], [2]),  # class only present in the scored frame
        ([0, 0.5, 0.5], [math.nan]),
    ]
    single = ClassificationMetricBuilder(["no", "yes", "maybe"], nclasses=2)
    for p, a in rows:
        single.per_row(p, a)
    single.post_global()

    first = ClassificationMetricBuilder(["no", "yes", "maybe"], nclasses=2)
    second = ClassificationMetricBuilder(["no", "yes", "maybe"], nclasses=2)
    for p, a in rows[:2]:
        first.per_row(p, a)
    for p, a in rows[2:]:
        second.per_row(p, a)
    merged = second.reduce(first)
    merged.post_global()

    assert single.nobs == merged.nobs == 4
    assert np.array_equal(single.cm, merged.cm)
    assert single.metrics == merged.metrics
    assert single.metrics["accuracy"] == 0.5
    assert single.metrics["per_class_error"]["maybe"] == 1.0


def test_confusion_matrix_table():
    cm = ConfusionMatrix(np.array([[3, 1], [0, 4]]), ["no", "yes"])
    table = cm.to_table()

    assert list(table.index) == ["no", "yes", "Totals"]
    assert table.loc["no", "Error"] == pytest.approx(0.25)
    assert table.loc["Totals", "Rate"] == "1 / 8"


def test_factory_rejects_unknown_category():
    with pytest.raises(ValueError):
        create_metric_builder(ModelCategory.UNKNOWN)


@pytest.mark.parametrize("max_size, logged", [(20, True), (2, False)])
def test_log_summary_skips_large_confusion_matrices(max_size, logged):
    mm = ModelMetrics(
        key="mm",
        model_key="m",
        frame_key="f",
        model_category=ModelCategory.BINOMIAL,
        nobs=8,
        metrics={"accuracy": 0.875},
        cm=ConfusionMatrix(np.array([[3, 1], [0, 4]]), ["no", "yes"]),
    )
    log = ListLogger()
    mm.log_summary(log, max_cm_size=max_size)

    assert any("accuracy: 0.875000" in m for m in log.messages)
    assert any("Confusion Matrix" in m for m in log.messages) is logged


def test_registry_deduplicates_by_key():
    registry = MetricsRegistry()
    first = SimpleNamespace(key="a")
    again = SimpleNamespace(key="a")

    assert registry.register(first) is first
    assert registry.register(again) is first
    assert len(registry) == 1


def test_registry_is_safe_under_concurrent_registration():
    registry = MetricsRegistry()
    winners = []
    barrier = threading.Barrier(8)

    def race(i):
        barrier.wait()
        winners.append(registry.register(SimpleNamespace(key="same", n=i)))

    threads = [threading.Thread(target=race, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(registry) == 1
    assert len({id(w) for w in winners}) == 1


def test_registry_release_removes_from_store():
    store = KeyStore()
    registry = MetricsRegistry()
    for key in ("a", "b"):
        store.put(key, SimpleNamespace(key=key))
        registry.register(store.get(key))

    assert registry.release_all(store) == 2
    assert "a" not in store and "b" not in store
    assert len(registry) == 0
