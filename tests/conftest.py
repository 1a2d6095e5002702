# tests/conftest.py

import numpy as np
import polars as pl
import pytest
from loguru import logger

from packages.frames.frame import Frame
from packages.frames.keystore import DKV


@pytest.fixture(autouse=True)
def disable_file_logger():
    logger.remove()
    logger.add(lambda msg: None)
    yield


@pytest.fixture(autouse=True)
def clean_store():
    DKV.clear()
    yield
    DKV.clear()


@pytest.fixture
def rng():
    return np.random.default_rng(7)


@pytest.fixture
def regression_frame(rng) -> Frame:
    n = 60
    x1 = rng.normal(size=n)
    x2 = rng.uniform(-2, 2, size=n)
    color = rng.choice(["blue", "green", "red"], size=n)
    y = 1.5 * x1 - 0.5 * x2 + np.where(color == "red", 2.0, 0.0) + rng.normal(0, 0.1, n)
    x1[3] = np.nan  # one missing numeric value
    df = pl.DataFrame({"x1": x1, "x2": x2, "color": color.tolist(), "y": y})
    return Frame.from_polars(df, key="reg_train").install(DKV)


@pytest.fixture
def binomial_frame(rng) -> Frame:
    n = 80
    age = rng.uniform(1, 80, size=n)
    sex = rng.choice(["F", "M"], size=n)
    score = 0.04 * (40 - age) + np.where(sex == "F", 1.5, -1.0) + rng.normal(0, 0.5, n)
    survived = np.where(score > 0, "yes", "no")
    df = pl.DataFrame({"age": age, "sex": sex.tolist(), "survived": survived.tolist()})
    return Frame.from_polars(df, key="titanic_train").install(DKV)


@pytest.fixture
def multinomial_frame(rng) -> Frame:
    n = 90
    species = np.repeat(["setosa", "versicolor", "virginica"], n // 3)
    offset = np.repeat([0.0, 2.0, 4.0], n // 3)
    df = pl.DataFrame(
        {
            "petal_length": offset + rng.normal(0, 0.6, n),
            "petal_width": offset / 2 + rng.normal(0, 0.4, n),
            "species": species.tolist(),
        }
    )
    return Frame.from_polars(df, key="iris_train").install(DKV)


@pytest.fixture
def cluster_frame(rng) -> Frame:
    n = 45
    centers = np.repeat([[0.0, 0.0], [5.0, 5.0], [0.0, 8.0]], n // 3, axis=0)
    points = centers + rng.normal(0, 0.5, size=(n, 2))
    shape = rng.choice(["circle", "square"], size=n)
    df = pl.DataFrame({"a": points[:, 0], "b": points[:, 1], "shape": shape.tolist()})
    return Frame.from_polars(df, key="blobs_train").install(DKV)


@pytest.fixture
def make_frame():
    """
    Factory: Frame from {name: values} or {name: (values, levels)}.
    Explicit levels keep their order; plain strings get sorted levels.
    """

    def _make(columns, key=None) -> Frame:
        series = []
        for name, values in columns.items():
            if isinstance(values, tuple):
                values, levels = values
                series.append(pl.Series(name, values, dtype=pl.Enum(levels)))
            else:
                series.append(pl.Series(name, values))
        return Frame.from_polars(pl.DataFrame(series), key=key)

    return _make


@pytest.fixture
def fit():
    """Factory: trains and installs the model described by a parameters object."""
    from packages.ml_ops.training.factory import MLComponentFactory
    from packages.platform_lib.logging import get_logger

    factory = MLComponentFactory(get_logger("tests"))

    def _fit(params):
        return factory.create_builder(params).train_model()

    return _fit
