import math

import numpy as np
import pytest

from packages.contracts.parameters import GLMParameters, KMeansParameters
from packages.frames.frame import Frame
from packages.frames.keystore import DKV
from packages.frames.lockable import FrameLockedError
from packages.ml_ops.evaluation.metrics import ModelMetrics
from packages.ml_ops.exceptions import SchemaDegraded, SchemaIncompatible
from packages.ml_ops.scoring.big_score import BigScore


@pytest.fixture
def glm_multinomial(fit, multinomial_frame):
    return fit(
        GLMParameters(train=multinomial_frame.key, response_column="species", family="multinomial")
    )


@pytest.fixture
def glm_binomial(fit, binomial_frame):
    return fit(
        GLMParameters(train=binomial_frame.key, response_column="survived", family="binomial")
    )


def adapted_copy(model, frame):
    fr = Frame(frame)
    model.adapt_test_for_train(fr, expensive=True)
    return fr


@pytest.mark.parametrize("backend", ["threading", "sequential"])
def test_partitioning_does_not_change_results(glm_multinomial, multinomial_frame, backend):
    fr = adapted_copy(glm_multinomial, multinomial_frame)
    domain = list(glm_multinomial.output.class_names)

    one = BigScore(glm_multinomial, domain, 4, n_partitions=1, backend=backend).do_all(fr)
    many = BigScore(
        glm_multinomial, domain, 4, n_partitions=7, n_jobs=3, backend=backend
    ).do_all(fr)

    assert one.columns == many.columns
    assert one.mb.nobs == many.mb.nobs == multinomial_frame.num_rows
    assert np.array_equal(one.mb.cm, many.mb.cm)
    assert one.mb.metrics == many.mb.metrics


def test_more_partitions_than_rows(fit, make_frame):
    make_frame({"x": [1.0, 2.0, 3.0], "y": [2.0, 4.1, 5.9]}, key="tiny").install()
    model = fit(GLMParameters(train="tiny", response_column="y"))
    fr = adapted_copy(model, DKV.get("tiny"))

    bs = BigScore(model, None, 1, n_partitions=8).do_all(fr)

    assert len(bs.columns[0]) == 3
    assert bs.mb.nobs == 3


def test_score_produces_prediction_and_probability_columns(glm_binomial, binomial_frame):
    preds = glm_binomial.score(binomial_frame)

    assert preds.names == ["predict", "no", "yes"]
    assert preds.num_rows == binomial_frame.num_rows
    assert preds.vecs()[0].domain == ["no", "yes"]
    p = preds.to_polars()
    assert np.allclose(p["no"] + p["yes"], 1.0)
    assert DKV.get(preds.key) is preds


def test_pure_prediction_does_not_need_response(glm_binomial, make_frame):
    test = make_frame({"sex": ["F", "M"], "age": [5.0, 70.0]})

    preds = glm_binomial.score(test)

    assert preds.to_polars()["predict"].to_list() == ["yes", "no"]
    assert test.names == ["sex", "age"]
    assert not any(v.removed for v in test.vecs())


def test_regression_scores_a_single_column(fit, regression_frame):
    model = fit(GLMParameters(train=regression_frame.key, response_column="y"))
    preds = model.score(regression_frame)
    assert preds.names == ["predict"]
    assert preds.vecs()[0].domain is None


def test_metrics_key_is_stable_and_registration_idempotent(glm_binomial, binomial_frame):
    registered = len(glm_binomial.output.model_metrics)

    _, mm1 = glm_binomial.score_with_metrics(binomial_frame)
    _, mm2 = glm_binomial.score_with_metrics(binomial_frame)

    assert mm1 is mm2
    assert mm1.key == ModelMetrics.build_key(glm_binomial, binomial_frame)
    assert ModelMetrics.get_from_dkv(glm_binomial, binomial_frame) is mm1
    assert len(glm_binomial.output.model_metrics) == registered


def test_scored_frame_classes_extend_the_domain(glm_binomial, make_frame):
    test = make_frame(
        {
            "age": [10.0, 60.0, 30.0, 50.0],
            "sex": ["F", "M", "F", "M"],
            "survived": (["yes", "no", "maybe", "yes"], ["yes", "maybe", "no"]),
        }
    )

    preds, mm = glm_binomial.score_with_metrics(test)

    # Metrics are over training classes followed by the new one
    assert mm.cm.domain == ["no", "yes", "maybe"]
    assert mm.nobs == 4
    assert mm.cm.counts[2].sum() == 1
    # Presentation: predictions are labelled in the scored frame's domain
    assert preds.vecs()[0].domain == ["yes", "maybe", "no"]
    labels = preds.to_polars()["predict"].to_list()
    assert set(labels) <= {"yes", "no"}
    # Caller's frame is untouched
    assert test.names == ["age", "sex", "survived"]
    assert test.vec("survived").domain == ["yes", "maybe", "no"]


def test_metrics_without_response_have_no_observations(glm_binomial, make_frame):
    test = make_frame({"age": [10.0, 60.0], "sex": ["F", "M"]})
    _, mm = glm_binomial.score_with_metrics(test)
    assert mm.nobs == 0
    assert math.isnan(mm.metrics["accuracy"])


def test_check_compatible_reports_without_mutation(glm_binomial, make_frame):
    test = make_frame({"age": [10.0], "sex": ["X"]})
    with pytest.raises(SchemaIncompatible):
        glm_binomial.check_compatible(test)

    test = make_frame({"age": [10.0]})
    with pytest.raises(SchemaDegraded) as err:
        glm_binomial.check_compatible(test)
    assert any("sex" in w for w in err.value.warnings)
    assert test.names == ["age"]


def test_scoring_releases_synthesized_columns(glm_binomial, make_frame, monkeypatch):
    from packages.frames.vec import Vec

    created = []
    make_con = Vec.make_con

    def tracking(*args, **kwargs):
        vec = make_con(*args, **kwargs)
        created.append(vec)
        return vec

    monkeypatch.setattr(Vec, "make_con", tracking)
    test = make_frame({"age": [10.0, 20.0]})
    glm_binomial.score(test)

    assert created and all(v.removed for v in created)
    assert not any(v.removed for v in test.vecs())


def test_scored_frame_is_unlocked_after_scoring(glm_binomial, binomial_frame):
    glm_binomial.score(binomial_frame)
    assert not binomial_frame.is_locked


def test_delete_releases_every_metric_artifact(glm_binomial, binomial_frame, make_frame):
    other = make_frame({"age": [10.0], "sex": ["F"], "survived": ["yes"]}).install()
    glm_binomial.score_with_metrics(other)
    keys = glm_binomial.output.model_metrics.keys()
    assert len(keys) == 2

    glm_binomial.delete()

    assert glm_binomial.key not in DKV
    assert all(key not in DKV for key in keys)


def test_locked_model_cannot_be_deleted(glm_binomial):
    glm_binomial.read_lock("job_x")
    with pytest.raises(FrameLockedError):
        glm_binomial.delete()
    glm_binomial.unlock("job_x")
    glm_binomial.delete()


def test_model_checksum_survives_training_frame_deletion(glm_binomial, binomial_frame):
    before = glm_binomial.checksum()
    binomial_frame.delete(DKV)
    assert glm_binomial.checksum() == before


def test_kmeans_scoring(fit, cluster_frame, make_frame):
    model = fit(KMeansParameters(train=cluster_frame.key, k=3))
    test = make_frame(
        {
            "a": [0.1, 5.2, math.nan],
            "b": [0.0, 4.9, 8.1],
            "shape": ["circle", "oval", None],
        }
    )

    preds, mm = model.score_with_metrics(test)
    clusters = preds.vecs()[0].values.to_list()

    assert preds.names == ["predict"]
    assert len(set(clusters)) == 3
    assert sum(mm.metrics["size"]) == 3


def test_save_and_load_round_trip(glm_binomial, binomial_frame, tmp_path):
    path = tmp_path / "model.joblib"
    glm_binomial.save(path)
    loaded = type(glm_binomial).load(path)

    expected = glm_binomial.score(binomial_frame).vecs()[1].values.to_list()
    actual = loaded.score(binomial_frame).vecs()[1].values.to_list()
    assert actual == expected
    assert loaded.checksum() == glm_binomial.checksum()
