import math
from types import SimpleNamespace

import pytest

from packages.contracts.parameters import GLMParameters, KMeansParameters
from packages.frames.frame import Frame
from packages.frames.vec import Vec
from packages.ml_ops.codegen.loader import PythonSourceLoader
from packages.ml_ops.codegen.source_builder import literal, to_python_id
from packages.ml_ops.exceptions import ExportCompilationError, UnsupportedExport
from packages.ml_ops.modeling.model import Model, Output
from packages.ml_ops.validation.equivalence import EquivalenceValidator


@pytest.fixture
def scoring_frame(make_frame):
    """Unseen levels, missing values and an extra column."""
    return make_frame(
        {
            "x2": [0.5, -1.0, math.nan, 1.9],
            "x1": [math.nan, 0.3, -2.0, 1.1],
            "color": ["red", "purple", None, "blue"],
            "note": ["a", "b", "c", "d"],
        }
    )


@pytest.fixture(params=["gaussian", "binomial", "multinomial"])
def glm(request, fit, regression_frame, binomial_frame, multinomial_frame):
    family = request.param
    if family == "gaussian":
        params = GLMParameters(train=regression_frame.key, response_column="y", lambda_=0.1)
        frame = regression_frame
    elif family == "binomial":
        params = GLMParameters(
            train=binomial_frame.key, response_column="survived", family="binomial"
        )
        frame = binomial_frame
    else:
        params = GLMParameters(
            train=multinomial_frame.key, response_column="species", family="multinomial"
        )
        frame = multinomial_frame
    return fit(params), frame


def test_literals_round_trip_floats():
    assert literal(0.1) == "0.1"
    assert literal(math.nan) == 'float("nan")'
    assert literal(-math.inf) == 'float("-inf")'
    assert literal(("a", None)) == "('a', None)"
    assert literal([2.5]) == "(2.5,)"
    assert eval(literal(1 / 3)) == 1 / 3


def test_python_ids():
    assert to_python_id("glm-1.model") == "glm_1_model"
    assert to_python_id("9lives") == "model_9lives"
    assert to_python_id("class") == "model_class"


def test_exported_module_layout(glm):
    model, _ = glm
    source = model.export_code()

    order = [
        source.index("# AUTOGENERATED BY"),
        source.index("import math"),
        source.index("NAMES = ("),
        source.index("class ColInfo_0:"),
        source.index("DOMAINS = ("),
        source.index("def score0(data, preds):"),
        source.index("def map_row("),
        source.index("def predict(row):"),
    ]
    assert order == sorted(order)
    assert ("NCLASSES = " in source) == model.output.is_classifier


def test_exported_glm_matches_engine(glm):
    model, frame = glm
    assert model.validate_export(frame)


def test_exported_glm_handles_unseen_levels_and_missing_values(
    fit, regression_frame, scoring_frame
):
    model = fit(GLMParameters(train=regression_frame.key, response_column="y"))
    assert model.validate_export(scoring_frame)


def test_exported_kmeans_matches_engine(fit, cluster_frame, make_frame):
    model = fit(KMeansParameters(train=cluster_frame.key, k=3))
    test = make_frame(
        {
            "a": [0.0, math.nan, 4.0],
            "b": [1.0, 7.5, 5.0],
            "shape": ["oval", "square", None],
        }
    )

    assert model.validate_export(cluster_frame)
    assert model.validate_export(test)


def test_predict_helper_maps_named_rows(fit, binomial_frame):
    model = fit(
        GLMParameters(train=binomial_frame.key, response_column="survived", family="binomial")
    )
    module = PythonSourceLoader().load(to_python_id(model.key), model.export_code())

    row = {"age": 33.0, "sex": "M"}
    engine = model.score0([33.0, 1.0], [0.0] * 3)
    assert module.predict(row) == engine
    # Unknown levels and absent values are tolerated
    assert module.predict({"sex": "unknown"})[0] in (0.0, 1.0)


def test_validation_against_corrupted_predictions(fit, regression_frame):
    model = fit(GLMParameters(train=regression_frame.key, response_column="y"))
    preds = model.score(regression_frame)
    shifted = Vec([v + 1.0 for v in preds.vecs()[0].values.to_list()])
    corrupted = Frame(["predict"], [shifted])

    report = EquivalenceValidator(model, max_mismatches=3).validate(regression_frame, corrupted)

    assert not report
    assert len(report.mismatches) == 4  # stops once more than 3 were seen
    assert report.rows_checked == 4
    assert report.mismatches[0].generated + 1.0 == report.mismatches[0].engine


def test_validate_export_with_given_predictions(fit, binomial_frame):
    model = fit(
        GLMParameters(train=binomial_frame.key, response_column="survived", family="binomial")
    )
    preds = model.score(binomial_frame)
    assert model.validate_export(binomial_frame, preds)
    preds.delete()


def test_validation_rejects_row_count_mismatch(fit, regression_frame, make_frame):
    model = fit(GLMParameters(train=regression_frame.key, response_column="y"))
    with pytest.raises(ValueError):
        EquivalenceValidator(model).validate(regression_frame, make_frame({"predict": [1.0]}))


def test_model_without_code_emission_cannot_export(regression_frame):
    class MeanModel(Model):
        def score0(self, data, preds):
            preds[0] = 0.0
            return preds

    builder = SimpleNamespace(
        error_count=lambda: 0,
        train_frame=regression_frame,
        parameters=GLMParameters(train=regression_frame.key, response_column="y"),
        frame_checksums={},
    )
    model = MeanModel("mean_model", builder.parameters, Output(builder))

    with pytest.raises(UnsupportedExport, match="MeanModel"):
        model.export_code()
    with pytest.raises(UnsupportedExport):
        model.validate_export(regression_frame)
    # Scoring is unaffected
    assert model.score(regression_frame).num_rows == regression_frame.num_rows


def test_broken_source_fails_to_load():
    with pytest.raises(ExportCompilationError):
        PythonSourceLoader().load("broken", "def score0(:\n")
    with pytest.raises(ExportCompilationError):
        PythonSourceLoader().load("empty", "NAMES = ()\n")


def test_loader_can_keep_generated_files(tmp_path):
    source = (
        "NAMES = ('x',)\n"
        "def score0(data, preds):\n"
        "    preds[0] = data[0] * 2\n"
        "    return preds\n"
    )
    loader = PythonSourceLoader(work_dir=tmp_path / "scorers")

    assert loader.compile_and_run("doubler", source, [[1.0], [2.5]]) == [[2.0, 0.0], [5.0, 0.0]]
    assert (tmp_path / "scorers" / "doubler.py").exists()


def test_components_satisfy_their_interfaces(fit, regression_frame):
    from packages.ml_ops.protocols import RowScorer, ScoringCodeLoader

    model = fit(GLMParameters(train=regression_frame.key, response_column="y"))
    assert isinstance(model, RowScorer)
    assert isinstance(PythonSourceLoader(), ScoringCodeLoader)
