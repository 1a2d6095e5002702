# packages/ml_ops/modeling/model.py

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import joblib

from packages.contracts.parameters import ModelParameters
from packages.contracts.vocabulary.columns import PredictCol
from packages.contracts.vocabulary.general import JobState, ModelCategory
from packages.frames.frame import Frame
from packages.frames.job import Job
from packages.frames.keystore import DKV, KeyStore
from packages.frames.lockable import Lockable
from packages.ml_ops.adaptation import adapt_test_for_train, release_transients
from packages.ml_ops.checksum import ChecksumEngine, output_checksum
from packages.ml_ops.evaluation.base import MetricBuilder
from packages.ml_ops.evaluation.factory import create_metric_builder
from packages.ml_ops.evaluation.metrics import ModelMetrics
from packages.ml_ops.exceptions import SchemaDegraded, UnsupportedExport
from packages.ml_ops.registry import MetricsRegistry
from packages.ml_ops.scoring.big_score import BigScore
from packages.platform_lib.hashing import u64
from packages.platform_lib.logging import get_logger


class Output:
    """
    Everything a model learned that scoring needs, plus the schema it
    learned it on. Names and domains are captured once from the builder's
    training frame; afterwards only warnings and metric references grow.
    """

    def __init__(self, builder):
        if builder.error_count() > 0:
            raise ValueError(builder.validation_errors())

        # Capture the data "shape" the model is valid on
        train = builder.train_frame
        self.names: Tuple[str, ...] = tuple(train.names)
        self.domains: Tuple[Optional[Tuple[str, ...]], ...] = tuple(
            tuple(d) if d is not None else None for d in train.domains()
        )
        self.supervised: bool = builder.parameters.supervised
        self.state: JobState = JobState.CREATED
        self.model_metrics = MetricsRegistry()

        # Checksums of the frames the model was built from, in case those
        # frames are deleted before the model is
        self.frame_checksums: Dict[str, int] = dict(builder.frame_checksums)

        self._warnings_lock = threading.Lock()
        self._warnings: List[str] = []

    # --- Schema queries ---

    @property
    def nfeatures(self) -> int:
        return len(self.names) - 1 if self.supervised else len(self.names)

    @property
    def is_supervised(self) -> bool:
        return self.supervised

    @property
    def response_name(self) -> Optional[str]:
        """The name of the response column (which is always the last column)."""
        return self.names[-1] if self.supervised else None

    @property
    def class_names(self) -> Optional[Tuple[str, ...]]:
        return self.domains[-1] if self.supervised else None

    @property
    def is_classifier(self) -> bool:
        return self.supervised and self.class_names is not None

    @property
    def nclasses(self) -> int:
        return len(self.class_names) if self.is_classifier else 1

    @property
    def model_category(self) -> ModelCategory:
        # Clustering outputs override this
        if self.is_classifier:
            return ModelCategory.MULTINOMIAL if self.nclasses > 2 else ModelCategory.BINOMIAL
        return ModelCategory.REGRESSION

    # --- Append-only state ---

    @property
    def warnings(self) -> Tuple[str, ...]:
        with self._warnings_lock:
            return tuple(self._warnings)

    def add_warning(self, message: str):
        with self._warnings_lock:
            self._warnings.append(message)

    def add_model_metrics(self, mm: ModelMetrics) -> ModelMetrics:
        return self.model_metrics.register(mm)

    def offsets(self) -> List[int]:
        """
        First expanded slot of every feature: a categorical column with n
        training levels owns n consecutive (one-hot) slots, a numeric one.
        """
        offs, off = [], 0
        for dom in self.domains[: self.nfeatures]:
            offs.append(off)
            off += len(dom) if dom is not None else 1
        return offs

    @property
    def nexpanded(self) -> int:
        return sum(len(d) if d is not None else 1 for d in self.domains[: self.nfeatures])

    def checksum(self) -> int:
        return output_checksum(self.names, self.domains, self.model_category.ordinal)

    def __getstate__(self):
        state = self.__dict__.copy()
        state.pop("_warnings_lock", None)
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._warnings_lock = threading.Lock()


class Model(Lockable, ABC):
    """
    A model models reality (hopefully).

    It scores single rows (`score0`) or whole frames (`score`) whose columns
    can be adapted to the training schema, computes metrics while scoring
    (`score_with_metrics`), and can export itself as standalone Python
    (`export_code`) that `validate_export` proves equivalent.
    """

    def __init__(
        self,
        key: str,
        parameters: ModelParameters,
        output: Output,
        store: KeyStore = DKV,
        logger=None,
    ):
        super().__init__(key)
        self.parameters = parameters
        self.output = output
        self.store = store
        self.logger = logger or get_logger("model")

    # --- Row scoring (model specific) ---

    @abstractmethod
    def score0(self, data: Sequence[float], preds: List[float]) -> List[float]:
        """
        Scores one row. `data` holds the feature values in training order
        (categorical codes, NaN for missing). Writes preds[0] (class index,
        value or cluster) and, for classifiers, preds[1..nclasses] (class
        probabilities). Returns `preds`.
        """

    @property
    def model_category(self) -> ModelCategory:
        return self.output.model_category

    @property
    def is_supervised(self) -> bool:
        return self.output.is_supervised

    def predict_row(self, data: Sequence[float]) -> float:
        """Convenience for ad-hoc rows already in training column order."""
        return self.score0(data, [0.0] * (self.output.nclasses + 1))[0]

    def make_metric_builder(self, domain: Optional[Sequence[str]]) -> MetricBuilder:
        return create_metric_builder(
            self.model_category, domain, nclasses=self.output.nclasses
        )

    # --- Adaptation ---

    def adapt_test_for_train(self, test: Frame, expensive: bool) -> List[str]:
        return adapt_test_for_train(
            self.output.names,
            self.output.domains,
            test,
            self.parameters.missing_columns_type(),
            expensive,
        )

    def check_compatible(self, frame: Frame):
        """
        Probe: reports what adapting `frame` would cost without building
        anything. Raises SchemaDegraded with the warnings, if any.
        """
        warnings = self.adapt_test_for_train(Frame(frame), expensive=False)
        if warnings:
            raise SchemaDegraded(warnings)

    # --- Frame scoring ---

    def score(self, frame: Frame, destination_key: str | None = None) -> Frame:
        """
        Pure prediction. Column 0 is `predict`; classifiers add one
        probability column per training class. The response column is not
        needed. The result is installed in the store; the caller deletes it.
        """
        predictions, _ = self._score(frame, destination_key, with_metrics=False)
        return predictions

    def score_with_metrics(
        self, frame: Frame, destination_key: str | None = None
    ) -> Tuple[Frame, ModelMetrics]:
        """Scores `frame` and folds every row into the model's metrics."""
        return self._score(frame, destination_key, with_metrics=True)

    def _score(self, fr: Frame, destination_key, with_metrics: bool):
        names = list(self.output.names)
        domains = list(self.output.domains)
        if self.is_supervised and not with_metrics:
            # Predict does not need an actual
            names, domains = names[:-1], domains[:-1]

        adapt_fr = Frame(fr)
        with Job(f"Score '{self.key}' on '{fr.key}'") as job, fr.read_locked(job.key):
            try:
                warnings = adapt_test_for_train(
                    names,
                    domains,
                    adapt_fr,
                    self.parameters.missing_columns_type(),
                    expensive=True,
                )
                for msg in warnings:
                    self.logger.warning(msg)

                output, mm = self.score_impl(fr, adapt_fr, destination_key, with_metrics)
            finally:
                # Remove temp vecs; the caller's vecs stay
                release_transients(adapt_fr, fr)

        if mm is not None:
            mm.log_summary(self.logger, self.parameters.max_confusion_matrix_size)

        # Output is in the model's domain, but needs to be mapped to the
        # scored dataset's domain. Presentation only: mm is already final.
        if self.output.is_classifier:
            actual = fr.vec(self.output.response_name)
            if actual is not None and actual.is_categorical:
                self._relabel_predictions(output, actual.domain)

        return output, mm

    def score_impl(
        self, fr: Frame, adapt_fr: Frame, destination_key, with_metrics: bool
    ) -> Tuple[Frame, Optional[ModelMetrics]]:
        """
        Scores an already adapted frame. Builds the prediction frame and,
        when asked, the metrics of this model on `fr`.
        """
        nc = self.output.nclasses
        ncols = 1 if nc == 1 else nc + 1  # Regression has 1 predict col
        names = [str(PredictCol.PREDICT)]
        names += list(self.output.class_names or [])[: ncols - 1]

        pred_domain = None
        if self.output.is_classifier:
            # Union of test and train classes when the response was adapted
            pred_domain = adapt_fr.last_vec().domain if with_metrics else list(self.output.class_names)
        domains = [pred_domain] + [None] * (ncols - 1)

        self.logger.info(
            f"Scoring {adapt_fr.num_rows} rows of '{fr.key}' with '{self.key}'..."
        )
        bs = BigScore(self, pred_domain, ncols, compute_metrics=with_metrics).do_all(adapt_fr)

        mm = None
        if with_metrics:
            mm = bs.mb.make_model_metrics(self, fr, self.store)
            mm = self.add_metrics(mm)

        res = bs.output_frame(destination_key, names, domains)
        res.install(self.store)
        return res, mm

    def _relabel_predictions(self, output: Frame, scored_domain: Sequence[str]):
        predicted = output.vecs()[0]
        mdomain = predicted.domain
        if mdomain is None or list(mdomain) == list(scored_domain):
            return
        domain = list(scored_domain)
        code_map = []
        for level in mdomain:
            if level not in domain:
                domain.append(level)
            code_map.append(domain.index(level))
        old = output.replace(0, predicted.remap(code_map, domain))
        old.remove()

    # --- Identity & lifecycle ---

    def checksum(self) -> int:
        engine = ChecksumEngine(self.store, self.output.frame_checksums)
        return u64(engine.checksum(self.parameters) * self.output.checksum())

    def add_metrics(self, mm: ModelMetrics) -> ModelMetrics:
        return self.output.add_model_metrics(mm)

    def add_warning(self, message: str):
        self.output.add_warning(message)

    def install(self) -> "Model":
        self.store.put(self.key, self)
        return self

    def delete(self):
        """Removes the model and every metric artifact it references."""
        self._check_unlocked()
        released = self.output.model_metrics.release_all(self.store)
        self.store.remove(self.key)
        self.logger.info(f"Deleted model '{self.key}' and {released} metric artifacts.")

    def save(self, path: Path):
        joblib.dump(self, path)

    @staticmethod
    def load(path: Path) -> "Model":
        return joblib.load(path)

    # --- Code export ---

    def export_code(self) -> str:
        from packages.ml_ops.codegen.generator import CodeGenerator

        return CodeGenerator(self).emit()

    def emit_init(self, sb):
        """Model-level constants for the exported scorer. Default: none."""

    def emit_predict_body(self, body, cls_ctx):
        """Body of the exported score0(data, preds)."""
        raise UnsupportedExport(
            f"This model type ({type(self).__name__}) does not support code export"
        )

    def validate_export(
        self, data: Frame, predictions: Frame | None = None, loader=None
    ) -> bool:
        """
        Generates code, loads it and replays `data` through it, comparing
        against `predictions` (scored here when not given).
        """
        from packages.ml_ops.validation.equivalence import EquivalenceValidator

        owned = predictions is None
        if owned:
            predictions = self.score(data)
        try:
            report = EquivalenceValidator(self, loader=loader).validate(data, predictions)
        finally:
            if owned:
                predictions.delete(self.store)
        return report.passed

    # --- Pickling: stores and loggers stay in their process ---

    def __getstate__(self):
        state = super().__getstate__()
        state.pop("store", None)
        state.pop("logger", None)
        return state

    def __setstate__(self, state):
        super().__setstate__(state)
        self.store = DKV
        self.logger = get_logger("model")
