# packages/ml_ops/training/builder.py

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import numpy as np

from packages.contracts.parameters import ModelParameters
from packages.frames.frame import Frame
from packages.frames.job import Job
from packages.frames.keystore import DKV, KeyStore, make_key
from packages.ml_ops.adaptation import adapt_test_for_train
from packages.ml_ops.exceptions import ScoringError
from packages.platform_lib.logging import get_logger

# Columns with a larger missing fraction are dropped when drop_na20_cols is set
NA_DROP_FRACTION = 0.2


class ModelBuilder(ABC):
    """
    Validates parameters against the store's frames and builds a Model.

    `init()` collects every problem instead of stopping at the first one;
    a model's Output refuses to be constructed while any remain. The
    cleaned training frame (ignored and useless columns dropped, response
    last) is a shallow copy: the stored frame is never modified.
    """

    algo_name: str = "model"

    def __init__(self, parameters: ModelParameters, store: KeyStore = DKV, logger=None):
        self.parameters = parameters
        self.store = store
        self.logger = logger or get_logger(f"builder.{parameters.algo}")

        self.train_frame: Optional[Frame] = None
        self.frame_checksums: Dict[str, int] = {}
        self.warnings: List[str] = []
        self._errors: List[str] = []
        self._dest = parameters.destination_key or make_key(parameters.algo)

    # --- Validation messages ---

    def error(self, field: str, message: str):
        self._errors.append(f"ERRR on field: {field}: {message}")

    def warn(self, field: str, message: str):
        self.warnings.append(f"WARN on field: {field}: {message}")

    def error_count(self) -> int:
        return len(self._errors)

    def validation_errors(self) -> str:
        return "\n".join(
            [f"Illegal argument(s) for {self.algo_name} model: {self.destination_key}"]
            + self._errors
        )

    @property
    def destination_key(self) -> str:
        return self._dest

    # --- Init ---

    def init(self):
        p = self.parameters
        self._errors.clear()
        self.warnings.clear()

        # 1. Frames exist
        train = self.store.get(p.train)
        if train is None:
            self.error("train", f"Missing training frame: {p.train}")
            return
        valid = None
        if p.valid is not None:
            valid = self.store.get(p.valid)
            if valid is None:
                self.error("valid", f"Missing validation frame: {p.valid}")

        # 2. Drop ignored columns
        names = list(train.names)
        vecs = train.vecs()
        for col in p.ignored_columns or []:
            if col == p.response_column:
                self.error("ignored_columns", f"Response column {col} cannot be ignored")
            elif col not in names:
                self.warn("ignored_columns", f"Ignored column {col} is not in the training frame")
            else:
                i = names.index(col)
                del names[i], vecs[i]

        # 3. Response goes last
        response = None
        if p.supervised:
            if p.response_column is None:
                self.error("response_column", "Response column parameter not set.")
            elif p.response_column not in names:
                self.error(
                    "response_column",
                    f"Response column {p.response_column} not found in frame: {p.train}",
                )
            else:
                i = names.index(p.response_column)
                response = (names.pop(i), vecs.pop(i))

        # 4. Drop useless feature columns
        for name, vec in list(zip(names, vecs)):
            values = vec.to_numpy()
            nmissing = int(np.isnan(values).sum())
            if p.drop_cons_cols and _is_constant(values):
                self.warn("train", f"Dropping constant column {name}")
            elif p.drop_na20_cols and len(values) and nmissing / len(values) > NA_DROP_FRACTION:
                self.warn("train", f"Dropping column {name} with more than 20% missing values")
            else:
                continue
            i = names.index(name)
            del names[i], vecs[i]

        if not names:
            self.error("train", "Training frame has no usable feature columns")
        if response is not None:
            names.append(response[0])
            vecs.append(response[1])

        self.train_frame = Frame(names, vecs)
        self.frame_checksums = {train.key: train.checksum()}

        # 5. Algorithm specific checks
        self.init_algo(self.train_frame)

        # 6. Validation frame must adapt to the cleaned training schema
        if valid is not None and self.error_count() == 0:
            self.frame_checksums[valid.key] = valid.checksum()
            try:
                msgs = adapt_test_for_train(
                    names,
                    self.train_frame.domains(),
                    Frame(valid),
                    p.missing_columns_type(),
                    expensive=False,
                )
            except ScoringError as e:
                self.error("valid", str(e))
            else:
                for msg in msgs:
                    self.warn("valid", msg)

    def init_algo(self, train: Frame):
        """Hook for per-algorithm validation of the cleaned training frame."""

    # --- Build ---

    def read_lock_frames(self, job: Job):
        for key in (self.parameters.train, self.parameters.valid):
            frame = self.store.get(key)
            if frame is not None:
                frame.read_lock(job.key)

    def read_unlock_frames(self, job: Job):
        for key in (self.parameters.train, self.parameters.valid):
            frame = self.store.get(key)
            if frame is not None:
                frame.unlock(job.key)

    def train_model(self):
        """Validates, fits, installs and scores the model on its frames."""
        with Job(f"Build {self.algo_name} model '{self.destination_key}'") as job:
            self.read_lock_frames(job)
            try:
                self.init()
                model = self.build(self.destination_key)
                for msg in self.warnings:
                    model.add_warning(msg)
            finally:
                self.read_unlock_frames(job)
        model.output.state = job.state
        model.install()
        self.logger.info(f"Built {self.algo_name} model '{model.key}'.")

        # Training and validation metrics, as the first entries of the registry
        for key in (self.parameters.train, self.parameters.valid):
            frame = self.store.get(key)
            if frame is not None:
                predictions, _ = model.score_with_metrics(frame)
                predictions.delete(self.store)
        return model

    @abstractmethod
    def build(self, key: str):
        """Constructs the Output (which re-checks validation) and fits it."""

    # --- Shared design-matrix helpers ---

    def design_matrix(self, output) -> np.ndarray:
        """
        Expanded feature matrix of the training frame: categorical columns
        one-hot (missing rows all zero), numeric columns with missing values
        replaced by the column mean.
        """
        frame = self.train_frame
        nrows = frame.num_rows
        X = np.zeros((nrows, output.nexpanded))
        means = self.column_means(output)
        for i, off in enumerate(output.offsets()):
            values = frame.vecs()[i].to_numpy()
            dom = output.domains[i]
            if dom is None:
                X[:, off] = np.where(np.isnan(values), means[i], values)
                continue
            present = ~np.isnan(values)
            X[np.flatnonzero(present), off + values[present].astype(np.int64)] = 1.0
        return X

    def column_means(self, output) -> List[float]:
        means = []
        for i in range(output.nfeatures):
            vec = self.train_frame.vecs()[i]
            if output.domains[i] is not None:
                means.append(float("nan"))
                continue
            values = vec.to_numpy()
            means.append(float(np.nanmean(values)) if (~np.isnan(values)).any() else 0.0)
        return means


def _is_constant(values: np.ndarray) -> bool:
    present = values[~np.isnan(values)]
    return present.size == 0 or bool(np.all(present == present[0]))
