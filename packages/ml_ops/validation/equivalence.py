# packages/ml_ops/validation/equivalence.py

from dataclasses import dataclass, field
from typing import List, Optional

from packages.frames.frame import Frame
from packages.ml_ops.adaptation import release_transients
from packages.ml_ops.codegen.loader import PythonSourceLoader
from packages.ml_ops.codegen.source_builder import to_python_id
from packages.ml_ops.protocols import ScoringCodeLoader
from packages.platform_lib.config import settings


@dataclass
class Mismatch:
    row: int
    column: int
    engine: float
    generated: float


@dataclass
class ValidationReport:
    passed: bool
    rows_checked: int = 0
    mismatches: List[Mismatch] = field(default_factory=list)

    def __bool__(self):
        return self.passed


def _same(a: float, b: float) -> bool:
    # Both missing counts as agreement
    return a == b or (a != a and b != b)


class EquivalenceValidator:
    """
    Replays a frame through a model's exported code and compares every
    prediction column with what the engine produced for the same rows.
    Comparison is exact: the exported scorer performs the same float
    operations in the same order as the engine.
    """

    def __init__(
        self,
        model,
        loader: Optional[ScoringCodeLoader] = None,
        max_mismatches: int | None = None,
        logger=None,
    ):
        self.model = model
        self.loader: ScoringCodeLoader = loader or PythonSourceLoader()
        self.max_mismatches = (
            max_mismatches if max_mismatches is not None else settings.scoring.max_mismatches
        )
        self.logger = logger or model.logger

    def validate(self, data: Frame, predictions: Frame) -> ValidationReport:
        if data.num_rows != predictions.num_rows:
            raise ValueError(
                f"Scored frame has {data.num_rows} rows but predictions have {predictions.num_rows}"
            )
        out = self.model.output

        # 1. Adapt a copy of the data to the training schema
        fr = Frame(data)
        try:
            for msg in self.model.adapt_test_for_train(fr, expensive=True):
                self.logger.warning(msg)

            # 2. Map model class codes into the predictions' domain
            omap = self._class_map(predictions)

            # 3. Generate and load the scorer
            source = self.model.export_code()
            scorer = self.loader.load(to_python_id(self.model.key), source)

            # 4. Score row by row and compare
            report = self._compare(scorer, fr, predictions, omap, out.nclasses + 1)
        finally:
            # Remove temp vecs; the caller's vecs stay
            release_transients(fr, data)

        if report.passed:
            self.logger.info(
                f"Exported scorer of '{self.model.key}' agrees on all {report.rows_checked} rows."
            )
        return report

    def _class_map(self, predictions: Frame) -> Optional[List[int]]:
        if not self.model.output.is_classifier:
            return None
        pdomain = predictions.vecs()[0].domain
        mdomain = list(self.model.output.class_names)
        if pdomain is None or pdomain == mdomain:
            return None
        missing = [level for level in mdomain if level not in pdomain]
        if missing:
            raise ValueError(f"Predictions domain lacks model classes {missing}")
        return [pdomain.index(level) for level in mdomain]

    def _compare(self, scorer, fr: Frame, predictions: Frame, omap, npreds: int) -> ValidationReport:
        nfeatures = len(scorer.NAMES)
        data = [0.0] * nfeatures
        preds = [0.0] * npreds
        mismatches: List[Mismatch] = []
        rows = 0

        for row, (drow, prow) in enumerate(
            zip(fr.raw_polars().iter_rows(), predictions.raw_polars().iter_rows())
        ):
            rows += 1
            for i in range(nfeatures):
                data[i] = drow[i]
            scorer.score0(data, preds)
            for col, engine in enumerate(prow):
                generated = preds[col]
                if col == 0 and omap is not None and generated == generated:
                    generated = float(omap[int(generated)])
                if _same(engine, generated):
                    continue
                mismatches.append(Mismatch(row, col, engine, generated))
                self.logger.error(
                    f"Predictions mismatch, row {row}, col {predictions.names[col]}, "
                    f"engine prediction={engine}, exported prediction={generated}"
                )
            if len(mismatches) > self.max_mismatches:
                self.logger.error(
                    f"Stopping after {len(mismatches)} mismatches; predictions differ."
                )
                break

        return ValidationReport(not mismatches, rows, mismatches)
