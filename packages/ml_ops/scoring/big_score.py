# packages/ml_ops/scoring/big_score.py

from typing import List, Optional, Sequence, Tuple

import polars as pl
from joblib import Parallel, delayed

from packages.frames.frame import Frame
from packages.frames.vec import Vec
from packages.ml_ops.evaluation.base import MetricBuilder
from packages.ml_ops.protocols import RowScorer
from packages.platform_lib.config import settings

# --------------------------------------------------------------------------------------
# MAP FUNCTION (Defined globally to be pickle-safe for process backends)
# --------------------------------------------------------------------------------------


def _map_partition(
    model: RowScorer,
    chunk: pl.DataFrame,
    domain: Optional[Sequence[str]],
    npredcols: int,
    compute_metrics: bool,
) -> Tuple[List[List[float]], Optional[MetricBuilder]]:
    """
    Scores one partition of an adapted frame.
    Owns its metric builder and feature buffer; shares nothing with other
    partitions, so partitions can run in any order and in parallel.
    """
    nfeatures = model.output.nfeatures
    data = [0.0] * nfeatures

    mb = model.make_metric_builder(domain) if compute_metrics else None
    # Sized for the union of test and train classes
    preds = mb.work if mb is not None else [0.0] * ((len(domain) if domain else 1) + 1)
    # Columns of actual start here
    startcol = chunk.width - 1 if (mb is not None and mb.supervised) else 0

    cols: List[List[float]] = [[] for _ in range(npredcols)]
    for row in chunk.iter_rows():
        for i in range(nfeatures):
            data[i] = row[i]
        p = model.score0(data, preds)
        if mb is not None:
            mb.per_row(p, row[startcol:], model)
        # Output predictions; sized for train only (excludes extra test classes)
        for c in range(npredcols):
            cols[c].append(p[c])
    return cols, mb


# --------------------------------------------------------------------------------------
# SCORER
# --------------------------------------------------------------------------------------


class BigScore:
    """
    Map/reduce batch scoring of an already adapted frame.

    Map: every partition is scored independently by `_map_partition`.
    Reduce: partition builders are merged with the builder's associative
    `reduce`, in partition order. Finalize: `post_global` runs once on the
    merged builder. Prediction columns are concatenated in partition order,
    so the output rows line up with the input rows.
    """

    def __init__(
        self,
        model: RowScorer,
        domain: Optional[Sequence[str]],
        npredcols: int,
        compute_metrics: bool = True,
        n_partitions: int | None = None,
        n_jobs: int | None = None,
        backend: str | None = None,
    ):
        self.model = model
        self.domain = list(domain) if domain is not None else None  # Prediction domain
        self.npredcols = npredcols
        self.compute_metrics = compute_metrics
        self.n_partitions = n_partitions or settings.scoring.n_partitions
        self.n_jobs = n_jobs or settings.scoring.n_jobs
        self.backend = backend or settings.scoring.backend

        self.columns: List[List[float]] = []
        self.mb: Optional[MetricBuilder] = None

    def do_all(self, adapted: Frame) -> "BigScore":
        raw = adapted.raw_polars()
        ranges = adapted.partitions(self.n_partitions)

        results = Parallel(n_jobs=self.n_jobs, backend=self.backend)(
            delayed(_map_partition)(
                self.model,
                raw.slice(offset, length),
                self.domain,
                self.npredcols,
                self.compute_metrics,
            )
            for offset, length in ranges
        )

        # Reduce
        columns: List[List[float]] = [[] for _ in range(self.npredcols)]
        mb = None
        for cols, part_mb in results:
            for c in range(self.npredcols):
                columns[c].extend(cols[c])
            if part_mb is not None:
                mb = part_mb if mb is None else mb.reduce(part_mb)

        # Finalize
        if mb is not None:
            mb.post_global()

        self.columns = columns
        self.mb = mb
        return self

    def output_frame(
        self, key: str | None, names: Sequence[str], domains: Sequence
    ) -> Frame:
        vecs = [Vec(col, dom) for col, dom in zip(self.columns, domains)]
        return Frame(list(names), vecs, key)
