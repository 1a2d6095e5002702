from typing import List, Optional, Protocol, Sequence, runtime_checkable

from packages.contracts.vocabulary.general import ModelCategory


@runtime_checkable
class RowScorer(Protocol):
    """
    In-engine prediction for one row.
    Must be total over any row compatible with the trained schema:
    one failing row would leave the metric reduce incomplete.
    """

    def score0(self, data: Sequence[float], preds: List[float]) -> List[float]: ...

    @property
    def model_category(self) -> ModelCategory: ...


class CodeEmitter(Protocol):
    """
    Model-specific pieces of an exported scorer.
    Emits into a SourceBuilder; the generator owns layout and ordering.
    """

    def emit_init(self, sb) -> None: ...

    def emit_predict_body(self, body, cls_ctx) -> None: ...


class CompiledScorer(Protocol):
    NAMES: Sequence[str]

    def score0(self, data: Sequence[float], preds: List[float]) -> List[float]: ...


@runtime_checkable
class ScoringCodeLoader(Protocol):
    """
    Turns generated source text into something that can score rows.
    Kept behind this interface so the compile step can be swapped
    (in-process import, subprocess sandbox, ...).
    """

    def load(self, module_name: str, source: str) -> CompiledScorer: ...

    def compile_and_run(
        self,
        module_name: str,
        source: str,
        rows: Sequence[Sequence[float]],
        npreds: Optional[int] = None,
    ) -> List[List[float]]: ...
