# packages/ml_ops/codegen/loader.py

import importlib.util
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

from packages.ml_ops.exceptions import ExportCompilationError
from packages.ml_ops.protocols import CompiledScorer


class PythonSourceLoader:
    """
    Loads generated scorers as real modules from a scratch directory.
    Modules are not registered in sys.modules, so repeated exports of the
    same model never see a stale copy.
    """

    def __init__(self, work_dir: Optional[Path] = None):
        self.work_dir = Path(work_dir) if work_dir else None

    def load(self, module_name: str, source: str) -> CompiledScorer:
        if self.work_dir is not None:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            return self._load_from(self.work_dir, module_name, source)
        with tempfile.TemporaryDirectory(prefix="scorer_") as tmp:
            return self._load_from(Path(tmp), module_name, source)

    def _load_from(self, directory: Path, module_name: str, source: str) -> CompiledScorer:
        module_path = directory / f"{module_name}.py"
        module_path.write_text(source, encoding="utf-8")

        spec = importlib.util.spec_from_file_location(module_name, module_path)
        if spec is None or spec.loader is None:
            raise ExportCompilationError(f"Could not load generated scorer from {module_path!s}")
        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            raise ExportCompilationError(
                f"Generated scorer '{module_name}' failed to compile: {e}"
            ) from e

        for attr in ("NAMES", "score0"):
            if not hasattr(module, attr):
                raise ExportCompilationError(
                    f"Generated scorer '{module_name}' does not define {attr}"
                )
        return module

    def compile_and_run(
        self,
        module_name: str,
        source: str,
        rows: Sequence[Sequence[float]],
        npreds: Optional[int] = None,
    ) -> List[List[float]]:
        """Loads the scorer once and returns the prediction list of every row."""
        module = self.load(module_name, source)
        if npreds is None:
            npreds = getattr(module, "NCLASSES", 1) + 1
        return [list(module.score0(list(row), [0.0] * npreds)) for row in rows]
