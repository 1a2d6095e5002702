# packages/ml_ops/codegen/generator.py

from datetime import datetime, timezone

from packages.ml_ops.protocols import CodeEmitter
from packages.platform_lib.config import settings
from .source_builder import SourceBuilder, literal, static_var, to_python_id


class CodeGenerator:
    """
    Emits a standalone Python module equivalent to a model's `score0`.

    The module is of the form::

        NAMES = (...feature column names...)
        NCLASSES = n                      # classifiers only
        class ColInfo_<i>: VALUES = (...) # one per trained column
        DOMAINS = (ColInfo_0.VALUES, ...)
        <model constants>
        # Pass in data pre-aligned to the model's requirements; preds[0] is
        # the main prediction, preds[1..] the class distribution.
        def score0(data, preds): ...
        # Maps a {name: value} row into data
        def map_row(row, data=None): ...
        def predict(row): ...

    The prediction body comes from the model (`emit_predict_body`); models
    without one raise UnsupportedExport before anything is returned.
    """

    def __init__(self, model):
        self.model = model
        self.emitter: CodeEmitter = model
        self.output = model.output
        self.model_name = to_python_id(model.key)

    def emit(self) -> str:
        sb = SourceBuilder()
        self._header(sb)
        sb.line("import math").nl().nl()
        self._names(sb)
        self._nclasses(sb)
        self._domains(sb)
        self.emitter.emit_init(sb)
        self._predict(sb)
        self._helpers(sb)
        return str(sb)

    # --- Sections, in emission order ---

    def _header(self, sb: SourceBuilder):
        stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        sb.line(f"# AUTOGENERATED BY {settings.system.project_name} at {stamp}")
        sb.line(f"# {settings.system.project_name} {settings.system.version}")
        sb.line("#")
        sb.line(
            f"# Standalone prediction code for {type(self.model).__name__} "
            f"named {self.model_name}"
        )
        sb.line("#")
        sb.line("# Usage:")
        sb.line(f"#     import {self.model_name}")
        sb.line(f"#     preds = {self.model_name}.predict({{column: value, ...}})")
        sb.line("#")

    def _names(self, sb: SourceBuilder):
        features = list(self.output.names[: self.output.nfeatures])
        static_var(sb, "NAMES", features, "Names of columns used by model.")

    def _nclasses(self, sb: SourceBuilder):
        if self.output.is_classifier:
            static_var(
                sb,
                "NCLASSES",
                self.output.nclasses,
                "Number of output classes included in training data response column.",
            )

    def _domains(self, sb: SourceBuilder):
        # Auxiliary tables first: module-level names must exist before use
        for i, name in enumerate(self.output.names):
            sb.line(f"# The class representing column {name}")
            sb.line(f"class ColInfo_{i}:")
            sb.ii()
            sb.line(f"VALUES = {literal(self.output.domains[i])}")
            sb.di()
            sb.nl()

        sb.nl()
        sb.line("# Column domains. The last entry holds the domain of the response column.")
        sb.line("DOMAINS = (")
        sb.ii()
        for i, name in enumerate(self.output.names):
            sb.line(f"# {name}")
            sb.line(f"ColInfo_{i}.VALUES,")
        sb.di()
        sb.line(")").nl()

    def _predict(self, sb: SourceBuilder):
        body = SourceBuilder(indent=1)
        cls_ctx = SourceBuilder()
        # Raises UnsupportedExport for models without a specialization
        self.emitter.emit_predict_body(body, cls_ctx)

        sb.nl()
        sb.line("# Pass in data in a list, pre-aligned to the model's requirements.")
        sb.line("# Jam predictions into the preds list; preds[0] is reserved for the")
        sb.line("# main prediction (class for classifiers or value for regression),")
        sb.line("# and remaining slots hold a probability distribution for classifiers.")
        sb.line("def score0(data, preds):")
        sb.p(body)
        sb.line("    return preds").nl()
        sb.p(cls_ctx)

    def _helpers(self, sb: SourceBuilder):
        npreds = self.output.nclasses + 1
        sb.nl()
        sb.line("def map_row(row, data=None):")
        sb.line('    """Feature list from a {column: value} mapping. Levels are given as strings."""')
        sb.line("    if data is None:")
        sb.line("        data = [0.0] * len(NAMES)")
        sb.line("    for i, name in enumerate(NAMES):")
        sb.line("        value = row.get(name)")
        sb.line("        domain = DOMAINS[i]")
        sb.line("        if value is None:")
        sb.line('            data[i] = float("nan")')
        sb.line("        elif domain is not None:")
        sb.line("            # Levels not trained on share the first code past the domain")
        sb.line("            data[i] = float(domain.index(value) if value in domain else len(domain))")
        sb.line("        else:")
        sb.line("            data[i] = float(value)")
        sb.line("    return data").nl().nl()
        sb.line("def predict(row):")
        sb.line(f"    return score0(map_row(row), [0.0] * {npreds})")
