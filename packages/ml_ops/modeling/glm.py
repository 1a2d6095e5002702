# packages/ml_ops/modeling/glm.py

import math
from typing import List, Sequence

from packages.ml_ops.codegen.source_builder import SourceBuilder, literal, static_var
from .model import Model, Output


class GLMOutput(Output):
    """
    Coefficients of a generalized linear model over the expanded features:
    a categorical column with n training levels owns n consecutive slots
    (one-hot), a numeric column owns one. One row of `beta` per linear
    predictor: a single one for gaussian and binomial, one per class for
    multinomial.
    """

    def __init__(self, builder):
        super().__init__(builder)
        self.family: str = builder.parameters.family
        self.beta: List[List[float]] = []
        self.intercept: List[float] = []
        self.means: List[float] = []  # Imputed for missing numeric values


class GLMModel(Model):
    output: GLMOutput

    def _linear(self, data: Sequence[float], k: int) -> float:
        out = self.output
        beta = out.beta[k]
        eta = out.intercept[k]
        off = 0
        for i in range(out.nfeatures):
            x = data[i]
            dom = out.domains[i]
            if dom is not None:
                # Missing and not-trained-on levels contribute nothing
                if x == x and x < len(dom):
                    eta += beta[off + int(x)]
                off += len(dom)
            else:
                if x != x:
                    x = out.means[i]
                eta += beta[off] * x
                off += 1
        return eta

    def score0(self, data, preds):
        family = self.output.family
        if family == "gaussian":
            preds[0] = self._linear(data, 0)
        elif family == "binomial":
            eta = self._linear(data, 0)
            if eta >= 0:
                p1 = 1.0 / (1.0 + math.exp(-eta))
            else:
                e = math.exp(eta)
                p1 = e / (1.0 + e)
            preds[1] = 1.0 - p1
            preds[2] = p1
            preds[0] = 1.0 if p1 >= 0.5 else 0.0
        else:
            nclasses = self.output.nclasses
            for k in range(nclasses):
                preds[k + 1] = self._linear(data, k)
            m = preds[1]
            for k in range(1, nclasses):
                if preds[k + 1] > m:
                    m = preds[k + 1]
            s = 0.0
            for k in range(nclasses):
                preds[k + 1] = math.exp(preds[k + 1] - m)
                s += preds[k + 1]
            best = 0
            for k in range(nclasses):
                preds[k + 1] = preds[k + 1] / s
                if preds[k + 1] > preds[best + 1]:
                    best = k
            preds[0] = float(best)
        return preds

    # --- Code export ---

    def emit_init(self, sb: SourceBuilder):
        out = self.output
        static_var(sb, "INTERCEPT", out.intercept, "Intercept of each linear predictor.")
        sb.line("# Coefficients of each linear predictor over the expanded features.")
        sb.line("BETA = (")
        sb.ii()
        for row in out.beta:
            sb.line(f"{literal(row)},")
        sb.di()
        sb.line(")").nl()
        static_var(sb, "MEANS", out.means, "Training means, imputed for missing numeric values.")

    def emit_predict_body(self, body: SourceBuilder, cls_ctx: SourceBuilder):
        out = self.output
        self._emit_linear(cls_ctx)

        if out.family == "gaussian":
            body.line("preds[0] = _linear(data, 0)")
        elif out.family == "binomial":
            body.line("eta = _linear(data, 0)")
            body.line("if eta >= 0:")
            body.line("    p1 = 1.0 / (1.0 + math.exp(-eta))")
            body.line("else:")
            body.line("    e = math.exp(eta)")
            body.line("    p1 = e / (1.0 + e)")
            body.line("preds[1] = 1.0 - p1")
            body.line("preds[2] = p1")
            body.line("preds[0] = 1.0 if p1 >= 0.5 else 0.0")
        else:
            body.line("for k in range(NCLASSES):")
            body.line("    preds[k + 1] = _linear(data, k)")
            body.line("m = preds[1]")
            body.line("for k in range(1, NCLASSES):")
            body.line("    if preds[k + 1] > m:")
            body.line("        m = preds[k + 1]")
            body.line("s = 0.0")
            body.line("for k in range(NCLASSES):")
            body.line("    preds[k + 1] = math.exp(preds[k + 1] - m)")
            body.line("    s += preds[k + 1]")
            body.line("best = 0")
            body.line("for k in range(NCLASSES):")
            body.line("    preds[k + 1] = preds[k + 1] / s")
            body.line("    if preds[k + 1] > preds[best + 1]:")
            body.line("        best = k")
            body.line("preds[0] = float(best)")

    def _emit_linear(self, sb: SourceBuilder):
        out = self.output
        sb.nl()
        sb.line("def _linear(data, k):")
        sb.ii()
        sb.line("beta = BETA[k]")
        sb.line("eta = INTERCEPT[k]")
        for i, off in enumerate(out.offsets()):
            dom = out.domains[i]
            sb.line(f"# {out.names[i]}")
            sb.line(f"x = data[{i}]")
            if dom is not None:
                sb.line(f"if x == x and x < {len(dom)}:")
                sb.line(f"    eta += beta[{off} + int(x)]")
            else:
                sb.line("if x != x:")
                sb.line(f"    x = MEANS[{i}]")
                sb.line(f"eta += beta[{off}] * x")
        sb.line("return eta")
        sb.di()
        sb.nl()
