# packages/ml_ops/training/glm.py

import numpy as np
from sklearn.linear_model import LinearRegression, LogisticRegression, Ridge

from packages.frames.frame import Frame
from packages.ml_ops.modeling.glm import GLMModel, GLMOutput
from .builder import ModelBuilder

# Intercept given to classes absent from the training rows; softmax sends them to 0
ABSENT_CLASS_INTERCEPT = -1e300


class GLMBuilder(ModelBuilder):
    """Fits gaussian, binomial or multinomial GLMs with scikit-learn."""

    algo_name = "GLM"

    def init_algo(self, train: Frame):
        family = self.parameters.family
        response = train.last_vec()
        if response is None or train.names[-1] != self.parameters.response_column:
            return

        if family == "gaussian":
            if response.is_categorical:
                self.error("family", "Gaussian family requires a numeric response column")
            return

        if not response.is_categorical:
            self.error("family", f"{family.capitalize()} family requires a categorical response column")
            return
        nlevels = len(response.domain)
        if family == "binomial" and nlevels != 2:
            self.error("family", f"Binomial family requires 2 response levels, found {nlevels}")
        if family == "multinomial" and nlevels < 3:
            self.error("family", f"Multinomial family requires at least 3 response levels, found {nlevels}")

        present = np.unique(response.to_numpy()[~np.isnan(response.to_numpy())])
        if present.size < 2:
            self.error("response_column", "Response column has fewer than 2 classes present")

    def build(self, key: str) -> GLMModel:
        output = GLMOutput(self)
        X = self.design_matrix(output)
        output.means = self.column_means(output)

        y = self.train_frame.last_vec().to_numpy()
        rows = ~np.isnan(y)  # Rows without a response do not train
        X, y = X[rows], y[rows]

        p = self.parameters
        self.logger.info(
            f"Fitting {p.family} GLM on {X.shape[0]} rows x {X.shape[1]} expanded features..."
        )

        if p.family == "gaussian":
            est = Ridge(alpha=p.lambda_) if p.lambda_ > 0 else LinearRegression()
            est.fit(X, y)
            output.beta = [[float(b) for b in np.ravel(est.coef_)]]
            output.intercept = [float(est.intercept_)]
        else:
            kwargs = {"C": 1.0 / p.lambda_} if p.lambda_ > 0 else {"penalty": None}
            est = LogisticRegression(max_iter=p.max_iterations, **kwargs)
            est.fit(X, y.astype(np.int64))
            self._store_logistic(output, est)

        return GLMModel(key, p, output, store=self.store, logger=self.logger)

    def _store_logistic(self, output: GLMOutput, est: LogisticRegression):
        classes = [int(c) for c in est.classes_]
        if output.family == "binomial":
            output.beta = [[float(b) for b in est.coef_[0]]]
            output.intercept = [float(est.intercept_[0])]
            return

        # One linear predictor per training class, in domain order
        beta = [[0.0] * output.nexpanded for _ in range(output.nclasses)]
        intercept = [ABSENT_CLASS_INTERCEPT] * output.nclasses
        for row, c in enumerate(classes):
            beta[c] = [float(b) for b in est.coef_[row]]
            intercept[c] = float(est.intercept_[row])
        output.beta = beta
        output.intercept = intercept
