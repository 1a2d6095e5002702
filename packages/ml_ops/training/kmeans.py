# packages/ml_ops/training/kmeans.py

from sklearn.cluster import KMeans

from packages.frames.frame import Frame
from packages.ml_ops.modeling.kmeans import KMeansModel, KMeansOutput
from .builder import ModelBuilder


class KMeansBuilder(ModelBuilder):
    algo_name = "KMeans"

    def init_algo(self, train: Frame):
        if train.num_rows < self.parameters.k:
            self.error(
                "k",
                f"Cannot make {self.parameters.k} clusters out of {train.num_rows} rows",
            )

    def build(self, key: str) -> KMeansModel:
        output = KMeansOutput(self)
        X = self.design_matrix(output)

        p = self.parameters
        self.logger.info(f"Fitting KMeans with k={p.k} on {X.shape[0]} rows...")
        est = KMeans(
            n_clusters=p.k,
            init=p.init,
            max_iter=p.max_iterations,
            random_state=p.seed,
            n_init=10,
        )
        est.fit(X)
        output.centers = [[float(v) for v in center] for center in est.cluster_centers_]

        return KMeansModel(key, p, output, store=self.store, logger=self.logger)
