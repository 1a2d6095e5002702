# packages/ml_ops/training/factory.py

from typing import Any, Dict

from pydantic import TypeAdapter

from packages.contracts.parameters import ModelParameters, ParametersType
from packages.frames.keystore import DKV, KeyStore
from .builder import ModelBuilder
from .glm import GLMBuilder
from .kmeans import KMeansBuilder


class MLComponentFactory:
    """
    Central Factory for instantiating model builders from configuration.
    Uses a Registry pattern to map the 'algo' name from YAML to a builder class.
    """

    def __init__(self, logger, store: KeyStore = DKV):
        self.logger = logger
        self.store = store

        # --- Component Registries ---
        self._builder_registry = {
            "glm": GLMBuilder,
            "kmeans": KMeansBuilder,
        }
        self._parameters_adapter = TypeAdapter(ParametersType)

    def create_parameters(self, config: Dict[str, Any]) -> ModelParameters:
        """Validates a raw mapping into the parameter class named by its 'algo'."""
        return self._parameters_adapter.validate_python(config)

    def create_builder(self, parameters: ModelParameters) -> ModelBuilder:
        builder_class = self._builder_registry.get(parameters.algo)
        if not builder_class:
            raise ValueError(f"Unknown algorithm: '{parameters.algo}'")
        return builder_class(parameters, store=self.store, logger=self.logger)
