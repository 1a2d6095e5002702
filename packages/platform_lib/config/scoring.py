# packages/platform_lib/config/scoring.py

from typing import Literal
from pydantic import Field
from .base import EnvConfig


class ScoringConfig(EnvConfig):
    """
    Knobs for the batch scorer and the exported-code validator.
    """

    # Horizontal row ranges a frame is cut into for the map phase
    n_partitions: int = Field(validation_alias="SCORING_N_PARTITIONS", default=4, ge=1)

    # joblib settings for the map phase.
    # "threading" keeps models in-process; "loky" pickles them to workers.
    n_jobs: int = Field(validation_alias="SCORING_N_JOBS", default=1)
    backend: Literal["threading", "loky", "sequential"] = Field(
        validation_alias="SCORING_BACKEND", default="threading"
    )

    # Validator stops comparing once this many mispredictions were seen
    max_mismatches: int = Field(
        validation_alias="SCORING_MAX_MISMATCHES", default=10, ge=0
    )

    # Optional directory where `export` writes generated scorers
    export_dir: str | None = Field(validation_alias="SCORING_EXPORT_DIR", default=None)
