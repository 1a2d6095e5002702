# packages/contracts/parameters.py

import math
from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Any, ClassVar, List, Literal, Tuple, Union


# Abstract Base
class ModelParameters(BaseModel):
    """
    Builder inputs shared by every algorithm.
    Frozen: a model's parameters never change once it has been built,
    so its checksum can be recomputed on demand instead of cached.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Set by each algorithm subclass; True when the last column is a response
    supervised: ClassVar[bool] = True

    algo: str
    destination_key: str | None = None  # desired Key for the model
    train: str  # Key of the Frame the model is trained on
    valid: str | None = None  # Key of the Frame the model is validated on
    response_column: str | None = None
    ignored_columns: List[str] | None = None

    drop_na20_cols: bool = False  # Drop columns with more than 20% missing
    drop_cons_cols: bool = True  # Drop constant and all-missing columns
    score_each_iteration: bool = False

    # Confusion matrices at or above this many classes are not logged
    max_confusion_matrix_size: int = 20

    def checksum_fields(self) -> List[Tuple[str, Any]]:
        """Every declared field contributes to the checksum."""
        return [(name, getattr(self, name)) for name in type(self).model_fields]

    def missing_columns_type(self) -> float:
        """
        Fill value for training columns absent from a scored frame.
        Models with sparse handling override this with 0.0.
        """
        return math.nan


class GLMParameters(ModelParameters):
    algo: Literal["glm"] = "glm"
    family: Literal["gaussian", "binomial", "multinomial"] = "gaussian"
    lambda_: float = Field(default=0.0, alias="lambda", ge=0.0)
    max_iterations: int = 100


class KMeansParameters(ModelParameters):
    supervised: ClassVar[bool] = False

    algo: Literal["kmeans"] = "kmeans"
    k: int = Field(default=3, ge=1)
    max_iterations: int = 300
    init: Literal["k-means++", "random"] = "k-means++"
    seed: int = 42


# The Union Type
# This tells Pydantic: "Look at the 'algo' field. If it's 'glm', use GLMParameters."
ParametersType = Annotated[
    Union[GLMParameters, KMeansParameters], Field(discriminator="algo")
]


class ScoringBlueprint(BaseModel):
    """YAML document driving the model_scorer app."""

    model_name: str
    description: str = ""
    train_path: str  # CSV installed under parameters.train
    valid_path: str | None = None  # CSV installed under parameters.valid
    parameters: ParametersType
