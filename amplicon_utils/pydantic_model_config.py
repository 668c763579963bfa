from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ConfigDict
from yaml import safe_load

strict_config = ConfigDict(
    arbitrary_types_allowed=True,
    extra='forbid',
    frozen=True,
    validate_assignment=True,
    validate_default=True,
    validate_return=True,
)


class StrictBaseModel(BaseModel, frozen=True):
    model_config = strict_config


Model = TypeVar('Model', bound=BaseModel)


def load_yml_model(path: Path, model: type[Model]) -> Model:
    """Read a YAML file and validate its contents against `model`.

    An empty file is treated as an empty mapping, so a model whose
    fields all have defaults can be configured with an empty file.
    """
    raw_config = safe_load(path.read_bytes())
    return model.model_validate(raw_config if raw_config is not None else {})
