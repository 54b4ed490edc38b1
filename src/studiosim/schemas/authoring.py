"""
Authoring config: the training-run definition users submit as YAML or JSON.

Parsing (text -> object) and validation (object -> AuthoringConfig) are kept
apart so callers can tell a syntax error from a schema violation.
"""

import json
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    ValidationError,
)

from ..models import ConfigLanguage


class ConfigParseError(ValueError):
    """Config text is not valid in its declared language."""


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DatasetSpec(_CamelModel):
    name: StrictStr = Field(..., min_length=1)
    version: StrictStr = Field(..., min_length=1)


class ComputeSpec(_CamelModel):
    gpu_type: StrictStr = Field(..., alias="gpuType", min_length=1)
    gpus: StrictInt = Field(..., ge=1, le=32)
    mixed_precision: StrictBool = Field(default=True, alias="mixedPrecision")


class Hyperparams(_CamelModel):
    learning_rate: float = Field(..., alias="learningRate", gt=0, allow_inf_nan=False)
    batch_size: StrictInt = Field(..., alias="batchSize", ge=1)
    epochs: StrictInt = Field(..., ge=1, le=200)


class TrainingSpec(_CamelModel):
    dataset: DatasetSpec
    compute: ComputeSpec
    hyperparams: Hyperparams


class AuthoringConfig(_CamelModel):
    name: StrictStr = Field(..., min_length=1)
    description: StrictStr | None = None
    owner: StrictStr = Field(..., min_length=1)
    tags: list[StrictStr] = Field(default_factory=list)
    training: TrainingSpec

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def parse_config_text(language: ConfigLanguage, content: str) -> Any:
    """Parse raw text. Raises ConfigParseError with the parser's message."""
    try:
        if language is ConfigLanguage.JSON:
            return json.loads(content)
        return yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(str(e)) from e


def validate_config(raw: Any) -> AuthoringConfig:
    """Validate a parsed object. Raises pydantic.ValidationError."""
    return AuthoringConfig.model_validate(raw)


def schema_error_details(error: ValidationError) -> list[dict[str, Any]]:
    """Per-field problems as plain dicts: loc (dotted path), msg, type."""
    return [
        {
            "loc": ".".join(str(part) for part in item["loc"]),
            "msg": item["msg"],
            "type": item["type"],
        }
        for item in error.errors()
    ]


def config_to_text(language: ConfigLanguage, config: AuthoringConfig) -> str:
    data = config.to_wire()
    if language is ConfigLanguage.JSON:
        return json.dumps(data, indent=2)
    return yaml.safe_dump(data, sort_keys=False, indent=2, allow_unicode=True)
