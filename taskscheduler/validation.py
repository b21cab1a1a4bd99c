"""
Per-task configuration validation.

A validator is any callable ``validator(value, forbid_extra=False)``
returning a ValidationResult. Tasks usually register a pydantic model
class, which ``as_validator`` wraps with PydanticConfigValidator.

Boot reconciliation validates stored configuration leniently (unknown
keys are dropped); operator input is validated with ``forbid_extra=True``.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Type

from pydantic import BaseModel, ConfigDict, ValidationError

ConfigValidator = Callable[..., 'ValidationResult']


@dataclass
class ValidationResult:
    config: Any = None
    errors: List[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def format_errors(exc: ValidationError) -> List[dict]:
    """Flatten pydantic errors into JSON-safe ``{loc, msg, type}`` dicts."""
    return [
        {
            'loc': '.'.join(str(part) for part in error.get('loc', ())),
            'msg': error.get('msg', ''),
            'type': error.get('type', ''),
        }
        for error in exc.errors(include_url=False)
    ]


class PydanticConfigValidator:
    """Validate task configuration against a pydantic model."""

    def __init__(self, model: Type[BaseModel]):
        self.model = model
        self._strict_model = type(
            f"{model.__name__}Strict",
            (model,),
            {'model_config': ConfigDict(extra='forbid')}
        )

    def __call__(self, value: Any, forbid_extra: bool = False) -> ValidationResult:
        model = self._strict_model if forbid_extra else self.model
        try:
            instance = model.model_validate(value)
        except ValidationError as e:
            return ValidationResult(errors=format_errors(e))
        return ValidationResult(config=instance.model_dump(mode='json'))

    def __repr__(self):
        return f"PydanticConfigValidator({self.model.__name__})"


def pydantic_validator(model: Type[BaseModel]) -> PydanticConfigValidator:
    return PydanticConfigValidator(model)


def as_validator(obj: Any) -> Optional[ConfigValidator]:
    """
    Normalize what a task registers as its config validator.

    Accepts None, a pydantic model class, or a validator callable.
    """
    if obj is None:
        return None
    if inspect.isclass(obj) and issubclass(obj, BaseModel):
        return pydantic_validator(obj)
    if callable(obj):
        return obj
    raise TypeError(f"Unsupported config validator: {obj!r}")
