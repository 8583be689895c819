from types import MappingProxyType

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from engine.errors import MissingRequiredFieldError, ValidationError


class FrozenModel(BaseModel):
    """
    Immutable value object.

    Instances are recreated every period and never mutated after
    construction. ``of()`` is the validating constructor: it raises the
    engine's own error types instead of pydantic's.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    @classmethod
    def of(cls, **fields):
        try:
            return cls(**fields)
        except PydanticValidationError as exc:
            raise _translate(cls.__name__, exc) from exc


def _translate(model_name, exc):
    first = exc.errors()[0]
    field_name = ".".join(str(part) for part in first.get("loc", ())) or None
    if first.get("type") == "missing" or ("input" in first and first["input"] is None):
        return MissingRequiredFieldError(field_name, f"{model_name}.{field_name} is required")
    return ValidationError(f"{model_name}: {first.get('msg')}", field_name)


def read_only(mapping):
    """Shallow copy of ``mapping`` behind a read-only proxy."""
    return MappingProxyType(dict(mapping))
