"""
activeseries.tier1_runtime.validate
──────────────────────────────────────
Document shape validation via Pydantic v2. Raises SchemaError (not raw
Pydantic errors) so flag, file and programmatic loaders report shape
problems the same way. Semantic checks (non-empty names, matcher
compilation) happen after decoding, in the trackers module.
"""
from __future__ import annotations

from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from activeseries.tier0_core.errors import SchemaError

T = TypeVar("T", bound=BaseModel)


def validate_document(model: Type[T], data: Any, *, what: str = "document") -> T:
    """
    Validate a decoded document against a Pydantic model.
    Raises SchemaError (not Pydantic's) on failure.

    Usage:
        doc = validate_document(OverridesDocument, yaml.safe_load(text))
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        fields = {
            ".".join(str(loc) for loc in err["loc"]): err["msg"]
            for err in exc.errors()
        }
        summary = "; ".join(f"{loc}: {msg}" if loc else msg for loc, msg in fields.items())
        raise SchemaError(
            user_message=f"invalid {what}: {summary}",
            detail=str(exc),
            fields=fields,
        ) from exc


def stringify_keys(value: Any) -> Any:
    """
    Turn integer mapping keys into strings, for programmatic input such as
    ``{1: {...}}``. YAML documents already keep keys as written (see
    serialize.load_document); bool and float keys are left for the schema
    to reject.
    """
    if isinstance(value, dict):
        return {
            (str(k) if isinstance(k, int) and not isinstance(k, bool) else k): v
            for k, v in value.items()
        }
    return value


__all__ = ["validate_document", "stringify_keys"]
