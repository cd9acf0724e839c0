"""
Task data contracts: JSON-Schema-like validation and field descriptors.

Schemas have the shape::

    {"type": "object",
     "properties": {"field": {"type": ..., "enum": [...], "minimum": ..., "maximum": ..., "format": ...}},
     "required": ["field", ...]}

Only the subset below is enforced. ``format`` is passed through untouched for
downstream form rendering.
"""

import logging
import math
import re
from dataclasses import asdict, dataclass
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

VALID_PROPERTY_TYPES = {"string", "number", "integer", "boolean", "array", "object"}


@dataclass
class FieldError:
    """A single field-level validation failure."""

    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def is_valid_json_schema(schema: Any) -> bool:
    """Check that a schema is an object schema whose properties all declare a known type."""
    if not isinstance(schema, dict):
        return False
    if schema.get("type") != "object":
        return False

    properties = schema.get("properties", {})
    if not isinstance(properties, dict):
        return False

    for prop in properties.values():
        if not isinstance(prop, dict) or prop.get("type") not in VALID_PROPERTY_TYPES:
            return False

    required = schema.get("required", [])
    return isinstance(required, list)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _coerce_number(value: Any) -> Optional[float]:
    """Numbers and numeric strings are accepted; booleans are not numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def validate_field(
    field_name: str,
    value: Any,
    prop: dict[str, Any],
    is_required: bool,
) -> Optional[FieldError]:
    """
    Validate one value against its property schema.

    Returns the first failure found, or None.
    """
    if _is_empty(value):
        if is_required:
            return FieldError(field_name, f"Field '{field_name}' is required")
        return None

    prop_type = prop.get("type")

    if prop_type == "string":
        if not isinstance(value, str):
            return FieldError(field_name, f"Field '{field_name}' must be a string")

        min_length = prop.get("minLength")
        if min_length is not None and len(value) < min_length:
            return FieldError(field_name, f"Field '{field_name}' must be at least {min_length} characters")

        max_length = prop.get("maxLength")
        if max_length is not None and len(value) > max_length:
            return FieldError(field_name, f"Field '{field_name}' must be at most {max_length} characters")

        pattern = prop.get("pattern")
        if pattern:
            try:
                if re.search(pattern, value) is None:
                    return FieldError(field_name, f"Field '{field_name}' does not match required pattern")
            except re.error:
                logger.error(f"Invalid regex pattern for field '{field_name}': {pattern}")

    elif prop_type in ("number", "integer"):
        number = _coerce_number(value)
        if number is None:
            return FieldError(field_name, f"Field '{field_name}' must be a number")

        if prop_type == "integer" and not number.is_integer():
            return FieldError(field_name, f"Field '{field_name}' must be an integer")

        minimum = prop.get("minimum")
        if minimum is not None and number < minimum:
            return FieldError(field_name, f"Field '{field_name}' must be at least {minimum}")

        maximum = prop.get("maximum")
        if maximum is not None and number > maximum:
            return FieldError(field_name, f"Field '{field_name}' must be at most {maximum}")

    elif prop_type == "boolean":
        if not isinstance(value, bool):
            return FieldError(field_name, f"Field '{field_name}' must be a boolean")

    elif prop_type == "array":
        if not isinstance(value, list):
            return FieldError(field_name, f"Field '{field_name}' must be an array")

    elif prop_type == "object":
        if not isinstance(value, dict):
            return FieldError(field_name, f"Field '{field_name}' must be an object")

    enum = prop.get("enum")
    if enum is not None and value not in enum:
        options = ", ".join(str(option) for option in enum)
        return FieldError(field_name, f"Field '{field_name}' must be one of: {options}")

    return None


def validate_against_schema(data: dict[str, Any], schema: dict[str, Any]) -> list[FieldError]:
    """
    Validate an output object against an object schema.

    Args:
        data: Submitted output
        schema: Function output schema

    Returns:
        Field errors in property order; empty when the data is valid
    """
    if not isinstance(data, dict):
        return [FieldError("_root", "Output must be an object")]

    properties: dict[str, Any] = schema.get("properties") or {}
    required: list[str] = schema.get("required") or []

    errors: list[FieldError] = []

    for field_name, prop in properties.items():
        error = validate_field(field_name, data.get(field_name), prop, field_name in required)
        if error:
            errors.append(error)

    # Required names without a property declaration still need a value
    for field_name in required:
        if field_name not in properties and _is_empty(data.get(field_name)):
            errors.append(FieldError(field_name, f"Field '{field_name}' is required"))

    return errors


# ==================== Field Descriptors ====================

class _BaseField(BaseModel):
    name: str
    label: str
    required: bool = False
    description: Optional[str] = None
    default: Any = None


class StringField(_BaseField):
    kind: Literal["string"] = "string"
    format: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None


class EnumField(_BaseField):
    kind: Literal["enum"] = "enum"
    options: list[Any] = Field(default_factory=list)


class NumberField(_BaseField):
    kind: Literal["number"] = "number"
    integer: bool = False
    minimum: Optional[float] = None
    maximum: Optional[float] = None


class BooleanField(_BaseField):
    kind: Literal["boolean"] = "boolean"


FieldDescriptor = Annotated[
    Union[StringField, EnumField, NumberField, BooleanField],
    Field(discriminator="kind"),
]


def describe_fields(schema: dict[str, Any]) -> list[FieldDescriptor]:
    """
    Map schema properties to render-ready field descriptors.

    Array and object properties have no primitive widget and are skipped.
    """
    properties: dict[str, Any] = schema.get("properties") or {}
    required = set(schema.get("required") or [])

    fields: list[FieldDescriptor] = []
    for name, prop in properties.items():
        common = {
            "name": name,
            "label": prop.get("title") or name.replace("_", " ").capitalize(),
            "required": name in required,
            "description": prop.get("description"),
            "default": prop.get("default"),
        }
        prop_type = prop.get("type")

        if prop.get("enum") is not None:
            fields.append(EnumField(options=list(prop["enum"]), **common))
        elif prop_type == "string":
            fields.append(StringField(
                format=prop.get("format"),
                min_length=prop.get("minLength"),
                max_length=prop.get("maxLength"),
                pattern=prop.get("pattern"),
                **common,
            ))
        elif prop_type in ("number", "integer"):
            fields.append(NumberField(
                integer=prop_type == "integer",
                minimum=prop.get("minimum"),
                maximum=prop.get("maximum"),
                **common,
            ))
        elif prop_type == "boolean":
            fields.append(BooleanField(**common))

    return fields
