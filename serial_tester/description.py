"""Row and value descriptions with pydantic-backed validation.

A description says what a value must look like::

    users = is_object({
        "username": is_string(),
        "active": is_boolean(),
        "comment": nullable(is_string()),
    })

``guarantee(users, row)`` returns ``row`` untouched when it matches and raises
``SchemaValidationError`` otherwise. Object descriptions accept extra keys.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional, Union

from pydantic import (
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    create_model,
)

from serial_tester.errors import SchemaValidationError

STRING = "string"
NUMBER = "number"
BOOLEAN = "boolean"
DATE = "date"
ANY = "any"
NULLABLE = "nullable"
OPTIONAL = "optional"
OBJECT = "object"
ARRAY = "array"


@dataclass(frozen=True)
class Description:
    """Declared shape of a value."""
    kind: str
    inner: Optional["Description"] = None
    fields: dict[str, "Description"] = field(default_factory=dict)

    @property
    def accepts_null(self) -> bool:
        return self.kind in (NULLABLE, OPTIONAL)

    @property
    def base(self) -> "Description":
        """The description without nullable/optional wrappers."""
        description = self
        while description.kind in (NULLABLE, OPTIONAL):
            description = description.inner
        return description

    def __str__(self) -> str:
        if self.kind == OBJECT:
            inner = ", ".join(f"{name}: {value}" for name, value in self.fields.items())
            return f"object({{{inner}}})"
        if self.inner is not None:
            return f"{self.kind}({self.inner})"
        return self.kind


def is_string() -> Description:
    return Description(STRING)


def is_number() -> Description:
    return Description(NUMBER)


def is_boolean() -> Description:
    return Description(BOOLEAN)


def is_date() -> Description:
    return Description(DATE)


def is_any() -> Description:
    return Description(ANY)


def nullable(description: Description) -> Description:
    return Description(NULLABLE, inner=description)


def optional(description: Description) -> Description:
    """A field that may be missing (or null) inside an object."""
    return Description(OPTIONAL, inner=description)


def is_object(fields: dict[str, Description]) -> Description:
    return Description(OBJECT, fields=dict(fields))


def is_array(description: Description) -> Description:
    return Description(ARRAY, inner=description)


_SCALARS = {
    STRING: StrictStr,
    NUMBER: Union[StrictInt, StrictFloat],
    BOOLEAN: StrictBool,
    DATE: Union[datetime, date],
    ANY: Any,
}


def python_type(description: Description) -> Any:
    """Build the type pydantic validates against."""
    if description.kind in _SCALARS:
        return _SCALARS[description.kind]
    if description.kind in (NULLABLE, OPTIONAL):
        return Optional[python_type(description.inner)]
    if description.kind == ARRAY:
        return list[python_type(description.inner)]
    if description.kind == OBJECT:
        definitions = {}
        for index, (name, field_description) in enumerate(description.fields.items()):
            default = None if field_description.kind == OPTIONAL else ...
            definitions[f"field_{index}"] = (
                python_type(field_description),
                Field(default, alias=name),
            )
        return create_model(
            "Row",
            __config__=ConfigDict(strict=True, extra="allow"),
            **definitions,
        )
    raise ValueError(f"unknown description kind {description.kind!r}")


def guarantee(description: Description, value: Any) -> Any:
    """Return ``value`` if it matches ``description``, raise otherwise."""
    try:
        TypeAdapter(python_type(description)).validate_python(value)
    except ValidationError as e:
        raise SchemaValidationError(
            f"value does not match {description}: {e.error_count()} error(s)",
            value=value,
            errors=e.errors(),
        ) from e
    return value


@dataclass
class TableTarget:
    """A table and the description of its rows."""
    table: str
    description: Description = field(default_factory=lambda: is_object({}))


@dataclass
class ProcedureTarget:
    """A backend procedure with its declared parameters and result."""
    procedure: str
    parameters: dict[str, Description] = field(default_factory=dict)
    result: Description = field(default_factory=is_any)
