"""
Input and output shapes.

A shape wraps anything pydantic can validate (a BaseModel subclass, a
TypedDict, ``list[int]``...) behind one ``validate`` call. Failures surface
as ``pydantic.ValidationError``; the engine turns them into
INPUT_PARSE_ERROR / OUTPUT_PARSE_ERROR.
"""

from typing import Any

from pydantic import PydanticSchemaGenerationError, TypeAdapter

from .exceptions.domain import ZSAConfigurationError


class Shape:
    """Validator for one declared input or output type.

    Args:
        schema: The type to validate against.
    """

    def __init__(self, schema: Any) -> None:
        self.schema = schema
        try:
            self._adapter: TypeAdapter[Any] = TypeAdapter(schema)
        except PydanticSchemaGenerationError as e:
            raise ZSAConfigurationError(f"Cannot build a shape from {schema!r}: {e}") from e

    def validate(self, value: Any) -> Any:
        """Return the parsed value or raise ``pydantic.ValidationError``."""
        return self._adapter.validate_python(value)

    def json_schema(self) -> dict[str, Any]:
        """JSON schema of the shape, for documentation consumers."""
        return self._adapter.json_schema()

    def __repr__(self) -> str:
        return f"Shape({getattr(self.schema, '__name__', self.schema)!r})"


def as_shape(schema: Any) -> Shape:
    """Wrap ``schema`` in a Shape unless it already is one."""
    if isinstance(schema, Shape):
        return schema
    return Shape(schema)
