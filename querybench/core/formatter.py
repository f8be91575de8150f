"""
Value formatting for table output.

Renders one typed Arrow value as display text, dispatching on the column's
Arrow type. Types without a dedicated rendering show a bracketed type tag
instead of failing.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

import numpy as np
import pyarrow as pa

NULL_TEXT = "NULL"


class ValueKind(str, Enum):
    """Display categories of Arrow column types."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    BOOLEAN = "boolean"
    DECIMAL = "decimal"
    OTHER = "other"


def value_kind(data_type: pa.DataType) -> ValueKind:
    if pa.types.is_string(data_type) or pa.types.is_large_string(data_type):
        return ValueKind.STRING
    # Signed and unsigned, 8 through 64 bits.
    if pa.types.is_integer(data_type):
        return ValueKind.INTEGER
    if pa.types.is_float32(data_type):
        return ValueKind.FLOAT32
    if pa.types.is_float64(data_type):
        return ValueKind.FLOAT64
    if pa.types.is_boolean(data_type):
        return ValueKind.BOOLEAN
    if pa.types.is_decimal(data_type):
        return ValueKind.DECIMAL
    return ValueKind.OTHER


def type_tag(data_type: pa.DataType) -> str:
    return f"<{data_type}>"


def _format(value: Any, kind: ValueKind, data_type: pa.DataType) -> str:
    if value is None:
        return NULL_TEXT
    if kind is ValueKind.STRING:
        return str(value)
    if kind is ValueKind.INTEGER:
        return str(int(value))
    if kind is ValueKind.FLOAT32:
        # Shortest text that round-trips at single precision.
        return str(np.float32(value))
    if kind is ValueKind.FLOAT64:
        return str(float(value))
    if kind is ValueKind.BOOLEAN:
        return "true" if value else "false"
    if kind is ValueKind.DECIMAL:
        return format(Decimal(value), "f")
    return type_tag(data_type)


def format_value(value: Any, data_type: pa.DataType) -> str:
    """
    Render one value of a column typed ``data_type``.

    Args:
        value: Python value as produced by ``Array.to_pylist()`` (None for null)
        data_type: The column's Arrow type

    Returns:
        Display text; ``"NULL"`` for nulls regardless of type.

    Example:
        >>> format_value(True, pa.bool_())
        'true'
        >>> format_value(None, pa.int64())
        'NULL'
    """
    return _format(value, value_kind(data_type), data_type)


def format_column(column: pa.Array, limit: int) -> list[str]:
    """Render the first ``limit`` values of an Arrow array."""
    head = column.slice(0, limit)
    kind = value_kind(column.type)
    if kind is ValueKind.OTHER:
        # Values of unknown types are never converted to Python objects.
        tag = type_tag(column.type)
        return [tag if valid else NULL_TEXT for valid in head.is_valid().to_pylist()]
    return [_format(value, kind, column.type) for value in head.to_pylist()]
