"""
Values -- typed dynamic-field values.

Responsibility:
    core_dynamic_data stores every value as text with a ``field_type`` hint.
    This module is the single place where Python values are turned into that
    text and back, so reconstructed entities expose ints, Decimals, bools,
    dicts, datetimes and UUIDs instead of strings.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - ``decode_value(encode_value(v, t), t) == v`` for every value accepted by
      ``encode_value`` (floats compare by repr).
    - Encoding is canonical: booleans are ``"true"``/``"false"``, JSON uses
      sorted keys, timestamps are ISO-8601.

Failure modes:
    - InvalidFieldValueError when a value cannot be encoded as, or a stored
      string cannot be decoded as, its declared type.
    - Unknown stored ``field_type`` strings decode as text (legacy rows).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from universal_kernel.exceptions import InvalidFieldValueError


class FieldType(str, Enum):
    """Storage type hint recorded in ``core_dynamic_data.field_type``."""

    TEXT = "text"
    NUMBER = "number"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    JSON = "json"
    TIMESTAMP = "timestamp"
    UUID = "uuid"

    @classmethod
    def parse(cls, name: FieldType | str) -> FieldType:
        """Resolve a type name; raises InvalidFieldValueError if unknown."""
        if isinstance(name, FieldType):
            return name
        try:
            return cls(str(name).lower())
        except ValueError:
            raise InvalidFieldValueError(str(name), None, "unknown field type") from None


_TRUE = frozenset({"true", "1", "yes", "y", "t"})
_FALSE = frozenset({"false", "0", "no", "n", "f"})


def infer_field_type(value: Any) -> FieldType:
    """Pick the storage type for a Python value."""
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float)):
        return FieldType.NUMBER
    if isinstance(value, Decimal):
        return FieldType.DECIMAL
    if isinstance(value, (dict, list, tuple)):
        return FieldType.JSON
    if isinstance(value, (datetime, date)):
        return FieldType.TIMESTAMP
    if isinstance(value, UUID):
        return FieldType.UUID
    return FieldType.TEXT


def _parse_first(value: Any, ftype: FieldType) -> bool:
    return isinstance(value, str) and ftype not in (FieldType.TEXT, FieldType.JSON)


def encode_value(value: Any, field_type: FieldType | str | None = None) -> str | None:
    """
    Encode a Python value as the text stored in ``field_value``.

    Strings passed with a scalar type are parsed first, so ``"10"`` with
    ``number`` is stored canonically as ``"10"`` and ``"abc"`` with
    ``number`` is rejected.  A string with ``json`` is a JSON string value.
    """
    if value is None:
        return None
    ftype = infer_field_type(value) if field_type is None else FieldType.parse(field_type)

    if _parse_first(value, ftype):
        value = decode_value(value, ftype)

    if ftype is FieldType.TEXT:
        return value if isinstance(value, str) else str(value)

    if ftype is FieldType.NUMBER:
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise InvalidFieldValueError(ftype.value, value, "not a number")
        if isinstance(value, Decimal):
            value = int(value) if value == value.to_integral_value() else float(value)
        return repr(value)

    if ftype is FieldType.DECIMAL:
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise InvalidFieldValueError(ftype.value, value, "not a decimal")
        return str(Decimal(str(value)))

    if ftype is FieldType.BOOLEAN:
        if not isinstance(value, bool):
            raise InvalidFieldValueError(ftype.value, value, "not a boolean")
        return "true" if value else "false"

    if ftype is FieldType.JSON:
        try:
            return json.dumps(value, sort_keys=True, default=str)
        except (TypeError, ValueError) as e:
            raise InvalidFieldValueError(ftype.value, value, str(e)) from e

    if ftype is FieldType.TIMESTAMP:
        if not isinstance(value, (datetime, date)):
            raise InvalidFieldValueError(ftype.value, value, "not a date or datetime")
        return value.isoformat()

    # UUID
    if not isinstance(value, UUID):
        raise InvalidFieldValueError(ftype.value, value, "not a UUID")
    return str(value)


def decode_value(text: str | None, field_type: FieldType | str) -> Any:
    """Decode stored text according to its type hint."""
    if text is None:
        return None
    try:
        ftype = FieldType.parse(field_type)
    except InvalidFieldValueError:
        return text

    if ftype is FieldType.TEXT:
        return text

    raw = text.strip()
    try:
        if ftype is FieldType.NUMBER:
            try:
                return int(raw)
            except ValueError:
                return float(raw)
        if ftype is FieldType.DECIMAL:
            return Decimal(raw)
        if ftype is FieldType.BOOLEAN:
            lowered = raw.lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError("not a boolean literal")
        if ftype is FieldType.JSON:
            return json.loads(raw)
        if ftype is FieldType.TIMESTAMP:
            if "T" not in raw and " " not in raw and len(raw) == 10:
                return date.fromisoformat(raw)
            return datetime.fromisoformat(raw)
        return UUID(raw)
    except (ValueError, InvalidOperation) as e:
        raise InvalidFieldValueError(ftype.value, text, str(e) or "malformed value") from e


def jsonable(value: Any) -> Any:
    """
    Copy of ``value`` safe for a JSON column.

    Decimals, UUIDs, dates and other non-JSON scalars become strings.
    """
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


@dataclass(frozen=True, slots=True)
class TypedValue:
    """
    A dynamic-field value paired with its storage type.

    Contract:
        ``TypedValue.of(v)`` infers the type; ``encoded`` is the text that
        goes into ``field_value``.
    """

    value: Any
    field_type: FieldType

    @classmethod
    def of(cls, value: Any, field_type: FieldType | str | None = None) -> TypedValue:
        ftype = infer_field_type(value) if field_type is None else FieldType.parse(field_type)
        # Canonicalize strings given with a scalar type
        if _parse_first(value, ftype):
            value = decode_value(value, ftype)
        return cls(value=value, field_type=ftype)

    @classmethod
    def from_storage(cls, text: str | None, field_type: str) -> TypedValue:
        try:
            ftype = FieldType.parse(field_type)
        except InvalidFieldValueError:
            ftype = FieldType.TEXT
        return cls(value=decode_value(text, ftype), field_type=ftype)

    @property
    def encoded(self) -> str | None:
        return encode_value(self.value, self.field_type)
