"""Tests for typed dynamic-field values (encode/decode/infer)."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from universal_kernel.domain.values import (
    FieldType,
    TypedValue,
    decode_value,
    encode_value,
    infer_field_type,
    jsonable,
)
from universal_kernel.exceptions import InvalidFieldValueError


class TestInferFieldType:

    @pytest.mark.parametrize(
        "value, expected",
        [
            (True, FieldType.BOOLEAN),
            (3, FieldType.NUMBER),
            (2.5, FieldType.NUMBER),
            (Decimal("4.50"), FieldType.DECIMAL),
            ({"a": 1}, FieldType.JSON),
            ([1, 2], FieldType.JSON),
            (date(2024, 1, 1), FieldType.TIMESTAMP),
            (datetime(2024, 1, 1, tzinfo=timezone.utc), FieldType.TIMESTAMP),
            (UUID("12345678-1234-5678-1234-567812345678"), FieldType.UUID),
            ("hello", FieldType.TEXT),
        ],
    )
    def test_infers(self, value, expected):
        assert infer_field_type(value) is expected

    def test_bool_is_not_number(self):
        assert infer_field_type(False) is FieldType.BOOLEAN


class TestEncode:

    def test_none_passes_through(self):
        assert encode_value(None) is None
        assert encode_value(None, "number") is None

    def test_canonical_boolean(self):
        assert encode_value(True) == "true"
        assert encode_value("yes", "boolean") == "true"
        assert encode_value("0", "boolean") == "false"

    def test_json_sorted_keys(self):
        assert encode_value({"b": 1, "a": 2}) == '{"a": 2, "b": 1}'

    def test_json_string_is_a_json_value(self):
        assert encode_value("hello", "json") == '"hello"'
        assert encode_value("", "json") == '""'
        assert decode_value(encode_value("hello", "json"), "json") == "hello"

    def test_numeric_string_canonicalized(self):
        assert encode_value("10", "number") == "10"
        assert encode_value(" 2.5 ", "number") == "2.5"

    def test_integral_decimal_as_number(self):
        assert encode_value(Decimal("3"), "number") == "3"

    def test_decimal_keeps_scale(self):
        assert encode_value(Decimal("4.50")) == "4.50"
        assert encode_value(4, "decimal") == "4"

    def test_text_stringifies(self):
        assert encode_value(42, "text") == "42"

    @pytest.mark.parametrize(
        "value, field_type",
        [
            ("abc", "number"),
            (True, "number"),
            ("maybe", "boolean"),
            (1, "boolean"),
            ("not-a-uuid", "uuid"),
            (12, "timestamp"),
        ],
    )
    def test_rejects_mismatched(self, value, field_type):
        with pytest.raises(InvalidFieldValueError):
            encode_value(value, field_type)

    def test_unknown_type_rejected(self):
        with pytest.raises(InvalidFieldValueError) as exc_info:
            encode_value("x", "currency")
        assert exc_info.value.code == "INVALID_FIELD_VALUE"


class TestDecode:

    def test_unknown_stored_type_is_text(self):
        assert decode_value("12", "legacy_kind") == "12"

    def test_date_vs_datetime(self):
        assert decode_value("2024-03-01", "timestamp") == date(2024, 3, 1)
        assert decode_value("2024-03-01T10:00:00+00:00", "timestamp") == datetime(
            2024, 3, 1, 10, tzinfo=timezone.utc
        )

    def test_number_int_or_float(self):
        assert decode_value("7", "number") == 7
        assert isinstance(decode_value("7", "number"), int)
        assert decode_value("7.25", "number") == 7.25

    def test_malformed_raises(self):
        with pytest.raises(InvalidFieldValueError):
            decode_value("{not json", "json")


class TestTypedValue:

    def test_of_infers_and_encodes(self):
        tv = TypedValue.of(Decimal("12.00"))
        assert tv.field_type is FieldType.DECIMAL
        assert tv.encoded == "12.00"

    def test_of_parses_string_with_explicit_type(self):
        tv = TypedValue.of("true", "boolean")
        assert tv.value is True

    def test_from_storage_unknown_type(self):
        tv = TypedValue.from_storage("abc", "mystery")
        assert tv.field_type is FieldType.TEXT
        assert tv.value == "abc"

    def test_jsonable(self):
        uid = uuid4()
        assert jsonable({"id": uid, "amount": Decimal("1.5")}) == {"id": str(uid), "amount": "1.5"}
        assert jsonable(None) is None


json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.text(max_size=10),
    lambda children: st.lists(children, max_size=3)
    | st.dictionaries(st.text(max_size=5), children, max_size=3),
    max_leaves=10,
)


class TestDecodeInvertsEncode:

    @given(st.integers())
    def test_integers(self, value):
        assert decode_value(encode_value(value), "number") == value

    @given(st.decimals(allow_nan=False, allow_infinity=False))
    def test_decimals(self, value):
        assert decode_value(encode_value(value), "decimal") == value

    @given(st.booleans())
    def test_booleans(self, value):
        assert decode_value(encode_value(value), "boolean") is value

    @given(json_values)
    def test_json(self, value):
        assert decode_value(encode_value(value, "json"), "json") == value

    @given(st.datetimes(timezones=st.just(timezone.utc)))
    def test_timestamps(self, value):
        assert decode_value(encode_value(value), "timestamp") == value

    @given(st.uuids())
    def test_uuids(self, value):
        assert decode_value(encode_value(value), "uuid") == value
