"""
tests/test_input_validation.py
Unit tests for the sanitizers guarding every value that reaches storage.
"""

import re

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from organizadin.input_validation import (
    MAX_SAFE_INTEGER,
    Sanitized,
    sanitize_id,
    sanitize_number,
    sanitize_param,
    sanitize_sql_params,
    sanitize_text,
    validate_amount,
    validate_date,
    validate_description,
    validate_name,
    validate_pin,
)


# ---------------------------------------------------------------------------
# sanitize_text
# ---------------------------------------------------------------------------

class TestSanitizeText:
    def test_plain_text_is_untouched(self):
        assert sanitize_text("Mercado do mês") == "Mercado do mês"

    def test_control_characters_removed(self):
        assert sanitize_text("a\x00b\x1f c\x7f") == "ab c"

    def test_outer_whitespace_trimmed(self):
        assert sanitize_text("   padaria  ") == "padaria"

    def test_truncated_to_max_length(self):
        assert len(sanitize_text("x" * 600)) == 500
        assert sanitize_text("abcdef", max_length=3) == "abc"

    def test_sql_keywords_and_delimiters_removed(self):
        result = sanitize_text("Robert'); DROP TABLE piggies;--")
        assert "DROP" not in result
        assert ";" not in result
        assert "'" not in result
        assert "--" not in result
        assert result.startswith("Robert")

    def test_keyword_match_is_case_insensitive(self):
        assert "union" not in sanitize_text("a union select b").lower()

    def test_words_containing_keywords_survive(self):
        assert sanitize_text("selection") == "selection"

    @pytest.mark.parametrize("value", [None, 42, 3.5, b"bytes", ["a"], {"a": 1}])
    def test_non_string_becomes_empty(self, value):
        assert sanitize_text(value) == ""

    def test_non_positive_max_length(self):
        assert sanitize_text("abc", max_length=0) == ""


# ---------------------------------------------------------------------------
# sanitize_number / validate_amount
# ---------------------------------------------------------------------------

class TestSanitizeNumber:
    def test_int_and_float_pass(self):
        assert sanitize_number(10) == Sanitized(True, 10)
        assert sanitize_number(2.5) == Sanitized(True, 2.5)

    def test_comma_decimal_string(self):
        assert sanitize_number("12,50") == Sanitized(True, 12.5)

    def test_currency_noise_is_stripped(self):
        assert sanitize_number("R$ 12,50") == Sanitized(True, 12.5)

    def test_clamped_into_range(self):
        assert sanitize_number(-5).value == 0
        assert sanitize_number(500, 0, 100).value == 100

    @pytest.mark.parametrize("value", [
        None, True, False, "abc", "", "1.2.3", float("nan"), float("inf"), float("-inf"), 10 ** 400, [1]
    ])
    def test_invalid_inputs(self, value):
        assert sanitize_number(value).valid is False


class TestValidateAmount:
    def test_in_range(self):
        assert validate_amount("0,01") == Sanitized(True, 0.01)
        assert validate_amount(150) == Sanitized(True, 150)

    @pytest.mark.parametrize("value", [0, -3, "-3", 1e12, None, "x"])
    def test_out_of_range_is_invalid_not_clamped(self, value):
        assert validate_amount(value).valid is False

    def test_custom_minimum(self):
        assert validate_amount(0, min_value=0).valid is True


# ---------------------------------------------------------------------------
# sanitize_id
# ---------------------------------------------------------------------------

class TestSanitizeId:
    @pytest.mark.parametrize("value, expected", [
        (5, 5),
        ("42", 42),
        (" 7 ", 7),
        (3.0, 3),
        (MAX_SAFE_INTEGER, MAX_SAFE_INTEGER),
    ])
    def test_valid_ids(self, value, expected):
        assert sanitize_id(value) == Sanitized(True, expected)

    @pytest.mark.parametrize("value", [
        0, -1, 3.5, True, None, "4a", "-4", "", MAX_SAFE_INTEGER + 1, str(MAX_SAFE_INTEGER + 1),
        "9" * 5000, float("inf"), float("nan"), [1]
    ])
    def test_invalid_ids(self, value):
        assert sanitize_id(value).valid is False


# ---------------------------------------------------------------------------
# Dates, PINs, names
# ---------------------------------------------------------------------------

class TestValidateDate:
    def test_leap_day(self):
        assert validate_date("2024-02-29") is True

    def test_leap_day_in_common_year(self):
        assert validate_date("2023-02-29") is False

    def test_month_out_of_range(self):
        assert validate_date("2024-13-01") is False

    @pytest.mark.parametrize("value", ["2024-1-01", "24-01-01", "2024/01/01", "2024-01-01T10:00", 20240101, None])
    def test_bad_shapes(self, value):
        assert validate_date(value) is False


class TestValidatePin:
    def test_four_digits(self):
        assert validate_pin("1234") is True
        assert validate_pin("0000") is True

    @pytest.mark.parametrize("value", ["123", "12345", "12a4", " 1234", 1234, None, "１２３４"])
    def test_rejected(self, value):
        assert validate_pin(value) is False


class TestNamesAndDescriptions:
    def test_description(self):
        assert validate_description("Almoço") is True
        assert validate_description("") is False
        assert validate_description("DROP;") is False
        assert validate_description(None) is False

    def test_name(self):
        assert validate_name("Viagem") is True
        assert validate_name("   ") is False
        assert validate_name(12) is False


# ---------------------------------------------------------------------------
# Properties over generated input
# ---------------------------------------------------------------------------

CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

ANY_VALUE = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(),
    st.floats(allow_nan=True, allow_infinity=True),
    st.text(),
    st.binary(),
    st.lists(st.integers(), max_size=3),
)


class TestGeneratedInput:
    @settings(max_examples=300)
    @given(value=st.text(max_size=800), max_length=st.integers(min_value=-5, max_value=600))
    def test_text_is_bounded_and_free_of_control_chars(self, value, max_length):
        result = sanitize_text(value, max_length)
        assert isinstance(result, str)
        assert CONTROL_CHARS.search(result) is None
        assert len(result) <= max(0, max_length)

    @settings(max_examples=300)
    @given(value=st.text(alphabet=st.characters(max_codepoint=0x7f), max_size=200))
    def test_ascii_text_with_controls(self, value):
        result = sanitize_text(value)
        assert CONTROL_CHARS.search(result) is None
        assert len(result) <= 500

    @given(value=ANY_VALUE)
    def test_sanitizers_never_raise(self, value):
        for sanitizer in (sanitize_number, validate_amount, sanitize_id, sanitize_param):
            result = sanitizer(value)
            assert isinstance(result, Sanitized)
            if not result.valid:
                assert result.value is None
        assert isinstance(validate_date(value), bool)
        assert isinstance(validate_pin(value), bool)

    @given(value=ANY_VALUE, low=st.integers(-1000, 0), high=st.integers(1, 1000))
    def test_sanitized_numbers_stay_in_range(self, value, low, high):
        result = sanitize_number(value, low, high)
        if result.valid:
            assert low <= result.value <= high

    @given(value=ANY_VALUE)
    def test_valid_ids_are_positive_safe_integers(self, value):
        result = sanitize_id(value)
        if result.valid:
            assert isinstance(result.value, int)
            assert 1 <= result.value <= MAX_SAFE_INTEGER


# ---------------------------------------------------------------------------
# SQL parameters
# ---------------------------------------------------------------------------

class TestSanitizeParam:
    def test_none_passes_through(self):
        assert sanitize_param(None) == Sanitized(True, None)

    def test_bool_becomes_int(self):
        assert sanitize_param(True) == Sanitized(True, 1)
        assert sanitize_param(False) == Sanitized(True, 0)

    def test_negative_numbers_keep_sign(self):
        assert sanitize_param(-12.5) == Sanitized(True, -12.5)

    def test_digit_string_becomes_id(self):
        assert sanitize_param("42") == Sanitized(True, 42)

    def test_signed_decimal_string_becomes_number(self):
        assert sanitize_param("-3.5") == Sanitized(True, -3.5)

    def test_zero_string_is_a_number(self):
        assert sanitize_param("0") == Sanitized(True, 0)

    def test_free_text_is_sanitized(self):
        assert sanitize_param("hello; DROP") == Sanitized(True, "hello")

    @pytest.mark.parametrize("value", [object(), [1], {"a": 1}, b"raw", float("nan")])
    def test_unsupported_values_invalid(self, value):
        assert sanitize_param(value).valid is False

    def test_sanitize_sql_params_keeps_positions(self):
        results = sanitize_sql_params([1, None, "x", object()])
        assert [r.valid for r in results] == [True, True, True, False]
        assert results[2].value == "x"
