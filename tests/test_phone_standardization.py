"""
Tests for phone number normalization utilities.
"""

import pytest
from app.utils.phone import normalize_phone


class TestNormalizePhone:
    """Test normalize_phone with the spellings operators actually upload."""

    @pytest.mark.parametrize("value", ["+1 440 123 1234", "440-123-1234", "4401231234"])
    def test_north_american_spellings_agree(self, value):
        """All three spellings of the same number normalize identically."""
        assert normalize_phone(value) == "4401231234"

    def test_punctuation_is_ignored(self):
        assert normalize_phone("(440) 123-1234") == "4401231234"
        assert normalize_phone("440.123.1234") == "4401231234"
        assert normalize_phone("1-440-123-1234") == "4401231234"

    def test_international_keeps_country_code(self):
        assert normalize_phone("+44 20 7946 1234") == "442079461234"
        assert normalize_phone("+52 55 1234 5678") == "525512345678"

    def test_eleven_digits_outside_north_america_are_kept(self):
        assert normalize_phone("+7 495 123 4567") == "74951234567"

    def test_too_few_digits(self):
        assert normalize_phone("555-1234") is None

    def test_too_many_digits(self):
        assert normalize_phone("1234567890123456") is None

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty(self, value):
        assert normalize_phone(value) is None

    def test_custom_digit_range(self):
        assert normalize_phone("555-1234", min_digits=7) == "5551234"
