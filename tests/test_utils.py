"""Tests for utility functions."""

import unittest

from icaowx.utils import (
    TimestampError,
    expire_seconds,
    feet_to_meters,
    parse_query_list,
    parse_rfc3339,
    validate_icao_location,
)


class TestValidateIcaoLocation(unittest.TestCase):
    """Test ICAO location code validation."""

    def test_valid_codes(self):
        """Test codes matching [A-Z][A-Z0-9]{3}."""
        for code in ["UKLL", "KJFK", "EGLL", "K1G4", "A000", "Z9Z9"]:
            with self.subTest(code=code):
                self.assertTrue(validate_icao_location(code))

    def test_wrong_length(self):
        """Test codes that are not four characters."""
        for code in ["", "UKL", "UKLLL", "K"]:
            with self.subTest(code=code):
                self.assertFalse(validate_icao_location(code))

    def test_digit_first(self):
        """Test that the first character must be a letter."""
        self.assertFalse(validate_icao_location("1KLL"))
        self.assertFalse(validate_icao_location("0000"))

    def test_lowercase_and_symbols(self):
        """Test that lowercase letters and symbols are rejected in any position."""
        for code in ["ukll", "uKLL", "UKLl", "UK-L", "UK L", "UKL_", "ÄKLL"]:
            with self.subTest(code=code):
                self.assertFalse(validate_icao_location(code))


class TestParseQueryList(unittest.TestCase):
    """Test comma-separated query list expansion."""

    def test_single_value(self):
        self.assertEqual(parse_query_list(["UKLL"]), ["UKLL"])

    def test_commas_and_repeats(self):
        """Test that repeated values are concatenated after splitting."""
        self.assertEqual(parse_query_list(["a,b", "c"]), ["a", "b", "c"])

    def test_empty_items_kept(self):
        self.assertEqual(parse_query_list(["a,,b"]), ["a", "", "b"])
        self.assertEqual(parse_query_list([]), [])


class TestExpireSeconds(unittest.TestCase):
    """Test TTL calculation."""

    def test_parse_rfc3339(self):
        """Test parsing UTC and offset timestamps."""
        self.assertEqual(parse_rfc3339("2020-05-01T12:00:00Z").timestamp(), 1588334400)
        self.assertEqual(parse_rfc3339("2020-05-01T15:00:00+03:00").timestamp(), 1588334400)

    def test_fractional_seconds(self):
        """Test fractions of any length, including ones fromisoformat rejects before 3.11."""
        expected = 1588334400
        for value in [
            "2020-05-01T12:00:00.5Z",
            "2020-05-01T12:00:00.25Z",
            "2020-05-01T12:00:00.1234Z",
            "2020-05-01T12:00:00.123456789Z",
            "2020-05-01T15:00:00.5+03:00",
        ]:
            with self.subTest(value=value):
                self.assertEqual(int(parse_rfc3339(value).timestamp()), expected)
        self.assertEqual(parse_rfc3339("2020-05-01T12:00:00.5Z").microsecond, 500000)
        self.assertEqual(parse_rfc3339("2020-05-01T12:00:00.123456789Z").microsecond, 123456)

    def test_window_added(self):
        """Test result equals unix(T) + W - unix(now)."""
        t = 1588334400
        self.assertEqual(expire_seconds("2020-05-01T12:00:00Z", 3 * 3600, now=t), 3 * 3600)
        self.assertEqual(expire_seconds("2020-05-01T12:00:00Z", 3 * 3600, now=t + 600), 3 * 3600 - 600)

    def test_may_be_negative(self):
        """Test that stale reports give zero or negative results."""
        t = 1588334400
        self.assertEqual(expire_seconds("2020-05-01T12:00:00Z", 0, now=t), 0)
        self.assertEqual(expire_seconds("2020-05-01T12:00:00Z", 60, now=t + 3600), 60 - 3600)

    def test_decreases_as_time_passes(self):
        """Test monotonic decrease as now advances."""
        values = [expire_seconds("2020-05-01T12:00:00Z", 600, now=1588334400 + i * 7) for i in range(10)]
        self.assertEqual(values, sorted(values, reverse=True))
        self.assertEqual(len(set(values)), 10)

    def test_default_now(self):
        """Test that a timestamp far in the past is already expired."""
        self.assertLess(expire_seconds("2000-01-01T00:00:00Z", 3600), 0)

    def test_malformed_timestamp(self):
        """Test that malformed timestamps raise TimestampError."""
        for value in ["", "yesterday", "2020-05-01", "2020-05-01T12:00:00", "2020-13-01T12:00:00Z"]:
            with self.subTest(value=value):
                with self.assertRaises(TimestampError):
                    expire_seconds(value, 600, now=0)

    def test_timestamp_error_is_value_error(self):
        self.assertTrue(issubclass(TimestampError, ValueError))


class TestFeetToMeters(unittest.TestCase):
    """Test altitude conversion."""

    def test_conversion(self):
        self.assertEqual(feet_to_meters(0), 0)
        self.assertEqual(feet_to_meters(1000), 304)
        self.assertEqual(feet_to_meters(557), 169)

    def test_negative_truncates_toward_zero(self):
        self.assertEqual(feet_to_meters(-100), -30)
