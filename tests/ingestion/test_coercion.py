"""Tests for spreadsheet cell coercion."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from order_ingestion.domain.coercion import (
    clean_string,
    parse_datetime,
    parse_decimal,
    parse_int,
    parse_rate,
)


class TestCleanString:
    def test_trims_and_blanks_to_none(self):
        assert clean_string("  42-1  ") == "42-1"
        assert clean_string("   ") is None
        assert clean_string(None) is None

    def test_whole_float_loses_fraction(self):
        assert clean_string(4210.0) == "4210"
        assert clean_string(1.5) == "1.5"


class TestNumbers:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("1,234.50", Decimal("1234.50")),
            (0.9, Decimal("0.9")),
            (3, Decimal("3")),
            ("", None),
            ("abc", None),
            ("NaN", None),
            (True, None),
        ],
    )
    def test_parse_decimal(self, value, expected):
        assert parse_decimal(value) == expected

    def test_parse_int_rejects_fractions(self):
        assert parse_int("3") == 3
        assert parse_int(3.0) == 3
        assert parse_int("2.5") is None
        assert parse_int(None) is None

    def test_parse_rate_percent(self):
        assert parse_rate("90%") == Decimal("0.9")
        assert parse_rate("0.85") == Decimal("0.85")
        assert parse_rate("x%") is None


class TestParseDatetime:
    def test_datetime_cell_kept_naive(self):
        aware = datetime(2024, 6, 10, 8, 30, tzinfo=timezone.utc)
        assert parse_datetime(aware) == datetime(2024, 6, 10, 8, 30)

    def test_date_cell_is_midnight(self):
        assert parse_datetime(date(2024, 6, 10)) == datetime(2024, 6, 10)

    def test_excel_serial(self):
        # 45453 is 2024-06-10 in the 1900 date system; .5 is noon
        assert parse_datetime(45453.5) == datetime(2024, 6, 10, 12, 0)
        assert parse_datetime("45453") == datetime(2024, 6, 10)

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("2024-06-10 08:30:15", datetime(2024, 6, 10, 8, 30, 15)),
            ("2024/06/10 08:30", datetime(2024, 6, 10, 8, 30)),
            ("06/10/2024", datetime(2024, 6, 10)),
            ("2024-06-10T08:30:15Z", datetime(2024, 6, 10, 8, 30, 15)),
        ],
    )
    def test_text_formats(self, text, expected):
        assert parse_datetime(text) == expected

    @pytest.mark.parametrize("value", [None, "", "yesterday", -5, True])
    def test_unparseable_is_none(self, value):
        assert parse_datetime(value) is None
