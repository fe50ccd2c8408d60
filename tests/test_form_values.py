from datetime import date, datetime
from decimal import Decimal

import pytest

from form_values import parse_bool, parse_date, parse_decimal, parse_int, strip_or_none


def test_strip_or_none():
    assert strip_or_none("  PIC  ") == "PIC"
    assert strip_or_none("   ") is None
    assert strip_or_none(12) == "12"
    assert strip_or_none(None) is None


def test_parse_date_accepts_iso_and_local_formats():
    assert parse_date("2024-06-01", "date") == date(2024, 6, 1)
    assert parse_date("2024-06-01T08:30:00", "date") == date(2024, 6, 1)
    assert parse_date("01/06/2024", "date") == date(2024, 6, 1)
    assert parse_date(datetime(2024, 6, 1, 9), "date") == date(2024, 6, 1)
    assert parse_date("", "date") is None


def test_parse_date_rejects_garbage():
    with pytest.raises(ValueError, match="Invalid date for report date"):
        parse_date("yesterday", "report date")


def test_parse_decimal():
    assert parse_decimal("12.50", "quantity") == Decimal("12.50")
    assert parse_decimal(3, "quantity") == Decimal("3")
    assert parse_decimal("", "quantity") is None
    for bad in ("abc", True, "NaN"):
        with pytest.raises(ValueError):
            parse_decimal(bad, "quantity")


def test_parse_int():
    assert parse_int(" 7 ", "vessel") == 7
    assert parse_int("", "vessel") is None
    with pytest.raises(ValueError, match="Invalid vessel"):
        parse_int("seven", "vessel")
    with pytest.raises(ValueError):
        parse_int(False, "vessel")


@pytest.mark.parametrize("value, expected", [(True, True), ("yes", True), ("1", True), ("off", False), (None, False)])
def test_parse_bool(value, expected):
    assert parse_bool(value) is expected
