import pytest
from datetime import date, datetime, timezone

from ems.core.exceptions import ValidationError
from ems.utils.dates import inclusive_days, iter_days, local_day, month_bounds, overlap_days, parse_month

def test_inclusive_days_counts_both_ends():
    assert inclusive_days(date(2024, 1, 10), date(2024, 1, 12)) == 3
    assert inclusive_days(date(2024, 1, 10), date(2024, 1, 10)) == 1

def test_inclusive_days_spans_month_boundary():
    assert inclusive_days(date(2024, 2, 28), date(2024, 3, 1)) == 3  # leap year

def test_iter_days():
    days = list(iter_days(date(2024, 1, 30), date(2024, 2, 2)))
    assert days == [date(2024, 1, 30), date(2024, 1, 31), date(2024, 2, 1), date(2024, 2, 2)]

def test_month_bounds_is_zero_based():
    assert month_bounds(0, 2024) == (date(2024, 1, 1), date(2024, 1, 31))
    assert month_bounds(1, 2024) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds(11, 2023) == (date(2023, 12, 1), date(2023, 12, 31))

@pytest.mark.parametrize("month", [-1, 12])
def test_month_bounds_rejects_out_of_range(month):
    with pytest.raises(ValidationError):
        month_bounds(month, 2024)

def test_overlap_days_clips_to_window():
    jan = month_bounds(0, 2024)
    feb = month_bounds(1, 2024)
    assert overlap_days(date(2024, 1, 30), date(2024, 2, 2), *jan) == 2
    assert overlap_days(date(2024, 1, 30), date(2024, 2, 2), *feb) == 2

def test_overlap_days_disjoint_is_zero():
    assert overlap_days(date(2024, 3, 1), date(2024, 3, 5), *month_bounds(0, 2024)) == 0

def test_parse_month():
    assert parse_month("2024-01") == (0, 2024)
    assert parse_month("2023-12") == (11, 2023)

@pytest.mark.parametrize("value", ["2024-13", "2024-00", "2024/01", "Jan 2024", ""])
def test_parse_month_rejects_malformed(value):
    with pytest.raises(ValidationError):
        parse_month(value)

def test_local_day_follows_server_timezone(kolkata_tz):
    moment = datetime(2026, 3, 4, 20, 0, tzinfo=timezone.utc)
    assert local_day(moment) == date(2026, 3, 5)
    assert local_day(datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)) == date(2026, 3, 4)
