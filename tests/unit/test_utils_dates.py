from datetime import datetime, timezone

from backend.utils.dates import add_months, parse_timestamp


def test_add_months_simple():
    start = datetime(2026, 3, 15, tzinfo=timezone.utc)
    assert add_months(start, 12) == datetime(2027, 3, 15, tzinfo=timezone.utc)
    assert add_months(start, 10) == datetime(2027, 1, 15, tzinfo=timezone.utc)

def test_add_months_clamps_day():
    assert add_months(datetime(2026, 1, 31), 1) == datetime(2026, 2, 28)
    assert add_months(datetime(2028, 1, 31), 1) == datetime(2028, 2, 29)

def test_parse_timestamp_variants():
    assert parse_timestamp("2026-05-01T10:00:00Z") == datetime(2026, 5, 1, 10, tzinfo=timezone.utc)
    assert parse_timestamp("2026-05-01T10:00:00").tzinfo == timezone.utc
    assert parse_timestamp(None) is None
    assert parse_timestamp("") is None
    assert parse_timestamp("demain") is None
