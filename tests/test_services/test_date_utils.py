import pytest
from datetime import date, datetime, timedelta, timezone, UTC

from taskgraph.core.exceptions import InvalidDateException
from taskgraph.core.utils import DateUtils


class TestParseDate:
    """User supplied dates."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (date(2025, 2, 1), date(2025, 2, 1)),
            (datetime(2025, 2, 1, 23, 30), date(2025, 2, 1)),
            ("2025-02-01", date(2025, 2, 1)),
            ("2025-02-01T08:00:00+02:00", date(2025, 2, 1)),
        ],
    )
    def test_accepted_values(self, value, expected):
        assert DateUtils.parse_date(value) == expected

    @pytest.mark.parametrize("value", [None, "", "02/01/2025", "2025-02-30", 20250201])
    def test_rejected_values(self, value):
        with pytest.raises(InvalidDateException) as exc_info:
            DateUtils.parse_date(value, "anchor_date")
        assert "anchor_date" in exc_info.value.message

    def test_out_of_range_year(self):
        with pytest.raises(InvalidDateException):
            DateUtils.parse_date(date(1899, 12, 31))
        with pytest.raises(InvalidDateException):
            DateUtils.parse_date("2201-01-01")


class TestDueDates:
    """Day-granularity arithmetic."""

    def test_offset_is_day_granular(self):
        due = DateUtils.offset_due_date(date(2025, 2, 1), -5)
        assert due == datetime(2025, 1, 27, 12, tzinfo=UTC)

    def test_offset_across_month_and_year(self):
        assert DateUtils.offset_due_date(date(2024, 12, 30), 3).date() == date(2025, 1, 2)
        assert DateUtils.offset_due_date(date(2024, 2, 27), 2).date() == date(2024, 2, 29)

    def test_normalize_uses_utc_calendar_day(self):
        late_evening = datetime(2025, 2, 1, 23, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert DateUtils.normalize_due_date(late_evening) == datetime(
            2025, 2, 2, 12, tzinfo=UTC
        )

    def test_naive_values_taken_as_utc(self):
        naive = datetime(2025, 2, 1, 12)
        aware = datetime(2025, 2, 1, 12, tzinfo=UTC)
        assert DateUtils.same_instant(naive, aware) is True
        assert DateUtils.same_instant(None, None) is True
        assert DateUtils.same_instant(aware, None) is False
