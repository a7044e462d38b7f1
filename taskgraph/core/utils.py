from datetime import date, datetime, time, timedelta, UTC
from typing import Optional, Union

from taskgraph.core.config import settings
from taskgraph.core.exceptions import InvalidDateException

DateLike = Union[date, datetime, str]


class DateUtils:
    """Day-granularity date helpers used by the due date engine."""

    @staticmethod
    def parse_date(value: Optional[DateLike], field: str = "date") -> date:
        """
        Coerce user input into a calendar date and check it is in range.

        :param value: A date, a datetime (its calendar date is used) or an ISO string.
        :param field: Field name used in the error message.
        :return: The calendar date.
        :raises InvalidDateException: If the value is missing, malformed or out of range.
        """
        if value is None:
            raise InvalidDateException(f"{field} is required")

        if isinstance(value, datetime):
            parsed = value.date()
        elif isinstance(value, date):
            parsed = value
        elif isinstance(value, str):
            try:
                parsed = (
                    datetime.fromisoformat(value).date()
                    if "T" in value
                    else date.fromisoformat(value)
                )
            except ValueError:
                raise InvalidDateException(
                    f"{field} is not a valid ISO date", value
                ) from None
        else:
            raise InvalidDateException(f"{field} must be a date", value)

        if not (settings.MIN_ANCHOR_YEAR <= parsed.year <= settings.MAX_ANCHOR_YEAR):
            raise InvalidDateException(
                f"{field} must be between years {settings.MIN_ANCHOR_YEAR} "
                f"and {settings.MAX_ANCHOR_YEAR}",
                value,
            )
        return parsed

    @staticmethod
    def to_utc(value: Optional[datetime]) -> Optional[datetime]:
        """
        Make a datetime timezone-aware in UTC.
        Naive values (e.g. read back from SQLite) are taken to be UTC already.
        """
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @staticmethod
    def normalize_due_date(value: Union[date, datetime]) -> datetime:
        """
        Pin a date to the reference hour in UTC.
        :param value: Date or datetime; only its calendar date is kept.
        :return: Timezone-aware datetime at the reference hour.
        """
        day = DateUtils.to_utc(value).date() if isinstance(value, datetime) else value
        return datetime.combine(
            day, time(hour=settings.DUE_DATE_REFERENCE_HOUR), tzinfo=UTC
        )

    @staticmethod
    def offset_due_date(base: Union[date, datetime], days: int) -> datetime:
        """
        Compute ``base + days`` at day granularity.
        :param base: Anchor or dependency date.
        :param days: Signed day offset; negative means before the base.
        :return: Normalized due date.
        """
        return DateUtils.normalize_due_date(base) + timedelta(days=days)

    @staticmethod
    def same_instant(left: Optional[datetime], right: Optional[datetime]) -> bool:
        """Compare two possibly-naive datetimes as UTC instants."""
        if left is None or right is None:
            return left is None and right is None
        return DateUtils.to_utc(left) == DateUtils.to_utc(right)
