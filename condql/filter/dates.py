"""Relative date resolution.

Relative date tokens are strings such as ``"__rel_date:today"`` that encode
a symbolic range. They are resolved against an explicit reference instant
and timezone; nothing in this module reads the wall clock, so identical
inputs always give identical ranges.

Key Components:
    - RelativeDateOption: Enum of the supported symbolic ranges
    - DateRange: ``[start, end]`` pair on calendar-day boundaries, half-open
      when the end is the next midnight
    - get_relative_date_range: Resolve an option to a DateRange
    - get_date_range_for_operator: Range expansion for range operators

Example:
    >>> ref = datetime(2024, 3, 15, 14, 30, tzinfo=timezone.utc)
    >>> rng = get_relative_date_range(RelativeDateOption.TODAY, ref, "UTC")
    >>> format_date_for_sql(rng.start), format_date_for_sql(rng.end)
    ('2024-03-15T00:00:00.000Z', '2024-03-15T23:59:59.999Z')
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any

from dateutil import parser as date_parser
from dateutil import tz
from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict

from condql.filter.errors import (
    InvalidFilterValue,
    InvalidTimezone,
    MissingReferenceInstant,
)
from condql.filter.operators import is_range_operator, split_range_value
from condql.onto import BaseEnum

RELATIVE_DATE_PREFIX = "__rel_date:"

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# differ in year, month and day
_UNRELATED_DEFAULTS = (datetime(2000, 1, 1), datetime(2004, 3, 2))


class RelativeDateOption(BaseEnum):
    """Symbolic date ranges a relative token may carry."""

    TODAY = "today"
    YESTERDAY = "yesterday"
    TOMORROW = "tomorrow"
    THIS_WEEK = "thisWeek"
    LAST_WEEK = "lastWeek"
    NEXT_WEEK = "nextWeek"
    THIS_MONTH = "thisMonth"
    LAST_MONTH = "lastMonth"
    NEXT_MONTH = "nextMonth"
    LAST_7_DAYS = "last7Days"
    NEXT_7_DAYS = "next7Days"
    LAST_30_DAYS = "last30Days"
    NEXT_30_DAYS = "next30Days"
    THIS_YEAR = "thisYear"
    LAST_YEAR = "lastYear"
    CUSTOM = "custom"


class EndOfDayPrecision(BaseEnum):
    """Upper boundary of a day.

    Attributes:
        INCLUSIVE: ``23:59:59.999999`` of the last day
        EXCLUSIVE: ``00:00`` of the following day
    """

    INCLUSIVE = "inclusive"
    EXCLUSIVE = "exclusive"


class DateRange(BaseModel):
    """Range of instants normalized to calendar-day boundaries.

    ``end_inclusive`` is False when the end is the next midnight of an
    exclusive-precision range; such a range is ``[start, end)``.
    """

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    end_inclusive: bool = True

    @property
    def duration(self) -> timedelta:
        # same-tzinfo subtraction ignores offsets, so compare in UTC
        return self.end.astimezone(timezone.utc) - self.start.astimezone(timezone.utc)


def is_relative_date(value: Any) -> bool:
    """Check whether a value carries the relative date prefix."""
    return isinstance(value, str) and value.startswith(RELATIVE_DATE_PREFIX)


def extract_relative_date_option(value: Any) -> RelativeDateOption | None:
    """Strip the prefix from a relative date token.

    Returns:
        The option, or None for non-relative values and unknown options
    """
    if not is_relative_date(value):
        return None
    option = value[len(RELATIVE_DATE_PREFIX) :]
    if option not in RelativeDateOption:
        return None
    return RelativeDateOption(option)


def create_relative_date_value(option: RelativeDateOption | str) -> str:
    """Build the token for an option; inverse of ``extract_relative_date_option``."""
    return f"{RELATIVE_DATE_PREFIX}{RelativeDateOption(option).value}"


def is_valid_timezone(name: str) -> bool:
    return bool(name) and tz.gettz(name) is not None


def get_timezone(name: str) -> tzinfo:
    """Resolve an IANA timezone name.

    Raises:
        InvalidTimezone: If the name is empty or unknown
    """
    zone = tz.gettz(name) if name else None
    if zone is None:
        raise InvalidTimezone(name)
    return zone


def ensure_aware(instant: datetime) -> datetime:
    """Read a naive datetime as UTC; aware datetimes are returned unchanged."""
    if instant.tzinfo is None or instant.utcoffset() is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant


def start_of_day(day: date, zone: tzinfo) -> datetime:
    # a midnight inside a DST gap moves forward to the first valid instant
    return tz.resolve_imaginary(datetime.combine(day, time.min, tzinfo=zone))


def end_of_day(
    day: date,
    zone: tzinfo,
    precision: EndOfDayPrecision | str = EndOfDayPrecision.INCLUSIVE,
) -> datetime:
    if precision == EndOfDayPrecision.EXCLUSIVE:
        return start_of_day(day + timedelta(days=1), zone)
    return datetime.combine(day, time.max, tzinfo=zone)


def _calendar_span(option: RelativeDateOption, today: date) -> tuple[date, date]:
    """First and last calendar day covered by an option."""
    monday = today - timedelta(days=today.weekday())
    first_of_month = today.replace(day=1)

    if option == RelativeDateOption.YESTERDAY:
        day = today - timedelta(days=1)
        return day, day
    if option == RelativeDateOption.TOMORROW:
        day = today + timedelta(days=1)
        return day, day
    if option == RelativeDateOption.THIS_WEEK:
        return monday, monday + timedelta(days=6)
    if option == RelativeDateOption.LAST_WEEK:
        return monday - timedelta(days=7), monday - timedelta(days=1)
    if option == RelativeDateOption.NEXT_WEEK:
        return monday + timedelta(days=7), monday + timedelta(days=13)
    if option in (
        RelativeDateOption.THIS_MONTH,
        RelativeDateOption.LAST_MONTH,
        RelativeDateOption.NEXT_MONTH,
    ):
        shift = {
            RelativeDateOption.THIS_MONTH: 0,
            RelativeDateOption.LAST_MONTH: -1,
            RelativeDateOption.NEXT_MONTH: 1,
        }[option]
        first = first_of_month + relativedelta(months=shift)
        return first, first + relativedelta(months=1) - timedelta(days=1)
    if option == RelativeDateOption.LAST_7_DAYS:
        return today - timedelta(days=6), today
    if option == RelativeDateOption.NEXT_7_DAYS:
        return today, today + timedelta(days=6)
    if option == RelativeDateOption.LAST_30_DAYS:
        return today - timedelta(days=29), today
    if option == RelativeDateOption.NEXT_30_DAYS:
        return today, today + timedelta(days=29)
    if option == RelativeDateOption.THIS_YEAR:
        return date(today.year, 1, 1), date(today.year, 12, 31)
    if option == RelativeDateOption.LAST_YEAR:
        return date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)
    # today and custom
    return today, today


def get_relative_date_range(
    option: RelativeDateOption | str,
    reference_instant: datetime,
    timezone_name: str = "UTC",
    precision: EndOfDayPrecision | str = EndOfDayPrecision.INCLUSIVE,
) -> DateRange:
    """Resolve a relative date option against a reference instant.

    The reference instant is converted into the target timezone first, so
    "today" is the calendar day the reference falls on in that zone.

    Args:
        option: Relative date option
        reference_instant: Instant the range is relative to; naive values are read as UTC
        timezone_name: IANA timezone whose calendar defines day boundaries
        precision: Whether the range end is inclusive or the next midnight

    Returns:
        DateRange with timezone-aware boundaries in ``timezone_name``
    """
    zone = get_timezone(timezone_name)
    today = ensure_aware(reference_instant).astimezone(zone).date()
    first, last = _calendar_span(RelativeDateOption(option), today)
    return DateRange(
        start=start_of_day(first, zone),
        end=end_of_day(last, zone, precision),
        end_inclusive=precision != EndOfDayPrecision.EXCLUSIVE,
    )


def _resolve_token(
    value: str,
    reference_instant: datetime | None,
    timezone_name: str,
    precision: EndOfDayPrecision | str,
) -> DateRange | None:
    option = extract_relative_date_option(value)
    if option is None:
        return None
    if reference_instant is None:
        raise MissingReferenceInstant(value)
    return get_relative_date_range(option, reference_instant, timezone_name, precision)


def resolve_relative_date(
    value: Any,
    reference_instant: datetime | None,
    timezone_name: str = "UTC",
) -> Any:
    """Resolve a relative token for single-instant use.

    Returns:
        Start of the token's range, or the value unchanged if it is not a
        valid relative token
    """
    if not is_relative_date(value):
        return value
    resolved = _resolve_token(
        value, reference_instant, timezone_name, EndOfDayPrecision.INCLUSIVE
    )
    return value if resolved is None else resolved.start


def _fill_default(
    reference_instant: datetime | None, zone: tzinfo
) -> datetime | None:
    if reference_instant is None:
        return None
    local_day = ensure_aware(reference_instant).astimezone(zone).date()
    return datetime.combine(local_day, time.min)


def _parse_free_form(raw: str, default: datetime | None) -> datetime:
    """Parse a non-ISO literal without consulting the wall clock.

    dateutil fills fields missing from the text (year, month, day) from
    ``default``. Without a reference instant the literal is parsed against
    two unrelated defaults; differing results mean it depends on a missing
    field.
    """
    if default is not None:
        return date_parser.parse(raw, default=default)
    first, second = (date_parser.parse(raw, default=d) for d in _UNRELATED_DEFAULTS)
    if first != second:
        raise MissingReferenceInstant(raw)
    return first


def parse_date_literal(
    text: Any,
    timezone_name: str = "UTC",
    reference_instant: datetime | None = None,
) -> tuple[datetime, bool]:
    """Parse an absolute date or timestamp literal.

    Args:
        text: Literal such as ``2024-03-15``, ``2024-03-15T10:00:00Z`` or ``March 5``
        timezone_name: Zone applied to literals without an offset
        reference_instant: Supplies the year, month and day a partial literal
            leaves out, taken on the calendar of ``timezone_name``

    Returns:
        Tuple of (aware datetime, whether the literal was a bare date)

    Raises:
        InvalidFilterValue: If the literal cannot be parsed
        MissingReferenceInstant: If a partial literal comes without a reference
    """
    if isinstance(text, datetime):
        return ensure_aware(text), False
    zone = get_timezone(timezone_name)
    if isinstance(text, date):
        return start_of_day(text, zone), True
    raw = str(text).strip()
    try:
        try:
            parsed = date_parser.isoparse(raw)
        except ValueError:
            parsed = _parse_free_form(raw, _fill_default(reference_instant, zone))
    except (ValueError, OverflowError) as e:
        raise InvalidFilterValue(f"Invalid date value: {text!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return parsed, bool(_DATE_ONLY.match(raw))


def day_range(
    text: Any,
    timezone_name: str = "UTC",
    precision: EndOfDayPrecision | str = EndOfDayPrecision.INCLUSIVE,
    reference_instant: datetime | None = None,
) -> DateRange:
    """Expand an absolute literal to the calendar day it falls on."""
    zone = get_timezone(timezone_name)
    parsed, _ = parse_date_literal(text, timezone_name, reference_instant)
    day = parsed.astimezone(zone).date()
    return DateRange(
        start=start_of_day(day, zone),
        end=end_of_day(day, zone, precision),
        end_inclusive=precision != EndOfDayPrecision.EXCLUSIVE,
    )


def get_date_range_for_operator(
    value: Any,
    operator: str,
    reference_instant: datetime | None,
    timezone_name: str = "UTC",
    precision: EndOfDayPrecision | str = EndOfDayPrecision.INCLUSIVE,
) -> DateRange | None:
    """Expand a range operator value into explicit boundaries.

    Relative tokens resolve to their range. Literal pairs are parsed one
    side at a time: a bare-date start snaps to the start of its day, a
    bare-date end to the end of its day, timestamps are kept as given and
    close the range inclusively.

    Returns:
        DateRange, or None for operators that are not range operators

    Raises:
        MalformedRangeValue: If a literal value is not a clean two-part pair
    """
    if not is_range_operator(operator):
        return None
    if is_relative_date(value):
        resolved = _resolve_token(value, reference_instant, timezone_name, precision)
        if resolved is not None:
            return resolved

    zone = get_timezone(timezone_name)
    start_text, end_text = split_range_value(operator, value)
    start, start_is_day = parse_date_literal(start_text, timezone_name, reference_instant)
    end, end_is_day = parse_date_literal(end_text, timezone_name, reference_instant)
    if start_is_day:
        start = start_of_day(start.date(), zone)
    if end_is_day:
        end = end_of_day(end.date(), zone, precision)
    return DateRange(
        start=start,
        end=end,
        end_inclusive=not end_is_day or precision != EndOfDayPrecision.EXCLUSIVE,
    )


def format_date_for_sql(
    instant: datetime, include_time: bool = True, timespec: str = "milliseconds"
) -> str:
    """Render an instant as a UTC ISO-8601 literal.

    Timezones only drive boundary computation; literals are always UTC.
    Milliseconds suit display; inline SQL uses ``timespec="microseconds"``
    so it names the same instant a bound parameter would.
    """
    utc = ensure_aware(instant).astimezone(timezone.utc)
    if not include_time:
        return utc.date().isoformat()
    return utc.isoformat(timespec=timespec).replace("+00:00", "Z")
