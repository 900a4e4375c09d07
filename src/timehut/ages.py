"""
Age arithmetic between a child's birth date and a photo date.

Ages are decomposed calendar-wise into years, months and days so that adding
them back to the birth date (years, then months, then days) lands exactly on
the photo date.
"""

import calendar
import logging
from datetime import date, datetime, timedelta

from timehut.models import Age

logger = logging.getLogger(__name__)

NEWBORN_LABEL = "新生兒"
NEWBORN_STRING = "剛出生"
UNKNOWN_AGE_LABEL = "未知"
UNKNOWN_SORT_KEY = -1

_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d",
)


def parse_date(value) -> datetime | None:
    """
    Parse a date-like value into a naive datetime.

    Accepts datetime, date, ISO-ish strings and epoch seconds (int or numeric
    string). Returns None for anything missing or unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return parse_date(int(text))
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed.replace(tzinfo=None) if parsed.tzinfo else parsed
    return None


def add_months(d: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_years(d: date, years: int) -> date:
    return add_months(d, years * 12)


def _decompose(start: date, end: date) -> tuple[int, int, int]:
    years = end.year - start.year
    months = end.month - start.month
    if months < 0:
        years -= 1
        months += 12
    anchor = add_months(add_years(start, years), months)
    if anchor > end:
        # borrow a month
        months -= 1
        if months < 0:
            years -= 1
            months += 12
        anchor = add_months(add_years(start, years), months)
    return years, months, (end - anchor).days


def calculate_age(birth_date, target_date) -> Age:
    """
    Compute the calendar age between birth_date and target_date.

    Targets earlier than the birth date give the negated decomposition of the
    reverse interval instead of raising.

    Raises:
        ValueError: If either date cannot be parsed
    """
    birth = parse_date(birth_date)
    target = parse_date(target_date)
    if birth is None or target is None:
        raise ValueError(f"Cannot compute age between {birth_date!r} and {target_date!r}")

    start, end = birth.date(), target.date()
    total_days = (end - start).days
    if end >= start:
        years, months, days = _decompose(start, end)
    else:
        years, months, days = (-part for part in _decompose(end, start))
    return Age(years=years, months=months, days=days, total_days=total_days)


def age_from_parts(birth_date, age: Age) -> date:
    """Rebuild the target date from a birth date and a non-negative age."""
    birth = parse_date(birth_date)
    if birth is None:
        raise ValueError(f"Invalid birth date: {birth_date!r}")
    d = add_months(add_years(birth.date(), age.years), age.months)
    return d + timedelta(days=age.days)


def format_age_string(years: int, months: int, days: int) -> str:
    if years < 0 or months < 0 or days < 0:
        return NEWBORN_STRING
    if years == 0 and months == 0 and days == 0:
        return NEWBORN_STRING

    parts = []
    if years > 0:
        parts.append(f"{years}歲")
    if months > 0:
        parts.append(f"{months}個月")
    if years == 0 and months == 0:
        parts.append(f"{days}天")
    return "".join(parts)


def age_label(years: int, months: int) -> str:
    """Short bucket label; prenatal ages fall into the newborn label."""
    if years >= 1:
        return f"{years}歲"
    if years == 0 and months >= 1:
        return f"{months}個月"
    return NEWBORN_LABEL


def age_sort_key(years: int, months: int) -> int:
    if years < 0 or months < 0:
        return 0
    return years * 100 + months


def format_date(value) -> str:
    """Render a date as e.g. 2023年9月6日; empty string when unparseable."""
    d = parse_date(value)
    if d is None:
        return ""
    return f"{d.year}年{d.month}月{d.day}日"


def current_age_string(birth_date, today=None) -> str:
    """Age string for the profile header; empty when the birth date is unusable."""
    try:
        age = calculate_age(birth_date, today or datetime.now())
    except ValueError:
        logger.warning(f"Cannot compute current age from birth date {birth_date!r}")
        return ""
    return format_age_string(age.years, age.months, age.days)


def generate_age_navigation(birth_date, today=None) -> list[dict]:
    """
    Year milestones from the child's current age down to newborn.

    Returns:
        List of {"label", "value", "type"} dicts, newest first
    """
    try:
        age = calculate_age(birth_date, today or datetime.now())
    except ValueError:
        return []
    return [
        {"label": f"{y}歲" if y > 0 else NEWBORN_LABEL, "value": y, "type": "year"}
        for y in range(max(age.years, 0), -1, -1)
    ]
