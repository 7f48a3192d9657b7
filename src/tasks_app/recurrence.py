"""
Due-date arithmetic for recurring tasks.

Everything here is pure: functions take a Task (or plain dates) and return
new dates without touching the database. Weekdays follow Python's
convention, Monday is 0 and Sunday is 6.
"""

import calendar
import datetime

DAY_UNITS = ("days", "weeks", "months")

# Interval implied by the older frequency field when no repeat interval is set
LEGACY_FREQUENCIES = {
    "daily": (1, "days"),
    "weekly": (1, "weeks"),
    "monthly": (1, "months"),
}

WEEKDAY_NAMES = {
    "en": [
        "Monday",
        "Tuesday",
        "Wednesday",
        "Thursday",
        "Friday",
        "Saturday",
        "Sunday",
    ],
    "de": [
        "Montag",
        "Dienstag",
        "Mittwoch",
        "Donnerstag",
        "Freitag",
        "Samstag",
        "Sonntag",
    ],
}

# Upper bound on generated occurrences so a bad interval can't spin forever
MAX_ITERATIONS = 1000


def effective_interval(task) -> tuple[int, str] | None:
    """The (interval, unit) a task repeats with, or None for one-off tasks."""
    if task.repeat_interval and task.repeat_unit in DAY_UNITS:
        return task.repeat_interval, task.repeat_unit
    if task.frequency in LEGACY_FREQUENCIES:
        return LEGACY_FREQUENCIES[task.frequency]
    if task.frequency == "custom" and task.custom_frequency_days:
        return task.custom_frequency_days, "days"
    return None


def is_recurring(task) -> bool:
    return effective_interval(task) is not None


def add_months(value, months: int):
    """Same day of month `months` later, clamped to the last day of short months."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def nth_weekday_of_month(
    year: int, month: int, weekday: int, occurrence: int
) -> datetime.date | None:
    """The n-th given weekday of a month, None when the month has no such day."""
    first = datetime.date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    day = 1 + offset + (occurrence - 1) * 7
    if day > calendar.monthrange(year, month)[1]:
        return None
    return first.replace(day=day)


def weekday_occurrence(value) -> tuple[int, int]:
    """(weekday, n) such that value is the n-th such weekday of its month."""
    return value.weekday(), (value.day - 1) // 7 + 1


def next_monthly_occurrence(value, months: int, mode: str = "same_date"):
    """
    Move a date `months` months ahead.

    same_date keeps the day of month. same_weekday keeps "n-th weekday of the
    month"; when the target month has no n-th weekday (a fifth Friday, say)
    the (n-1)-th is used. The time of day is preserved.
    """
    if mode != "same_weekday":
        return add_months(value, months)

    weekday, occurrence = weekday_occurrence(value)
    target = add_months(value.replace(day=1), months)
    day = nth_weekday_of_month(target.year, target.month, weekday, occurrence)
    if day is None:
        day = nth_weekday_of_month(target.year, target.month, weekday, occurrence - 1)
    return value.replace(year=day.year, month=day.month, day=day.day)


def advance(value, interval: int, unit: str, monthly_mode: str = "same_date"):
    if unit == "days":
        return value + datetime.timedelta(days=interval)
    if unit == "weeks":
        return value + datetime.timedelta(weeks=interval)
    if unit == "months":
        return next_monthly_occurrence(value, interval, monthly_mode)
    raise ValueError(f"Unknown repeat unit: {unit}")


def _is_skipped(task, value) -> bool:
    return value.date().isoformat() in task.skipped_dates


def calculate_next_due_date(task, from_date: datetime.datetime = None):
    """
    Next due date after completing the current occurrence.

    Adds one interval to the current due date (or `from_date`), keeping the
    time of day, and keeps going past dates listed in skipped_dates. Returns
    None for tasks that don't repeat.
    """
    interval = effective_interval(task)
    if interval is None:
        return None

    base = from_date or task.due_date
    if base is None:
        base = datetime.datetime.now().replace(second=0, microsecond=0)

    next_date = advance(base, *interval, task.monthly_recurrence_mode)
    for _ in range(MAX_ITERATIONS):
        if not _is_skipped(task, next_date):
            return next_date
        next_date = advance(next_date, *interval, task.monthly_recurrence_mode)
    raise ValueError(f"Every upcoming occurrence of task {task.id} is skipped")


def iter_occurrences(task, include_skipped: bool = False):
    """Yield due dates starting at the current one (bounded)."""
    if task.due_date is None:
        return
    interval = effective_interval(task)
    current = task.due_date
    for _ in range(MAX_ITERATIONS):
        if include_skipped or not _is_skipped(task, current):
            yield current
        if interval is None:
            return
        current = advance(current, *interval, task.monthly_recurrence_mode)


def upcoming_occurrences(
    task, count: int, start: datetime.datetime = None
) -> list[datetime.datetime]:
    """The next `count` due dates on or after `start`, skipped dates left out."""
    occurrences = []
    if count <= 0:
        return occurrences
    for occurrence in iter_occurrences(task):
        if start is not None and occurrence < start:
            continue
        occurrences.append(occurrence)
        if len(occurrences) >= count:
            break
    return occurrences


def occurrences_between(
    task, start: datetime.datetime, end: datetime.datetime
) -> list[datetime.datetime]:
    """Due dates falling inside [start, end]."""
    occurrences = []
    for occurrence in iter_occurrences(task):
        if occurrence > end:
            break
        if occurrence >= start:
            occurrences.append(occurrence)
    return occurrences


def format_weekday_occurrence(value, locale: str = "en") -> str:
    """Human label for a monthly weekday rule, e.g. "3. Thursday"."""
    weekday, occurrence = weekday_occurrence(value)
    names = WEEKDAY_NAMES.get(locale, WEEKDAY_NAMES["en"])
    return f"{occurrence}. {names[weekday]}"
