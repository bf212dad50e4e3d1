"""Cron expression parsing.

Accepts two dialects and produces an APScheduler ``CronTrigger``:

* Quartz style, 6 or 7 fields, seconds first::

      sec  min  hour  day-of-month  month  day-of-week  [year]
      0/30 *    *     *             *      ?

  ``?`` means "no specific value", day-of-week numbers run 1=SUN..7=SAT,
  ``L`` in day-of-month is the last day, ``6#3`` / ``6L`` in day-of-week
  are the third / last Friday of the month.  ``W`` is not supported.

* Classic 5-field crontab (``*/5 * * * *``), passed field by field to
  ``CronTrigger`` (day-of-week uses APScheduler numbering, 0=MON).
"""

from __future__ import annotations

from datetime import datetime, tzinfo

from apscheduler.triggers.cron import CronTrigger

from jobdeck.core.errors import ValidationError

DEFAULT_CRON_EXPRESSION = "0/30 * * * * ?"

_QUARTZ_DAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_ORDINALS = {"1": "1st", "2": "2nd", "3": "3rd", "4": "4th", "5": "5th"}


def _invalid(expression: str, reason: str) -> ValidationError:
    return ValidationError(
        f"Invalid cron expression {expression!r}: {reason}",
        field="cron_expression",
        value=expression,
    )


def _weekday_number(token: str, expression: str) -> int:
    if token.isdigit():
        number = int(token)
        if 1 <= number <= 7:
            return number
        raise _invalid(expression, f"day-of-week {token} out of range 1-7")
    name = token[:3].lower()
    if len(token) == 3 and name in _QUARTZ_DAYS:
        return _QUARTZ_DAYS.index(name) + 1
    raise _invalid(expression, f"unknown day-of-week {token!r}")


def _weekday_part(part: str, expression: str) -> list[str]:
    base, _, step_text = part.partition("/")
    if step_text and not (step_text.isdigit() and int(step_text) > 0):
        raise _invalid(expression, f"bad step in {part!r}")
    step = int(step_text) if step_text else 1

    if base == "*":
        first, last = 1, 7
    elif "-" in base:
        low, high = base.split("-", 1)
        first, last = _weekday_number(low, expression), _weekday_number(high, expression)
    else:
        first = _weekday_number(base, expression)
        last = 7 if step_text else first

    if first <= last:
        numbers = list(range(first, last + 1))
    else:
        numbers = list(range(first, 8)) + list(range(1, last + 1))
    return [_QUARTZ_DAYS[n - 1] for n in numbers[::step]]


def _convert_day_of_week(field: str, expression: str) -> str:
    if field in ("*", "?"):
        return "*"
    if field == "L":
        return "sat"

    names: list[str] = []
    for part in field.split(","):
        for name in _weekday_part(part, expression):
            if name not in names:
                names.append(name)
    if len(names) == 7:
        return "*"
    return ",".join(names)


def _convert_day_of_month(field: str, expression: str) -> str:
    if field == "?":
        return "*"
    if field == "L":
        return "last"
    if "W" in field.upper() or "L" in field.upper():
        raise _invalid(expression, f"unsupported day-of-month {field!r}")
    return field


def _quartz_fields(fields: list[str], expression: str) -> dict[str, str | None]:
    second, minute, hour, day, month, day_of_week = fields[:6]
    year = fields[6] if len(fields) == 7 else None

    # Nth / last weekday of the month lives in APScheduler's day field
    if "#" in day_of_week or (len(day_of_week) > 1 and day_of_week.endswith("L")):
        if day not in ("?", "*"):
            raise _invalid(expression, "day-of-month must be '?' with an nth/last weekday")
        if "#" in day_of_week:
            weekday, _, nth = day_of_week.partition("#")
            if nth not in _ORDINALS:
                raise _invalid(expression, f"bad weekday position {day_of_week!r}")
            position = _ORDINALS[nth]
        else:
            weekday, position = day_of_week[:-1], "last"
        name = _QUARTZ_DAYS[_weekday_number(weekday, expression) - 1]
        day, day_of_week = f"{position} {name}", "*"
    else:
        day = _convert_day_of_month(day, expression)
        day_of_week = _convert_day_of_week(day_of_week, expression)

    return {
        "second": second,
        "minute": minute,
        "hour": hour,
        "day": day,
        "month": month.lower(),
        "day_of_week": day_of_week,
        "year": year if year not in (None, "*", "?") else None,
    }


def parse_cron_expression(
    expression: str,
    *,
    timezone: tzinfo | str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> CronTrigger:
    """Build a ``CronTrigger`` from a Quartz or crontab expression.

    Raises:
        ValidationError: if the expression is empty or malformed.
    """
    if not expression or not expression.strip():
        raise _invalid(expression or "", "expression is empty")

    fields = expression.split()
    try:
        if len(fields) == 5:
            return CronTrigger(
                **_crontab_fields(fields),
                start_date=start_date,
                end_date=end_date,
                timezone=timezone,
            )
        if len(fields) in (6, 7):
            return CronTrigger(
                **_quartz_fields(fields, expression),
                start_date=start_date,
                end_date=end_date,
                timezone=timezone,
            )
    except ValidationError:
        raise
    except (ValueError, TypeError) as e:
        raise _invalid(expression, str(e)) from e

    raise _invalid(expression, f"expected 5, 6 or 7 fields, got {len(fields)}")


def _crontab_fields(fields: list[str]) -> dict[str, str]:
    minute, hour, day, month, day_of_week = fields
    return {
        "minute": minute,
        "hour": hour,
        "day": day,
        "month": month,
        "day_of_week": day_of_week,
    }


def is_valid_cron_expression(expression: str) -> bool:
    """Return True when :func:`parse_cron_expression` accepts *expression*."""
    try:
        parse_cron_expression(expression)
    except ValidationError:
        return False
    return True
