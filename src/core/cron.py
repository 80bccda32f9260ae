"""Cron evaluation for recurring schedules.

Fire times are computed in the schedule's own timezone (so "0 9 * * *" in
America/New_York means 9am local across DST changes) and returned as aware
UTC datetimes.
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from src.core.errors import ValidationError

DEFAULT_TIMEZONE = "UTC"

# Added to fire times that land exactly on a whole second, so two runs armed
# for the same instant never share a sleep deadline.
COLLISION_NUDGE = timedelta(milliseconds=1)


class ScheduleValidationError(ValidationError):
    """Schedule preconditions not met (cron, timezone or template flag)."""

    pass


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Resolve an IANA timezone name, defaulting to UTC.

    Raises:
        ScheduleValidationError: If the name is not a known timezone
    """
    tz_name = name or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ScheduleValidationError(
            f"Unknown timezone: {tz_name}",
            errors=[f"timezone: unknown timezone '{tz_name}'"],
        ) from e


def validate_cron(expression: str, tz_name: str | None = None) -> None:
    """Validate that a cron expression parses under the given timezone.

    Raises:
        ScheduleValidationError: If the expression or timezone is invalid
    """
    resolve_timezone(tz_name)
    if not isinstance(expression, str) or not croniter.is_valid(expression):
        raise ScheduleValidationError(
            f"Invalid cron expression: {expression!r}",
            errors=[f"cron_expression: cannot parse {expression!r}"],
        )


def next_fire_time(
    expression: str,
    tz_name: str | None = None,
    reference: datetime | None = None,
) -> datetime:
    """Compute the next time a cron expression fires.

    Args:
        expression: Standard 5-field cron expression (6-field with seconds allowed)
        tz_name: IANA timezone the expression is evaluated in (default UTC)
        reference: Instant to search from (default now); naive values are UTC

    Returns:
        Aware UTC datetime strictly after ``reference``, nudged by 1ms when it
        lands on a whole second

    Raises:
        ScheduleValidationError: If the expression or timezone is invalid
    """
    validate_cron(expression, tz_name)
    tz = resolve_timezone(tz_name)

    if reference is None:
        reference = datetime.now(timezone.utc)
    elif reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)

    local_reference = reference.astimezone(tz)
    fire_at: datetime = croniter(expression, local_reference).get_next(datetime)
    fire_at = fire_at.astimezone(timezone.utc)

    if fire_at.microsecond == 0:
        fire_at = fire_at + COLLISION_NUDGE
    return fire_at
