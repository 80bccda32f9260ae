"""Tests for cron evaluation."""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, strategies as st

from src.core.cron import (
    COLLISION_NUDGE,
    ScheduleValidationError,
    next_fire_time,
    resolve_timezone,
    validate_cron,
)

EXPRESSIONS = ["* * * * *", "*/5 * * * *", "0 9 * * *", "30 2 * * 1-5", "0 0 1 * *"]

references = st.datetimes(
    min_value=datetime(2000, 1, 1),
    max_value=datetime(2090, 1, 1),
    timezones=st.just(timezone.utc),
)


class TestNextFireTime:
    """Tests for next_fire_time."""

    @given(st.sampled_from(EXPRESSIONS), references, st.sampled_from(["UTC", "Asia/Tokyo"]))
    def test_strictly_after_reference(self, expression: str, reference: datetime, tz_name: str):
        """Property test: the next fire time is always in the future of the reference."""
        assert next_fire_time(expression, tz_name, reference) > reference

    @given(st.sampled_from(EXPRESSIONS), references)
    def test_deterministic(self, expression: str, reference: datetime):
        """Property test: same inputs, same output."""
        assert next_fire_time(expression, "UTC", reference) == next_fire_time(
            expression, "UTC", reference
        )

    @given(st.sampled_from(EXPRESSIONS), references)
    def test_whole_seconds_are_nudged(self, expression: str, reference: datetime):
        """Property test: cron fires on whole seconds, so the 1ms nudge always applies."""
        fire_at = next_fire_time(expression, "UTC", reference)

        assert fire_at.microsecond == COLLISION_NUDGE.microseconds
        assert fire_at.tzinfo == timezone.utc

    def test_new_york_winter(self):
        """9am in New York during standard time is 14:00 UTC."""
        reference = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

        fire_at = next_fire_time("0 9 * * *", "America/New_York", reference)

        assert fire_at == datetime(2024, 1, 15, 14, 0, 0, 1000, tzinfo=timezone.utc)

    def test_new_york_summer(self):
        """9am in New York during daylight time is 13:00 UTC."""
        reference = datetime(2024, 7, 1, 12, 0, tzinfo=timezone.utc)

        fire_at = next_fire_time("0 9 * * *", "America/New_York", reference)

        assert fire_at == datetime(2024, 7, 1, 13, 0, 0, 1000, tzinfo=timezone.utc)

    def test_after_todays_fire_moves_to_tomorrow(self):
        """A reference just after the nudged fire time rolls to the next day."""
        first = next_fire_time("0 9 * * *", "America/New_York", datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc))

        second = next_fire_time("0 9 * * *", "America/New_York", first)

        assert second - first == timedelta(days=1)

    def test_naive_reference_treated_as_utc(self):
        naive = datetime(2024, 1, 15, 8, 30)
        aware = naive.replace(tzinfo=timezone.utc)

        assert next_fire_time("0 9 * * *", None, naive) == next_fire_time("0 9 * * *", None, aware)

    def test_defaults_to_utc(self):
        reference = datetime(2024, 1, 15, 8, 30, tzinfo=timezone.utc)

        assert next_fire_time("0 9 * * *", None, reference).hour == 9


class TestValidation:
    """Tests for cron and timezone validation."""

    @pytest.mark.parametrize("expression", ["not a cron", "61 * * * *", "* * *", ""])
    def test_invalid_expression(self, expression: str):
        with pytest.raises(ScheduleValidationError) as exc_info:
            validate_cron(expression)

        assert exc_info.value.errors[0].startswith("cron_expression")

    def test_unknown_timezone(self):
        with pytest.raises(ScheduleValidationError) as exc_info:
            resolve_timezone("Mars/Olympus_Mons")

        assert "timezone" in exc_info.value.errors[0]

    def test_invalid_expression_is_not_retriable(self):
        with pytest.raises(ScheduleValidationError) as exc_info:
            next_fire_time("bogus")

        assert exc_info.value.retriable is False
