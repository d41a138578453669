"""Tests for the seconds-precision cron dialect."""
from datetime import datetime, timedelta, timezone

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.core.errors import InvalidCronExpressionError, Reason, is_business
from app.tasks.scheduler.cron import convert_day_of_week, parse_duration, parse_expression

UTC = timezone.utc


def next_fire(trigger, after):
    return trigger.get_next_fire_time(None, after)


def test_six_field_expression_fires_on_second_boundaries():
    trigger = parse_expression("*/2 * * * * *", UTC)
    assert isinstance(trigger, CronTrigger)

    start = datetime(2024, 1, 1, 12, 0, 1, tzinfo=UTC)
    assert next_fire(trigger, start) == datetime(2024, 1, 1, 12, 0, 2, tzinfo=UTC)


def test_every_five_minutes_at_second_zero():
    trigger = parse_expression("0 */5 * * * *", UTC)
    start = datetime(2024, 1, 1, 12, 1, 30, tzinfo=UTC)
    assert next_fire(trigger, start) == datetime(2024, 1, 1, 12, 5, 0, tzinfo=UTC)


def test_weekday_uses_cron_numbering():
    # 1-5 = segunda a sexta; 2024-01-06 é sábado
    trigger = parse_expression("0 0 9 * * 1-5", UTC)
    saturday = datetime(2024, 1, 6, 10, 0, 0, tzinfo=UTC)
    assert next_fire(trigger, saturday) == datetime(2024, 1, 8, 9, 0, 0, tzinfo=UTC)


def test_sunday_as_zero_and_seven():
    assert convert_day_of_week("0") == "sun"
    assert convert_day_of_week("7") == "sun"
    assert convert_day_of_week("1-5") == "mon,tue,wed,thu,fri"
    assert convert_day_of_week("*/2") == "sun,tue,thu,sat"
    assert convert_day_of_week("MON,wed") == "mon,wed"
    assert convert_day_of_week("?") == "*"


def test_question_mark_in_day_of_month():
    trigger = parse_expression("0 30 8 ? * *", UTC)
    start = datetime(2024, 3, 10, 9, 0, 0, tzinfo=UTC)
    assert next_fire(trigger, start) == datetime(2024, 3, 11, 8, 30, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    "descriptor,after,expected",
    [
        ("@hourly", datetime(2024, 1, 1, 12, 10, tzinfo=UTC), datetime(2024, 1, 1, 13, 0, tzinfo=UTC)),
        ("@daily", datetime(2024, 1, 1, 12, 10, tzinfo=UTC), datetime(2024, 1, 2, 0, 0, tzinfo=UTC)),
        ("@midnight", datetime(2024, 1, 1, 12, 10, tzinfo=UTC), datetime(2024, 1, 2, 0, 0, tzinfo=UTC)),
        ("@weekly", datetime(2024, 1, 1, 12, 10, tzinfo=UTC), datetime(2024, 1, 7, 0, 0, tzinfo=UTC)),
        ("@monthly", datetime(2024, 1, 15, tzinfo=UTC), datetime(2024, 2, 1, tzinfo=UTC)),
        ("@yearly", datetime(2024, 6, 1, tzinfo=UTC), datetime(2025, 1, 1, tzinfo=UTC)),
        ("@annually", datetime(2024, 6, 1, tzinfo=UTC), datetime(2025, 1, 1, tzinfo=UTC)),
    ],
)
def test_descriptors(descriptor, after, expected):
    assert next_fire(parse_expression(descriptor, UTC), after) == expected


def test_every_descriptor_builds_interval_trigger():
    trigger = parse_expression("@every 1m30s", UTC)
    assert isinstance(trigger, IntervalTrigger)
    assert trigger.interval == timedelta(seconds=90)


def test_every_below_one_second_is_rounded_up():
    trigger = parse_expression("@every 500ms", UTC)
    assert trigger.interval == timedelta(seconds=1)


def test_parse_duration_units():
    assert parse_duration("1h30m") == timedelta(hours=1, minutes=30)
    assert parse_duration("90s") == timedelta(seconds=90)
    assert parse_duration("250ms") == timedelta(milliseconds=250)
    assert parse_duration("1.5h") == timedelta(minutes=90)
    assert parse_duration("0") == timedelta(0)


@pytest.mark.parametrize("bad", ["", "10", "1h30", "h", "5 m", "-1s"])
def test_parse_duration_rejects_garbage(bad):
    with pytest.raises(ValueError):
        parse_duration(bad)


@pytest.mark.parametrize(
    "expression",
    [
        "* * * * *",          # cinco campos
        "* * * * * * *",      # sete campos
        "61 * * * * *",
        "* * 25 * * *",
        "* * * * * 8",
        "@every",
        "@every10s",
        "@every abc",
        "@fortnightly",
        "not a cron",
    ],
)
def test_invalid_expressions(expression):
    with pytest.raises(InvalidCronExpressionError) as exc_info:
        parse_expression(expression, UTC)

    err = exc_info.value
    assert "invalid cron expression" in str(err)
    assert is_business(err)
    assert err.reason == Reason.BAD_REQUEST
    assert err.expression == expression
