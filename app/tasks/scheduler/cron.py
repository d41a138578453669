"""Parser de expressões cron com precisão de segundos

Formato aceito (seis campos)::

    segundo minuto hora dia-do-mês mês dia-da-semana

Dia da semana segue a numeração do cron (0 ou 7 = domingo) e é convertido
para nomes antes de chegar ao APScheduler, que numera a partir de segunda.
Também são aceitos os descritores ``@hourly``, ``@daily`` etc. e
``@every <duração>`` (``90s``, ``1h30m``, ``500ms``).
"""
import re
from datetime import timedelta, tzinfo

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.core.errors import InvalidCronExpressionError

DESCRIPTORS = {
    "@yearly": "0 0 0 1 1 *",
    "@annually": "0 0 0 1 1 *",
    "@monthly": "0 0 0 1 * *",
    "@weekly": "0 0 0 * * 0",
    "@daily": "0 0 0 * * *",
    "@midnight": "0 0 0 * * *",
    "@hourly": "0 0 * * * *",
}

DAY_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Converte '1h30m', '90s', '250ms' em timedelta"""
    value = text.strip()
    if not value:
        raise ValueError("empty duration")
    if value == "0":
        return timedelta(0)

    pos = 0
    seconds = 0.0
    for match in _DURATION_RE.finditer(value):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(value):
        raise ValueError(f"invalid duration {text!r}")
    return timedelta(seconds=seconds)


def _day_value(token: str) -> int:
    t = token.strip().lower()
    if t in DAY_NAMES:
        return DAY_NAMES.index(t)
    if not t.isdigit():
        raise ValueError(f"invalid day of week {token!r}")
    value = int(t)
    if value > 7:
        raise ValueError(f"day of week {value} out of range (0-7)")
    return value


def convert_day_of_week(field: str) -> str:
    """Converte o campo dia-da-semana do cron para nomes ('1-5' -> 'mon,...,fri')"""
    if field in ("*", "?"):
        return "*"

    days = set()
    for part in field.split(","):
        base, has_step, step_text = part.partition("/")
        step = 1
        if has_step:
            if not step_text.isdigit() or int(step_text) == 0:
                raise ValueError(f"invalid step in {part!r}")
            step = int(step_text)

        if base in ("*", "?"):
            first, last = 0, 6
        elif "-" in base:
            start, end = base.split("-", 1)
            first, last = _day_value(start), _day_value(end)
        else:
            first = _day_value(base)
            last = 6 if has_step else first

        if first > last:
            raise ValueError(f"invalid range {part!r}")
        for value in range(first, last + 1, step):
            days.add(value % 7)

    return ",".join(DAY_NAMES[d] for d in sorted(days))


def parse_expression(expression: str, timezone: tzinfo) -> BaseTrigger:
    """Converte a expressão em um trigger do APScheduler

    Levanta InvalidCronExpressionError se a expressão não for válida.
    """
    value = expression.strip()
    try:
        if value.startswith("@every"):
            rest = value[len("@every"):]
            if not rest[:1].isspace():
                raise ValueError("missing duration after @every")
            delay = parse_duration(rest)
            # mínimo de um segundo, arredondado para baixo
            seconds = max(1, int(delay.total_seconds()))
            return IntervalTrigger(seconds=seconds, timezone=timezone)

        if value.startswith("@"):
            descriptor = value.lower()
            if descriptor not in DESCRIPTORS:
                raise ValueError(f"unrecognized descriptor {value!r}")
            value = DESCRIPTORS[descriptor]

        fields = value.split()
        if len(fields) != 6:
            raise ValueError(f"expected exactly 6 fields, found {len(fields)}")

        second, minute, hour, day, month, day_of_week = fields
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day="*" if day == "?" else day,
            month=month,
            day_of_week=convert_day_of_week(day_of_week),
            timezone=timezone,
        )
    except ValueError as e:
        raise InvalidCronExpressionError(expression, str(e)) from e
