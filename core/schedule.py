"""
core/schedule.py -- Reaper schedule expressions.

A schedule answers one question: how long until the next sweep? Accepted forms:

  0 0 * * * *                  -- cron with a leading seconds field (6 fields)
  */30 * * * *                 -- classic 5-field cron
  @hourly, @daily, @weekly,
  @monthly, @yearly, @midnight -- cron aliases
  @every 30m, @every 6h        -- fixed interval (s, m, h, d suffix)
  3600                         -- fixed interval in bare seconds

Cron expressions are evaluated in UTC with croniter. `?` in the day fields
is read as `*`.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

import re
from datetime import datetime

from croniter import croniter

_ALIASES = {
    "@hourly": "0 * * * *",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@weekly": "0 0 * * 0",
    "@monthly": "0 0 1 * *",
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
}

_UNITS = {"s": 1, "m": 60, "h": 60 * 60, "d": 24 * 60 * 60}

_EVERY_RE = re.compile(r"@every\s+(\d+)\s*([smhd]?)")


class Schedule:
    """A parsed schedule: either a fixed interval or a cron expression.

    Usage:
        schedule = parse_schedule("0 0 * * * *")
        delay = schedule.seconds_until_next(datetime.now(timezone.utc))
    """

    def __init__(self, expr: str, interval: int | None = None, cron: str | None = None, seconds_first: bool = False):
        self.expr = expr
        self.interval = interval
        self.cron = cron
        self.seconds_first = seconds_first

    def seconds_until_next(self, now: datetime) -> float:
        if self.interval is not None:
            return float(self.interval)
        fire_at = croniter(self.cron, now, second_at_beginning=self.seconds_first).get_next(datetime)
        return max((fire_at - now).total_seconds(), 0.0)

    def __repr__(self) -> str:
        return f"Schedule({self.expr!r})"


def parse_schedule(expr: str) -> Schedule:
    """Parse a schedule expression.

    Raises ValueError for unknown expressions and for intervals below one
    second, so a bad value fails at startup rather than on the first tick.
    """
    value = " ".join(expr.split())
    lowered = value.lower()

    if lowered in _ALIASES:
        return _cron_schedule(expr, _ALIASES[lowered])
    if lowered.isdigit():
        return _interval_schedule(expr, int(lowered))
    match = _EVERY_RE.fullmatch(lowered)
    if match is not None:
        return _interval_schedule(expr, int(match.group(1)) * _UNITS[match.group(2) or "s"])
    if len(value.split(" ")) in (5, 6):
        return _cron_schedule(expr, value.replace("?", "*"))
    raise ValueError(f"Unrecognized schedule expression: {expr!r}")


def _interval_schedule(expr: str, seconds: int) -> Schedule:
    if seconds < 1:
        raise ValueError(f"Schedule interval must be at least 1 second: {expr!r}")
    return Schedule(expr, interval=seconds)


def _cron_schedule(expr: str, cron: str) -> Schedule:
    seconds_first = len(cron.split(" ")) == 6
    try:
        croniter(cron, second_at_beginning=seconds_first)
    except (ValueError, KeyError) as exc:
        raise ValueError(f"Invalid cron expression: {expr!r}") from exc
    return Schedule(expr, cron=cron, seconds_first=seconds_first)
