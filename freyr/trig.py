"""Sine-wave targets over a repeating period and an ASCII chart of one period."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from fractions import Fraction

CHART_ERROR = "could not render chart"

_CANVAS_AXIS_OFFSET = 1
_CANVAS_WIDTH = 120 + _CANVAS_AXIS_OFFSET
_CANVAS_HEIGHT = 12
_SECONDS_PER_DAY = 86400
_NANOS_PER_SECOND = 10**9

_UNITS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": _NANOS_PER_SECOND,
    "m": 60 * _NANOS_PER_SECOND,
    "h": 3600 * _NANOS_PER_SECOND,
}
_COMPONENT = re.compile(r"(\d*)(?:\.(\d*))?([^\d.]*)")


@dataclass(frozen=True)
class TrigArgs:
    """Period, range and position on the wave; ``current`` 0 means 'now'."""

    duration: str
    min: int = 0
    max: int = 0
    current: int = 0


def parse_duration(text: str) -> float:
    """Parse a duration such as ``"1h30m"`` or ``"120s"`` into seconds."""
    invalid = ValueError(f'time: invalid duration "{text}"')
    rest = text
    negative = False
    if rest[:1] in ("+", "-"):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return 0.0
    if not rest:
        raise invalid

    total = Fraction(0)
    pos = 0
    while pos < len(rest):
        match = _COMPONENT.match(rest, pos)
        whole, frac, unit = match.group(1), match.group(2), match.group(3)
        if not whole and not frac:
            raise invalid
        if not unit:
            raise ValueError(f'time: missing unit in duration "{text}"')
        if unit not in _UNITS:
            raise ValueError(f'time: unknown unit "{unit}" in duration "{text}"')
        value = Fraction(int(whole or "0"))
        if frac:
            value += Fraction(int(frac), 10 ** len(frac))
        total += value * _UNITS[unit]
        pos = match.end()

    nanos = int(total)
    limit = 2**63 if negative else 2**63 - 1
    if nanos > limit:
        raise invalid
    return (-nanos if negative else nanos) / _NANOS_PER_SECOND


def translate(x: float, in_min: float, in_max: float, out_min: float, out_max: float) -> float:
    """Map ``x`` linearly from one range onto another."""
    proportion = (x - in_min) / (in_max - in_min)
    return out_min + proportion * (out_max - out_min)


def seconds_since_increment(duration: float, now: datetime | None = None) -> int:
    """Whole seconds since the latest multiple of ``duration`` after UTC midnight."""
    whole = int(duration)
    if whole == 0:
        raise ValueError("duration must be at least one second")
    if now is None:
        now = datetime.now(timezone.utc)
    elapsed = math.floor(now.timestamp()) % _SECONDS_PER_DAY
    periods = elapsed // whole if whole > 0 else -(elapsed // -whole)
    return int(elapsed - periods * duration)


def calculate_angle(args: TrigArgs, now: datetime | None = None) -> float:
    """Return the sine of the position ``args.current`` within the period."""
    seconds = parse_duration(args.duration)
    current = args.current or seconds_since_increment(seconds, now)
    if seconds == 0:
        return math.nan
    return math.sin(2 * math.pi * current / seconds)


def get_value(args: TrigArgs, now: datetime | None = None) -> float:
    """Return the wave's value scaled onto ``[args.min, args.max]``."""
    angle = calculate_angle(args, now)
    return translate(angle, -1, 1, float(args.min), float(args.max))


def render_chart(args: TrigArgs, now: datetime | None = None) -> str:
    """Draw one period of the wave, marking the present position."""
    try:
        seconds = parse_duration(args.duration)
    except ValueError:
        return CHART_ERROR
    if now is None:
        now = datetime.now(timezone.utc)
    since = seconds_since_increment(seconds, now)

    count = int(seconds)
    results = [0.0] * count
    y_min = y_max = 0.0
    for step in range(1, count):
        value = get_value(TrigArgs(args.duration, args.min, args.max, step), now)
        results[step] = value
        y_min = min(y_min, value)
        y_max = max(y_max, value)

    padding = len(str(int(args.max))) + 1
    marker = int(translate(since, 0, seconds, 0, _CANVAS_WIDTH - 1))

    canvas: list[list[str]] = []
    for row in range(_CANVAS_HEIGHT):
        label = int(translate(row, 0, _CANVAS_HEIGHT - 1, args.min, args.max)) - 1
        cells = [f"{label:<{padding}d}"]
        cells.extend(
            "|" if col == marker + _CANVAS_AXIS_OFFSET else " "
            for col in range(_CANVAS_AXIS_OFFSET, _CANVAS_WIDTH)
        )
        canvas.append(cells)

    plot_width = _CANVAS_WIDTH - _CANVAS_AXIS_OFFSET
    sampled = [
        results[int(translate(i, 0, _CANVAS_WIDTH - 1, 0, seconds - 1))]
        for i in range(plot_width - 1)
    ]
    sampled.append(0.0)

    for i, value in enumerate(sampled):
        y = int(translate(value, y_min, y_max, 0, _CANVAS_HEIGHT - 1))
        canvas[y][i + _CANVAS_AXIS_OFFSET] = "#" if i == marker else "*"

    return "".join("".join(row) + "\n" for row in reversed(canvas))