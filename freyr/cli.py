"""A small command for trying out the wave chart and the weather lookup."""

from __future__ import annotations

import argparse
import os
import sys

from .openweather import Location, OpenWeatherError, get_temp_by_country
from .trig import TrigArgs, render_chart

CHART_ARGS = TrigArgs(duration="120s", min=5, max=20)
WEATHER_LOCATION = Location(country="AU", city="Melbourne")


def main(argv: list[str] | None = None) -> int:
    """Print a sample wave chart, or the current temperature with ``weather``."""
    parser = argparse.ArgumentParser(
        prog="freyr-cli", description="Print a sample wave chart or the current weather."
    )
    parser.add_argument(
        "mode",
        nargs="?",
        choices=("trig", "weather"),
        default="trig",
        help="what to print (default: trig)",
    )
    args = parser.parse_args(argv)

    if args.mode == "weather":
        try:
            result = get_temp_by_country(os.environ.get("OWK", ""), WEATHER_LOCATION)
        except OpenWeatherError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
        print(result)
        return 0

    print(render_chart(CHART_ARGS))
    return 0