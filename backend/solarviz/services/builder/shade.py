"""Hourly shade sampling.

The Solar API hands back one shade raster URL per hour of the year, indexed
``day * 24 + hour`` with a 0-based day.  Fetching all 8760 would be absurd
for an overlay, so the loader picks a handful of hours on one day.
"""

from __future__ import annotations

from typing import Iterable, Sequence

HOURS_PER_DAY = 24
DAYS_PER_YEAR = 365

SUMMER_SOLSTICE_DAY = 172
DEFAULT_SHADE_HOURS = (5, 8, 12, 16, 20)
DAYLIGHT_HOURS = tuple(range(5, 21))
ALL_HOURS = tuple(range(HOURS_PER_DAY))


def hourly_shade_indices(
    day_of_year: int = SUMMER_SOLSTICE_DAY,
    hours: Iterable[int] = DEFAULT_SHADE_HOURS,
) -> list[int]:
    if not 0 <= day_of_year < DAYS_PER_YEAR:
        raise IndexError(f"day_of_year {day_of_year} outside 0..{DAYS_PER_YEAR - 1}")
    indices: list[int] = []
    for hour in hours:
        if not 0 <= hour < HOURS_PER_DAY:
            raise IndexError(f"hour {hour} outside 0..{HOURS_PER_DAY - 1}")
        indices.append(day_of_year * HOURS_PER_DAY + hour)
    if not indices:
        raise ValueError("At least one hour must be sampled")
    return indices


def select_hourly_shade_urls(
    urls: Sequence[str],
    day_of_year: int = SUMMER_SOLSTICE_DAY,
    hours: Iterable[int] = DEFAULT_SHADE_HOURS,
) -> list[str]:
    selected: list[str] = []
    for index in hourly_shade_indices(day_of_year, hours):
        if index >= len(urls):
            raise IndexError(f"Hourly shade index {index} beyond {len(urls)} available URLs")
        url = urls[index]
        if not url:
            raise ValueError(f"Hourly shade URL at index {index} is empty")
        selected.append(url)
    return selected


def hour_label(hour: int) -> str:
    return f"{hour:02d}:00"
