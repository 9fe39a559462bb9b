# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
from datetime import date, datetime, timedelta
from typing import NamedTuple

import numpy as np
import pandas as pd
from pydantic import PositiveInt


# date range of years
class YearRange(NamedTuple):
    """Date range in years.

    Example:

        >>> YearRange(2000, 2005)
        YearRange(start=2000, end=2005)
        >>> YearRange(start=2000, end=2005).range
        range(2000, 2006)
        >>> YearRange(2000, 2000)
        YearRange(start=2000, end=2000)

    """

    start: PositiveInt
    end: PositiveInt
    """The end year is inclusive."""

    @property
    def range(self) -> range:
        """Return the range of years."""
        # +1 as range() is exclusive while YearRange is inclusive
        return range(self.start, self.end + 1)


def check_year_range(years: YearRange) -> YearRange:
    """Raise if start year is after end year."""
    if years.start > years.end:
        raise ValueError(
            f"start year ({years.start}) should be smaller than end year ({years.end})"
        )
    return years


class YearWindow(NamedTuple):
    """Span of dates used to fit the curve of one year.

    The window extends `pad_days` into the neighbouring years so that the
    winter dormancy on both sides of the season is part of the fit.

    Example:

        >>> YearWindow.for_year(2019, pad_days=30)
        YearWindow(year=2019, start=datetime.date(2018, 12, 2), end=datetime.date(2020, 1, 30))
    """

    year: int
    start: date
    end: date

    @classmethod
    def for_year(cls, year: int, pad_days: int = 30) -> "YearWindow":
        pad = timedelta(days=pad_days)
        return cls(year, date(year, 1, 1) - pad, date(year, 12, 31) + pad)

    @property
    def doy_bounds(self) -> tuple[float, float]:
        """Window start and end as day of year relative to `year`."""
        return float(to_doy(self.start, self.year)), float(to_doy(self.end, self.year))


def to_doy(when, year: int):
    """Day of year of `when` counted from January 1st of `year`.

    January 1st of `year` is day 1. Dates before that year give zero or
    negative values, dates after it values beyond 365.
    Accepts a single date or anything `pd.to_datetime` understands.
    """
    origin = pd.Timestamp(year=year, month=1, day=1)
    delta = pd.to_datetime(when) - origin
    if isinstance(delta, pd.Timedelta):
        return delta.days + 1
    return np.asarray(pd.TimedeltaIndex(delta).days) + 1


def from_doy(doy: float, year: int) -> date:
    """Calendar date of a (fractional) day of year, rounded to whole days."""
    return (datetime(year, 1, 1) + timedelta(days=round(float(doy) - 1))).date()
