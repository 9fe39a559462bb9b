# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
"""
Loading and validation of vegetation-index observations for one site.

Example:

    ```python
    from phenoseason.observations import read_series

    series = read_series("ndvi.csv", site="US-Ha1")
    series = filter_by_year_range(series, 2018, 2020)
    ```
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Literal, Mapping, NamedTuple

import geopandas as gpd
import numpy as np
import pandas as pd

from phenoseason.exceptions import ValidationError

logger = logging.getLogger(__name__)

VALUE_RANGE = (-1.0, 1.0)
"""Physically plausible range of a normalized two-band index."""

OutOfRange = Literal["clip", "drop", "raise"]


class Observation(NamedTuple):
    """Single vegetation-index measurement."""

    timestamp: date
    value: float
    source: str


@dataclass(frozen=True)
class Series:
    """Chronologically ordered observations of one site."""

    site: str
    observations: tuple[Observation, ...]
    _values: np.ndarray = field(init=False, repr=False, compare=False)
    _timestamps: pd.DatetimeIndex = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(
            self, "_values", np.array([o.value for o in self.observations], dtype=float)
        )
        object.__setattr__(
            self,
            "_timestamps",
            pd.DatetimeIndex([pd.Timestamp(o.timestamp) for o in self.observations]),
        )

    def __len__(self):
        return len(self.observations)

    def __iter__(self):
        return iter(self.observations)

    @property
    def values(self) -> np.ndarray:
        return self._values.copy()

    @property
    def timestamps(self) -> pd.DatetimeIndex:
        return self._timestamps

    @property
    def years(self) -> np.ndarray:
        """Calendar year of every observation."""
        return np.asarray(self._timestamps.year)

    @property
    def day_of_year(self) -> np.ndarray:
        """Day of year of every observation within its own calendar year."""
        return np.asarray(self._timestamps.dayofyear, dtype=float)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "date": self._timestamps,
                "value": self._values,
                "sensor": [o.source for o in self.observations],
            }
        )


def _parse_date(raw, index: int) -> date:
    if raw is None or (isinstance(raw, float) and math.isnan(raw)):
        raise ValidationError(f"Row {index}: missing date")
    try:
        ts = pd.Timestamp(raw)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Row {index}: cannot parse date {raw!r}") from e
    if pd.isna(ts):
        raise ValidationError(f"Row {index}: missing date")
    return ts.date()


def _parse_value(raw, index: int) -> float:
    if raw is None:
        raise ValidationError(f"Row {index}: missing value")
    try:
        value = float(raw)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Row {index}: cannot parse value {raw!r}") from e
    if math.isnan(value):
        raise ValidationError(f"Row {index}: missing value")
    return value


def load(
    rows: Iterable[Mapping[str, Any]],
    site: str = "unknown",
    out_of_range: OutOfRange = "clip",
    date_column: str = "date",
    value_column: str = "value",
    source_column: str = "sensor",
) -> Series:
    """Validate raw rows and build a chronologically sorted series.

    Args:
        rows: Mappings with a date, a value and (optionally) a sensor tag.
        site: Identifier of the site the rows belong to.
        out_of_range: What to do with values outside [-1, 1]: clip them to
            the range, drop the row, or raise.
        date_column: Key of the date in each row.
        value_column: Key of the vegetation-index value in each row.
        source_column: Key of the sensor tag in each row.

    Raises:
        ValidationError: When a row has no parseable date or value.
    """
    observations = []
    n_flagged = 0
    for index, row in enumerate(rows):
        timestamp = _parse_date(row.get(date_column), index)
        value = _parse_value(row.get(value_column), index)
        source = row.get(source_column)
        source = "unknown" if source is None or pd.isna(source) else str(source)

        lo, hi = VALUE_RANGE
        if not lo <= value <= hi:
            n_flagged += 1
            if out_of_range == "raise":
                raise ValidationError(
                    f"Row {index}: value {value} outside plausible range {VALUE_RANGE}"
                )
            if out_of_range == "drop":
                continue
            value = min(max(value, lo), hi)

        observations.append(Observation(timestamp, value, source))

    if n_flagged:
        logger.warning(
            f"{n_flagged} values outside {VALUE_RANGE} for site {site} ({out_of_range})"
        )

    observations.sort(key=lambda o: o.timestamp)
    logger.debug(f"Loaded {len(observations)} observations for site {site}")
    return Series(site=site, observations=tuple(observations))


def filter_by_year_range(series: Series, min_year: int, max_year: int) -> Series:
    """Sub-series with observations in [min_year, max_year] (inclusive)."""
    kept = tuple(
        o for o in series.observations if min_year <= o.timestamp.year <= max_year
    )
    return Series(site=series.site, observations=kept)


def read_series(
    path: Path | str,
    site: str = "unknown",
    out_of_range: OutOfRange = "clip",
    date_column: str = "date",
    value_column: str = "value",
    source_column: str = "sensor",
) -> Series:
    """Read a vegetation-index time series from a CSV file."""
    df = pd.read_csv(path)
    if date_column not in df.columns or value_column not in df.columns:
        raise ValidationError(
            f"{path} should have columns {date_column!r} and {value_column!r}, "
            f"found {list(df.columns)}"
        )
    # Keep raw strings so that unparseable dates are reported per row
    return load(
        df.to_dict("records"),
        site=site,
        out_of_range=out_of_range,
        date_column=date_column,
        value_column=value_column,
        source_column=source_column,
    )


def load_sites(path: Path | str) -> gpd.GeoDataFrame:
    """Read site metadata into a GeoDataFrame of points.

    Expects columns `site_id`, `longitude`, `latitude` and optionally
    `land_cover`.
    """
    df = pd.read_csv(path)
    missing = {"site_id", "longitude", "latitude"} - set(df.columns)
    if missing:
        raise ValidationError(f"{path} is missing columns {sorted(missing)}")
    geometry = gpd.points_from_xy(df.pop("longitude"), df.pop("latitude"))
    return gpd.GeoDataFrame(df, geometry=geometry, crs="EPSG:4326")
