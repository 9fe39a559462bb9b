# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
from collections.abc import Mapping
from typing import NamedTuple

import pandas as pd

from phenoseason.transitions import PhenoDates
from phenoseason.utils import from_doy

PHENO_COLUMNS = [
    "year",
    "greenup",
    "dormancy",
    "greenup_low",
    "greenup_high",
    "dormancy_low",
    "dormancy_high",
]


class SeasonLength(NamedTuple):
    year: int
    length_days: float


def aggregate(pheno_by_year: Mapping[int, PhenoDates]) -> list[SeasonLength]:
    """Growing-season length of every year that has transition dates."""
    return [
        SeasonLength(year, pheno.dormancy - pheno.greenup)
        for year, pheno in sorted(pheno_by_year.items())
    ]


def _as_date(doy, year):
    return None if doy is None else from_doy(doy, year)


def season_table(
    pheno_by_year: Mapping[int, PhenoDates], skipped: Mapping[int, str] | None = None
) -> pd.DataFrame:
    """One row per year with calendar dates, season length and status.

    Skipped years keep empty date columns and a `skipped: <reason>`
    status.
    """
    skipped = skipped or {}
    lengths = dict(aggregate(pheno_by_year))
    records = []
    for year in sorted(set(pheno_by_year) | set(skipped)):
        if year in pheno_by_year:
            p = pheno_by_year[year]
            record = {
                column: _as_date(getattr(p, column), year) for column in PHENO_COLUMNS[1:]
            }
            record.update(year=year, length_days=lengths[year], status="ok")
        else:
            record = dict.fromkeys(PHENO_COLUMNS[1:])
            record.update(
                year=year, length_days=None, status=f"skipped: {skipped[year]}"
            )
        records.append(record)
    return pd.DataFrame.from_records(
        records, columns=PHENO_COLUMNS + ["length_days", "status"]
    )
