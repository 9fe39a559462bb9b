# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
from datetime import date

import pandas as pd
import pytest

from phenoseason.season import PHENO_COLUMNS, SeasonLength, aggregate, season_table
from phenoseason.transitions import PhenoDates


@pytest.fixture
def pheno():
    return {
        2020: PhenoDates(year=2020, greenup=105.0, dormancy=298.0),
        2018: PhenoDates(
            year=2018,
            greenup=100.0,
            dormancy=300.0,
            greenup_low=98.0,
            greenup_high=102.0,
            dormancy_low=296.0,
            dormancy_high=303.0,
        ),
    }


def test_aggregate(pheno):
    assert aggregate(pheno) == [SeasonLength(2018, 200.0), SeasonLength(2020, 193.0)]


def test_aggregate_empty():
    assert aggregate({}) == []


def test_season_table(pheno):
    df = season_table(pheno, {2019: "InsufficientDataError: 2 observations in 2019"})

    assert df.columns.tolist() == PHENO_COLUMNS + ["length_days", "status"]
    assert df.year.tolist() == [2018, 2019, 2020]
    assert df.status.tolist() == [
        "ok",
        "skipped: InsufficientDataError: 2 observations in 2019",
        "ok",
    ]

    first = df.iloc[0]
    assert first.greenup == date(2018, 4, 10)
    assert first.dormancy_high == date(2018, 10, 30)
    assert first.length_days == 200.0


def test_season_table_skipped_year_is_empty(pheno):
    df = season_table(pheno, {2019: "ConvergenceError: no"})

    skipped = df[df.year == 2019].iloc[0]
    assert pd.isna(skipped.greenup)
    assert pd.isna(skipped.length_days)


def test_season_table_without_intervals(pheno):
    df = season_table(pheno)

    last = df.iloc[-1]
    assert last.year == 2020
    assert pd.isna(last.greenup_low)
    assert last.greenup == date(2020, 4, 14)
