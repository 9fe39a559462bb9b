# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
"""Relate growing-season length to annual carbon uptake."""
import logging
from collections.abc import Sequence
from pathlib import Path

import numpy as np
import pandas as pd
from pydantic import BaseModel
from scipy.stats import pearsonr
from sklearn.linear_model import LinearRegression
from sklearn.metrics import r2_score

from phenoseason.exceptions import InsufficientDataError, ValidationError
from phenoseason.season import SeasonLength

logger = logging.getLogger(__name__)


class RegressionSummary(BaseModel):
    """Ordinary least squares of flux on season length."""

    slope: float
    """Flux change per extra day of growing season."""
    intercept: float
    r2: float
    r: float
    p_value: float
    n: int


def read_flux(path: Path | str, year_column="year", flux_column="flux") -> pd.DataFrame:
    """Read an annual flux table with one row per year."""
    df = pd.read_csv(path)
    missing = {year_column, flux_column} - set(df.columns)
    if missing:
        raise ValidationError(f"{path} is missing columns {sorted(missing)}")
    return df[[year_column, flux_column]].rename(
        columns={year_column: "year", flux_column: "flux"}
    )


def regress_season_length(
    season_lengths: Sequence[SeasonLength], flux: pd.DataFrame
) -> RegressionSummary:
    """Fit flux = intercept + slope * length_days over years present in both.

    Raises:
        InsufficientDataError: When fewer than 3 years are in common.
    """
    lengths = pd.DataFrame(season_lengths, columns=list(SeasonLength._fields))
    df = lengths.merge(flux, on="year", how="inner").dropna()
    if len(df) < 3:
        raise InsufficientDataError(
            f"{len(df)} years with both season length and flux, at least 3 required"
        )

    X = df[["length_days"]].to_numpy()
    y = df["flux"].to_numpy()
    model = LinearRegression().fit(X, y)
    r, p_value = pearsonr(df["length_days"], df["flux"])

    summary = RegressionSummary(
        slope=float(model.coef_[0]),
        intercept=float(model.intercept_),
        r2=float(r2_score(y, model.predict(X))),
        r=float(r),
        p_value=float(p_value),
        n=len(df),
    )
    logger.info(f"Season length vs flux: {summary}")
    if np.isnan(summary.r):
        logger.warning("Correlation undefined, season length or flux is constant")
    return summary
