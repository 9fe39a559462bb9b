# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
"""From a loaded series to yearly transition dates and season lengths."""
import logging
from collections.abc import Iterable
from typing import NamedTuple

from pydantic import BaseModel, Field

from phenoseason.exceptions import UndefinedTransitionError
from phenoseason.models.average_fit import AverageFit, AverageFitConfig, fit_average
from phenoseason.models.yearly_fit import YearFit, YearFitConfig, fit_years
from phenoseason.observations import Series
from phenoseason.season import SeasonLength, aggregate, season_table
from phenoseason.transitions import PhenoDates, TransitionConfig, dates_with_intervals
from phenoseason.utils import YearRange

logger = logging.getLogger(__name__)


class PipelineSettings(BaseModel):
    average_fit: AverageFitConfig = Field(default_factory=AverageFitConfig)
    year_fit: YearFitConfig = Field(default_factory=YearFitConfig)
    transitions: TransitionConfig = Field(default_factory=TransitionConfig)


class PhenologyResult(NamedTuple):
    average: AverageFit
    fits: dict[int, YearFit]
    pheno: dict[int, PhenoDates]
    skipped: dict[int, str]
    season_lengths: list[SeasonLength]

    def to_frame(self):
        return season_table(self.pheno, self.skipped)


def run_pipeline(
    series: Series,
    years: YearRange | Iterable[int],
    settings: PipelineSettings | None = None,
) -> PhenologyResult:
    """Fit the average curve, refine it per year and extract dates.

    A failing average fit propagates, since every year depends on it.
    Problems of a single year are recorded in `skipped`.
    """
    settings = settings or PipelineSettings()
    average = fit_average(series, settings.average_fit)

    yearly = fit_years(
        series,
        average.params,
        years,
        settings.year_fit,
        noise_scale=average.noise_scale,
    )

    skipped = dict(yearly.skipped)
    pheno = {}
    for year, fit in sorted(yearly.fits.items()):
        try:
            pheno[year] = dates_with_intervals(fit, settings.transitions)
        except UndefinedTransitionError as e:
            skipped[year] = f"{type(e).__name__}: {e}"
            logger.warning(f"Skipping {year}: {e}")

    logger.info(f"Transition dates for {len(pheno)} years, {len(skipped)} skipped")
    return PhenologyResult(
        average=average,
        fits=yearly.fits,
        pheno=pheno,
        skipped=dict(sorted(skipped.items())),
        season_lengths=aggregate(pheno),
    )
