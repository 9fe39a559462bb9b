# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
"""Green-up and dormancy dates from fitted season curves.

Two methods are available and give dates that differ by days, so the
method is part of the configuration:

- ``threshold``: the curve crosses a fixed fraction of the seasonal
  amplitude (50% by default) on the rising and on the falling limb.
- ``curvature``: extremes of the rate of change of curvature of the
  curve, i.e. where the rise starts and where the fall levels off.
"""
import logging
from datetime import date
from typing import Literal

import numpy as np
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
    model_validator,
)
from scipy.optimize import brentq

from phenoseason.exceptions import UndefinedTransitionError
from phenoseason.models.double_logistic import (
    CurveParameters,
    curvature_change_rate,
    derivatives,
    evaluate,
)
from phenoseason.models.yearly_fit import YearFit
from phenoseason.utils import YearWindow, from_doy

logger = logging.getLogger(__name__)


class TransitionConfig(BaseModel):
    method: Literal["threshold", "curvature"] = "threshold"
    threshold: float = Field(default=0.5, gt=0, lt=1)
    """Fraction of the seasonal amplitude that defines a transition."""
    min_amplitude: PositiveFloat = 0.05
    """Smallest rise or fall that counts as a seasonal cycle."""
    pad_days: NonNegativeInt = 30
    grid_step: PositiveFloat = 0.1
    """Resolution in days of the search grid."""
    credible_mass: float = Field(default=0.95, gt=0, lt=1)
    n_samples: PositiveInt = 200
    """Number of posterior draws used for the credible intervals."""


class PhenoDates(BaseModel):
    """Transition dates of one year as (fractional) day of year."""

    model_config = ConfigDict(frozen=True)

    year: int
    greenup: float
    dormancy: float
    greenup_low: float | None = None
    greenup_high: float | None = None
    dormancy_low: float | None = None
    dormancy_high: float | None = None
    method: str = "threshold"

    @model_validator(mode="after")
    def _must_increase(self):
        assert (
            self.greenup < self.dormancy
        ), f"greenup ({self.greenup}) should be before dormancy ({self.dormancy})"
        return self

    @property
    def greenup_date(self) -> date:
        return from_doy(self.greenup, self.year)

    @property
    def dormancy_date(self) -> date:
        return from_doy(self.dormancy, self.year)


def _threshold_dates(params, t, f, peak, threshold):
    level_up = f[: peak + 1].min() + threshold * (f[peak] - f[: peak + 1].min())
    level_down = f[peak:].min() + threshold * (f[peak] - f[peak:].min())

    i = np.nonzero(f[:peak] < level_up)[0][-1]
    greenup = brentq(lambda x: float(evaluate(params, x)) - level_up, t[i], t[i + 1])

    j = peak + np.nonzero(f[peak:] < level_down)[0][0]
    dormancy = brentq(
        lambda x: float(evaluate(params, x)) - level_down, t[j - 1], t[j]
    )
    return float(greenup), float(dormancy)


def _curvature_dates(params, t, peak):
    d1, _, _ = derivatives(params, t)
    dk = curvature_change_rate(params, t)

    rise = int(np.argmax(d1[: peak + 1]))
    fall = peak + int(np.argmin(d1[peak:]))
    greenup_index = int(np.argmax(dk[: rise + 1]))
    dormancy_index = fall + int(np.argmin(dk[fall:]))
    if greenup_index == 0 or dormancy_index == len(t) - 1:
        raise UndefinedTransitionError("Transition falls outside the year window")
    return float(t[greenup_index]), float(t[dormancy_index])


def extract_dates(
    params: CurveParameters, year: int, config: TransitionConfig | None = None
) -> PhenoDates:
    """Green-up and dormancy of a single curve.

    Raises:
        UndefinedTransitionError: When the curve has no seasonal cycle
            inside the year window.
    """
    config = config or TransitionConfig()
    lo, hi = YearWindow.for_year(year, config.pad_days).doy_bounds
    t = np.arange(lo, hi + config.grid_step / 2, config.grid_step)
    f = np.asarray(evaluate(params, t))

    peak = int(np.argmax(f))
    if peak == 0 or peak == len(t) - 1:
        raise UndefinedTransitionError(f"Curve of {year} is monotone within its window")
    rise = f[peak] - f[: peak + 1].min()
    fall = f[peak] - f[peak:].min()
    if min(rise, fall) < config.min_amplitude:
        raise UndefinedTransitionError(
            f"Curve of {year} has no seasonal cycle "
            f"(rise {rise:.3f}, fall {fall:.3f}, minimum {config.min_amplitude})"
        )

    if config.method == "threshold":
        greenup, dormancy = _threshold_dates(params, t, f, peak, config.threshold)
    else:
        greenup, dormancy = _curvature_dates(params, t, peak)

    if not greenup < dormancy:
        raise UndefinedTransitionError(
            f"Green-up ({greenup:.1f}) not before dormancy ({dormancy:.1f}) in {year}"
        )
    return PhenoDates(
        year=year, greenup=greenup, dormancy=dormancy, method=config.method
    )


def dates_with_intervals(
    fit: YearFit, config: TransitionConfig | None = None
) -> PhenoDates:
    """Dates of the MAP curve with credible intervals from posterior draws.

    Draws without a detectable cycle are left out of the intervals. The
    intervals always contain the MAP dates.

    Raises:
        UndefinedTransitionError: When the MAP curve or all draws have no
            seasonal cycle.
    """
    config = config or TransitionConfig()
    point = extract_dates(fit.params, fit.year, config)

    n = min(config.n_samples, len(fit.samples))
    picks = np.unique(np.linspace(0, len(fit.samples) - 1, n).astype(int))
    draws = []
    for x in fit.samples[picks]:
        try:
            d = extract_dates(CurveParameters(*x), fit.year, config)
        except UndefinedTransitionError:
            continue
        draws.append((d.greenup, d.dormancy))

    if not draws:
        raise UndefinedTransitionError(
            f"No posterior draw of {fit.year} has a seasonal cycle"
        )
    if len(draws) < len(picks) / 2:
        logger.warning(
            f"Only {len(draws)} of {len(picks)} draws of {fit.year} have a seasonal cycle"
        )

    tail = (1 - config.credible_mass) / 2 * 100
    low, high = np.percentile(np.array(draws), [tail, 100 - tail], axis=0)
    return point.model_copy(
        update=dict(
            greenup_low=min(float(low[0]), point.greenup),
            greenup_high=max(float(high[0]), point.greenup),
            dormancy_low=min(float(low[1]), point.dormancy),
            dormancy_high=max(float(high[1]), point.dormancy),
        )
    )
