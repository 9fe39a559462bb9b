# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
from datetime import date
from typing import NamedTuple

import numpy as np
from numpy.typing import ArrayLike
from scipy.special import expit

from phenoseason.models.loss_functions import LOSS_FUNCTIONS
from phenoseason.utils import to_doy


class CurveParameters(NamedTuple):
    """Parameters of a double-logistic season curve.

    Timings are days of year, rates are per day.
    """

    vmin: float
    """Dormant-season (winter) baseline."""
    vamp: float
    """Seasonal amplitude above the baseline."""
    sos: float
    """Inflection of the green-up rise."""
    rsp: float
    """Steepness of the green-up rise."""
    eos: float
    """Inflection of the senescence fall."""
    rau: float
    """Steepness of the senescence fall."""


def double_logistic(t, vmin=0.2, vamp=0.6, sos=120.0, rsp=0.1, eos=280.0, rau=0.1):
    """Vegetation index modelled as the difference of two logistic functions.

    Args:
        t: Day of year, scalar or array.
        vmin: Baseline value during dormancy.
        vamp: Amplitude of the season.
        sos: Day of year of the rising inflection point.
        rsp: Rate of the rise.
        eos: Day of year of the falling inflection point.
        rau: Rate of the fall.
    """
    t = np.asarray(t, dtype=float)
    return vmin + vamp * (expit(rsp * (t - sos)) - expit(rau * (t - eos)))


def _sigmoid_derivatives(t, center, rate):
    """First three time derivatives of expit(rate * (t - center))."""
    s = expit(rate * (t - center))
    ds = rate * s * (1 - s)
    d2s = rate * ds * (1 - 2 * s)
    d3s = rate**2 * ds * (1 - 6 * s + 6 * s**2)
    return ds, d2s, d3s


def derivatives(params: CurveParameters, t: ArrayLike):
    """First, second and third derivative of the curve at t."""
    vmin, vamp, sos, rsp, eos, rau = params
    t = np.asarray(t, dtype=float)
    rise = _sigmoid_derivatives(t, sos, rsp)
    fall = _sigmoid_derivatives(t, eos, rau)
    return tuple(vamp * (r - f) for r, f in zip(rise, fall))


def curvature_change_rate(params: CurveParameters, t: ArrayLike) -> np.ndarray:
    """Rate of change of the curvature K = f'' / (1 + f'^2)^(3/2)."""
    d1, d2, d3 = derivatives(params, t)
    z = 1 + d1**2
    return d3 / z**1.5 - 3 * d1 * d2**2 / z**2.5


def evaluate(params: CurveParameters, t, year: int | None = None):
    """Modelled vegetation index at t.

    t is a day of year (scalar or array). A date may be given instead
    when `year` says which year the day of year is counted from.
    """
    if isinstance(t, date):
        if year is None:
            year = t.year
        t = to_doy(t, year)
    return double_logistic(t, *params)


def log_likelihood(
    params: CurveParameters,
    t: ArrayLike,
    y: ArrayLike,
    noise_scale: float,
    residual_model: str = "student_t",
) -> float:
    """Log-likelihood of observations y at days t under the curve.

    Residuals are modelled as Student-t (default, heavy tailed to resist
    cloud contaminated observations) or Gaussian, both with scale
    `noise_scale`.
    """
    residuals = np.asarray(y, dtype=float) - double_logistic(t, *params)
    return LOSS_FUNCTIONS[residual_model](residuals, noise_scale)
