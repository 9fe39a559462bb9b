# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
"""Per-year Bayesian refinement of the season curve.

Each year is fitted on its own window of observations, with a Gaussian
prior centred on the all-years (average) fit. Sparse years are pulled
towards the average curve and get wide credible intervals for the
parameters the data cannot constrain.

Example:

    ```python
    average = fit_average(series)
    yearly = fit_years(series, average.params, YearRange(2018, 2020),
                       noise_scale=average.noise_scale)
    yearly.fits[2019].params
    yearly.skipped  # {year: reason}
    ```
"""
import logging
from collections.abc import Iterable
from typing import Literal, NamedTuple

import numpy as np
from joblib import Parallel, delayed
from pydantic import BaseModel, Field, NonNegativeInt, PositiveFloat, PositiveInt
from scipy.optimize import minimize

from phenoseason.config import CONFIG
from phenoseason.exceptions import ConvergenceError, InsufficientDataError
from phenoseason.models.core_models import CORE_MODELS, CurveModel
from phenoseason.models.double_logistic import CurveParameters, log_likelihood
from phenoseason.models.sampler import run_chains
from phenoseason.observations import Series
from phenoseason.utils import YearRange, YearWindow, to_doy

logger = logging.getLogger(__name__)

# Stand-in for an infinite objective, L-BFGS-B needs finite values
_OUTSIDE_SUPPORT = 1e10


class YearFitConfig(BaseModel):
    """Settings of the per-year fits."""

    core_model: Literal["double_logistic"] = "double_logistic"
    pad_days: NonNegativeInt = 30
    """Days of the neighbouring years included on both sides of the year."""
    min_observations: PositiveInt = 5
    """Minimum number of observations within the calendar year."""
    residual_model: Literal["student_t", "gaussian"] = "student_t"
    noise_scale: PositiveFloat = 0.03
    """Used when no noise scale is passed explicitly."""
    prior_width: PositiveFloat = 1.0
    """Multiplier of the model prior scales."""
    max_iter: PositiveInt = 500
    """Iteration budget of the MAP optimization."""
    n_chains: int = Field(default=4, ge=2)
    n_draws: int = Field(default=1000, ge=2)
    n_burn: NonNegativeInt = 1000
    start_spread: PositiveFloat = 0.2
    """Spread of the chain starting points as a fraction of the prior scales."""
    rhat_threshold: float = Field(default=1.1, gt=1)
    max_retries: NonNegativeInt = 1
    """Reruns of the sampler with twice the draws and burn-in when R-hat is too high."""
    seed: int = Field(default_factory=lambda: CONFIG.seed)
    n_jobs: int = Field(default_factory=lambda: CONFIG.n_jobs)


class YearFit(NamedTuple):
    year: int
    params: CurveParameters
    """Maximum a posteriori parameters."""
    samples: np.ndarray
    """Pooled posterior draws, shape (n_samples, n_params)."""
    n_observations: int
    """Observations within the calendar year."""
    acceptance: float
    rhat: np.ndarray

    def credible_interval(
        self, mass: float = 0.95
    ) -> tuple[CurveParameters, CurveParameters]:
        """Equal-tailed credible bounds of every parameter."""
        tail = (1 - mass) / 2 * 100
        low, high = np.percentile(self.samples, [tail, 100 - tail], axis=0)
        return CurveParameters(*map(float, low)), CurveParameters(*map(float, high))


class YearlyFits(NamedTuple):
    fits: dict[int, YearFit]
    skipped: dict[int, str]
    """Reason per year that could not be fitted."""


def log_posterior(
    x: np.ndarray,
    t: np.ndarray,
    y: np.ndarray,
    core_model: CurveModel,
    prior_center: np.ndarray,
    prior_scales: np.ndarray,
    noise_scale: float,
    residual_model: str,
) -> float:
    """Unnormalized log posterior of curve parameters x."""
    params = CurveParameters(*x)
    if params.sos >= params.eos:
        return -np.inf
    if np.any(x < core_model.lower_bounds) or np.any(x > core_model.upper_bounds):
        return -np.inf
    log_prior = -0.5 * np.sum(((x - prior_center) / prior_scales) ** 2)
    return log_prior + log_likelihood(params, t, y, noise_scale, residual_model)


def find_map(log_prob, x0: CurveParameters, core_model: CurveModel, max_iter: int):
    """Maximum a posteriori parameters, starting from x0.

    Raises:
        ConvergenceError: When the iteration budget is exhausted.
    """

    def objective(x):
        lp = log_prob(x)
        return -lp if np.isfinite(lp) else _OUTSIDE_SUPPORT

    res = minimize(
        objective,
        x0=np.asarray(x0, dtype=float),
        method="L-BFGS-B",
        bounds=core_model.params_bounds,
        options={"maxiter": max_iter},
    )
    # status 1: iteration or function evaluation limit reached
    if res.status == 1 or not np.isfinite(log_prob(res.x)):
        raise ConvergenceError(f"MAP search did not converge: {res.message}")
    if not res.success:
        logger.debug(f"MAP search stopped early: {res.message}")
    return CurveParameters(*map(float, res.x))


def fit_year(
    series: Series,
    initial: CurveParameters,
    year: int,
    config: YearFitConfig | None = None,
    noise_scale: float | None = None,
) -> YearFit:
    """Refine the curve of a single year.

    Args:
        series: Observations of all years.
        initial: Average fit, used as starting point and prior centre.
        year: Year to fit.
        config: Fit settings.
        noise_scale: Residual scale; defaults to `config.noise_scale`.

    Raises:
        InsufficientDataError: When the year has too few observations.
        ConvergenceError: When the MAP search or the sampler fails.
    """
    config = config or YearFitConfig()
    core_model = CORE_MODELS[config.core_model]
    noise_scale = noise_scale or config.noise_scale

    n_in_year = int(np.sum(series.years == year))
    if n_in_year < config.min_observations:
        raise InsufficientDataError(
            f"{n_in_year} observations in {year}, "
            f"at least {config.min_observations} required"
        )

    window = YearWindow.for_year(year, config.pad_days)
    lo, hi = window.doy_bounds
    t_all = np.asarray(to_doy(series.timestamps, year), dtype=float)
    in_window = (t_all >= lo) & (t_all <= hi)
    t, y = t_all[in_window], series.values[in_window]

    prior_scales = np.asarray(core_model.prior_scales) * config.prior_width
    start = core_model.clip(initial)

    def log_prob(x):
        return log_posterior(
            np.asarray(x, dtype=float),
            t,
            y,
            core_model,
            np.asarray(start, dtype=float),
            prior_scales,
            noise_scale,
            config.residual_model,
        )

    map_params = find_map(log_prob, start, core_model, config.max_iter)

    rng = np.random.default_rng([config.seed, year])
    n_draws, n_burn = config.n_draws, config.n_burn
    for attempt in range(config.max_retries + 1):
        if attempt:
            n_draws, n_burn = 2 * n_draws, 2 * n_burn
            logger.info(
                f"Chains of {year} did not mix (R-hat {worst:.3f}), "
                f"sampling again with {n_draws} draws"
            )
        sampled = run_chains(
            log_prob,
            np.asarray(map_params),
            step_sizes=prior_scales * 0.1,
            n_chains=config.n_chains,
            n_draws=n_draws,
            n_burn=n_burn,
            rng=rng,
            spread=prior_scales * config.start_spread,
        )
        worst = float(np.max(sampled.rhat))
        if worst <= config.rhat_threshold:
            break
    else:
        raise ConvergenceError(
            f"Chains did not mix in {year}: R-hat {worst:.3f} > {config.rhat_threshold}"
        )

    logger.info(
        f"Fitted {year} on {len(t)} observations: {map_params}, "
        f"acceptance {sampled.acceptance:.2f}"
    )
    return YearFit(
        year=year,
        params=map_params,
        samples=sampled.samples,
        n_observations=n_in_year,
        acceptance=sampled.acceptance,
        rhat=sampled.rhat,
    )


def _fit_or_skip(series, initial, year, config, noise_scale):
    try:
        return year, fit_year(series, initial, year, config, noise_scale), None
    except (InsufficientDataError, ConvergenceError) as e:
        reason = f"{type(e).__name__}: {e}"
        logger.warning(f"Skipping {year}: {reason}")
        return year, None, reason


def fit_years(
    series: Series,
    initial: CurveParameters,
    years: YearRange | Iterable[int],
    config: YearFitConfig | None = None,
    noise_scale: float | None = None,
) -> YearlyFits:
    """Fit every year independently; failed years are reported as skipped."""
    config = config or YearFitConfig()
    years = years.range if isinstance(years, YearRange) else list(years)

    outcomes = Parallel(n_jobs=config.n_jobs)(
        delayed(_fit_or_skip)(series, initial, year, config, noise_scale)
        for year in years
    )

    fits = {year: fit for year, fit, _ in outcomes if fit is not None}
    skipped = {year: reason for year, _, reason in outcomes if reason is not None}
    return YearlyFits(fits, skipped)
