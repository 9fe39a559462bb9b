# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
"""Fit one season curve to all years of a series at once.

The result is the starting point and prior for the per-year fits.
"""
import logging
from typing import Literal, NamedTuple

import numpy as np
from joblib import Parallel, delayed
from numpy.typing import ArrayLike
from pydantic import BaseModel, Field, PositiveFloat, PositiveInt
from scipy.optimize import least_squares
from sklearn.base import BaseEstimator, RegressorMixin
from sklearn.utils.validation import check_array, check_is_fitted, check_X_y

from phenoseason.config import CONFIG
from phenoseason.exceptions import ConvergenceError, InsufficientDataError
from phenoseason.models.core_models import CORE_MODELS, CurveModel
from phenoseason.models.double_logistic import CurveParameters
from phenoseason.models.loss_functions import rss
from phenoseason.observations import Series

logger = logging.getLogger(__name__)


class RestartResult(NamedTuple):
    params: CurveParameters
    rss: float
    converged: bool
    status: int
    nfev: int


def initial_guesses(
    core_model: CurveModel, y: np.ndarray, n_restarts: int, random_state: int
) -> list[CurveParameters]:
    """Starting points for the optimizer restarts.

    The first start takes baseline and amplitude from the data and timings
    from the model defaults; the others are drawn from the model's init
    ranges with one spawned seed per restart.
    """
    lo, hi = np.percentile(y, [5, 95])
    first = CurveParameters(*core_model.params_defaults)._replace(
        vmin=float(lo), vamp=max(float(hi - lo), 0.05)
    )
    guesses = [core_model.clip(first)]

    children = np.random.SeedSequence(random_state).spawn(n_restarts - 1)
    for child in children:
        rng = np.random.default_rng(child)
        guess = CurveParameters(*(rng.uniform(a, b) for a, b in core_model.init_ranges))
        if guess.sos > guess.eos:
            # The two timings are interchangeable for the optimizer
            guess = guess._replace(sos=guess.eos, eos=guess.sos)
        guesses.append(core_model.clip(guess))
    return guesses


def fit_once(
    core_model: CurveModel,
    x0: CurveParameters,
    t: np.ndarray,
    y: np.ndarray,
    max_nfev: int,
    loss: str = "soft_l1",
    f_scale: float = 0.05,
) -> RestartResult:
    """Single bounded least-squares fit from x0."""

    def residuals(p):
        return core_model.predict(t, *p) - y

    res = least_squares(
        residuals,
        x0=np.asarray(x0, dtype=float),
        bounds=(core_model.lower_bounds, core_model.upper_bounds),
        loss=loss,
        f_scale=f_scale,
        max_nfev=max_nfev,
    )
    params = CurveParameters(*map(float, res.x))
    # status 0 means max_nfev was exhausted
    converged = bool(res.status > 0 and params.sos < params.eos)
    return RestartResult(params, rss(res.fun), converged, int(res.status), int(res.nfev))


class DoubleLogisticRegressor(RegressorMixin, BaseEstimator):
    """SKlearn wrapper around a multi-start scipy least-squares fit.

    Fits a season curve of the form f(day_of_year, *params) to observations
    from any number of years, all sharing the same shape.
    """

    def __init__(
        self,
        n_restarts=8,
        max_nfev=2000,
        loss="soft_l1",
        f_scale=0.05,
        random_state=0,
        n_jobs=1,
        core_model="double_logistic",
    ):
        self.n_restarts = n_restarts
        self.max_nfev = max_nfev
        self.loss = loss
        self.f_scale = f_scale
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.core_model = core_model

    def fit(self, X: ArrayLike, y: ArrayLike):
        """Fit the curve to the available observations.

        Parameters:
            X: 2D Array of shape (n_samples, 1) with the day of year of
                each observation.
            y: 1D Array of length n_samples with the vegetation index.

        Returns:
            Fitted model

        Raises:
            ConvergenceError: When none of the restarts converged.
        """
        X, y = check_X_y(X, y, y_numeric=True)
        t = X[:, 0]
        core_model = CORE_MODELS[self.core_model]

        starts = initial_guesses(core_model, y, self.n_restarts, self.random_state)
        restarts = Parallel(n_jobs=self.n_jobs)(
            delayed(fit_once)(
                core_model, x0, t, y, self.max_nfev, self.loss, self.f_scale
            )
            for x0 in starts
        )

        converged = [(r.rss, i) for i, r in enumerate(restarts) if r.converged]
        logger.info(f"{len(converged)} of {len(restarts)} restarts converged")
        if not converged:
            raise ConvergenceError(
                f"None of {len(restarts)} restarts converged within "
                f"{self.max_nfev} function evaluations"
            )

        # Lowest RSS wins, ties go to the earliest restart
        _, best = min(converged)
        self.core_params_ = restarts[best].params
        self.rss_ = restarts[best].rss
        self.n_converged_ = len(converged)
        self.restarts_ = restarts
        return self

    def predict(self, X: ArrayLike):
        """Predict the vegetation index at the given days of year.

        Parameters:
            X: array-like, shape (n_samples, 1).

        Returns:
            y: array-like, shape (n_samples,)
        """
        check_is_fitted(self, "core_params_")
        X = check_array(X)
        return CORE_MODELS[self.core_model].predict(X[:, 0], *self.core_params_)


class AverageFitConfig(BaseModel):
    """Settings of the all-years fit."""

    core_model: Literal["double_logistic"] = "double_logistic"
    n_restarts: PositiveInt = 8
    max_nfev: PositiveInt = 2000
    """Function evaluation budget per restart."""
    loss: Literal["linear", "soft_l1", "huber", "cauchy"] = "soft_l1"
    f_scale: PositiveFloat = 0.05
    noise_floor: PositiveFloat = 0.005
    """Smallest noise scale handed to the per-year fits."""
    random_state: int = Field(default_factory=lambda: CONFIG.seed)
    n_jobs: int = Field(default_factory=lambda: CONFIG.n_jobs)


class AverageFit(NamedTuple):
    params: CurveParameters
    noise_scale: float
    """Robust (MAD based) residual scale."""
    rss: float
    n_converged: int
    n_observations: int


def fit_average(series: Series, config: AverageFitConfig | None = None) -> AverageFit:
    """Fit a single curve to all years of the series by day of year.

    Raises:
        InsufficientDataError: When there are fewer observations than
            curve parameters.
        ConvergenceError: When no restart converged.
    """
    config = config or AverageFitConfig()
    core_model = CORE_MODELS[config.core_model]
    if len(series) < len(core_model.params_names):
        raise InsufficientDataError(
            f"{len(series)} observations cannot constrain "
            f"{len(core_model.params_names)} parameters"
        )

    X = series.day_of_year.reshape(-1, 1)
    y = series.values
    regressor = DoubleLogisticRegressor(
        n_restarts=config.n_restarts,
        max_nfev=config.max_nfev,
        loss=config.loss,
        f_scale=config.f_scale,
        random_state=config.random_state,
        n_jobs=config.n_jobs,
        core_model=config.core_model,
    ).fit(X, y)

    residuals = y - regressor.predict(X)
    mad = np.median(np.abs(residuals - np.median(residuals)))
    noise_scale = max(1.4826 * float(mad), config.noise_floor)
    logger.info(
        f"Average fit for {series.site}: {regressor.core_params_}, "
        f"noise scale {noise_scale:.4f}"
    )
    return AverageFit(
        params=regressor.core_params_,
        noise_scale=noise_scale,
        rss=float(regressor.rss_),
        n_converged=regressor.n_converged_,
        n_observations=len(series),
    )
