# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
from datetime import date

import numpy as np
import pytest
from scipy import stats

from phenoseason.models.double_logistic import (
    CurveParameters,
    curvature_change_rate,
    derivatives,
    evaluate,
    log_likelihood,
)
from phenoseason.models.loss_functions import gaussian_loglik, rss, student_t_loglik


def test_winter_baseline_and_summer_plateau(true_params):
    assert evaluate(true_params, 1) == pytest.approx(true_params.vmin, abs=1e-3)
    assert evaluate(true_params, 200) == pytest.approx(
        true_params.vmin + true_params.vamp, abs=1e-3
    )


def test_rises_then_falls(true_params):
    t = np.arange(1, 366)
    f = evaluate(true_params, t)
    peak = np.argmax(f)

    assert np.all(np.diff(f[: peak + 1]) >= 0)
    assert np.all(np.diff(f[peak:]) <= 0)


def test_inflection_at_half_amplitude(true_params):
    # Both transitions are far apart, so at sos the rise is half way
    assert evaluate(true_params, true_params.sos) == pytest.approx(0.5, abs=1e-3)


def test_evaluate_date_equals_day_of_year(true_params):
    # 2019-04-10 is day 100
    assert evaluate(true_params, date(2019, 4, 10)) == evaluate(true_params, 100)
    # December of the previous year counts back from day 1
    assert evaluate(true_params, date(2018, 12, 31), year=2019) == evaluate(
        true_params, 0
    )


def test_derivatives_match_finite_differences(true_params):
    t = np.arange(0, 366, 0.01)
    f = evaluate(true_params, t)
    d1, d2, d3 = derivatives(true_params, t)

    np.testing.assert_allclose(np.gradient(f, t)[1:-1], d1[1:-1], atol=1e-6)
    np.testing.assert_allclose(np.gradient(d1, t)[1:-1], d2[1:-1], atol=1e-7)
    np.testing.assert_allclose(np.gradient(d2, t)[1:-1], d3[1:-1], atol=1e-8)


def test_curvature_change_rate_extremes(true_params):
    t = np.arange(0, 366, 0.1)
    dk = curvature_change_rate(true_params, t)

    # Extremes of the curvature change rate of a logistic lie about
    # 2.29 / rate from its inflection point
    assert t[np.argmax(dk[t < true_params.sos])] == pytest.approx(77.1, abs=0.2)
    assert t[np.argmin(np.where(t > true_params.eos, dk, np.inf))] == pytest.approx(
        322.9, abs=0.2
    )


def test_gaussian_loglik_matches_scipy():
    residuals = np.array([-0.05, 0.0, 0.02, 0.1])

    expected = stats.norm.logpdf(residuals, scale=0.03).sum()

    assert gaussian_loglik(residuals, 0.03) == pytest.approx(expected)


def test_student_t_loglik_matches_scipy():
    residuals = np.array([-0.05, 0.0, 0.02, 0.1])

    expected = stats.t.logpdf(residuals, df=4, scale=0.03).sum()

    assert student_t_loglik(residuals, 0.03) == pytest.approx(expected)


def test_student_t_tolerates_outliers():
    clean = np.zeros(10)
    cloudy = clean.copy()
    cloudy[0] = -0.4

    gaussian_penalty = gaussian_loglik(clean, 0.02) - gaussian_loglik(cloudy, 0.02)
    student_penalty = student_t_loglik(clean, 0.02) - student_t_loglik(cloudy, 0.02)

    assert student_penalty < gaussian_penalty / 10


def test_rss():
    assert rss([1, -2, 0]) == 5


def test_log_likelihood_highest_at_truth(true_params):
    t = np.arange(1, 366, 8.0)
    y = evaluate(true_params, t)
    shifted = true_params._replace(sos=true_params.sos + 10)

    for residual_model in ("gaussian", "student_t"):
        assert log_likelihood(true_params, t, y, 0.02, residual_model) > log_likelihood(
            shifted, t, y, 0.02, residual_model
        )


def test_curve_parameters_names():
    assert CurveParameters._fields == ("vmin", "vamp", "sos", "rsp", "eos", "rau")
