# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
import numpy as np
from scipy.special import gammaln

STUDENT_T_DF = 4.0


def rss(residuals):
    """Residual sum of squares."""
    residuals = np.asarray(residuals, dtype=float)
    return float(np.sum(residuals**2))


def gaussian_loglik(residuals, scale):
    """Log-likelihood of residuals under N(0, scale^2)."""
    residuals = np.asarray(residuals, dtype=float)
    n = residuals.size
    return float(
        -0.5 * np.sum((residuals / scale) ** 2) - n * np.log(scale * np.sqrt(2 * np.pi))
    )


def student_t_loglik(residuals, scale, df=STUDENT_T_DF):
    """Log-likelihood of residuals under a scaled Student-t distribution.

    Large residuals (clouds, snow, shadows) are penalised logarithmically
    instead of quadratically.
    """
    residuals = np.asarray(residuals, dtype=float)
    n = residuals.size
    norm = gammaln((df + 1) / 2) - gammaln(df / 2) - 0.5 * np.log(df * np.pi * scale**2)
    return float(
        n * norm - (df + 1) / 2 * np.sum(np.log1p((residuals / scale) ** 2 / df))
    )


LOSS_FUNCTIONS = {
    "gaussian": gaussian_loglik,
    "student_t": student_t_loglik,
}
