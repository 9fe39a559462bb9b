# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
"""Errors raised while building phenology products.

Errors that concern a single year (insufficient data, failed fit, no
detectable cycle) are caught at the year boundary and reported as skipped
years. Load errors and a failed average fit are fatal.
"""


class PhenoseasonError(Exception):
    """Base class for all phenoseason errors."""


class ValidationError(PhenoseasonError):
    """Input row or table could not be parsed."""


class ConvergenceError(PhenoseasonError):
    """Optimizer or sampler did not converge within its budget."""


class InsufficientDataError(PhenoseasonError):
    """Too few observations to fit."""


class UndefinedTransitionError(PhenoseasonError):
    """Fitted curve has no detectable seasonal cycle."""
