# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
from collections.abc import Callable
from dataclasses import dataclass

from phenoseason.models.double_logistic import CurveParameters, double_logistic


@dataclass
class CurveModel:
    predict: Callable
    params_names: tuple[str, ...]
    params_defaults: tuple[float, ...]
    params_bounds: tuple[tuple[float, float], ...]
    prior_scales: tuple[float, ...]
    """Standard deviation of the prior around the average fit, per parameter."""
    init_ranges: tuple[tuple[float, float], ...]
    """Ranges to draw random optimizer starts from."""

    @property
    def lower_bounds(self):
        return tuple(lo for lo, _ in self.params_bounds)

    @property
    def upper_bounds(self):
        return tuple(hi for _, hi in self.params_bounds)

    def clip(self, params):
        """Move params inside the parameter bounds."""
        return CurveParameters(
            *(min(max(p, lo), hi) for p, (lo, hi) in zip(params, self.params_bounds))
        )


DOUBLE_LOGISTIC = CurveModel(
    predict=double_logistic,
    params_names=CurveParameters._fields,
    params_defaults=(0.2, 0.5, 120.0, 0.1, 280.0, 0.1),
    params_bounds=(
        (-1.0, 1.0),
        (0.0, 2.0),
        (1.0, 366.0),
        (0.01, 1.0),
        (1.0, 366.0),
        (0.01, 1.0),
    ),
    prior_scales=(0.1, 0.2, 20.0, 0.05, 20.0, 0.05),
    init_ranges=(
        (0.0, 0.4),
        (0.2, 0.8),
        (60.0, 200.0),
        (0.03, 0.3),
        (200.0, 340.0),
        (0.03, 0.3),
    ),
)


CORE_MODELS = {
    "double_logistic": DOUBLE_LOGISTIC,
}
