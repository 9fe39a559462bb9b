# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
import numpy as np
import pandas as pd

from phenoseason.models.double_logistic import CurveParameters, double_logistic
from phenoseason.observations import Series, load

TRUE_PARAMS = CurveParameters(
    vmin=0.2, vamp=0.6, sos=100.0, rsp=0.1, eos=300.0, rau=0.1
)


def synthetic_rows(
    years=(2018, 2020),
    params=TRUE_PARAMS,
    noise=0.02,
    cadence=8,
    seed=0,
    sensor="MOD13Q1",
):
    """Generate observations of the same curve in every year plus noise."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range(f"{years[0]}-01-01", f"{years[1]}-12-31", freq=f"{cadence}D")
    values = double_logistic(np.asarray(dates.dayofyear, dtype=float), *params)
    values = values + rng.normal(0, noise, size=len(dates))
    return pd.DataFrame(
        {"date": dates.strftime("%Y-%m-%d"), "value": values, "sensor": sensor}
    )


def synthetic_series(site="synthetic", **kwargs) -> Series:
    """Series with one double-logistic season per year, see `synthetic_rows`."""
    return load(synthetic_rows(**kwargs).to_dict("records"), site=site)


def synthetic_flux(season_lengths, slope=2.5, intercept=-300.0, noise=10.0, seed=0):
    """Annual carbon uptake that grows linearly with season length."""
    rng = np.random.default_rng(seed)
    years = [s.year for s in season_lengths]
    lengths = np.array([s.length_days for s in season_lengths])
    flux = intercept + slope * lengths + rng.normal(0, noise, size=len(lengths))
    return pd.DataFrame({"year": years, "flux": flux})
