# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
import pytest

from phenoseason.dummy import TRUE_PARAMS, synthetic_rows, synthetic_series
from phenoseason.models.average_fit import AverageFitConfig, fit_average
from phenoseason.pipeline import run_pipeline
from phenoseason.utils import YearRange


### Synthetic data: the same double-logistic season every year,
### green-up at day 100, dormancy at day 300, noise sigma 0.02


@pytest.fixture(scope="session")
def true_params():
    return TRUE_PARAMS


@pytest.fixture(scope="session")
def series():
    return synthetic_series(years=(2018, 2020), noise=0.02, seed=42)


@pytest.fixture
def rows():
    return synthetic_rows(years=(2018, 2020), noise=0.02, seed=42)


@pytest.fixture(scope="session")
def average(series):
    return fit_average(series, AverageFitConfig(n_restarts=4, random_state=1))


@pytest.fixture(scope="session")
def pipeline_result(series):
    return run_pipeline(series, YearRange(2018, 2020))


@pytest.fixture
def sites_csv(tmp_path):
    path = tmp_path / "sites.csv"
    path.write_text(
        "site_id,longitude,latitude,land_cover\n"
        "US-Ha1,-72.17,42.54,DBF\n"
        "US-MMS,-86.41,39.32,DBF\n"
    )
    return path
