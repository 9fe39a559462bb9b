# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
from datetime import date

import pytest

from phenoseason.exceptions import ConvergenceError
from phenoseason.models.average_fit import AverageFitConfig
from phenoseason.models.yearly_fit import YearFitConfig
from phenoseason.observations import Series
from phenoseason.pipeline import PipelineSettings, run_pipeline
from phenoseason.utils import YearRange


def test_recovers_dates_every_year(pipeline_result, true_params):
    assert sorted(pipeline_result.pheno) == [2018, 2019, 2020]
    assert pipeline_result.skipped == {}
    for year, pheno in pipeline_result.pheno.items():
        assert pheno.year == year
        assert pheno.greenup == pytest.approx(true_params.sos, abs=5)
        assert pheno.dormancy == pytest.approx(true_params.eos, abs=5)
        assert pheno.greenup_low <= pheno.greenup <= pheno.greenup_high
        assert pheno.dormancy_low <= pheno.dormancy <= pheno.dormancy_high


def test_season_lengths(pipeline_result):
    assert [s.year for s in pipeline_result.season_lengths] == [2018, 2019, 2020]
    for season in pipeline_result.season_lengths:
        assert season.length_days == pytest.approx(200, abs=10)


def test_to_frame(pipeline_result):
    df = pipeline_result.to_frame()

    assert df.year.tolist() == [2018, 2019, 2020]
    assert (df.status == "ok").all()
    assert df.greenup.iloc[0].year == 2018


def test_sparse_year_reported(series):
    observations = tuple(
        o
        for o in series.observations
        if o.timestamp.year != 2019 or date(2019, 5, 25) <= o.timestamp <= date(2019, 6, 10)
    )
    settings = PipelineSettings(
        average_fit=AverageFitConfig(n_restarts=4),
        year_fit=YearFitConfig(n_draws=500, n_burn=500),
    )

    result = run_pipeline(Series(series.site, observations), YearRange(2018, 2020), settings)

    assert sorted(result.pheno) == [2018, 2020]
    assert list(result.skipped) == [2019]
    assert result.skipped[2019].startswith("InsufficientDataError")
    assert [s.year for s in result.season_lengths] == [2018, 2020]
    df = result.to_frame()
    assert df.status.iloc[1].startswith("skipped: InsufficientDataError")


def test_failing_average_fit_propagates(series):
    settings = PipelineSettings(average_fit=AverageFitConfig(n_restarts=2, max_nfev=1))

    with pytest.raises(ConvergenceError):
        run_pipeline(series, YearRange(2018, 2020), settings)


def test_missing_winter_fitted_with_wider_interval(series, pipeline_result, true_params):
    # No dormant-season observations around 2019
    def winter(o):
        return date(2018, 11, 15) <= o.timestamp <= date(2019, 3, 1) or date(
            2019, 11, 15
        ) <= o.timestamp <= date(2020, 3, 1)

    gappy = Series(series.site, tuple(o for o in series.observations if not winter(o)))

    result = run_pipeline(gappy, YearRange(2018, 2020))

    assert result.skipped == {}
    assert sorted(result.pheno) == [2018, 2019, 2020]
    dates = result.pheno[2019]
    full = pipeline_result.pheno[2019]
    assert dates.dormancy == pytest.approx(true_params.eos, abs=10)
    assert (
        dates.dormancy_high - dates.dormancy_low > full.dormancy_high - full.dormancy_low
    )
