# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
import json

import pandas as pd
import pytest
import yaml
from click.testing import CliRunner

from phenoseason.config import Config
from phenoseason.main import Session, Workflow, cli
from phenoseason.utils import YearRange


@pytest.fixture
def recipe(tmp_path, rows, sites_csv):
    series_fn = tmp_path / "ndvi.csv"
    rows.to_csv(series_fn, index=False)
    flux_fn = tmp_path / "flux.csv"
    pd.DataFrame({"year": [2018, 2019, 2020], "flux": [410.0, 455.0, 390.0]}).to_csv(
        flux_fn, index=False
    )

    recipe_fn = tmp_path / "US-Ha1.yaml"
    recipe_fn.write_text(
        yaml.safe_dump(
            {
                "series": {"path": str(series_fn), "site": "US-Ha1"},
                "years": [2018, 2020],
                "sites": str(sites_csv),
                "flux": str(flux_fn),
                "settings": {
                    "average_fit": {"n_restarts": 4},
                    "year_fit": {"n_draws": 500, "n_burn": 500},
                },
            }
        )
    )
    return recipe_fn


def test_cli_help():
    runner = CliRunner()

    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "RECIPE" in result.output


def test_cli_runs_recipe(tmp_path, recipe):
    output_dir = tmp_path / "output"
    runner = CliRunner()

    result = runner.invoke(cli, [str(recipe), "--output-dir", str(output_dir)])

    assert result.exit_code == 0, result.output
    assert {p.name for p in output_dir.iterdir()} == {
        "recipe.yaml",
        "pheno_dates.csv",
        "season_length.csv",
        "average_fit.yaml",
        "site.geojson",
        "regression.yaml",
    }

    pheno = pd.read_csv(output_dir / "pheno_dates.csv")
    assert pheno.year.tolist() == [2018, 2019, 2020]
    assert (pheno.status == "ok").all()
    assert pheno.greenup.str.startswith("2018-04").iloc[0]

    lengths = pd.read_csv(output_dir / "season_length.csv")
    assert lengths.columns.tolist() == ["year", "length_days"]
    assert lengths.length_days.between(190, 210).all()

    average = yaml.safe_load((output_dir / "average_fit.yaml").read_text())
    assert average["params"]["sos"] == pytest.approx(100, abs=5)

    regression = yaml.safe_load((output_dir / "regression.yaml").read_text())
    assert regression["n"] == 3

    site = json.loads((output_dir / "site.geojson").read_text())
    assert site["features"][0]["properties"]["site_id"] == "US-Ha1"


def test_recipe_round_trip(tmp_path, recipe):
    workflow = Workflow.from_recipe(recipe)

    workflow.save_recipe(tmp_path / "saved.yaml")

    assert Workflow.from_recipe(tmp_path / "saved.yaml") == workflow
    assert workflow.years == YearRange(2018, 2020)
    assert workflow.settings.year_fit.n_draws == 500
    assert workflow.settings.transitions.method == "threshold"
    assert yaml.safe_load(workflow.to_recipe())["years"] == [2018, 2020]


def test_recipe_rejects_reversed_years(tmp_path):
    with pytest.raises(ValueError, match="smaller than end year"):
        Workflow(series={"path": tmp_path / "ndvi.csv"}, years=[2020, 2018])


def test_session_creates_output_dir(tmp_path):
    session = Session(output_dir=tmp_path / "a" / "b")

    assert session.output_dir.is_dir()


def test_session_for_recipe_names_dir_after_recipe(tmp_path, recipe):
    config = Config(output_root_dir=tmp_path)

    session = Session.for_recipe(recipe, config=config)

    assert session.output_dir.name.startswith("phenoseason-US-Ha1-")
