# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
import logging
from datetime import datetime
from pathlib import Path
from tempfile import gettempdir
from typing import Literal, Optional

import click
import pandas as pd
import yaml
from pydantic import BaseModel, Field, field_validator

from phenoseason.config import CONFIG
from phenoseason.config import Config as PhenoseasonConfig
from phenoseason.observations import filter_by_year_range, load_sites, read_series
from phenoseason.pipeline import PhenologyResult, PipelineSettings, run_pipeline
from phenoseason.regression import read_flux, regress_season_length
from phenoseason.season import SeasonLength
from phenoseason.utils import YearRange, check_year_range

logger = logging.getLogger(__name__)


class Session(BaseModel, validate_default=True):
    """Session for executing a workflow."""

    output_dir: Path = Path(gettempdir()) / "output"

    @field_validator("output_dir")
    def _make_dir(cls, path):
        """Create dirs if they don't exist yet."""
        if not path.exists():
            print(f"Creating folder {path}")
            path.mkdir(parents=True)
        return path

    @classmethod
    def for_recipe(
        cls,
        recipe: Path,
        output_dir: Path | None = None,
        config: PhenoseasonConfig = CONFIG,
    ) -> "Session":
        if output_dir is None:
            now = datetime.now().strftime("%Y%m%d-%H%M%S")
            output_dir = config.output_root_dir / f"phenoseason-{recipe.stem}-{now}"
        return cls(output_dir=output_dir)


class SeriesSource(BaseModel):
    """Where to read the vegetation-index series from."""

    path: Path
    site: str = "unknown"
    date_column: str = "date"
    value_column: str = "value"
    source_column: str = "sensor"
    out_of_range: Literal["clip", "drop", "raise"] = "clip"


class Workflow(BaseModel):
    series: SeriesSource
    years: YearRange
    sites: Optional[Path] = None
    """Site metadata table, the entry of `series.site` is saved with the output."""
    flux: Optional[Path] = None
    """Annual flux table to regress season length against."""
    settings: PipelineSettings = Field(default_factory=PipelineSettings)

    @field_validator("years")
    def _must_increase(cls, years):
        return check_year_range(years)

    @classmethod
    def from_recipe(cls, recipe: Path):
        with open(recipe, "r") as raw_recipe:
            options = yaml.safe_load(raw_recipe)

        return cls(**options)

    def to_recipe(self):
        """Return the workflow as a recipe string."""
        return yaml.dump(self.model_dump(mode="json"), sort_keys=False)

    def save_recipe(self, path: Path):
        """Save the workflow as a recipe file."""

        with open(path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, sort_keys=False)

    def execute(self, session: Session) -> PhenologyResult:
        """Load the series, fit the curves, save dates and season lengths."""
        self.save_recipe(session.output_dir / "recipe.yaml")

        source = self.series
        series = read_series(
            source.path,
            site=source.site,
            out_of_range=source.out_of_range,
            date_column=source.date_column,
            value_column=source.value_column,
            source_column=source.source_column,
        )
        # Neighbouring years feed the padded year windows
        series = filter_by_year_range(series, self.years.start - 1, self.years.end + 1)
        logger.info(f"Series of {source.site} loaded with {len(series)} observations")

        result = run_pipeline(series, self.years, self.settings)

        pheno_fn = session.output_dir / "pheno_dates.csv"
        result.to_frame().to_csv(pheno_fn, index=False)
        logger.info(f"Transition dates saved to: {pheno_fn}")

        lengths_fn = session.output_dir / "season_length.csv"
        pd.DataFrame(result.season_lengths, columns=list(SeasonLength._fields)).to_csv(
            lengths_fn, index=False
        )

        with open(session.output_dir / "average_fit.yaml", "w") as f:
            yaml.safe_dump(
                {
                    "params": result.average.params._asdict(),
                    "noise_scale": result.average.noise_scale,
                    "rss": result.average.rss,
                    "n_converged": result.average.n_converged,
                    "n_observations": result.average.n_observations,
                },
                f,
                sort_keys=False,
            )

        if self.sites is not None:
            sites = load_sites(self.sites)
            site = sites[sites.site_id.astype(str) == source.site]
            if site.empty:
                logger.warning(f"Site {source.site} not found in {self.sites}")
            else:
                (session.output_dir / "site.geojson").write_text(site.to_json())

        if self.flux is not None:
            summary = regress_season_length(result.season_lengths, read_flux(self.flux))
            with open(session.output_dir / "regression.yaml", "w") as f:
                yaml.safe_dump(summary.model_dump(), f, sort_keys=False)

        return result


def main(recipe, output_dir: Optional[Path]):
    session = Session.for_recipe(recipe, output_dir)

    return Workflow.from_recipe(recipe).execute(session)


@click.command
@click.argument("recipe", type=click.Path(exists=True, path_type=Path))
@click.option("--output-dir", default=None, type=click.Path(path_type=Path))
@click.option(
    "--output-root-dir", default=CONFIG.output_root_dir, type=click.Path(path_type=Path)
)
@click.option("--n-jobs", default=CONFIG.n_jobs, type=int, help="Parallel workers.")
@click.option("--seed", default=CONFIG.seed, type=int, help="Root random seed.")
def cli(
    recipe: Path,
    output_dir: Optional[Path],
    output_root_dir: Path,
    n_jobs: int,
    seed: int,
):
    logging.basicConfig(level=logging.INFO)
    CONFIG.output_root_dir = output_root_dir
    CONFIG.n_jobs = n_jobs
    CONFIG.seed = seed
    main(recipe, output_dir)


if __name__ == "__main__":
    cli()
