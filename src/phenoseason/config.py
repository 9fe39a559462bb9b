# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
from pathlib import Path

from pydantic import BaseModel, NonNegativeInt


class Config(BaseModel, validate_assignment=True, validate_default=True):
    output_root_dir: Path = Path(".")
    n_jobs: int = 1
    """Number of joblib workers used for restarts and per-year fits."""
    seed: NonNegativeInt = 0
    """Root seed for restarts and samplers."""


CONFIG = Config()
