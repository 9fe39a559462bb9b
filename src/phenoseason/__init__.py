# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
"""Growing-season length from satellite vegetation-index time series."""

__version__ = "0.1.0"
