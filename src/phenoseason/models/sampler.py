# SPDX-FileCopyrightText: 2023 Phenoseason authors
#
# SPDX-License-Identifier: Apache-2.0
"""Random-walk posterior sampling with explicit budgets and seeds."""
from collections.abc import Callable
from typing import NamedTuple

import numpy as np

from phenoseason.exceptions import ConvergenceError

TARGET_ACCEPTANCE = 0.234
"""Optimal acceptance rate of random-walk proposals in several dimensions."""


class ChainResult(NamedTuple):
    samples: np.ndarray
    """Draws after burn-in, shape (n_draws, n_params)."""
    acceptance: float
    proposal_cov: np.ndarray
    """Proposal covariance used after burn-in, scale included."""


class SamplerResult(NamedTuple):
    chains: np.ndarray
    """Draws of every chain, shape (n_chains, n_draws, n_params)."""
    acceptance: float
    rhat: np.ndarray

    @property
    def samples(self) -> np.ndarray:
        """Draws of all chains pooled, shape (n_chains * n_draws, n_params)."""
        return self.chains.reshape(-1, self.chains.shape[-1])


def adaptive_metropolis(
    log_prob: Callable[[np.ndarray], float],
    x0: np.ndarray,
    step_sizes: np.ndarray,
    n_draws: int,
    n_burn: int,
    rng: np.random.Generator,
    adapt_every: int = 25,
) -> ChainResult:
    """Single chain updating all parameters at once.

    Proposals start as independent normal steps of `step_sizes`. In the
    second half of burn-in the proposal covariance is re-estimated every
    `adapt_every` iterations from the latest half of the chain, as in
    Haario et al. (2001), so correlated parameters move together. An
    overall scale is tuned towards TARGET_ACCEPTANCE throughout burn-in.
    The proposal is frozen afterwards, so the retained draws come from a
    fixed Markov kernel.

    Raises:
        ConvergenceError: When x0 has zero posterior density.
    """
    x = np.array(x0, dtype=float)
    lp = log_prob(x)
    if not np.isfinite(lp):
        raise ConvergenceError("Sampler started outside the posterior support")

    step_sizes = np.asarray(step_sizes, dtype=float)
    n_params = x.size
    # keeps the estimated covariance positive definite
    floor = np.diag((0.1 * step_sizes) ** 2)
    chol = np.diag(step_sizes)
    scale = 1.0
    estimated = False

    history = np.empty((n_burn, n_params))
    samples = np.empty((n_draws, n_params))
    accepted_batch = 0
    accepted = 0

    for i in range(n_burn + n_draws):
        proposal = x + scale * chol @ rng.standard_normal(n_params)
        lp_new = log_prob(proposal)
        moved = np.log(rng.random()) < lp_new - lp
        if moved:
            x, lp = proposal, lp_new

        if i >= n_burn:
            samples[i - n_burn] = x
            accepted += moved
            continue

        history[i] = x
        accepted_batch += moved
        if (i + 1) % adapt_every:
            continue
        rate = accepted_batch / adapt_every
        scale = scale * 1.25 if rate > TARGET_ACCEPTANCE else scale / 1.25
        accepted_batch = 0

        recent = history[(i + 1) // 2 : i + 1]
        if i + 1 >= n_burn // 2 and len(recent) > n_params:
            if not estimated:
                scale = 2.38 / np.sqrt(n_params)
                estimated = True
            cov = np.atleast_2d(np.cov(recent, rowvar=False))
            chol = np.linalg.cholesky(cov + floor)

    acceptance = accepted / max(n_draws, 1)
    return ChainResult(samples, acceptance, scale**2 * chol @ chol.T)


def gelman_rubin(chains: np.ndarray) -> np.ndarray:
    """Potential scale reduction factor per parameter.

    chains has shape (n_chains, n_draws, n_params). Parameters that did not
    move within a chain get an infinite value.
    """
    _, n, _ = chains.shape
    chain_means = chains.mean(axis=1)
    within = chains.var(axis=1, ddof=1).mean(axis=0)
    between = n * chain_means.var(axis=0, ddof=1)
    pooled = (n - 1) / n * within + between / n
    with np.errstate(divide="ignore", invalid="ignore"):
        rhat = np.sqrt(pooled / within)
    return np.where(within > 0, rhat, np.inf)


def run_chains(
    log_prob: Callable[[np.ndarray], float],
    start: np.ndarray,
    step_sizes: np.ndarray,
    n_chains: int,
    n_draws: int,
    n_burn: int,
    rng: np.random.Generator,
    spread: np.ndarray | None = None,
) -> SamplerResult:
    """Run several chains from overdispersed starting points.

    Each chain starts at a normal draw around `start` with per-parameter
    standard deviation `spread` (`step_sizes` when not given). Draws with
    zero posterior density are redrawn up to 100 times before the chain
    falls back to `start`. Starts spread on the scale of the prior let
    R-hat flag chains that settle in different modes.
    """
    start = np.asarray(start, dtype=float)
    step_sizes = np.asarray(step_sizes, dtype=float)
    spread = step_sizes if spread is None else np.asarray(spread, dtype=float)
    results = []
    for _ in range(n_chains):
        x0 = start
        for _attempt in range(100):
            candidate = start + spread * rng.standard_normal(start.size)
            if np.isfinite(log_prob(candidate)):
                x0 = candidate
                break
        results.append(
            adaptive_metropolis(log_prob, x0, step_sizes, n_draws, n_burn, rng)
        )

    chains = np.stack([r.samples for r in results])
    acceptance = float(np.mean([r.acceptance for r in results]))
    return SamplerResult(chains, acceptance, gelman_rubin(chains))
