"""
Metropolis-Hastings Sampler
===========================

Random-walk Metropolis-Hastings chains for the posterior of a DSGE model.

    θ' = θ + jscale · L ξ,    ξ ~ N(0, I),    L L' = Σ_mode

A proposal is accepted with probability min(1, exp(log p(θ') - log p(θ))).
Every iteration is recorded, so a rejection repeats the previous draw.

Chains are independent tasks over a read-only posterior kernel. Each owns a
numpy Generator spawned from one SeedSequence, so results do not depend on
how chains are scheduled. Chains can be stopped between draws; a stopped
chain returns a valid partial sample.

Convergence diagnostics (split-chain potential scale reduction factor,
rank-normalized R-hat, effective sample size) flag non-convergence in a
log message and never stop the run.
"""

import logging
import pickle
import threading
import numpy as np
import pandas as pd
import arviz as az
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .exceptions import ConfigError, ModeFindingError


logger = logging.getLogger(__name__)

LogPosterior = Callable[[np.ndarray], float]


class PosteriorSample:
    """Append-only record of the draws of one chain."""

    def __init__(self, param_names: Sequence[str], chain_id: int = 0):
        self.param_names = tuple(param_names)
        self.chain_id = chain_id
        self.completed = False
        self._draws = []
        self._log_posterior = []
        self._accepted = []

    def append(self, theta: np.ndarray, log_posterior: float, accepted: bool):
        self._draws.append(np.array(theta, dtype=float))
        self._log_posterior.append(float(log_posterior))
        self._accepted.append(bool(accepted))

    @property
    def n_draws(self) -> int:
        return len(self._draws)

    @property
    def draws(self) -> np.ndarray:
        """Draws (n_draws x n_params)."""
        if not self._draws:
            return np.zeros((0, len(self.param_names)))
        return np.vstack(self._draws)

    @property
    def log_posterior(self) -> np.ndarray:
        return np.array(self._log_posterior)

    @property
    def accepted(self) -> np.ndarray:
        return np.array(self._accepted, dtype=bool)

    @property
    def acceptance_rate(self) -> float:
        return float(np.mean(self._accepted)) if self._accepted else float('nan')

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame(self.draws, columns=list(self.param_names))
        frame['log_posterior'] = self.log_posterior
        frame['accepted'] = self.accepted
        return frame


class MHChain:
    """One random-walk Metropolis-Hastings chain."""

    def __init__(self, log_posterior: LogPosterior, start: np.ndarray,
                 proposal_chol: np.ndarray, jscale: float,
                 rng: np.random.Generator, chain_id: int = 0,
                 param_names: Optional[Sequence[str]] = None):
        """
        Initialize the chain.

        Args:
            log_posterior: Posterior kernel, -inf for rejected values
            start: Starting point
            proposal_chol: Lower Cholesky factor of the proposal covariance
            jscale: Proposal scale factor
            rng: Generator owned by this chain
            chain_id: Chain index
            param_names: Parameter names for the sample
        """
        self.log_posterior = log_posterior
        self.start = np.asarray(start, dtype=float)
        self.proposal_chol = np.asarray(proposal_chol, dtype=float)
        self.jscale = jscale
        self.rng = rng
        self.chain_id = chain_id
        self.param_names = (tuple(param_names) if param_names is not None
                            else tuple(f"theta{i}" for i in range(len(self.start))))

    def run(self, n_draws: int, stop_event: Optional[threading.Event] = None) -> PosteriorSample:
        """
        Draw n_draws values.

        Args:
            n_draws: Number of iterations
            stop_event: Checked before every draw; the chain stops once it is set

        Returns:
            PosteriorSample, partial if stopped early
        """
        sample = PosteriorSample(self.param_names, self.chain_id)
        current = self.start.copy()
        current_lp = self.log_posterior(current)
        if not np.isfinite(current_lp):
            raise ValueError(f"Chain {self.chain_id} starts where the log posterior is -inf")

        k = len(current)
        for i in range(n_draws):
            if stop_event is not None and stop_event.is_set():
                logger.info("Chain %d stopped after %d draws", self.chain_id, i)
                break

            proposal = current + self.jscale * self.proposal_chol @ self.rng.standard_normal(k)
            proposal_lp = self.log_posterior(proposal)
            log_u = np.log(self.rng.uniform())

            accepted = bool(np.isfinite(proposal_lp) and log_u < proposal_lp - current_lp)
            if accepted:
                current, current_lp = proposal, proposal_lp
            sample.append(current, current_lp, accepted)

        sample.completed = sample.n_draws == n_draws
        return sample


def overdispersed_start(log_posterior: LogPosterior, mode: np.ndarray,
                        proposal_chol: np.ndarray, init_scale: float,
                        rng: np.random.Generator, max_tries: int = 100) -> np.ndarray:
    """
    Starting point mode + init_scale · L ξ with a finite log posterior.

    Falls back to the mode after max_tries invalid draws.
    """
    mode = np.asarray(mode, dtype=float)
    for _ in range(max_tries):
        start = mode + init_scale * proposal_chol @ rng.standard_normal(len(mode))
        if np.isfinite(log_posterior(start)):
            return start
    logger.warning("No valid overdispersed start after %d tries; starting at the mode", max_tries)
    return mode.copy()


def proposal_factor(covariance: np.ndarray) -> np.ndarray:
    """Lower Cholesky factor of the proposal covariance."""
    try:
        return np.linalg.cholesky(0.5 * (covariance + covariance.T))
    except np.linalg.LinAlgError as exc:
        raise ModeFindingError(f"Proposal covariance is not positive definite: {exc}") from exc


def _run_chain(log_posterior: LogPosterior, mode: np.ndarray, chol: np.ndarray,
               jscale: float, init_scale: float, seed: np.random.SeedSequence,
               n_draws: int, chain_id: int, param_names: Sequence[str],
               stop_event: Optional[threading.Event]) -> PosteriorSample:
    rng = np.random.default_rng(seed)
    start = overdispersed_start(log_posterior, mode, chol, init_scale, rng)
    chain = MHChain(log_posterior, start, chol, jscale, rng, chain_id, param_names)
    sample = chain.run(n_draws, stop_event)
    logger.info("Chain %d: %d draws, acceptance rate %.1f%%",
                chain_id, sample.n_draws, 100 * sample.acceptance_rate)
    return sample


def run_chains(log_posterior: LogPosterior, mode: np.ndarray, covariance: np.ndarray,
               n_draws: int, n_chains: int = 2, jscale: float = 0.2,
               init_scale: Optional[float] = None, seed: int = 0,
               param_names: Optional[Sequence[str]] = None,
               max_workers: Optional[int] = None, executor: str = 'thread',
               stop_event: Optional[threading.Event] = None) -> List[PosteriorSample]:
    """
    Run independent Metropolis-Hastings chains.

    Args:
        log_posterior: Posterior kernel (must be picklable for executor='process')
        mode: Posterior mode
        covariance: Inverse Hessian at the mode
        n_draws: Draws per chain (mh_replic)
        n_chains: Number of chains (mh_nblocks)
        jscale: Proposal scale (mh_jscale)
        init_scale: Dispersion of the starting points (default 2 * jscale)
        seed: Root seed; chain k uses SeedSequence(seed).spawn(n_chains)[k]
        param_names: Parameter names
        max_workers: Worker count; None or 1 runs the chains one after another
        executor: 'thread' or 'process' when max_workers > 1
        stop_event: Set to stop all chains between draws (thread/sequential only)

    Returns:
        List of PosteriorSample, in chain order

    Raises:
        ConfigError: executor='process' with a log posterior that cannot be pickled
    """
    mode = np.asarray(mode, dtype=float)
    chol = proposal_factor(np.asarray(covariance, dtype=float))
    if init_scale is None:
        init_scale = 2 * jscale
    if param_names is None:
        param_names = [f"theta{i}" for i in range(len(mode))]
    seeds = np.random.SeedSequence(seed).spawn(n_chains)

    def task_args(k):
        return (log_posterior, mode, chol, jscale, init_scale, seeds[k],
                n_draws, k, param_names, stop_event)

    if max_workers is None or max_workers <= 1:
        return [_run_chain(*task_args(k)) for k in range(n_chains)]

    if executor == 'process':
        try:
            pickle.dumps(log_posterior)
        except (pickle.PicklingError, TypeError, AttributeError) as exc:
            raise ConfigError(f"executor='process' needs a picklable log posterior: {exc}") from exc
        if stop_event is not None:
            logger.warning("stop_event is ignored by process workers")
        pool: Executor = ProcessPoolExecutor(max_workers=max_workers)
        args = [task_args(k)[:-1] + (None,) for k in range(n_chains)]
    elif executor == 'thread':
        pool = ThreadPoolExecutor(max_workers=max_workers)
        args = [task_args(k) for k in range(n_chains)]
    else:
        raise ValueError(f"Unknown executor '{executor}'. Available: ['thread', 'process']")

    with pool:
        futures = [pool.submit(_run_chain, *a) for a in args]
        return [f.result() for f in futures]


def tune_jscale(log_posterior: LogPosterior, mode: np.ndarray, covariance: np.ndarray,
                jscale: float = 0.2, target: float = 0.33, band: Sequence[float] = (0.2, 0.4),
                n_draws: int = 500, max_rounds: int = 10, seed: int = 0) -> float:
    """
    Rescale mh_jscale with pilot runs until acceptance falls in the band.

    Args:
        log_posterior: Posterior kernel
        mode: Posterior mode (pilot chains start here)
        covariance: Inverse Hessian at the mode
        jscale: Initial scale
        target: Target acceptance rate
        band: Acceptable (low, high) acceptance rates
        n_draws: Draws per pilot run
        max_rounds: Maximum pilot runs
        seed: Root seed of the pilot runs

    Returns:
        Tuned jscale
    """
    chol = proposal_factor(np.asarray(covariance, dtype=float))
    seeds = np.random.SeedSequence(seed).spawn(max_rounds)

    for round_ in range(max_rounds):
        chain = MHChain(log_posterior, mode, chol, jscale, np.random.default_rng(seeds[round_]))
        rate = chain.run(n_draws).acceptance_rate
        logger.info("Pilot run %d: jscale=%.4f, acceptance %.1f%%", round_, jscale, 100 * rate)
        if band[0] <= rate <= band[1]:
            return jscale
        jscale *= float(np.clip(rate / target, 0.2, 5.0))

    logger.warning("Acceptance rate not in [%.2f, %.2f] after %d pilot runs; using jscale=%.4f",
                   band[0], band[1], max_rounds, jscale)
    return jscale


def _stack_chains(samples: Sequence[PosteriorSample], drop: float) -> np.ndarray:
    """Post burn-in draws (chains x draws x params), truncated to the shortest chain."""
    n = min(s.n_draws for s in samples)
    start = int(np.floor(drop * n))
    return np.stack([s.draws[start:n] for s in samples])


def gelman_rubin(chains: np.ndarray) -> np.ndarray:
    """
    Split-chain potential scale reduction factor.

    Args:
        chains: Draws (m x n x k)

    Returns:
        PSRF per parameter (k,)
    """
    m, n, k = chains.shape
    half = n // 2
    split = np.concatenate([chains[:, :half], chains[:, half:2*half]], axis=0)
    n = half

    chain_means = split.mean(axis=1)
    W = split.var(axis=1, ddof=1).mean(axis=0)
    B = n * chain_means.var(axis=0, ddof=1)
    var_hat = (n - 1) / n * W + B / n
    with np.errstate(divide='ignore', invalid='ignore'):
        return np.sqrt(var_hat / W)


def _to_inference_data(chains: np.ndarray, names: Sequence[str]) -> az.InferenceData:
    return az.from_dict(posterior={name: chains[:, :, i] for i, name in enumerate(names)})


def convergence_diagnostics(samples: Sequence[PosteriorSample], drop: float = 0.5,
                            threshold: float = 1.1) -> pd.DataFrame:
    """
    Cross-chain convergence diagnostics per parameter.

    Args:
        samples: One PosteriorSample per chain
        drop: Share of each chain discarded as burn-in (mh_drop)
        threshold: R-hat above which a parameter is flagged

    Returns:
        DataFrame with psrf, rhat, ess_bulk and converged columns
    """
    names = samples[0].param_names
    chains = _stack_chains(samples, drop)
    if chains.shape[1] < 4:
        logger.warning("Too few draws after burn-in for convergence diagnostics")
        nan = np.full(len(names), np.nan)
        return pd.DataFrame({'psrf': nan, 'rhat': nan, 'ess_bulk': nan,
                             'converged': np.zeros(len(names), dtype=bool)}, index=list(names))

    idata = _to_inference_data(chains, names)
    rhat = az.rhat(idata)
    ess = az.ess(idata, method='bulk')

    table = pd.DataFrame({
        'psrf': gelman_rubin(chains),
        'rhat': [float(rhat[name]) for name in names],
        'ess_bulk': [float(ess[name]) for name in names],
    }, index=list(names))
    table['converged'] = (table['psrf'] < threshold) & (table['rhat'] < threshold)

    flagged = list(table.index[~table['converged']])
    if flagged:
        logger.warning("Chains have not converged for: %s", ", ".join(flagged))
    return table


def posterior_summary(samples: Sequence[PosteriorSample], drop: float = 0.5,
                      conf_sig: float = 0.9) -> pd.DataFrame:
    """
    Posterior mean, standard deviation and HPD interval per parameter.

    Args:
        samples: One PosteriorSample per chain
        drop: Share of each chain discarded as burn-in (mh_drop)
        conf_sig: Probability mass of the HPD interval (mh_conf_sig)

    Returns:
        DataFrame indexed by parameter
    """
    names = samples[0].param_names
    chains = _stack_chains(samples, drop)
    pooled = chains.reshape(-1, len(names))
    n = pooled.shape[0]
    if n < 2 or np.floor(conf_sig * n) < 1:
        logger.warning("Too few draws after burn-in for a posterior summary")
        nan = np.full(len(names), np.nan)
        return pd.DataFrame({'mean': nan, 'std': nan, 'hpd_lower': nan, 'hpd_upper': nan},
                            index=list(names))

    rows = []
    for i, name in enumerate(names):
        lower, upper = az.hdi(pooled[:, i], hdi_prob=conf_sig)
        rows.append({'mean': pooled[:, i].mean(), 'std': pooled[:, i].std(ddof=1),
                     'hpd_lower': lower, 'hpd_upper': upper})
    return pd.DataFrame(rows, index=list(names))


@dataclass
class MCMCResult:
    """Output of a posterior sampling run."""
    samples: List[PosteriorSample]
    diagnostics: pd.DataFrame
    summary: pd.DataFrame
    jscale: float
    acceptance_rates: List[float] = field(default_factory=list)

    @property
    def posterior_mean(self) -> np.ndarray:
        return self.summary['mean'].to_numpy()


def sample_posterior(log_posterior: LogPosterior, mode: np.ndarray, covariance: np.ndarray,
                     param_names: Sequence[str], n_draws: int, n_chains: int = 2,
                     jscale: float = 0.2, init_scale: Optional[float] = None,
                     drop: float = 0.5, conf_sig: float = 0.9, seed: int = 0,
                     max_workers: Optional[int] = None, executor: str = 'thread',
                     stop_event: Optional[threading.Event] = None) -> MCMCResult:
    """
    Run chains, then compute diagnostics and the posterior summary.

    Returns:
        MCMCResult
    """
    samples = run_chains(log_posterior, mode, covariance, n_draws, n_chains=n_chains,
                         jscale=jscale, init_scale=init_scale, seed=seed,
                         param_names=param_names, max_workers=max_workers,
                         executor=executor, stop_event=stop_event)
    diagnostics = convergence_diagnostics(samples, drop)
    summary = posterior_summary(samples, drop, conf_sig)
    return MCMCResult(samples, diagnostics, summary, jscale,
                      [s.acceptance_rate for s in samples])


def print_posterior(result: MCMCResult, conf_sig: float = 0.9):
    """Print posterior summary and convergence diagnostics."""
    print("\n" + "="*60)
    print("POSTERIOR DISTRIBUTION")
    print("="*60)
    rates = ", ".join(f"{100 * r:.1f}%" for r in result.acceptance_rates)
    print(f"\nChains: {len(result.samples)}, jscale: {result.jscale:.4f}")
    print(f"Acceptance rates: {rates}")

    print(f"\n{'Parameter':<15} {'Mean':>10} {'Std':>10} "
          f"{'HPD ' + format(conf_sig, '.0%'):>22} {'R-hat':>8}")
    print("-" * 70)
    for name, row in result.summary.iterrows():
        rhat = result.diagnostics.loc[name, 'rhat']
        interval = f"[{row['hpd_lower']:.4f}, {row['hpd_upper']:.4f}]"
        print(f"{name:<15} {row['mean']:10.4f} {row['std']:10.4f} {interval:>22} {rhat:8.3f}")
    print("-" * 70)
