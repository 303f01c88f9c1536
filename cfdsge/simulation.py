"""
Simulation and Decomposition
============================

Read-only consumers of a solved StateSpaceSystem:
- Impulse response functions
- Stochastic simulation and (HP-filtered) moments
- Forecast error variance decomposition
- Filtered and smoothed states
- Historical shock decomposition

All paths are deviations from the steady state (log deviations for
variables in logs).
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .kalman import KalmanFilter
from .solver import StateSpaceSystem
from .utils import autocorr, hp_filter


def _data_and_index(observations) -> Tuple[np.ndarray, pd.Index]:
    data = np.asarray(getattr(observations, 'data', observations), dtype=float)
    index = getattr(observations, 'index', None)
    if index is None:
        index = pd.RangeIndex(data.shape[0])
    return data, pd.Index(index)


def impulse_responses(system: StateSpaceSystem, shock: str, periods: int = 40,
                      shock_size: float = 1.0) -> pd.DataFrame:
    """
    Compute impulse response functions.

    Args:
        system: Solved model
        shock: Shock name
        periods: Number of periods for IRF
        shock_size: Size of shock in standard deviations

    Returns:
        IRF DataFrame (periods x states)
    """
    k = system.shock_names.index(shock)
    irf = np.zeros((periods, system.n_states))

    # Impact period
    s = system.R[:, k] * shock_size * np.sqrt(system.Q[k, k])
    irf[0] = s

    # Propagation
    for t in range(1, periods):
        s = system.T @ s
        irf[t] = s

    return pd.DataFrame(irf, columns=list(system.state_names))


def all_impulse_responses(system: StateSpaceSystem, periods: int = 40) -> dict:
    """Impulse responses to every shock, keyed by shock name."""
    return {shock: impulse_responses(system, shock, periods) for shock in system.shock_names}


def simulate(system: StateSpaceSystem, periods: int, seed: Optional[int] = None,
             burn_in: int = 100) -> pd.DataFrame:
    """
    Stochastic simulation with shocks drawn from N(0, Q).

    Args:
        system: Solved model
        periods: Number of periods kept
        seed: Seed of the numpy Generator
        burn_in: Periods discarded at the start

    Returns:
        Simulated states (periods x states)
    """
    rng = np.random.default_rng(seed)
    std = np.sqrt(np.diag(system.Q))
    total = periods + burn_in
    shocks = rng.standard_normal((total, system.n_shocks)) * std

    path = np.zeros((total, system.n_states))
    s = np.zeros(system.n_states)
    for t in range(total):
        s = system.T @ s + system.R @ shocks[t]
        path[t] = s

    return pd.DataFrame(path[burn_in:], columns=list(system.state_names))


def simulated_moments(simulation: pd.DataFrame, reference: str,
                      hp_lambda: Optional[float] = 1600, lags: int = 1) -> pd.DataFrame:
    """
    Second moments of simulated series.

    Args:
        simulation: Output of simulate()
        reference: Column used for relative std and correlations (e.g. output)
        hp_lambda: HP smoothing parameter; None uses the raw series
        lags: Autocorrelation lag reported

    Returns:
        DataFrame with std, relative std, autocorrelation and correlation
        with the reference series
    """
    data = simulation.to_numpy()
    if hp_lambda is not None:
        _, data = hp_filter(data, hp_lambda)

    std = data.std(axis=0, ddof=1)
    ref = list(simulation.columns).index(reference)
    acf = autocorr(data, lags)[lags]
    with np.errstate(divide='ignore', invalid='ignore'):
        corr = np.corrcoef(data, rowvar=False)[ref]
        rel_std = std / std[ref]

    return pd.DataFrame({
        'std': std,
        'rel_std': rel_std,
        f'autocorr_{lags}': acf,
        f'corr_{reference}': corr,
    }, index=simulation.columns)


def theoretical_moments(system: StateSpaceSystem) -> pd.Series:
    """Unconditional standard deviations of the states."""
    P = system.unconditional_covariance()
    return pd.Series(np.sqrt(np.clip(np.diag(P), 0, None)), index=list(system.state_names))


def variance_decomposition(system: StateSpaceSystem, periods: int = 40) -> np.ndarray:
    """
    Compute forecast error variance decomposition.

    Args:
        system: Solved model
        periods: Forecast horizon

    Returns:
        Variance decomposition (periods x n_states x n_shocks)
    """
    T, R, Q = system.T, system.R, system.Q
    n = system.n_states
    n_eps = system.n_shocks
    vd = np.zeros((periods, n, n_eps))

    # Compute MSE at each horizon
    mse = np.zeros((periods, n, n))
    mse[0] = R @ Q @ R.T
    for h in range(1, periods):
        mse[h] = T @ mse[h-1] @ T.T + R @ Q @ R.T

    # Decompose by shock
    for shock in range(n_eps):
        Q_shock = np.zeros((n_eps, n_eps))
        Q_shock[shock, shock] = Q[shock, shock]

        mse_shock = R @ Q_shock @ R.T
        for h in range(periods):
            if h > 0:
                mse_shock = T @ mse_shock @ T.T + R @ Q_shock @ R.T
            with np.errstate(divide='ignore', invalid='ignore'):
                vd[h, :, shock] = np.diag(mse_shock) / np.diag(mse[h])

    return vd


def filtered_states(system: StateSpaceSystem, observations) -> pd.DataFrame:
    """Filtered states E[s_t | y_1..y_t]."""
    data, index = _data_and_index(observations)
    out = KalmanFilter.from_system(system).filter(data)
    return pd.DataFrame(out['s_filt'], index=index, columns=list(system.state_names))


def smoothed_states(system: StateSpaceSystem, observations) -> pd.DataFrame:
    """Smoothed states E[s_t | y_1..y_T]."""
    data, index = _data_and_index(observations)
    kf = KalmanFilter.from_system(system)
    smooth = kf.smoother(kf.filter(data))
    return pd.DataFrame(smooth['s_smooth'], index=index, columns=list(system.state_names))


@dataclass(frozen=True)
class ShockDecomposition:
    """
    Historical shock decomposition.

    contributions[t, i, k] is the part of smoothed state i at t due to shock
    k; the last slice along k is the initial condition.
    """
    contributions: np.ndarray
    state_names: Tuple[str, ...]
    shock_names: Tuple[str, ...]
    index: pd.Index
    smoothed: np.ndarray
    shocks: np.ndarray

    def for_variable(self, name: str) -> pd.DataFrame:
        i = self.state_names.index(name)
        columns = list(self.shock_names) + ['initial']
        return pd.DataFrame(self.contributions[:, i, :], index=self.index, columns=columns)

    def total(self) -> np.ndarray:
        """Sum over shocks and initial condition (T x n_states)."""
        return self.contributions.sum(axis=2)


def shock_decomposition(system: StateSpaceSystem, observations) -> ShockDecomposition:
    """
    Attribute smoothed states to accumulated smoothed shocks.

    contrib_k(t) = T contrib_k(t-1) + R[:, k] ε̂_k(t); the initial condition
    is propagated by T.

    Args:
        system: Solved model
        observations: ObservationSet or array (T x n_obs)

    Returns:
        ShockDecomposition
    """
    data, index = _data_and_index(observations)
    kf = KalmanFilter.from_system(system)
    filtered = kf.filter(data)
    smooth = kf.smoother(filtered)
    shocks = kf.smoothed_shocks(filtered, smooth)
    s_smooth = smooth['s_smooth']

    T_obs = data.shape[0]
    n, n_eps = system.n_states, system.n_shocks
    contrib = np.zeros((T_obs, n, n_eps + 1))

    for t in range(T_obs):
        for k in range(n_eps):
            previous = system.T @ contrib[t-1, :, k] if t > 0 else 0.0
            contrib[t, :, k] = previous + system.R[:, k] * shocks[t, k]
        if t == 0:
            contrib[0, :, n_eps] = s_smooth[0] - system.R @ shocks[0]
        else:
            contrib[t, :, n_eps] = system.T @ contrib[t-1, :, n_eps]

    return ShockDecomposition(contrib, system.state_names, system.shock_names,
                              index, s_smooth, shocks)


def report_series(system: StateSpaceSystem, observations,
                  variables: Sequence[str]) -> pd.DataFrame:
    """
    Smoothed paths of the report variables.

    Args:
        system: Solved model, linearized with keep=variables
        observations: ObservationSet or array (T x n_obs)
        variables: Report variable names

    Returns:
        DataFrame (T x variables)
    """
    missing = [v for v in variables if v not in system.state_names]
    if missing:
        raise KeyError(f"Report variables not in the state vector: {missing}")
    return smoothed_states(system, observations)[list(variables)]
