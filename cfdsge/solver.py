"""
First-Order Linearizer
======================

Linearizes a nonlinear model around its steady state and solves the
resulting expectational difference system.

The Jacobians of the residual F(y_{t-1}, y_t, y_{t+1}, ε_t) at the steady
state give

    A_lag·ŷ_{t-1} + A_0·ŷ_t + A_lead·E_t ŷ_{t+1} + B·ε_t = 0

Each variable f that appears with a lead gets an auxiliary expectation
variable Ef_t = E_t f_{t+1} with forecast error η_t = f_t - Ef_{t-1}, giving
the canonical form

    Γ0 z_t = Γ1 z_{t-1} + Ψ ε_t + Π η_t,    z_t = [ŷ_t; Ef_t]

which is solved by gensys. The solution is reduced to the variables that
carry dynamics (nonzero columns of the transition matrix) plus the
observed and requested variables, and augmented with one lag state per
first-differenced observable:

    s_t = T s_{t-1} + R ε_t            (State equation)
    y_t = Z s_t + D + u_t              (Measurement equation)
"""

import logging
import numpy as np
from dataclasses import dataclass, field
from scipy import linalg
from typing import Mapping, Optional, Sequence, Tuple, Union

from .gensys import gensys, DEFAULT_DIV
from .model import ModelSpec
from .steady_state import SteadyState, solve_steady_state
from .utils import numerical_jacobian, check_stability, lyapunov_equation


logger = logging.getLogger(__name__)

STATE_TOL = 1e-10


@dataclass(frozen=True)
class StateSpaceSystem:
    """
    Linear Gaussian state-space form of a solved model.

    Attributes:
        T: State transition matrix (n_s x n_s)
        R: Shock loading matrix (n_s x n_eps)
        Q: Shock covariance matrix (n_eps x n_eps)
        Z: Measurement matrix (n_y x n_s)
        D: Measurement constant (n_y,)
        H: Measurement error covariance (n_y x n_y)
        state_names: Names of the state vector entries
        obs_names: Names of the observables
        shock_names: Names of the shocks
        steady_state: Steady state around which the model was linearized
        eigenvalues: Generalized eigenvalues of the canonical form
        n_unstable: Number of unstable roots
        n_forward: Number of forward-looking variables
    """
    T: np.ndarray
    R: np.ndarray
    Q: np.ndarray
    Z: np.ndarray
    D: np.ndarray
    H: np.ndarray
    state_names: Tuple[str, ...]
    obs_names: Tuple[str, ...]
    shock_names: Tuple[str, ...]
    steady_state: Optional[SteadyState] = None
    eigenvalues: np.ndarray = field(default_factory=lambda: np.zeros(0))
    n_unstable: int = 0
    n_forward: int = 0

    def __post_init__(self):
        for attr in ('T', 'R', 'Q', 'Z', 'D', 'H'):
            arr = np.array(getattr(self, attr), dtype=float)
            arr.setflags(write=False)
            object.__setattr__(self, attr, arr)
        object.__setattr__(self, 'state_names', tuple(self.state_names))
        object.__setattr__(self, 'obs_names', tuple(self.obs_names))
        object.__setattr__(self, 'shock_names', tuple(self.shock_names))

    @property
    def n_states(self) -> int:
        return self.T.shape[0]

    @property
    def n_obs(self) -> int:
        return self.Z.shape[0]

    @property
    def n_shocks(self) -> int:
        return self.R.shape[1]

    def index(self, name: str) -> int:
        """Position of a state in the state vector."""
        try:
            return self.state_names.index(name)
        except ValueError:
            raise KeyError(f"'{name}' is not in the state vector; linearize with "
                           f"keep=[...] to retain it") from None

    def unconditional_covariance(self) -> np.ndarray:
        """Unconditional state covariance P = T P T' + R Q R'."""
        rqr = self.R @ self.Q @ self.R.T
        try:
            P = linalg.solve_discrete_lyapunov(self.T, rqr)
        except (linalg.LinAlgError, ValueError):
            P = lyapunov_equation(self.T, rqr)
        if not np.all(np.isfinite(P)):
            P = lyapunov_equation(self.T, rqr)
        return 0.5 * (P + P.T)

    def check_stability(self) -> Tuple[bool, float]:
        """(is_stable, max_eigenvalue_modulus) of T."""
        return check_stability(np.asarray(self.T))


def jacobians(spec: ModelSpec, y_ss: np.ndarray, params: Mapping[str, float],
              step: float = 1e-6) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Central-difference Jacobians of the residual at the steady state.

    Args:
        spec: Model specification
        y_ss: Steady-state values
        params: Parameter vector θ
        step: Relative finite-difference step

    Returns:
        (A_lag, A_0, A_lead, B) with respect to y_{t-1}, y_t, y_{t+1} and ε_t
    """
    y_ss = np.asarray(y_ss, dtype=float)
    eps0 = np.zeros(spec.n_shocks)

    def wrt_lag(x):
        return spec.residual(x, y_ss, y_ss, eps0, params)

    def wrt_current(x):
        return spec.residual(y_ss, x, y_ss, eps0, params)

    def wrt_lead(x):
        return spec.residual(y_ss, y_ss, x, eps0, params)

    def wrt_shocks(e):
        return spec.residual(y_ss, y_ss, y_ss, e, params)

    a_lag = numerical_jacobian(wrt_lag, y_ss, step)
    a0 = numerical_jacobian(wrt_current, y_ss, step)
    a_lead = numerical_jacobian(wrt_lead, y_ss, step)
    b_eps = numerical_jacobian(wrt_shocks, eps0, step)

    return a_lag, a0, a_lead, b_eps


def canonical_form(a_lag: np.ndarray, a0: np.ndarray, a_lead: np.ndarray,
                   b_eps: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Build Sims' canonical form from the linearized residual.

    Returns:
        (Gamma0, Gamma1, Psi, Pi, forward) where forward holds the indices of
        the variables appearing with a lead
    """
    n = a0.shape[0]
    forward = np.flatnonzero(np.any(a_lead != 0, axis=0))
    nf = len(forward)
    select = np.eye(n)[forward]

    Gamma0 = np.block([[a0, a_lead[:, forward]],
                       [select, np.zeros((nf, nf))]])
    Gamma1 = np.block([[-a_lag, np.zeros((n, nf))],
                       [np.zeros((nf, n)), np.eye(nf)]])
    Psi = np.vstack([-b_eps, np.zeros((nf, b_eps.shape[1]))])
    Pi = np.vstack([np.zeros((n, nf)), np.eye(nf)])

    return Gamma0, Gamma1, Psi, Pi, forward


def linearize(spec: ModelSpec, steady_state: Union[SteadyState, np.ndarray],
              params: Mapping[str, float], keep: Optional[Sequence[str]] = None,
              div: float = DEFAULT_DIV, step: float = 1e-6) -> StateSpaceSystem:
    """
    First-order solution of the model in state-space form.

    Args:
        spec: Model specification
        steady_state: Steady state y* (SteadyState or array)
        params: Parameter vector θ
        keep: Extra variables to retain in the state vector
        div: Stable/unstable root threshold
        step: Relative finite-difference step for the Jacobians

    Returns:
        StateSpaceSystem

    Raises:
        BlanchardKahnViolation: No unique stable solution at θ
    """
    y_ss = np.asarray(getattr(steady_state, 'values', steady_state), dtype=float)
    ss = steady_state if isinstance(steady_state, SteadyState) else None

    a_lag, a0, a_lead, b_eps = jacobians(spec, y_ss, params, step)
    Gamma0, Gamma1, Psi, Pi, forward = canonical_form(a_lag, a0, a_lead, b_eps)
    G1, impact, info = gensys(Gamma0, Gamma1, Psi, Pi, div=div)

    names = list(spec.var_names) + [f"E_{spec.var_names[j]}" for j in forward]

    # Only columns hit by Γ1 can carry dynamics
    candidates = np.flatnonzero(np.any(Gamma1 != 0, axis=0))
    scale = max(1.0, float(np.max(np.abs(G1)))) if G1.size else 1.0
    states = {j for j in candidates if np.max(np.abs(G1[:, j])) > STATE_TOL * scale}

    required = set(states)
    required.update(spec.index(obs.variable) for obs in spec.varobs)
    if keep is not None:
        required.update(spec.index(v) for v in keep)
    kept = sorted(required)
    position = {j: i for i, j in enumerate(kept)}

    diff_vars = []
    for obs in spec.varobs:
        if obs.transform == 'diff' and obs.variable not in diff_vars:
            diff_vars.append(obs.variable)

    nk = len(kept)
    n_s = nk + len(diff_vars)
    T = np.zeros((n_s, n_s))
    T[:nk, :nk] = G1[np.ix_(kept, kept)]
    R = np.zeros((n_s, spec.n_shocks))
    R[:nk] = impact[kept]

    state_names = [names[j] for j in kept]
    lag_position = {}
    for i, var in enumerate(diff_vars):
        row = nk + i
        T[row, position[spec.index(var)]] = 1.0
        lag_position[var] = row
        state_names.append(f"lag_{var}")

    Z = np.zeros((len(spec.varobs), n_s))
    for i, obs in enumerate(spec.varobs):
        Z[i, position[spec.index(obs.variable)]] = 1.0
        if obs.transform == 'diff':
            Z[i, lag_position[obs.variable]] = -1.0

    n_y = len(spec.varobs)
    system = StateSpaceSystem(
        T=T, R=R, Q=spec.shock_covariance(params), Z=Z,
        D=np.zeros(n_y), H=np.zeros((n_y, n_y)),
        state_names=state_names, obs_names=spec.obs_names,
        shock_names=spec.shock_names, steady_state=ss,
        eigenvalues=info['eigenvalues'], n_unstable=info['n_unstable'],
        n_forward=info['n_forward'],
    )
    logger.debug("Linearized %s: %d states, %d unstable roots, %d forward-looking",
                 spec.name, n_s, info['n_unstable'], info['n_forward'])
    return system


def solve_model(spec: ModelSpec, params: Mapping[str, float],
                keep: Optional[Sequence[str]] = None) -> StateSpaceSystem:
    """
    Convenience function: steady state, then linearization.

    Args:
        spec: Model specification
        params: Parameter vector θ
        keep: Extra variables to retain in the state vector

    Returns:
        StateSpaceSystem
    """
    ss = solve_steady_state(spec, params)
    return linearize(spec, ss, params, keep=keep)
