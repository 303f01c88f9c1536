"""
Kalman Filter Implementation
=============================

Kalman filter for linear state-space models with missing observations.
Computes the likelihood used in DSGE model estimation, plus the
fixed-interval smoother and smoothed shocks used for decompositions.

State-space form:
    s_t = T * s_{t-1} + R * ε_t        (State equation)
    y_t = Z * s_t + D + u_t            (Measurement equation)

where:
    s_t: State vector (n_s x 1)
    y_t: Observed variables (n_y x 1), NaN marks a missing entry
    ε_t ~ N(0, Q): Structural shocks
    u_t ~ N(0, H): Measurement errors

The prediction-error covariance is factorized by Cholesky every period. A
failed factorization means the filter diverged and raises
NumericalDivergence rather than returning NaN.
"""

import numpy as np
from typing import Dict, Optional
from scipy import linalg
import warnings

from .exceptions import NumericalDivergence
from .utils import check_stability, lyapunov_equation


LOG_2PI = np.log(2 * np.pi)
DIFFUSE_SCALE = 1e6
PINV_RTOL = 1e-9


def initial_covariance(T: np.ndarray, RQR: np.ndarray) -> np.ndarray:
    """
    Unconditional state covariance P = T P T' + RQR'.

    Falls back to the doubling algorithm when the direct solver fails, and to
    a diffuse prior when T is not stable.
    """
    is_stable, max_modulus = check_stability(T)
    if not is_stable:
        warnings.warn(f"Transition matrix is not stable (max |λ| = {max_modulus:.4f}); "
                      f"using diffuse initialization")
        return DIFFUSE_SCALE * np.eye(T.shape[0])

    try:
        P = linalg.solve_discrete_lyapunov(T, RQR)
    except (linalg.LinAlgError, ValueError):
        P = lyapunov_equation(T, RQR)
    if not np.all(np.isfinite(P)):
        P = lyapunov_equation(T, RQR)

    return 0.5 * (P + P.T)


class KalmanFilter:
    """Kalman filter for state-space models with missing observations."""

    def __init__(self, T: np.ndarray, R: np.ndarray, Q: np.ndarray,
                 Z: np.ndarray, D: Optional[np.ndarray] = None, H: Optional[np.ndarray] = None):
        """
        Initialize Kalman filter.

        Args:
            T: State transition matrix (n_s x n_s)
            R: Shock loading matrix (n_s x n_eps)
            Q: Shock covariance matrix (n_eps x n_eps)
            Z: Measurement matrix (n_y x n_s)
            D: Measurement constant (n_y,), zero if None
            H: Measurement error covariance (n_y x n_y), zero if None
        """
        self.T = np.asarray(T, dtype=float)
        self.R = np.asarray(R, dtype=float)
        self.Q = np.asarray(Q, dtype=float)
        self.Z = np.asarray(Z, dtype=float)
        self.n_s = self.T.shape[0]  # Number of states
        self.n_y = self.Z.shape[0]  # Number of observables
        self.n_eps = self.Q.shape[0]  # Number of shocks

        self.D = np.zeros(self.n_y) if D is None else np.asarray(D, dtype=float).reshape(-1)
        self.H = np.zeros((self.n_y, self.n_y)) if H is None else np.asarray(H, dtype=float)
        self.RQR = self.R @ self.Q @ self.R.T

        # Storage for filter output
        self.s_pred = None  # Predicted states
        self.s_filt = None  # Filtered states
        self.P_pred = None  # Predicted state covariance
        self.P_filt = None  # Filtered state covariance
        self.v = None       # Innovations (NaN where missing)
        self.contributions = None  # Per-period log-likelihood

    @classmethod
    def from_system(cls, system) -> 'KalmanFilter':
        """Build a filter from a StateSpaceSystem."""
        return cls(system.T, system.R, system.Q, system.Z, system.D, system.H)

    def filter(self, y: np.ndarray, s0: Optional[np.ndarray] = None,
               P0: Optional[np.ndarray] = None) -> Dict:
        """
        Run Kalman filter forward pass.

        Args:
            y: Observed data (T x n_y), NaN for missing entries
            s0: Initial state prediction (n_s,), zero if None
            P0: Initial state covariance (n_s x n_s), unconditional if None

        Returns:
            Dictionary with filter output

        Raises:
            NumericalDivergence: Prediction-error covariance not positive definite
        """
        y = np.asarray(y, dtype=float)
        if y.ndim == 1:
            y = y.reshape(-1, 1)
        if y.shape[1] != self.n_y:
            raise ValueError(f"Data has {y.shape[1]} columns, model has {self.n_y} observables")
        T_obs = y.shape[0]

        # Initialize storage
        self.s_pred = np.zeros((T_obs + 1, self.n_s))
        self.s_filt = np.zeros((T_obs, self.n_s))
        self.P_pred = np.zeros((T_obs + 1, self.n_s, self.n_s))
        self.P_filt = np.zeros((T_obs, self.n_s, self.n_s))
        self.v = np.full((T_obs, self.n_y), np.nan)
        self.contributions = np.zeros(T_obs)

        if s0 is not None:
            self.s_pred[0] = np.asarray(s0, dtype=float).reshape(-1)
        self.P_pred[0] = initial_covariance(self.T, self.RQR) if P0 is None else P0

        # Forward pass
        for t in range(T_obs):
            observed = ~np.isnan(y[t])
            if observed.any():
                self._update_step(t, y[t], observed)
            else:
                # Nothing observed: the prediction carries over
                self.s_filt[t] = self.s_pred[t]
                self.P_filt[t] = self.P_pred[t]
            self._predict_step(t)

        log_lik = float(np.sum(self.contributions))
        if not np.isfinite(log_lik):
            raise NumericalDivergence("Log-likelihood is not finite")

        return {
            's_pred': self.s_pred[:-1],  # Drop last prediction
            's_filt': self.s_filt,
            'P_pred': self.P_pred[:-1],
            'P_filt': self.P_filt,
            'v': self.v,
            'contributions': self.contributions,
            'log_likelihood': log_lik,
        }

    def _update_step(self, t: int, y_t: np.ndarray, observed: np.ndarray):
        """
        Measurement update (correction) step on the observed entries.

        Args:
            t: Time index
            y_t: Observation at time t (n_y,)
            observed: Mask of non-missing entries
        """
        Z_t = self.Z[observed]
        H_t = self.H[np.ix_(observed, observed)]
        P = self.P_pred[t]

        # Innovation
        v = y_t[observed] - Z_t @ self.s_pred[t] - self.D[observed]
        self.v[t, observed] = v

        # Innovation variance
        F = Z_t @ P @ Z_t.T + H_t
        try:
            F_chol = linalg.cho_factor(F, lower=True)
        except (linalg.LinAlgError, ValueError) as exc:
            raise NumericalDivergence(f"Prediction-error covariance is not positive "
                                      f"definite at period {t}: {exc}", period=t) from exc

        # Likelihood contribution
        F_inv_v = linalg.cho_solve(F_chol, v)
        logdet = 2.0 * np.sum(np.log(np.diag(F_chol[0])))
        self.contributions[t] = -0.5 * (observed.sum() * LOG_2PI + logdet + v @ F_inv_v)

        # Kalman gain
        K = linalg.cho_solve(F_chol, Z_t @ P).T

        # Updated state
        self.s_filt[t] = self.s_pred[t] + K @ v

        # Updated covariance (Joseph form)
        I_KZ = np.eye(self.n_s) - K @ Z_t
        P_filt = I_KZ @ P @ I_KZ.T + K @ H_t @ K.T

        # Ensure symmetry
        self.P_filt[t] = 0.5 * (P_filt + P_filt.T)

    def _predict_step(self, t: int):
        """
        Time update (prediction) step.

        Args:
            t: Current time index (predicting for t+1)
        """
        # Predicted state
        self.s_pred[t+1] = self.T @ self.s_filt[t]

        # Predicted covariance
        P = self.T @ self.P_filt[t] @ self.T.T + self.RQR

        # Ensure symmetry
        self.P_pred[t+1] = 0.5 * (P + P.T)

    def smoother(self, filter_output: Dict) -> Dict:
        """
        Rauch-Tung-Striebel smoother (backward pass).

        Args:
            filter_output: Output from filter() method

        Returns:
            Dictionary with smoothed estimates
        """
        s_filt = filter_output['s_filt']
        P_filt = filter_output['P_filt']
        s_pred = filter_output['s_pred']
        P_pred = filter_output['P_pred']
        T_obs = s_filt.shape[0]

        # Initialize storage
        s_smooth = np.zeros_like(s_filt)
        P_smooth = np.zeros_like(P_filt)

        # Initialize with filtered values
        s_smooth[-1] = s_filt[-1]
        P_smooth[-1] = P_filt[-1]

        # Backward pass
        for t in range(T_obs - 2, -1, -1):
            # Smoother gain; P_pred is singular when shocks < states
            J_t = P_filt[t] @ self.T.T @ linalg.pinvh(P_pred[t+1], rtol=PINV_RTOL)

            # Smoothed state
            s_smooth[t] = s_filt[t] + J_t @ (s_smooth[t+1] - s_pred[t+1])

            # Smoothed covariance
            P_smooth[t] = P_filt[t] + J_t @ (P_smooth[t+1] - P_pred[t+1]) @ J_t.T

        return {
            's_smooth': s_smooth,
            'P_smooth': P_smooth
        }

    def smoothed_shocks(self, filter_output: Dict, smoother_output: Dict) -> np.ndarray:
        """
        Smoothed structural shocks E[ε_t | y_1..y_T].

        Uses E[ε_t | Y] = Q R' P_{t|t-1}^+ (s_{t|T} - s_{t|t-1}).

        Args:
            filter_output: Output from filter() method
            smoother_output: Output from smoother() method

        Returns:
            Smoothed shocks (T x n_eps)
        """
        s_pred = filter_output['s_pred']
        P_pred = filter_output['P_pred']
        s_smooth = smoother_output['s_smooth']
        QR = self.Q @ self.R.T

        shocks = np.zeros((s_smooth.shape[0], self.n_eps))
        for t in range(s_smooth.shape[0]):
            shocks[t] = QR @ linalg.pinvh(P_pred[t], rtol=PINV_RTOL) @ (s_smooth[t] - s_pred[t])

        return shocks


def kalman_likelihood(system, observations) -> float:
    """
    Log-likelihood of the observations under a state-space system.

    Args:
        system: StateSpaceSystem
        observations: ObservationSet or array (T x n_y)

    Returns:
        Log-likelihood value

    Raises:
        NumericalDivergence: Filter covariance lost positive definiteness
    """
    data = getattr(observations, 'data', observations)
    kf = KalmanFilter.from_system(system)
    return kf.filter(data)['log_likelihood']
