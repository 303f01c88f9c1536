"""
Utility Functions
=================

General utility functions for DSGE model solution and estimation:
- Matrix operations
- Numerical derivatives
- Filters and moments
- Logging setup
"""

import logging
import numpy as np
from typing import Callable, Tuple

from rich.console import Console
from rich.logging import RichHandler


logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", rich_tracebacks: bool = True) -> None:
    """Configure the root logger with a rich console handler."""
    handler = RichHandler(console=Console(stderr=True), rich_tracebacks=rich_tracebacks)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


def is_positive_definite(matrix: np.ndarray, tol: float = 1e-10) -> bool:
    """
    Check if a matrix is positive definite.

    Args:
        matrix: Square matrix to check
        tol: Tolerance for eigenvalue positivity

    Returns:
        True if matrix is positive definite
    """
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        return False
    if not np.all(np.isfinite(matrix)):
        return False

    try:
        # Try Cholesky decomposition
        np.linalg.cholesky(matrix)
        return True
    except np.linalg.LinAlgError:
        # Fall back to eigenvalue check
        eigenvalues = np.linalg.eigvalsh(0.5 * (matrix + matrix.T))
        return bool(np.all(eigenvalues > tol))


def lyapunov_equation(A: np.ndarray, Q: np.ndarray, tol: float = 1e-12, max_iter: int = 100) -> np.ndarray:
    """
    Solve discrete-time Lyapunov equation: X = A @ X @ A.T + Q

    Uses the doubling algorithm.

    Args:
        A: State transition matrix (n x n)
        Q: Innovation covariance matrix (n x n)
        tol: Convergence tolerance
        max_iter: Maximum doubling steps

    Returns:
        Solution matrix X (n x n)
    """
    X = Q.copy()
    A_k = A.copy()

    for i in range(max_iter):
        X_new = X + A_k @ X @ A_k.T
        A_k = A_k @ A_k
        diff = np.max(np.abs(X_new - X))
        X = X_new

        if diff < tol:
            return 0.5 * (X + X.T)

    logger.warning("Lyapunov doubling did not converge after %d steps", max_iter)
    return 0.5 * (X + X.T)


def check_stability(T: np.ndarray) -> Tuple[bool, float]:
    """
    Check if state-space system is stable (eigenvalues inside unit circle).

    Args:
        T: State transition matrix

    Returns:
        (is_stable, max_eigenvalue_modulus)
    """
    if T.size == 0:
        return True, 0.0
    eigenvalues = np.linalg.eigvals(T)
    max_modulus = float(np.max(np.abs(eigenvalues)))
    is_stable = max_modulus < 1.0

    return is_stable, max_modulus


def numerical_jacobian(func: Callable[[np.ndarray], np.ndarray], x: np.ndarray,
                       step: float = 1e-6) -> np.ndarray:
    """
    Central finite-difference Jacobian.

    The step for coordinate j is step * max(1, |x_j|). Columns of arguments
    the function does not depend on come out exactly zero.

    Args:
        func: Vector function of x
        x: Evaluation point (n,)
        step: Relative step size

    Returns:
        Jacobian matrix (m x n)
    """
    x = np.asarray(x, dtype=float)
    f0 = np.asarray(func(x), dtype=float)
    jac = np.zeros((f0.size, x.size))

    for j in range(x.size):
        h = step * max(1.0, abs(x[j]))
        x_plus = x.copy()
        x_plus[j] += h
        x_minus = x.copy()
        x_minus[j] -= h
        jac[:, j] = (np.asarray(func(x_plus)) - np.asarray(func(x_minus))) / (2 * h)

    return jac


def autocorr(x: np.ndarray, lags: int = 1) -> np.ndarray:
    """
    Compute autocorrelation function.

    Args:
        x: Time series data (T x n)
        lags: Number of lags

    Returns:
        Autocorrelation coefficients (lags+1 x n)
    """
    one_dim = x.ndim == 1
    if one_dim:
        x = x.reshape(-1, 1)
    n = x.shape[1]

    # Demean
    x_dm = x - np.mean(x, axis=0)

    # Compute autocorrelations
    acf = np.zeros((lags + 1, n))
    c0 = np.sum(x_dm**2, axis=0)

    for lag in range(lags + 1):
        if lag == 0:
            acf[lag, :] = 1.0
        else:
            c_lag = np.sum(x_dm[lag:, :] * x_dm[:-lag, :], axis=0)
            with np.errstate(divide='ignore', invalid='ignore'):
                acf[lag, :] = c_lag / c0

    return acf.flatten() if one_dim else acf


def hp_filter(data: np.ndarray, lamb: float = 1600) -> Tuple[np.ndarray, np.ndarray]:
    """
    Hodrick-Prescott filter for trend-cycle decomposition.

    Args:
        data: Time series data (T,) or (T x n), filtered column by column
        lamb: Smoothness parameter (1600 for quarterly data)

    Returns:
        (trend, cycle) components
    """
    T = len(data)

    # Build second-difference matrix
    D = np.zeros((T-2, T))
    for i in range(T-2):
        D[i, i] = 1
        D[i, i+1] = -2
        D[i, i+2] = 1

    # Solve: trend = (I + λD'D)^(-1) y
    I = np.eye(T)
    DTD = D.T @ D
    trend = np.linalg.solve(I + lamb * DTD, data)
    cycle = data - trend

    return trend, cycle
