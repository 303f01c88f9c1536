"""
Gensys Algorithm - Sims (2002)
================================

Pure Python implementation of Christopher Sims' gensys algorithm for solving
linear rational expectations models.

Citation:
Sims, C. A. (2002). Solving linear rational expectations models.
Computational economics, 20(1-2), 1-20.

Canonical form:
    Γ0·y_t = Γ1·y_{t-1} + Ψ·ε_t + Π·η_t

Where:
    y_t: endogenous variables
    ε_t: exogenous shocks
    η_t: expectational errors (one-step-ahead forecast errors)

The generalized Blanchard-Kahn conditions are checked through the rank of
the expectational-error loadings on the unstable block (existence) and the
span of the loadings on the stable block (uniqueness). Roots at infinity,
which arise from static variables appearing with a lead, count as unstable.
"""

import numpy as np
from scipy import linalg
from typing import Dict, Tuple

from .exceptions import BlanchardKahnViolation


DEFAULT_DIV = 1.0 + 1e-6


def _svd_range(m: np.ndarray, tol: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """SVD restricted to singular values above tol: (U, d, V) with m ≈ U diag(d) V^H."""
    if m.size == 0:
        return (np.zeros((m.shape[0], 0), dtype=complex), np.zeros(0),
                np.zeros((m.shape[1], 0), dtype=complex))
    u, d, vh = linalg.svd(m, full_matrices=False)
    big = d > tol
    return u[:, big], d[big], vh[big].conj().T


def gensys(g0: np.ndarray, g1: np.ndarray, psi: np.ndarray, pi: np.ndarray,
           div: float = DEFAULT_DIV, realsmall: float = 1e-6) -> Tuple[np.ndarray, np.ndarray, Dict]:
    """
    Solve linear rational expectations model using QZ decomposition.

    Solves the system:
        Γ0·y_t = Γ1·y_{t-1} + Ψ·ε_t + Π·η_t

    Returns policy functions:
        y_t = G1·y_{t-1} + impact·ε_t

    Args:
        g0: Coefficient matrix on y_t (n x n)
        g1: Coefficient matrix on y_{t-1} (n x n)
        psi: Coefficient matrix on shocks ε_t (n x n_eps)
        pi: Coefficient matrix on expectational errors η_t (n x n_eta)
        div: Roots with modulus above div are unstable
        realsmall: Numerical tolerance for zero

    Returns:
        G1: State transition matrix (n x n)
        impact: Shock impact matrix (n x n_eps)
        info: Dictionary with roots and stable/unstable counts

    Raises:
        BlanchardKahnViolation: No stable solution, or the solution is not unique
    """
    n = g0.shape[0]
    n_eta = pi.shape[1]

    # QZ decomposition ordered with stable roots |b/a| <= div first
    def stable_first(alpha, beta):
        return np.abs(beta) <= div * np.abs(alpha)

    a, b, alpha, beta, q, z = linalg.ordqz(g0, g1, sort=stable_first, output='complex')

    alpha = np.diag(a)
    beta = np.diag(b)
    if np.any((np.abs(alpha) < realsmall) & (np.abs(beta) < realsmall)):
        raise BlanchardKahnViolation("Coincident zeros in the QZ decomposition: "
                                     "the system is singular",
                                     n_unstable=-1, n_forward=n_eta)

    with np.errstate(divide='ignore', invalid='ignore'):
        roots = np.where(np.abs(alpha) > 0, beta / np.where(alpha == 0, 1, alpha), np.inf)

    nunstab = int(np.sum(~stable_first(alpha, beta)))
    nstab = n - nunstab

    # Sims' q is the conjugate transpose of scipy's left Schur vectors
    qh = q.conj().T
    q1 = qh[:nstab]
    q2 = qh[nstab:]

    # Existence: expectational errors must be able to offset the unstable block
    ueta, deta, veta = _svd_range(q2 @ pi, realsmall)
    exists = len(deta) >= nunstab

    # Uniqueness: stable-block loadings lie in the span of the unstable-block ones
    ueta1, deta1, veta1 = _svd_range(q1 @ pi, realsmall)
    if veta1.shape[1] == 0:
        unique = True
    else:
        loose = veta1 - veta @ (veta.conj().T @ veta1)
        loose_sv = linalg.svd(loose, compute_uv=False)
        unique = int(np.sum(np.abs(loose_sv) > realsmall * n)) == 0

    info = {
        'eigenvalues': roots,
        'n_stable': nstab,
        'n_unstable': nunstab,
        'n_forward': n_eta,
        'exists': exists,
        'unique': unique,
    }

    if not exists:
        raise BlanchardKahnViolation(
            f"No stable solution: {nunstab} unstable roots but only {len(deta)} "
            f"independent expectational errors ({n_eta} forward-looking variables)",
            n_unstable=nunstab, n_forward=n_eta, exists=False, unique=unique)
    if not unique:
        raise BlanchardKahnViolation(
            f"Indeterminacy: {nunstab} unstable roots for {n_eta} forward-looking variables",
            n_unstable=nunstab, n_forward=n_eta, exists=True, unique=False)

    # Build solution
    if nunstab > 0 and veta1.shape[1] > 0:
        phi = ueta @ np.diag(1.0 / deta) @ veta.conj().T @ veta1 @ np.diag(deta1) @ ueta1.conj().T
        tmat = np.hstack([np.eye(nstab), -phi.conj().T])
    else:
        tmat = np.hstack([np.eye(nstab), np.zeros((nstab, nunstab))])

    G0 = np.vstack([tmat @ a,
                    np.hstack([np.zeros((nunstab, nstab)), np.eye(nunstab)])])
    G1 = np.vstack([tmat @ b, np.zeros((nunstab, n))])
    G0I = linalg.inv(G0)
    G1 = G0I @ G1
    impact = G0I @ np.vstack([tmat @ qh @ psi, np.zeros((nunstab, psi.shape[1]))])

    G1 = np.real(z @ G1 @ z.conj().T)
    impact = np.real(z @ impact)

    return G1, impact, info

