"""
Steady-State Solver
===================

Damped Newton iteration for the deterministic steady state y* of a model,

    F(y*, y*, y*, 0, θ) = 0

The step is halved while the trial point produces non-finite residuals
(logs of negative numbers, probabilities outside [0, 1]) or fails to
reduce the residual norm. The solver keeps no state between calls.
"""

import logging
import numpy as np
from dataclasses import dataclass
from scipy import linalg
from typing import Dict, Mapping, Optional, Tuple, Union

from .exceptions import NoConvergence, SingularJacobian
from .model import ModelSpec
from .utils import numerical_jacobian


logger = logging.getLogger(__name__)

MIN_STEP = 2.0**-30
MAX_CONDITION = 1e14


@dataclass(frozen=True)
class SteadyState:
    """Steady-state values of the endogenous variables."""
    values: np.ndarray
    names: Tuple[str, ...]
    residual_norm: float
    iterations: int

    def __post_init__(self):
        values = np.array(self.values, dtype=float)
        values.setflags(write=False)
        object.__setattr__(self, 'values', values)

    def __getitem__(self, name: str) -> float:
        return float(self.values[self.names.index(name)])

    def as_dict(self) -> Dict[str, float]:
        return {name: float(v) for name, v in zip(self.names, self.values)}


def _residual_norm(res: np.ndarray) -> float:
    return float(np.max(np.abs(res))) if res.size else 0.0


def solve_steady_state(spec: ModelSpec, params: Mapping[str, float],
                       guess: Optional[Union[np.ndarray, Mapping[str, float]]] = None,
                       tol: float = 1e-10, max_iter: int = 100,
                       jac_step: float = 1e-7) -> SteadyState:
    """
    Solve F(y, y, y, 0, θ) = 0 by damped Newton iteration.

    Args:
        spec: Model specification
        params: Parameter vector θ
        guess: Starting point, as an array or a mapping of variable values.
            Defaults to spec.initval(θ), or zeros when the model declares none.
        tol: Tolerance on the max-abs residual
        max_iter: Maximum Newton iterations
        jac_step: Relative finite-difference step when no analytic Jacobian is given

    Returns:
        SteadyState

    Raises:
        NoConvergence: Tolerance not reached, or no step reduces the residual
        SingularJacobian: Jacobian is non-finite or numerically singular
    """
    if guess is None:
        x = spec.initial_guess(params)
    elif isinstance(guess, Mapping):
        x = spec.initial_guess(params)
        for name, value in guess.items():
            x[spec.index(name)] = value
    else:
        x = np.array(guess, dtype=float)

    def objective(y):
        return spec.static_residual(y, params)

    def jacobian(y):
        if spec.jacobian is not None:
            return np.asarray(spec.jacobian(y, params), dtype=float)
        return numerical_jacobian(objective, y, jac_step)

    with np.errstate(all='ignore'):
        f = objective(x)
        if not (np.all(np.isfinite(x)) and np.all(np.isfinite(f))):
            raise NoConvergence("Residuals are not finite at the initial guess")
        norm = _residual_norm(f)

        for iteration in range(max_iter + 1):
            if norm < tol:
                logger.debug("Steady state found in %d iterations (|F|=%.2e)", iteration, norm)
                return SteadyState(x, spec.var_names, norm, iteration)
            if iteration == max_iter:
                break

            J = jacobian(x)
            if not np.all(np.isfinite(J)):
                raise SingularJacobian(f"Non-finite Jacobian at iteration {iteration}")
            if np.linalg.cond(J) > MAX_CONDITION:
                raise SingularJacobian(f"Jacobian is singular at iteration {iteration} "
                                       f"(condition number {np.linalg.cond(J):.2e})")
            try:
                step = linalg.solve(J, -f)
            except linalg.LinAlgError as exc:
                raise SingularJacobian(f"Newton step failed at iteration {iteration}: {exc}") from exc

            # Backtrack until the trial point is valid and improves the residual
            lam = 1.0
            while True:
                x_new = x + lam * step
                f_new = objective(x_new)
                if (np.all(np.isfinite(x_new)) and np.all(np.isfinite(f_new))
                        and _residual_norm(f_new) < norm):
                    break
                lam *= 0.5
                if lam < MIN_STEP:
                    raise NoConvergence(f"Line search failed at iteration {iteration}",
                                        iterations=iteration, residual_norm=norm)

            x, f, norm = x_new, f_new, _residual_norm(f_new)

    raise NoConvergence(f"No convergence after {max_iter} iterations (|F|={norm:.2e})",
                        iterations=max_iter, residual_norm=norm)
