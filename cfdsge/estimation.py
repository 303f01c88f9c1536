"""
Bayesian Estimation for DSGE Models
====================================

Posterior kernel and posterior mode-finding for DSGE models.

Posterior ∝ Prior × Likelihood
- Prior: Specified distributions on parameters
- Likelihood: Steady state, linearization and Kalman filter

Any parameter vector without a valid model solution (steady state not
found, Blanchard-Kahn violation, filter divergence, value outside the
prior support) has log posterior -inf. Mode-finding failures are raised
as ModeFindingError, since they leave the MCMC proposal uncalibrated.
"""

import logging
import numpy as np
from scipy import optimize
from typing import Dict, List, Mapping, Optional, Union

from .exceptions import EstimationError, ModeFindingError, OutOfSupport
from .kalman import kalman_likelihood
from .model import ModelSpec
from .priors import Prior
from .solver import linearize
from .steady_state import solve_steady_state
from .utils import is_positive_definite


logger = logging.getLogger(__name__)

# Value handed to the optimizer where the posterior is -inf
PENALTY = 1e10

MODE_COMPUTE = {
    0: None,
    1: 'L-BFGS-B',
    3: 'Powell',
    7: 'Nelder-Mead',
}


def optimizer_method(mode_compute: Union[int, str, None]) -> Optional[str]:
    """
    Optimizer for a mode_compute option.

    Args:
        mode_compute: 0 (no optimization), 1 (L-BFGS-B), 3 (Powell),
            7 (Nelder-Mead), or a scipy.optimize.minimize method name

    Returns:
        Method name, or None to skip optimization
    """
    if mode_compute is None or isinstance(mode_compute, str):
        return mode_compute
    if mode_compute not in MODE_COMPUTE:
        raise ValueError(f"Unsupported mode_compute={mode_compute}. "
                         f"Available: {sorted(MODE_COMPUTE)} or a method name")
    return MODE_COMPUTE[mode_compute]


class BayesianEstimator:
    """Bayesian estimator for DSGE models."""

    def __init__(self, spec: ModelSpec, priors: Mapping[str, Prior],
                 observations, param_names: Optional[List[str]] = None):
        """
        Initialize Bayesian estimator.

        Args:
            spec: Model specification
            priors: Dictionary mapping parameter names to Prior objects
            observations: ObservationSet (or array T x n_obs) with columns in varobs order
            param_names: Parameters to estimate (defaults to the prior keys)
        """
        self.spec = spec
        self.priors = dict(priors)
        self.observations = observations
        self.param_names = list(param_names) if param_names is not None else list(priors)

        missing = [p for p in self.param_names if p not in self.priors]
        if missing:
            raise ValueError(f"No prior specified for {missing}")

        # Extract bounds from priors
        self.bounds = [(self.priors[p].lower, self.priors[p].upper) for p in self.param_names]

    def parameters(self, x: np.ndarray) -> Dict[str, float]:
        """Full parameter vector θ for estimated values x."""
        return self.spec.parameters(dict(zip(self.param_names, np.asarray(x, dtype=float))))

    def log_prior(self, x: np.ndarray) -> float:
        """
        Compute log prior density.

        Args:
            x: Estimated parameter vector

        Returns:
            Log prior density

        Raises:
            OutOfSupport: A value lies outside its prior support
        """
        log_p = 0.0

        for name, value in zip(self.param_names, x):
            prior = self.priors[name]
            if not prior.in_support(value):
                raise OutOfSupport(name, float(value))
            log_p += prior.log_pdf(value)

        return log_p

    def log_likelihood(self, x: np.ndarray) -> float:
        """
        Compute log likelihood via Kalman filter.

        Args:
            x: Estimated parameter vector

        Returns:
            Log likelihood

        Raises:
            EstimationError: The model has no valid solution at x
        """
        params = self.parameters(x)
        ss = solve_steady_state(self.spec, params)
        system = linearize(self.spec, ss, params)
        return kalman_likelihood(system, self.observations)

    def log_posterior(self, x: np.ndarray) -> float:
        """
        Compute log posterior density.

        Args:
            x: Estimated parameter vector

        Returns:
            Log posterior density, -inf where the model has no valid solution
        """
        try:
            log_prior = self.log_prior(x)
            # If prior is -inf, don't evaluate likelihood
            if not np.isfinite(log_prior):
                return -np.inf
            value = log_prior + self.log_likelihood(x)
        except EstimationError as exc:
            logger.debug("Rejected %s: %s", np.round(np.asarray(x), 6), exc)
            return -np.inf

        return value if np.isfinite(value) else -np.inf

    def neg_log_posterior(self, x: np.ndarray) -> float:
        """Negative log posterior for minimization."""
        value = self.log_posterior(x)
        return -value if np.isfinite(value) else PENALTY

    def initial_values(self) -> np.ndarray:
        """Prior means, moved inside the support where needed."""
        x = []
        for name in self.param_names:
            prior = self.priors[name]
            value = prior.mean if np.isfinite(prior.mean) else 0.5 * (prior.lower + prior.upper)
            x.append(value)
        return np.array(x)

    def _optimizer_bounds(self):
        bounds = []
        for lower, upper in self.bounds:
            lo = lower + 1e-8 if np.isfinite(lower) else None
            hi = upper - 1e-8 if np.isfinite(upper) else None
            bounds.append((lo, hi))
        return bounds

    def find_mode(self, initial_params: Optional[np.ndarray] = None,
                  mode_compute: Union[int, str, None] = 1,
                  options: Optional[Dict] = None) -> Dict:
        """
        Find posterior mode using numerical optimization.

        Args:
            initial_params: Initial parameter values (prior means if None)
            mode_compute: Optimizer choice, see optimizer_method()
            options: Options for scipy.optimize.minimize

        Returns:
            Dictionary with estimation results

        Raises:
            ModeFindingError: Invalid start, optimizer failure, or a Hessian
                that does not give a positive definite covariance
        """
        method = optimizer_method(mode_compute)

        # Initialize parameters
        if initial_params is None:
            initial_params = self.initial_values()
        initial_params = np.asarray(initial_params, dtype=float)

        lp0 = self.log_posterior(initial_params)
        if not np.isfinite(lp0):
            raise ModeFindingError("Log posterior is -inf at the initial values")
        logger.info("Initial log posterior: %.4f", lp0)

        if method is None:
            mode = initial_params
            message = 'mode_compute=0: no optimization'
            n_iterations = 0
        else:
            # Default options
            if options is None:
                options = {'maxiter': 1000}

            logger.info("Starting optimization with %s...", method)
            result = optimize.minimize(
                self.neg_log_posterior,
                initial_params,
                method=method,
                bounds=self._optimizer_bounds(),
                options=options
            )
            if not result.success:
                raise ModeFindingError(f"{method} did not converge: {result.message}")
            mode = result.x
            message = str(result.message)
            n_iterations = int(getattr(result, 'nit', 0))

        log_post = self.log_posterior(mode)
        if not np.isfinite(log_post):
            raise ModeFindingError("Log posterior is -inf at the optimizer solution")

        # Compute Hessian at mode (numerical)
        hessian = self._numerical_hessian(mode)
        if not np.all(np.isfinite(hessian)):
            raise ModeFindingError("Hessian at the mode is not finite")
        try:
            vcov = np.linalg.inv(hessian)
        except np.linalg.LinAlgError as exc:
            raise ModeFindingError(f"Hessian at the mode is singular: {exc}") from exc
        vcov = 0.5 * (vcov + vcov.T)
        if not is_positive_definite(vcov):
            raise ModeFindingError("Inverse Hessian at the mode is not positive definite")

        # Create results dictionary
        results = {
            'mode': mode,
            'log_posterior': log_post,
            'log_likelihood': self.log_likelihood(mode),
            'log_prior': self.log_prior(mode),
            'param_names': self.param_names,
            'hessian': hessian,
            'vcov': vcov,
            'std_errors': np.sqrt(np.diag(vcov)),
            'method': method,
            'message': message,
            'n_iterations': n_iterations,
        }

        return results

    def _numerical_hessian(self, params: np.ndarray, eps: float = 1e-3) -> np.ndarray:
        """
        Compute numerical Hessian of the negative log posterior.

        Step for parameter i is eps * max(|x_i|, 1e-3), central differences.

        Args:
            params: Parameter vector
            eps: Relative step size

        Returns:
            Hessian matrix
        """
        n = len(params)
        hessian = np.zeros((n, n))
        h = eps * np.maximum(np.abs(params), 1e-3)

        def f(shift):
            return -self.log_posterior(params + shift)

        f0 = f(np.zeros(n))

        for i in range(n):
            e_i = np.zeros(n)
            e_i[i] = h[i]
            hessian[i, i] = (f(e_i) - 2*f0 + f(-e_i)) / h[i]**2

            for j in range(i+1, n):
                e_j = np.zeros(n)
                e_j[j] = h[j]
                hessian[i, j] = (f(e_i + e_j) - f(e_i - e_j)
                                 - f(-e_i + e_j) + f(-e_i - e_j)) / (4 * h[i] * h[j])
                hessian[j, i] = hessian[i, j]

        return hessian

    def print_results(self, results: Dict):
        """Print estimation results in readable format."""
        print("\n" + "="*60)
        print("POSTERIOR MODE")
        print("="*60)

        print(f"\nLog Posterior: {results['log_posterior']:.4f}")
        print(f"Log Likelihood: {results['log_likelihood']:.4f}")
        print(f"Log Prior: {results['log_prior']:.4f}")
        print(f"\nOptimization: {results['message']}")
        print(f"Iterations: {results['n_iterations']}")

        print(f"\nPosterior Mode Estimates:")
        print("-" * 60)
        print(f"{'Parameter':<15} {'Prior mean':>12} {'Mode':>12} {'Std Error':>12}")
        print("-" * 60)

        for i, name in enumerate(results['param_names']):
            mode = results['mode'][i]
            se = results['std_errors'][i]
            print(f"{name:<15} {self.priors[name].mean:12.4f} {mode:12.4f} {se:12.4f}")

        print("-" * 60)
