"""
Prior Distribution Classes
===========================

Implements prior distributions for Bayesian DSGE estimation:
- Beta distribution
- Gamma distribution
- Normal distribution
- Inverse-Gamma distribution (type 1, on standard deviations)
- Uniform distribution

All families are parameterized by prior mean and standard deviation, the
way estimated_params blocks declare them.

Each class provides:
- log_pdf: Log probability density function
- pdf: Probability density function
- rvs: Random sampling
- Support bounds checking
"""

import numpy as np
from scipy import optimize, special, stats
from typing import Optional, Tuple


class Prior:
    """Base class for prior distributions."""

    def __init__(self, lower: float = -np.inf, upper: float = np.inf):
        """
        Initialize prior distribution.

        Args:
            lower: Lower bound of support
            upper: Upper bound of support
        """
        self.lower = lower
        self.upper = upper

    def log_pdf(self, x: float) -> float:
        """Log probability density at x."""
        raise NotImplementedError

    def pdf(self, x: float) -> float:
        """Probability density at x."""
        return np.exp(self.log_pdf(x))

    def rvs(self, size: Optional[int] = None, random_state=None) -> np.ndarray:
        """Generate random samples."""
        raise NotImplementedError

    def in_support(self, x: float) -> bool:
        """Check if x is in the support of the distribution."""
        return bool(np.isfinite(x)) and self.lower <= x <= self.upper

    def __repr__(self):
        return f"{type(self).__name__}(mean={self.mean:.4g}, std={self.std:.4g})"


class BetaPrior(Prior):
    """Beta distribution prior."""

    def __init__(self, mean: float, std: float, lower: float = 0.0, upper: float = 1.0):
        """
        Initialize Beta prior using mean and standard deviation.

        The Beta distribution is parameterized by alpha and beta, but we use
        mean and std for convenience, then compute alpha and beta.

        Args:
            mean: Prior mean (must be in (lower, upper))
            std: Prior standard deviation
            lower: Lower bound (default 0)
            upper: Upper bound (default 1)
        """
        super().__init__(lower, upper)
        self.mean = mean
        self.std = std

        # Work on the unit interval, then rescale
        width = upper - lower
        m = (mean - lower) / width
        var = (std / width)**2
        if not 0 < m < 1 or var >= m * (1 - m):
            raise ValueError(f"Infeasible Beta prior: mean={mean}, std={std}")

        # For Beta(α, β): mean = α/(α+β), var = αβ/[(α+β)²(α+β+1)]
        sum_ab = m * (1 - m) / var - 1
        self.alpha = m * sum_ab
        self.beta = (1 - m) * sum_ab

        self.dist = stats.beta(self.alpha, self.beta, loc=lower, scale=width)

    def log_pdf(self, x: float) -> float:
        """Log probability density at x."""
        if not self.in_support(x):
            return -np.inf
        return float(self.dist.logpdf(x))

    def rvs(self, size: Optional[int] = None, random_state=None) -> np.ndarray:
        """Generate random samples."""
        return self.dist.rvs(size=size, random_state=random_state)


class GammaPrior(Prior):
    """Gamma distribution prior."""

    def __init__(self, mean: float, std: float, lower: float = 0.0, upper: float = np.inf):
        """
        Initialize Gamma prior using mean and standard deviation.

        Args:
            mean: Prior mean (must be positive)
            std: Prior standard deviation
            lower: Lower bound (default 0)
            upper: Upper bound (default infinity)
        """
        super().__init__(lower, upper)
        self.mean = mean
        self.std = std

        # For Gamma(k, θ): mean = k*θ, var = k*θ²
        var = std**2
        self.shape = mean**2 / var  # k parameter
        self.scale = var / mean      # θ parameter

        self.dist = stats.gamma(self.shape, loc=0, scale=self.scale)

    def log_pdf(self, x: float) -> float:
        """Log probability density at x."""
        if not self.in_support(x):
            return -np.inf
        return float(self.dist.logpdf(x))

    def rvs(self, size: Optional[int] = None, random_state=None) -> np.ndarray:
        """Generate random samples."""
        samples = self.dist.rvs(size=size, random_state=random_state)
        # Truncate to bounds if necessary
        if self.upper < np.inf:
            samples = np.minimum(samples, self.upper)
        return samples


class NormalPrior(Prior):
    """Normal (Gaussian) distribution prior."""

    def __init__(self, mean: float, std: float, lower: float = -np.inf, upper: float = np.inf):
        """
        Initialize Normal prior.

        Args:
            mean: Prior mean
            std: Prior standard deviation
            lower: Lower bound (default -infinity)
            upper: Upper bound (default +infinity)
        """
        super().__init__(lower, upper)
        self.mean = mean
        self.std = std
        self.dist = stats.norm(loc=mean, scale=std)

    def log_pdf(self, x: float) -> float:
        """Log probability density at x."""
        if not self.in_support(x):
            return -np.inf
        return float(self.dist.logpdf(x))

    def rvs(self, size: Optional[int] = None, random_state=None) -> np.ndarray:
        """Generate random samples."""
        samples = self.dist.rvs(size=size, random_state=random_state)
        return np.clip(samples, self.lower, self.upper)


def inverse_gamma_shape(mean: float, std: float = np.inf) -> Tuple[float, float]:
    """
    Degrees of freedom ν and scale s of an inverse-gamma-1 prior.

    For σ ~ IG1(s, ν):
        E[σ]  = sqrt(s/2) Γ((ν-1)/2) / Γ(ν/2)
        E[σ²] = s / (ν-2)

    An infinite std gives ν = 2, the least informative proper choice.

    Args:
        mean: Prior mean
        std: Prior standard deviation (np.inf allowed)

    Returns:
        (nu, s)
    """
    if mean <= 0:
        raise ValueError(f"Inverse-gamma mean must be positive, got {mean}")

    def scale(nu):
        return 2.0 * (mean * np.exp(special.gammaln(nu / 2) - special.gammaln((nu - 1) / 2)))**2

    if not np.isfinite(std):
        return 2.0, scale(2.0)

    def excess_variance(nu):
        return scale(nu) / (nu - 2) - mean**2 - std**2

    nu = optimize.brentq(excess_variance, 2.0 + 1e-9, 1e7, xtol=1e-12)
    return nu, scale(nu)


class InverseGammaPrior(Prior):
    """Inverse-Gamma (type 1) prior on a standard deviation."""

    def __init__(self, mean: float, std: float = np.inf, lower: float = 0.0, upper: float = np.inf):
        """
        Initialize Inverse-Gamma prior using mean and standard deviation.

        Args:
            mean: Prior mean
            std: Prior standard deviation, np.inf for ν = 2
            lower: Lower bound (default 0)
            upper: Upper bound (default infinity)
        """
        super().__init__(lower, upper)
        self.mean = mean
        self.std = std
        self.nu, self.s = inverse_gamma_shape(mean, std)

        # 1/σ² ~ χ²_ν / s
        self._chi2 = stats.chi2(self.nu)

    def log_pdf(self, x: float) -> float:
        """Log probability density at x."""
        if not self.in_support(x) or x <= 0:
            return -np.inf
        nu, s = self.nu, self.s
        return float(np.log(2.0) - special.gammaln(nu / 2) + (nu / 2) * np.log(s / 2)
                     - (nu + 1) * np.log(x) - s / (2 * x**2))

    def rvs(self, size: Optional[int] = None, random_state=None) -> np.ndarray:
        """Generate random samples."""
        samples = np.sqrt(self.s / self._chi2.rvs(size=size, random_state=random_state))
        # Truncate to bounds if necessary
        if self.upper < np.inf:
            samples = np.minimum(samples, self.upper)
        return samples


class UniformPrior(Prior):
    """Uniform distribution prior."""

    def __init__(self, lower: float, upper: float):
        """
        Initialize Uniform prior on [lower, upper].

        Args:
            lower: Lower bound
            upper: Upper bound
        """
        if not lower < upper:
            raise ValueError(f"Uniform prior needs lower < upper, got [{lower}, {upper}]")
        super().__init__(lower, upper)
        self.mean = 0.5 * (lower + upper)
        self.std = (upper - lower) / np.sqrt(12)
        self.dist = stats.uniform(loc=lower, scale=upper - lower)

    def log_pdf(self, x: float) -> float:
        """Log probability density at x."""
        if not self.in_support(x):
            return -np.inf
        return float(-np.log(self.upper - self.lower))

    def rvs(self, size: Optional[int] = None, random_state=None) -> np.ndarray:
        """Generate random samples."""
        return self.dist.rvs(size=size, random_state=random_state)


def create_prior(prior_type: str, *args, **kwargs) -> Prior:
    """
    Factory function to create prior distributions.

    Args:
        prior_type: Type of prior ('beta', 'gamma', 'normal', 'invgamma',
            'uniform', or the *_pdf names of an estimated_params block)
        *args: Positional arguments for the prior
        **kwargs: Keyword arguments for the prior

    Returns:
        Prior distribution object

    Example:
        >>> prior = create_prior('beta', mean=0.5, std=0.2)
        >>> prior = create_prior('inv_gamma_pdf', mean=0.01, std=np.inf)
    """
    prior_map = {
        'beta': BetaPrior,
        'beta_pdf': BetaPrior,
        'gamma': GammaPrior,
        'gamma_pdf': GammaPrior,
        'normal': NormalPrior,
        'normal_pdf': NormalPrior,
        'invgamma': InverseGammaPrior,
        'inv_gamma': InverseGammaPrior,
        'inv_gamma_pdf': InverseGammaPrior,
        'inv_gamma1_pdf': InverseGammaPrior,
        'uniform': UniformPrior,
        'uniform_pdf': UniformPrior,
    }

    prior_type = prior_type.lower()
    if prior_type not in prior_map:
        raise ValueError(f"Unknown prior type: {prior_type}. "
                        f"Available: {list(prior_map.keys())}")

    return prior_map[prior_type](*args, **kwargs)
