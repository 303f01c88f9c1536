"""
Error Taxonomy
==============

Exceptions raised by the solution and estimation pipeline.

Failures that only mean "this parameter vector has no valid model solution"
derive from EstimationError. The posterior kernel turns them into a log
posterior of -inf, so the sampler rejects the draw instead of crashing.
Everything else propagates to the caller.
"""


class DSGEError(Exception):
    """Base class for all package errors."""


class EstimationError(DSGEError):
    """A parameter vector for which the posterior kernel is -inf."""


class NoConvergence(EstimationError):
    """Steady-state Newton iteration did not reach the tolerance."""

    def __init__(self, message: str, iterations: int = 0, residual_norm: float = float('nan')):
        super().__init__(message)
        self.iterations = iterations
        self.residual_norm = residual_norm


class SingularJacobian(EstimationError):
    """Degenerate derivative at a candidate steady-state point."""


class BlanchardKahnViolation(EstimationError):
    """Wrong count of stable/unstable roots: no unique stable solution."""

    def __init__(self, message: str, n_unstable: int, n_forward: int,
                 exists: bool = False, unique: bool = False):
        super().__init__(message)
        self.n_unstable = n_unstable
        self.n_forward = n_forward
        self.exists = exists
        self.unique = unique


class NumericalDivergence(EstimationError):
    """Kalman prediction-error covariance lost positive definiteness."""

    def __init__(self, message: str, period: int = -1):
        super().__init__(message)
        self.period = period


class OutOfSupport(EstimationError):
    """Parameter value outside the support of its prior."""

    def __init__(self, name: str, value: float):
        super().__init__(f"{name}={value!r} is outside the prior support")
        self.name = name
        self.value = value


class ModeFindingError(DSGEError):
    """Posterior mode search failed; proposal scale cannot be calibrated."""


class DataError(DSGEError):
    """Observation file is missing columns or is misaligned."""


class ConfigError(DSGEError):
    """Invalid estimation run configuration."""


class ModelSpecError(DSGEError):
    """Inconsistent model definition."""
