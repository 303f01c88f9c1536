"""
DSGE Model Specification
=========================

Immutable description of a nonlinear DSGE model.

A model is a residual function

    F(y_{t-1}, y_t, y_{t+1}, ε_t, θ) = 0

over the endogenous variables y, the exogenous shocks ε and the structural
parameters θ, together with the declarative pieces that parameterize the
solution and estimation steps: calibration, initial values, shock standard
deviations, observed variables and report variables.

A ModelSpec never stores solution results. Steady states and state-space
systems are returned by the solver functions and passed along explicitly.
"""

import numpy as np
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple

from .exceptions import ModelSpecError


TRANSFORMS = ('level', 'diff')


@dataclass(frozen=True)
class ObservedVariable:
    """
    Mapping from a model variable to an observed data column.

    Attributes:
        name: Observable name (column in the ObservationSet)
        variable: Endogenous model variable it measures
        transform: 'level' for y_t, 'diff' for y_t - y_{t-1}
    """
    name: str
    variable: str
    transform: str = 'level'

    def __post_init__(self):
        if self.transform not in TRANSFORMS:
            raise ModelSpecError(f"Unknown transform '{self.transform}' for {self.name}. "
                                 f"Available: {list(TRANSFORMS)}")


@dataclass(frozen=True)
class ModelSpec:
    """
    Immutable DSGE model definition.

    Attributes:
        name: Model name
        var_names: Endogenous variable names, in residual order
        shock_names: Exogenous shock names
        param_names: Structural parameter names
        residual: F(y_lag, y, y_lead, eps, params) -> ndarray (n_vars,)
        calibration: Default parameter values
        shock_stderr: Mapping shock name -> parameter holding its std. dev.
        varobs: Observed variables
        initval: Optional guess function params -> ndarray (n_vars,)
        jacobian: Optional analytic steady-state Jacobian (y, params) -> (n, n)
        derived: Optional function params -> dict of dependent parameters
        report_vars: Variables reported after estimation
    """
    name: str
    var_names: Tuple[str, ...]
    shock_names: Tuple[str, ...]
    param_names: Tuple[str, ...]
    residual: Callable
    calibration: Mapping[str, float]
    shock_stderr: Mapping[str, str]
    varobs: Tuple[ObservedVariable, ...] = ()
    initval: Optional[Callable] = None
    jacobian: Optional[Callable] = None
    derived: Optional[Callable] = None
    report_vars: Tuple[str, ...] = ()
    _var_index: Mapping[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        # Read-only containers; one ModelSpec is shared by all chains
        object.__setattr__(self, 'var_names', tuple(self.var_names))
        object.__setattr__(self, 'shock_names', tuple(self.shock_names))
        object.__setattr__(self, 'param_names', tuple(self.param_names))
        object.__setattr__(self, 'varobs', tuple(self.varobs))
        object.__setattr__(self, 'report_vars', tuple(self.report_vars))
        object.__setattr__(self, 'calibration',
                           MappingProxyType({k: float(v) for k, v in self.calibration.items()}))
        object.__setattr__(self, 'shock_stderr', MappingProxyType(dict(self.shock_stderr)))
        object.__setattr__(self, '_var_index',
                           MappingProxyType({v: i for i, v in enumerate(self.var_names)}))
        self._validate()

    # mappingproxy cannot be pickled; process workers receive plain dicts
    _MAPPINGS = ('calibration', 'shock_stderr', '_var_index')

    def __getstate__(self):
        state = dict(self.__dict__)
        for key in self._MAPPINGS:
            state[key] = dict(state[key])
        return state

    def __setstate__(self, state):
        state = dict(state)
        for key in self._MAPPINGS:
            state[key] = MappingProxyType(state[key])
        self.__dict__.update(state)

    def _validate(self):
        for label, names in (('variable', self.var_names),
                             ('shock', self.shock_names),
                             ('parameter', self.param_names)):
            dupes = sorted({n for n in names if names.count(n) > 1})
            if dupes:
                raise ModelSpecError(f"Duplicate {label} names: {dupes}")

        unknown = set(self.calibration) - set(self.param_names)
        if unknown:
            raise ModelSpecError(f"Calibration of undeclared parameters: {sorted(unknown)}")

        for shock in self.shock_names:
            if shock not in self.shock_stderr:
                raise ModelSpecError(f"Shock '{shock}' has no standard deviation parameter")
            if self.shock_stderr[shock] not in self.param_names:
                raise ModelSpecError(f"Std. dev. parameter '{self.shock_stderr[shock]}' "
                                     f"of shock '{shock}' is not declared")

        for obs in self.varobs:
            if obs.variable not in self._var_index:
                raise ModelSpecError(f"Observable '{obs.name}' maps to unknown variable "
                                     f"'{obs.variable}'")
        for var in self.report_vars:
            if var not in self._var_index:
                raise ModelSpecError(f"Report variable '{var}' is not a model variable")

        # Residual dimension must match the number of variables
        if set(self.calibration) >= set(self.param_names) - set(self._derived_names()):
            params = self.parameters()
            y0 = self.initial_guess(params)
            with np.errstate(all='ignore'):
                res = np.asarray(self.residual(y0, y0, y0, np.zeros(self.n_shocks), params))
            if res.shape != (self.n_vars,):
                raise ModelSpecError(f"Residual function returns shape {res.shape}, "
                                     f"expected ({self.n_vars},)")

    def _derived_names(self) -> Tuple[str, ...]:
        if self.derived is None:
            return ()
        return tuple(self.derived(dict(self.calibration)).keys())

    @property
    def n_vars(self) -> int:
        return len(self.var_names)

    @property
    def n_shocks(self) -> int:
        return len(self.shock_names)

    @property
    def obs_names(self) -> Tuple[str, ...]:
        return tuple(obs.name for obs in self.varobs)

    def index(self, var: str) -> int:
        """Position of an endogenous variable."""
        try:
            return self._var_index[var]
        except KeyError:
            raise ModelSpecError(f"Unknown variable '{var}'") from None

    def parameters(self, overrides: Optional[Mapping[str, float]] = None) -> Dict[str, float]:
        """
        Build a fresh parameter vector θ.

        Calibrated values are overridden by `overrides`, then derived
        parameters are recomputed from the result.

        Args:
            overrides: Parameter values replacing the calibration

        Returns:
            New dictionary name -> value
        """
        params = dict(self.calibration)
        if overrides:
            unknown = set(overrides) - set(self.param_names)
            if unknown:
                raise ModelSpecError(f"Unknown parameters: {sorted(unknown)}")
            params.update({k: float(v) for k, v in overrides.items()})
        if self.derived is not None:
            params.update(self.derived(params))
        missing = [p for p in self.param_names if p not in params]
        if missing:
            raise ModelSpecError(f"Parameters without a value: {missing}")
        return params

    def initial_guess(self, params: Mapping[str, float]) -> np.ndarray:
        """Steady-state starting point: the declared initval, else the origin."""
        if self.initval is None:
            return np.zeros(self.n_vars)
        guess = np.asarray(self.initval(params), dtype=float)
        if guess.shape != (self.n_vars,):
            raise ModelSpecError(f"initval returns shape {guess.shape}, expected ({self.n_vars},)")
        return guess

    def static_residual(self, y: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
        """Steady-state objective F(y, y, y, 0, θ)."""
        return np.asarray(self.residual(y, y, y, np.zeros(self.n_shocks), params), dtype=float)

    def shock_covariance(self, params: Mapping[str, float]) -> np.ndarray:
        """Diagonal shock covariance from the std. dev. parameters."""
        stderr = np.array([params[self.shock_stderr[s]] for s in self.shock_names])
        return np.diag(stderr**2)
