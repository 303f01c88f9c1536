"""Shared fixtures: small linear models and the Carlstrom-Fuerst model."""

import numpy as np
import pytest

from cfdsge import carlstrom_fuerst as cf
from cfdsge.data_loader import ObservationSet
from cfdsge.model import ModelSpec, ObservedVariable
from cfdsge.simulation import simulate
from cfdsge.solver import solve_model


def forward_residual(y_lag, y, y_lead, eps, p):
    # x_t = beta E_t x_{t+1} + z_t,  z_t = rho z_{t-1} + e_t
    return np.array([
        y[0] - p['beta'] * y_lead[0] - y[1],
        y[1] - p['rho'] * y_lag[1] - eps[0],
    ])


def ar1_residual(y_lag, y, y_lead, eps, p):
    return np.array([y[0] - p['rho'] * y_lag[0] - eps[0]])


@pytest.fixture
def forward_spec():
    return ModelSpec(
        name="forward-looking",
        var_names=('x', 'z'),
        shock_names=('e',),
        param_names=('beta', 'rho', 'sig_e'),
        residual=forward_residual,
        calibration={'beta': 0.95, 'rho': 0.8, 'sig_e': 0.1},
        shock_stderr={'e': 'sig_e'},
        varobs=(ObservedVariable('xobs', 'x'),),
    )


@pytest.fixture
def ar1_spec():
    return ModelSpec(
        name="AR(1)",
        var_names=('z',),
        shock_names=('e',),
        param_names=('rho', 'sig_e'),
        residual=ar1_residual,
        calibration={'rho': 0.7, 'sig_e': 0.1},
        shock_stderr={'e': 'sig_e'},
        varobs=(ObservedVariable('zobs', 'z'),),
    )


@pytest.fixture(scope="module")
def cf_spec():
    return cf.build_model()


@pytest.fixture(scope="module")
def cf_system(cf_spec):
    return solve_model(cf_spec, cf_spec.parameters())


@pytest.fixture(scope="module")
def cf_observations(cf_system):
    """160 quarters simulated from the calibrated model, first row missing."""
    states = simulate(cf_system, 160, seed=11).to_numpy()
    data = states @ np.asarray(cf_system.Z).T
    data[0] = np.nan
    return ObservationSet(data, cf_system.obs_names, None)
