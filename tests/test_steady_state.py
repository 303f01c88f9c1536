"""Tests for the Newton steady-state solver."""

import numpy as np
import pytest

from cfdsge import carlstrom_fuerst as cf
from cfdsge.exceptions import NoConvergence, SingularJacobian
from cfdsge.model import ModelSpec
from cfdsge.steady_state import solve_steady_state


def solow_residual(y_lag, y, y_lead, eps, p):
    return np.array([y[0] - (1 - p['delta']) * y_lag[0] - p['s'] * y_lag[0]**p['alpha']])


@pytest.fixture
def solow_spec():
    return ModelSpec(
        name="Solow",
        var_names=('k',),
        shock_names=(),
        param_names=('s', 'delta', 'alpha'),
        residual=solow_residual,
        calibration={'s': 0.2, 'delta': 0.1, 'alpha': 0.3},
        shock_stderr={},
        initval=lambda p: np.array([1.0]),
    )


@pytest.mark.parametrize("guess", [0.5, 2.0, 10.0])
def test_solow_steady_state_from_several_guesses(solow_spec, guess):
    params = solow_spec.parameters()
    ss = solve_steady_state(solow_spec, params, guess=np.array([guess]))
    expected = (params['s'] / params['delta'])**(1 / (1 - params['alpha']))
    assert ss['k'] == pytest.approx(expected, rel=1e-8)
    assert ss.residual_norm < 1e-10


def test_guess_as_mapping(solow_spec):
    ss = solve_steady_state(solow_spec, solow_spec.parameters(), guess={'k': 3.0})
    assert ss['k'] == pytest.approx(2.0**(1 / 0.7), rel=1e-8)


def test_no_convergence_reports_iterations():
    spec = ModelSpec(
        name="no root", var_names=('x',), shock_names=(), param_names=(),
        residual=lambda y_lag, y, y_lead, eps, p: np.array([np.exp(y[0]) + 1.0]),
        calibration={}, shock_stderr={},
    )
    with pytest.raises(NoConvergence) as info:
        solve_steady_state(spec, spec.parameters(), max_iter=2)
    assert info.value.iterations == 2
    assert info.value.residual_norm > 1.0


def test_singular_jacobian():
    spec = ModelSpec(
        name="singular", var_names=('x', 'y'), shock_names=(), param_names=(),
        residual=lambda y_lag, y, y_lead, eps, p: np.array([y[0] + y[1] - 1, 2 * y[0] + 2 * y[1] - 2]),
        calibration={}, shock_stderr={},
    )
    with pytest.raises(SingularJacobian):
        solve_steady_state(spec, spec.parameters())


def test_carlstrom_fuerst_closed_form_is_a_steady_state(cf_spec):
    params = cf_spec.parameters()
    y = cf.steady_state_values(params)
    assert np.max(np.abs(cf_spec.static_residual(y, params))) < 1e-10


def test_carlstrom_fuerst_newton_from_perturbed_guess(cf_spec):
    params = cf_spec.parameters()
    exact = cf.steady_state_values(params)
    ss = solve_steady_state(cf_spec, params, guess=exact + 0.01)
    np.testing.assert_allclose(ss.values, exact, atol=1e-8)


def test_carlstrom_fuerst_derived_parameters(cf_spec):
    params = cf_spec.parameters()
    assert params['omegabar_ss'] == pytest.approx(0.6036, rel=1e-3)
    assert 0.9 < params['gamma_e'] < 1.0


def test_steady_state_values_are_read_only(cf_spec):
    ss = solve_steady_state(cf_spec, cf_spec.parameters())
    with pytest.raises(ValueError):
        ss.values[0] = 1.0


def test_steady_state_lookup_by_name(solow_spec):
    ss = solve_steady_state(solow_spec, solow_spec.parameters())
    assert ss.as_dict() == {'k': ss['k']}
    assert ss.names == ('k',)
