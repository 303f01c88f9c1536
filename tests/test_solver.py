"""Tests for gensys and the linearizer."""

import numpy as np
import pytest

from cfdsge import carlstrom_fuerst as cf
from cfdsge.exceptions import BlanchardKahnViolation
from cfdsge.gensys import gensys
from cfdsge.kalman import kalman_likelihood
from cfdsge.solver import linearize, solve_model
from cfdsge.steady_state import solve_steady_state


def forward_canonical(beta, rho):
    """y = [x_t, z_t, E_t x_{t+1}] for x_t = beta E_t x_{t+1} + z_t."""
    g0 = np.array([[1.0, -1.0, -beta],
                   [0.0, 1.0, 0.0],
                   [1.0, 0.0, 0.0]])
    g1 = np.array([[0.0, 0.0, 0.0],
                   [0.0, rho, 0.0],
                   [0.0, 0.0, 1.0]])
    psi = np.array([[0.0], [1.0], [0.0]])
    pi = np.array([[0.0], [0.0], [1.0]])
    return g0, g1, psi, pi


def test_gensys_forward_looking_solution():
    beta, rho = 0.95, 0.8
    G1, impact, info = gensys(*forward_canonical(beta, rho))

    assert info['exists'] and info['unique']
    assert info['n_unstable'] == 1
    assert G1[0, 1] == pytest.approx(rho / (1 - beta * rho), rel=1e-8)
    assert G1[1, 1] == pytest.approx(rho, rel=1e-10)
    assert impact[0, 0] == pytest.approx(1 / (1 - beta * rho), rel=1e-8)
    assert impact[1, 0] == pytest.approx(1.0, rel=1e-10)
    np.testing.assert_allclose(G1[:, 0], 0.0, atol=1e-10)


def test_gensys_indeterminacy():
    with pytest.raises(BlanchardKahnViolation) as info:
        gensys(*forward_canonical(1.5, 0.8))
    assert info.value.exists
    assert not info.value.unique
    assert info.value.n_unstable == 0


def test_gensys_no_stable_solution():
    g0, g1 = np.array([[1.0]]), np.array([[2.0]])
    psi, pi = np.array([[1.0]]), np.zeros((1, 1))
    with pytest.raises(BlanchardKahnViolation) as info:
        gensys(g0, g1, psi, pi)
    assert not info.value.exists
    assert info.value.n_unstable == 1


def test_linearize_forward_model(forward_spec):
    params = forward_spec.parameters()
    beta, rho = params['beta'], params['rho']
    ss = solve_steady_state(forward_spec, params)
    system = linearize(forward_spec, ss, params)

    # E_x carries no dynamics, so only x (observed) and z remain
    assert system.state_names == ('x', 'z')
    np.testing.assert_allclose(system.T, [[0.0, rho / (1 - beta * rho)], [0.0, rho]], atol=1e-8)
    np.testing.assert_allclose(system.R[:, 0], [1 / (1 - beta * rho), 1.0], rtol=1e-8)
    np.testing.assert_allclose(system.Q, [[0.01]])
    np.testing.assert_allclose(system.Z, [[1.0, 0.0]])


def test_system_arrays_are_read_only(forward_spec):
    system = solve_model(forward_spec, forward_spec.parameters())
    with pytest.raises(ValueError):
        system.T[0, 0] = 1.0


def test_unknown_state_raises_key_error(forward_spec):
    system = solve_model(forward_spec, forward_spec.parameters())
    with pytest.raises(KeyError):
        system.index('E_x')


def test_carlstrom_fuerst_system(cf_system):
    is_stable, max_modulus = cf_system.check_stability()
    assert is_stable
    assert max_modulus < 1.0
    assert 'lag_y' in cf_system.state_names
    assert 'lag_rp' in cf_system.state_names

    # dy = y_t - y_{t-1}
    row = cf_system.Z[0]
    assert row[cf_system.index('y')] == 1.0
    assert row[cf_system.index('lag_y')] == -1.0
    assert cf_system.obs_names == ('dy', 'drp')


def test_keep_retains_report_variables(cf_spec):
    system = solve_model(cf_spec, cf_spec.parameters(), keep=cf.REPORT_VARS)
    for var in cf.REPORT_VARS:
        assert var in system.state_names


def test_linearization_is_deterministic(cf_spec, cf_observations):
    params = cf_spec.parameters()
    first = solve_model(cf_spec, params)
    second = solve_model(cf_spec, params)
    assert first.state_names == second.state_names
    np.testing.assert_array_equal(first.T, second.T)
    np.testing.assert_array_equal(first.R, second.R)
    assert kalman_likelihood(first, cf_observations) == kalman_likelihood(second, cf_observations)


def test_linearization_stable_under_small_perturbation(cf_spec):
    base = solve_model(cf_spec, cf_spec.parameters())
    moved = solve_model(cf_spec, cf_spec.parameters({'rhoA': 0.85 + 1e-9}))
    assert base.state_names == moved.state_names
    np.testing.assert_allclose(base.T, moved.T, atol=1e-6)
    np.testing.assert_allclose(base.R, moved.R, atol=1e-6)


def test_explosive_risk_process_violates_blanchard_kahn(cf_spec):
    with pytest.raises(BlanchardKahnViolation):
        solve_model(cf_spec, cf_spec.parameters({'rhomu': 1.2}))
