"""Tests for the posterior kernel and mode finding."""

import numpy as np
import pytest

from cfdsge import carlstrom_fuerst as cf
from cfdsge.data_loader import ObservationSet
from cfdsge.estimation import BayesianEstimator, optimizer_method
from cfdsge.exceptions import ModeFindingError, OutOfSupport
from cfdsge.mcmc import run_chains
from cfdsge.priors import create_prior
from cfdsge.simulation import simulate
from cfdsge.solver import solve_model


@pytest.fixture
def ar1_estimator(ar1_spec):
    system = solve_model(ar1_spec, ar1_spec.parameters())
    data = simulate(system, 400, seed=5)[['z']].to_numpy()
    observations = ObservationSet(data, ('zobs',), None)
    priors = {
        'rho': create_prior('beta', mean=0.5, std=0.2),
        'sig_e': create_prior('inv_gamma', mean=0.1, std=np.inf),
    }
    return BayesianEstimator(ar1_spec, priors, observations)


def test_optimizer_method():
    assert optimizer_method(0) is None
    assert optimizer_method(1) == 'L-BFGS-B'
    assert optimizer_method('BFGS') == 'BFGS'
    with pytest.raises(ValueError):
        optimizer_method(42)


def test_log_prior_out_of_support(ar1_estimator):
    with pytest.raises(OutOfSupport) as info:
        ar1_estimator.log_prior(np.array([1.2, 0.1]))
    assert info.value.name == 'rho'


def test_log_posterior_rejects_invalid_values(ar1_estimator):
    assert ar1_estimator.log_posterior(np.array([1.2, 0.1])) == -np.inf
    assert ar1_estimator.log_posterior(np.array([0.5, -0.1])) == -np.inf
    assert ar1_estimator.neg_log_posterior(np.array([1.2, 0.1])) == 1e10


def test_mode_recovers_parameters(ar1_estimator):
    results = ar1_estimator.find_mode(mode_compute=7)
    rho, sig = results['mode']
    assert rho == pytest.approx(0.7, abs=0.1)
    assert sig == pytest.approx(0.1, abs=0.02)
    assert np.all(np.linalg.eigvalsh(results['vcov']) > 0)
    assert np.all(results['std_errors'] > 0)
    assert results['log_posterior'] == pytest.approx(results['log_likelihood'] + results['log_prior'])


def test_mode_compute_zero_keeps_start(ar1_estimator):
    start = np.array([0.7, 0.1])
    results = ar1_estimator.find_mode(initial_params=start, mode_compute=0)
    np.testing.assert_array_equal(results['mode'], start)
    assert results['n_iterations'] == 0


def test_invalid_start_raises(ar1_estimator):
    with pytest.raises(ModeFindingError):
        ar1_estimator.find_mode(initial_params=np.array([1.5, 0.1]))


def test_hessian_of_quadratic(ar1_estimator, monkeypatch):
    A = np.array([[4.0, 1.0], [1.0, 3.0]])
    monkeypatch.setattr(ar1_estimator, 'log_posterior', lambda x: -0.5 * x @ A @ x)
    H = ar1_estimator._numerical_hessian(np.array([0.3, 0.2]))
    np.testing.assert_allclose(H, A, rtol=1e-5)


def test_carlstrom_fuerst_posterior(cf_spec, cf_observations):
    estimator = BayesianEstimator(cf_spec, cf.estimated_priors(), cf_observations)
    assert estimator.param_names == ['rhoA', 'rhomu', 'stderr_eA', 'stderr_eM']

    x = estimator.initial_values()
    np.testing.assert_allclose(x, [0.85, 0.32, 0.005, 0.014])
    assert np.isfinite(estimator.log_posterior(x))

    x_bad = x.copy()
    x_bad[0] = 1.5
    assert estimator.log_posterior(x_bad) == -np.inf


def test_carlstrom_fuerst_chains_in_worker_processes(cf_spec, cf_observations):
    estimator = BayesianEstimator(cf_spec, cf.estimated_priors(), cf_observations)
    x = estimator.initial_values()
    covariance = np.diag((0.05 * x)**2)
    kwargs = dict(n_draws=15, n_chains=2, jscale=0.5, init_scale=0.0, seed=3,
                  param_names=estimator.param_names)

    parallel = run_chains(estimator.log_posterior, x, covariance, max_workers=2,
                          executor='process', **kwargs)
    sequential = run_chains(estimator.log_posterior, x, covariance, **kwargs)

    assert [s.chain_id for s in parallel] == [0, 1]
    for p, s in zip(parallel, sequential):
        assert p.completed
        assert p.param_names == tuple(estimator.param_names)
        np.testing.assert_allclose(p.draws, s.draws, rtol=1e-10)
