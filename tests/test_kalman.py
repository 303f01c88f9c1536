"""Tests for the Kalman filter, smoother and likelihood."""

import numpy as np
import pytest

from cfdsge.exceptions import NumericalDivergence
from cfdsge.kalman import KalmanFilter, initial_covariance, kalman_likelihood


def simulate_ar1(rho, sigma, n, seed):
    rng = np.random.default_rng(seed)
    y = np.zeros(n)
    y[0] = rng.standard_normal() * sigma / np.sqrt(1 - rho**2)
    for t in range(1, n):
        y[t] = rho * y[t-1] + sigma * rng.standard_normal()
    return y.reshape(-1, 1)


def ar1_filter(rho, sigma):
    return KalmanFilter(T=[[rho]], R=[[1.0]], Q=[[sigma**2]], Z=[[1.0]])


def test_ar1_loglik_per_period():
    rho, sigma = 0.8, 0.5
    y = simulate_ar1(rho, sigma, 5000, seed=1)
    out = ar1_filter(rho, sigma).filter(y)

    expected = -0.5 * (np.log(2 * np.pi) + np.log(sigma**2) + 1)
    assert out['log_likelihood'] / len(y) == pytest.approx(expected, abs=0.05)
    assert out['log_likelihood'] == pytest.approx(out['contributions'].sum())


def test_first_period_uses_unconditional_variance():
    rho, sigma = 0.5, 1.0
    P0 = initial_covariance(np.array([[rho]]), np.array([[sigma**2]]))
    assert P0[0, 0] == pytest.approx(sigma**2 / (1 - rho**2))


def test_missing_period_contributes_nothing():
    rho, sigma = 0.8, 0.5
    y = simulate_ar1(rho, sigma, 50, seed=2)
    y[10] = np.nan
    out = ar1_filter(rho, sigma).filter(y)

    assert out['contributions'][10] == 0.0
    np.testing.assert_allclose(out['s_filt'][10], out['s_pred'][10])
    assert np.isfinite(out['log_likelihood'])


def test_all_missing_gives_zero_loglik():
    y = np.full((20, 1), np.nan)
    out = ar1_filter(0.5, 1.0).filter(y)
    assert out['log_likelihood'] == 0.0


def test_partially_missing_observation_uses_observed_rows():
    T = np.diag([0.5, 0.3])
    kf = KalmanFilter(T=T, R=np.eye(2), Q=np.eye(2), Z=np.eye(2))
    y = np.array([[0.2, np.nan]])
    out = kf.filter(y)

    # Only the first state is observed: N(0, 1/(1-0.25))
    var = 1 / (1 - 0.25)
    expected = -0.5 * (np.log(2 * np.pi) + np.log(var) + 0.2**2 / var)
    assert out['contributions'][0] == pytest.approx(expected)
    assert np.isnan(out['v'][0, 1])


def test_degenerate_measurement_raises_divergence():
    kf = KalmanFilter(T=[[0.5]], R=[[1.0]], Q=[[1.0]], Z=[[0.0]])
    with pytest.raises(NumericalDivergence) as info:
        kf.filter(np.array([[1.0]]))
    assert info.value.period == 0


def test_wrong_number_of_columns():
    with pytest.raises(ValueError):
        ar1_filter(0.5, 1.0).filter(np.zeros((10, 2)))


def test_smoother_matches_filter_at_last_period():
    y = simulate_ar1(0.8, 0.5, 100, seed=3)
    y[40:45] = np.nan
    kf = ar1_filter(0.8, 0.5)
    filtered = kf.filter(y)
    smooth = kf.smoother(filtered)

    np.testing.assert_allclose(smooth['s_smooth'][-1], filtered['s_filt'][-1])
    # Observed without error: smoothed state equals the data
    observed = ~np.isnan(y[:, 0])
    np.testing.assert_allclose(smooth['s_smooth'][observed, 0], y[observed, 0], atol=1e-10)
    # Gaps are filled between the neighbouring observations
    assert np.all(np.isfinite(smooth['s_smooth'][40:45]))
    assert np.all(smooth['P_smooth'][40:45, 0, 0] > 0)


def test_kalman_likelihood_of_system(cf_system, cf_observations):
    value = kalman_likelihood(cf_system, cf_observations)
    assert np.isfinite(value)
    # The missing first period contributes nothing
    out = KalmanFilter.from_system(cf_system).filter(cf_observations.data)
    assert out['contributions'][0] == 0.0
    assert value == pytest.approx(out['log_likelihood'])
