"""Tests for prior distributions."""

import numpy as np
import pytest
from scipy import integrate, special, stats

from cfdsge.priors import (BetaPrior, GammaPrior, InverseGammaPrior, NormalPrior,
                           UniformPrior, create_prior, inverse_gamma_shape)


def test_beta_prior_matches_moments():
    prior = BetaPrior(0.85, 0.1)
    reference = stats.beta(prior.alpha, prior.beta)
    assert reference.mean() == pytest.approx(0.85)
    assert reference.std() == pytest.approx(0.1)
    assert prior.log_pdf(0.7) == pytest.approx(reference.logpdf(0.7))


def test_beta_prior_outside_support():
    prior = BetaPrior(0.32, 0.1)
    assert prior.log_pdf(1.5) == -np.inf
    assert not prior.in_support(1.5)
    assert not prior.in_support(np.nan)


def test_infeasible_beta_prior():
    with pytest.raises(ValueError):
        BetaPrior(0.5, 0.6)


def test_gamma_prior_moments():
    prior = GammaPrior(2.0, 0.5)
    grid = np.linspace(1e-6, 10, 20001)
    pdf = np.exp([prior.log_pdf(x) for x in grid])
    assert integrate.trapezoid(grid * pdf, grid) == pytest.approx(2.0, rel=1e-3)


def test_normal_prior():
    prior = NormalPrior(0.0, 2.0)
    assert prior.log_pdf(1.0) == pytest.approx(stats.norm(0, 2).logpdf(1.0))


def test_uniform_prior():
    prior = UniformPrior(-1.0, 3.0)
    assert prior.log_pdf(0.0) == pytest.approx(-np.log(4.0))
    assert prior.log_pdf(3.5) == -np.inf


def test_inverse_gamma_infinite_std_has_two_degrees_of_freedom():
    nu, s = inverse_gamma_shape(0.005, np.inf)
    assert nu == 2.0
    mean = np.sqrt(s / 2) * np.exp(special.gammaln((nu - 1) / 2) - special.gammaln(nu / 2))
    assert mean == pytest.approx(0.005)


def test_inverse_gamma_finite_std_moments():
    prior = InverseGammaPrior(0.1, 0.05)

    def pdf(x):
        return np.exp(prior.log_pdf(x))

    total, _ = integrate.quad(pdf, 0, 5, points=[0.05, 0.1, 0.2])
    mean, _ = integrate.quad(lambda x: x * pdf(x), 0, 5, points=[0.05, 0.1, 0.2])
    second, _ = integrate.quad(lambda x: x**2 * pdf(x), 0, 5, points=[0.05, 0.1, 0.2])
    assert total == pytest.approx(1.0, rel=1e-4)
    assert mean == pytest.approx(0.1, rel=1e-3)
    assert np.sqrt(second - mean**2) == pytest.approx(0.05, rel=1e-2)


def test_inverse_gamma_draws():
    prior = InverseGammaPrior(0.1, 0.05)
    draws = prior.rvs(size=200000, random_state=np.random.default_rng(0))
    assert np.all(draws > 0)
    assert draws.mean() == pytest.approx(0.1, rel=0.02)


def test_create_prior_names():
    assert isinstance(create_prior('beta_pdf', mean=0.5, std=0.2), BetaPrior)
    assert isinstance(create_prior('inv_gamma_pdf', mean=0.01, std=np.inf), InverseGammaPrior)
    with pytest.raises(ValueError):
        create_prior('cauchy', 0, 1)
