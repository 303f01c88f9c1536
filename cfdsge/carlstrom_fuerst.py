"""
Carlstrom-Fuerst (1997) Model with Risk Shocks
===============================================

Agency-cost model of Carlstrom and Fuerst (1997, AER). Entrepreneurs
produce capital with a technology subject to idiosyncratic lognormal
productivity ω, E[ω] = 1, and borrow from banks under costly state
verification. A risk shock moves the cross-sectional dispersion

    σ_t = σ̄ · exp(mu_t)

Endogenous variables (all in logs except mu):
    y    output               c    household consumption
    inv  investment           h    hours
    k    capital              r    rental rate of capital
    w    wage                 q    price of capital
    n    entrepreneurial net worth
    z    entrepreneurial capital holdings
    e    entrepreneurial consumption
    omb  default threshold ω̄
    rp   bank risk premium    la   labor productivity
    a    productivity         mu   risk (dispersion) shock

Shocks: eA (productivity), eM (risk).

Observables: output growth and bank risk premium growth.
"""

import numpy as np
from scipy import special
from typing import Dict, Mapping

from .model import ModelSpec, ObservedVariable
from .priors import Prior, create_prior


VAR_NAMES = ('y', 'c', 'inv', 'h', 'k', 'r', 'w', 'q', 'n', 'z', 'e',
             'omb', 'rp', 'la', 'a', 'mu')
SHOCK_NAMES = ('eA', 'eM')
PARAM_NAMES = ('beta', 'alpha', 'zeta', 'delta', 'sigma_bar', 'mcost', 'bkrate',
               'nu', 'rhoA', 'rhomu', 'stderr_eA', 'stderr_eM',
               'omegabar_ss', 'gamma_e')

CALIBRATION = {
    'beta': 0.99,
    'alpha': 0.29868,
    'zeta': 1 - 0.29868 - 0.0001,
    'delta': 0.02,
    'sigma_bar': 0.207,
    'mcost': 0.25,
    'bkrate': 0.00974,
    'nu': 2.52,
    'rhoA': 0.85,
    'rhomu': 0.32,
    'stderr_eA': 0.005,
    'stderr_eM': 0.014,
}

SHOCK_STDERR = {'eA': 'stderr_eA', 'eM': 'stderr_eM'}

VAROBS = (
    ObservedVariable('dy', 'y', 'diff'),
    ObservedVariable('drp', 'rp', 'diff'),
)

# Columns of the prepared data file holding the observables
DATA_COLUMNS = {'dy': 'log_Y', 'drp': 'log_rpBANK'}

REPORT_VARS = ('y', 'c', 'inv', 'r', 'q', 'la', 'a', 'h', 'rp')

# name: (family, mean, std)
ESTIMATED_PARAMS = {
    'rhoA': ('beta_pdf', 0.85, 0.1),
    'rhomu': ('beta_pdf', 0.32, 0.1),
    'stderr_eA': ('inv_gamma_pdf', 0.005, np.inf),
    'stderr_eM': ('inv_gamma_pdf', 0.014, np.inf),
}

_IDX = {name: i for i, name in enumerate(VAR_NAMES)}
_INV_SQRT_2PI = 1.0 / np.sqrt(2 * np.pi)


def contract_terms(omb: float, sigma: float, mcost: float) -> Dict[str, float]:
    """
    Debt-contract quantities for log ω ~ N(-σ²/2, σ²).

    Args:
        omb: log of the default threshold ω̄
        sigma: Dispersion σ
        mcost: Monitoring cost as a share of the defaulting project

    Returns:
        Dictionary with
            Phi: default probability Φ(ω̄)
            phi: density of ω at ω̄
            G:   partial expectation ∫_0^ω̄ ω dΦ
            f:   entrepreneur share 1 - G - ω̄(1 - Φ)
            g:   bank share net of monitoring G + ω̄(1 - Φ) - mΦ
    """
    omegabar = np.exp(omb)
    zz = (omb + 0.5 * sigma**2) / sigma
    Phi = special.ndtr(zz)
    phi = _INV_SQRT_2PI * np.exp(-0.5 * zz**2) / (omegabar * sigma)
    G = special.ndtr(zz - sigma)
    f = 1 - G - omegabar * (1 - Phi)
    g = G + omegabar * (1 - Phi) - mcost * Phi
    return {'Phi': Phi, 'phi': phi, 'G': G, 'f': f, 'g': g}


def derived_parameters(params: Mapping[str, float]) -> Dict[str, float]:
    """
    Default threshold and entrepreneurial discount factor implied by the
    target bankruptcy rate.
    """
    sigma = params['sigma_bar']
    omb = sigma * special.ndtri(params['bkrate']) - 0.5 * sigma**2
    ct = contract_terms(omb, sigma, params['mcost'])
    gamma_e = 1 - params['mcost'] * ct['phi'] / (1 - ct['Phi'])
    return {'omegabar_ss': float(np.exp(omb)), 'gamma_e': float(gamma_e)}


def steady_state_values(params: Mapping[str, float]) -> np.ndarray:
    """Closed-form steady state, in the order of VAR_NAMES."""
    beta, alpha, zeta = params['beta'], params['alpha'], params['zeta']
    delta, mcost, nu = params['delta'], params['mcost'], params['nu']

    omb = np.log(params['omegabar_ss'])
    ct = contract_terms(omb, params['sigma_bar'], mcost)
    Phi, phi, f, g = ct['Phi'], ct['phi'], ct['f'], ct['g']

    q = 1 / (1 - mcost * Phi - mcost * phi * f / (1 - Phi))
    r = q * (1 / beta - 1 + delta)

    # Ratios to output
    i_y = delta * alpha / (r * (1 - mcost * Phi))
    n_y = i_y * (1 - q * g)
    z_y = (n_y - (1 - alpha - zeta)) * beta / q
    e_y = q * (i_y * f - z_y)
    c_y = 1 - i_y - e_y

    H = zeta / (nu * c_y)
    Y = (alpha / r)**(alpha / (1 - alpha)) * H**(zeta / (1 - alpha))
    K = alpha * Y / r
    I = i_y * Y
    N = n_y * Y
    W = zeta * Y / H

    levels = {
        'y': Y, 'c': c_y * Y, 'inv': I, 'h': H, 'k': K, 'r': r, 'w': W, 'q': q,
        'n': N, 'z': z_y * Y, 'e': e_y * Y, 'omb': np.exp(omb),
        'rp': np.exp(omb) * q * I / (I - N), 'la': Y / H, 'a': 1.0,
    }
    values = np.zeros(len(VAR_NAMES))
    for name, level in levels.items():
        values[_IDX[name]] = np.log(level)
    values[_IDX['mu']] = 0.0
    return values


def residuals(y_lag: np.ndarray, y: np.ndarray, y_lead: np.ndarray,
              eps: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    """Equilibrium conditions F(y_{t-1}, y_t, y_{t+1}, ε_t, θ)."""
    p = params
    alpha, zeta, beta, delta = p['alpha'], p['zeta'], p['beta'], p['delta']
    mcost, sigma_bar = p['mcost'], p['sigma_bar']

    lag = {name: y_lag[i] for name, i in _IDX.items()}
    cur = {name: y[i] for name, i in _IDX.items()}
    lead = {name: y_lead[i] for name, i in _IDX.items()}

    Y, C, I, K = np.exp(cur['y']), np.exp(cur['c']), np.exp(cur['inv']), np.exp(cur['k'])
    R, Q, N, Z, E = (np.exp(cur['r']), np.exp(cur['q']), np.exp(cur['n']),
                     np.exp(cur['z']), np.exp(cur['e']))
    R1, Q1, C1 = np.exp(lead['r']), np.exp(lead['q']), np.exp(lead['c'])
    K_lag, Z_lag = np.exp(lag['k']), np.exp(lag['z'])

    ct = contract_terms(cur['omb'], sigma_bar * np.exp(cur['mu']), mcost)
    ct1 = contract_terms(lead['omb'], sigma_bar * np.exp(lead['mu']), mcost)

    res = np.empty(len(VAR_NAMES))
    # Production and factor prices
    res[0] = cur['y'] - cur['a'] - alpha * lag['k'] - zeta * cur['h']
    res[1] = cur['r'] - (np.log(alpha) + cur['y'] - lag['k'])
    res[2] = cur['w'] - (np.log(zeta) + cur['y'] - cur['h'])
    # Household labor supply and Euler equation
    res[3] = cur['w'] - (np.log(p['nu']) + cur['c'])
    res[4] = 1 - beta * (R1 + Q1 * (1 - delta)) * C / (C1 * Q)
    # Capital accumulation net of monitoring costs
    res[5] = 1 - ((1 - delta) * K_lag + I * (1 - mcost * ct['Phi'])) / K
    # Entrepreneurial net worth
    res[6] = 1 - ((1 - alpha - zeta) * Y + Z_lag * (R + Q * (1 - delta))) / N
    # Loan contract: investment and price of capital
    res[7] = 1 - N / (I * (1 - Q * ct['g']))
    res[8] = Q * (1 - mcost * ct['Phi'] - mcost * ct['phi'] * ct['f'] / (1 - ct['Phi'])) - 1
    # Entrepreneurial capital holdings and Euler equation
    res[9] = 1 - (Q * I * ct['f'] - E) / (Q * Z)
    res[10] = 1 - beta * p['gamma_e'] * (R1 + Q1 * (1 - delta)) * Q1 * ct1['f'] / ((1 - Q1 * ct1['g']) * Q)
    # Resource constraint
    res[11] = 1 - (C + I + E) / Y
    # Bank risk premium ω̄ Q I / (I - N)
    res[12] = cur['rp'] - (cur['omb'] + cur['q'] + cur['inv'] - np.log(I - N))
    # Labor productivity
    res[13] = cur['la'] - (cur['y'] - cur['h'])
    # Exogenous processes
    res[14] = cur['a'] - p['rhoA'] * lag['a'] - eps[0]
    res[15] = cur['mu'] - p['rhomu'] * lag['mu'] - eps[1]
    return res


def build_model() -> ModelSpec:
    """Carlstrom-Fuerst model specification."""
    return ModelSpec(
        name="Carlstrom-Fuerst (1997) with risk shocks",
        var_names=VAR_NAMES,
        shock_names=SHOCK_NAMES,
        param_names=PARAM_NAMES,
        residual=residuals,
        calibration=CALIBRATION,
        shock_stderr=SHOCK_STDERR,
        varobs=VAROBS,
        initval=steady_state_values,
        derived=derived_parameters,
        report_vars=REPORT_VARS,
    )


def estimated_priors() -> Dict[str, Prior]:
    """Priors of the estimated parameters."""
    return {name: create_prior(family, mean=mean, std=std)
            for name, (family, mean, std) in ESTIMATED_PARAMS.items()}
