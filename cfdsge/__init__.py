"""
Carlstrom-Fuerst DSGE Estimation Package
========================================

Solution and Bayesian estimation of the Carlstrom and Fuerst (1997)
agency-cost model with risk shocks, on output growth and bank risk
premium growth.

Modules:
    - exceptions: Error taxonomy
    - model: Model specification container
    - carlstrom_fuerst: Equilibrium conditions, calibration and priors
    - steady_state: Newton steady-state solver
    - gensys: Sims QZ rational expectations solver
    - solver: Linearization to state-space form
    - kalman: Kalman filter and smoother
    - priors: Prior distribution classes
    - estimation: Posterior kernel and mode finding
    - mcmc: Metropolis-Hastings chains and convergence diagnostics
    - simulation: IRFs, simulation, moments and shock decomposition
    - data_loader: Data I/O functions
    - config: YAML run configuration
    - estimate: Command-line estimation driver
"""

__version__ = '0.1.0'

from . import exceptions
from . import priors
from . import utils
from . import data_loader

__all__ = ['exceptions', 'priors', 'utils', 'data_loader']
