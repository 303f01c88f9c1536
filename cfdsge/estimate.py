"""
Estimation Driver
=================

Bayesian estimation of the Carlstrom-Fuerst model:

1. Load configuration and observed data
2. Find the posterior mode and the inverse Hessian
3. Run Metropolis-Hastings chains and check convergence
4. Smooth the report variables at the posterior mean

Usage:
    cfdsge-estimate configs/estimation.yaml
    cfdsge-estimate configs/estimation.yaml --mh-replic 2000 --max-workers 2
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

import numpy as np

from . import carlstrom_fuerst as cf
from .config import EstimationConfig, load_config
from .data_loader import describe_data, load_observations
from .estimation import BayesianEstimator
from .exceptions import ConfigError, DSGEError
from .mcmc import print_posterior, sample_posterior, tune_jscale
from .simulation import report_series, theoretical_moments
from .solver import solve_model
from .utils import setup_logging


logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Estimate the Carlstrom-Fuerst risk-shock model")
    parser.add_argument("config", type=Path, help="YAML estimation configuration")
    parser.add_argument("--mh-replic", type=int, default=None, help="draws per chain")
    parser.add_argument("--max-workers", type=int, default=None, help="parallel chains")
    parser.add_argument("--log-level", default=None, help="logging level")
    return parser.parse_args(argv)


def run(config: EstimationConfig, config_dir: Path) -> dict:
    """
    Run the estimation described by a configuration.

    Args:
        config: Estimation options
        config_dir: Directory the data file path is relative to

    Returns:
        Dictionary with the mode results, the MCMC result (None when
        mh_replic is 0) and the smoothed report variables
    """
    if config.datafile is None:
        raise ConfigError("No datafile given in the configuration")
    datafile = Path(config.datafile)
    if not datafile.is_absolute():
        datafile = config_dir / datafile

    spec = cf.build_model()
    observations = load_observations(str(datafile), spec.obs_names, aliases=cf.DATA_COLUMNS,
                                     first_obs=config.first_obs, nobs=config.nobs,
                                     demean=config.demean)
    logger.info("Loaded %d observations of %s", observations.n_periods, ", ".join(observations.names))
    print("\nData summary:")
    print(describe_data(observations).to_string(float_format=lambda v: f"{v:.5f}"))

    estimator = BayesianEstimator(spec, cf.estimated_priors(), observations)
    mode_results = estimator.find_mode(mode_compute=config.mode_compute)
    estimator.print_results(mode_results)

    mcmc = None
    point = mode_results['mode']
    if config.mh_replic > 0:
        jscale = config.mh_jscale
        if config.tune_jscale:
            jscale = tune_jscale(estimator.log_posterior, mode_results['mode'], mode_results['vcov'],
                                 jscale=jscale, target=config.target_acceptance, seed=config.seed)
        mcmc = sample_posterior(
            estimator.log_posterior, mode_results['mode'], mode_results['vcov'],
            estimator.param_names, config.mh_replic, n_chains=config.mh_nblocks,
            jscale=jscale, init_scale=config.mh_init_scale, drop=config.mh_drop,
            conf_sig=config.mh_conf_sig, seed=config.seed,
            max_workers=config.max_workers, executor=config.executor,
        )
        print_posterior(mcmc, config.mh_conf_sig)
        point = mcmc.posterior_mean

    params = estimator.parameters(point)
    system = solve_model(spec, params, keep=cf.REPORT_VARS)
    smoothed = report_series(system, observations, cf.REPORT_VARS)

    print("\n" + "="*60)
    print("SMOOTHED VARIABLES (last 8 periods, deviations from steady state)")
    print("="*60)
    print(smoothed.tail(8).to_string(float_format=lambda v: f"{v:9.5f}"))

    print("\nTheoretical standard deviations:")
    std = theoretical_moments(system)
    print(std[list(cf.REPORT_VARS)].to_string(float_format=lambda v: f"{v:.5f}"))

    return {'mode': mode_results, 'mcmc': mcmc, 'smoothed': smoothed,
            'point': dict(zip(estimator.param_names, np.asarray(point)))}


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(args.config)
        if args.mh_replic is not None:
            config.mh_replic = args.mh_replic
        if args.max_workers is not None:
            config.max_workers = args.max_workers
        if args.log_level is not None:
            config.logging.level = args.log_level
        config.validate()

        setup_logging(config.logging.level, config.logging.rich_tracebacks)
        run(config, args.config.resolve().parent)
    except DSGEError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
