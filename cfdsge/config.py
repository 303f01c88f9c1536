"""
Estimation Configuration
========================

Options of an estimation run, read from a YAML file:

    datafile: data/cf_data.csv
    first_obs: 1
    mh_replic: 20000
    mh_nblocks: 2
    mode_compute: 1
    mh_jscale: 0.2
    logging:
      level: INFO

Option names follow the estimation command they configure (mh_replic,
mh_nblocks, mh_jscale, mh_drop, mh_conf_sig, mode_compute). Unknown keys
and invalid values raise ConfigError before any computation starts.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from .exceptions import ConfigError


@dataclass
class LoggingConfig:
    """Logging verbosity and formatting options."""
    level: str = "INFO"
    rich_tracebacks: bool = True


@dataclass
class EstimationConfig:
    """Options of an estimation run."""
    datafile: Optional[str] = None
    first_obs: int = 1
    nobs: Optional[int] = None
    demean: bool = False
    order: int = 1
    mode_compute: Union[int, str] = 1
    mh_replic: int = 20000
    mh_nblocks: int = 2
    mh_jscale: float = 0.2
    mh_init_scale: Optional[float] = None
    mh_drop: float = 0.5
    mh_conf_sig: float = 0.9
    tune_jscale: bool = False
    target_acceptance: float = 0.33
    seed: int = 0
    max_workers: Optional[int] = None
    executor: str = 'thread'
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Check option values, raising ConfigError on the first invalid one."""
        if self.order != 1:
            raise ConfigError(f"Only order=1 is supported, got order={self.order}")
        if self.mh_replic < 0:
            raise ConfigError(f"mh_replic must be non-negative, got {self.mh_replic}")
        if self.mh_nblocks < 1:
            raise ConfigError(f"mh_nblocks must be at least 1, got {self.mh_nblocks}")
        if not 0 <= self.mh_drop < 1:
            raise ConfigError(f"mh_drop must be in [0, 1), got {self.mh_drop}")
        if not 0 < self.mh_conf_sig < 1:
            raise ConfigError(f"mh_conf_sig must be in (0, 1), got {self.mh_conf_sig}")
        if self.mh_jscale <= 0:
            raise ConfigError(f"mh_jscale must be positive, got {self.mh_jscale}")
        if self.mh_init_scale is not None and self.mh_init_scale < 0:
            raise ConfigError(f"mh_init_scale must be non-negative, got {self.mh_init_scale}")
        if not 0 < self.target_acceptance < 1:
            raise ConfigError(f"target_acceptance must be in (0, 1), got {self.target_acceptance}")
        if self.first_obs < 1:
            raise ConfigError(f"first_obs is 1-indexed, got {self.first_obs}")
        if self.nobs is not None and self.nobs < 1:
            raise ConfigError(f"nobs must be positive, got {self.nobs}")
        if self.executor not in ('thread', 'process'):
            raise ConfigError(f"executor must be 'thread' or 'process', got '{self.executor}'")
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigError(f"max_workers must be positive, got {self.max_workers}")


def _build(cls, raw: Mapping[str, Any], section: str):
    if not isinstance(raw, Mapping):
        raise ConfigError(f"Section '{section}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown option(s) in '{section}': {unknown}")
    return dict(raw)


def load_yaml(path: Union[str, Path]) -> Mapping[str, Any]:
    """Load a YAML document and return a mapping."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    return {} if raw is None else raw


def config_from_dict(raw: Mapping[str, Any]) -> EstimationConfig:
    """Build an EstimationConfig from a mapping of options."""
    options = _build(EstimationConfig, raw, 'estimation')
    logging_raw = options.pop('logging', None) or {}
    logging_cfg = LoggingConfig(**_build(LoggingConfig, logging_raw, 'logging'))
    try:
        return EstimationConfig(logging=logging_cfg, **options)
    except TypeError as exc:
        raise ConfigError(f"Invalid option value: {exc}") from exc


def load_config(path: Union[str, Path]) -> EstimationConfig:
    """
    Load the estimation configuration.

    Args:
        path: YAML file

    Returns:
        EstimationConfig

    Raises:
        ConfigError: Missing file, invalid YAML, unknown keys or invalid values
    """
    return config_from_dict(load_yaml(path))
