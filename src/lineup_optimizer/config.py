#!/usr/bin/env python3
"""
Optimizer configuration - defaults, YAML loading and logging setup
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Optional, Tuple

import yaml

from .correlation import DEFAULT_EXPLAINED, DEFAULT_WEIGHTS, CorrelationSettings
from .sampling import METHODS

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), '..', '..', 'config', 'optimizer-config.yaml')


@dataclass
class OptimizerConfig:
    """Every tunable of one optimization call"""
    k_best: int = 50
    max_global: int = 4000
    max_mc_candidates: int = 25
    target_se: float = 0.006
    min_sims: int = 1000
    max_sims: int = 12000
    batch_size: int = 512
    variance_reduction: str = 'lhs'
    cross_correlation: float = 0.15
    risk_lambdas: Tuple[float, ...] = (-0.5, -0.25, 0.0, 0.25, 0.5)
    underdog_bias: float = 0.0
    base_seed: int = 1337
    common_random_numbers: bool = True
    n_workers: int = 1
    joint_simulation: bool = True
    injury_adjustment: bool = True
    correlation: CorrelationSettings = field(default_factory=CorrelationSettings)

    def __post_init__(self):
        self.risk_lambdas = tuple(float(x) for x in self.risk_lambdas)
        if isinstance(self.correlation, dict):
            corr = dict(self.correlation)
            # partial position tables merge over the defaults
            for key, defaults in (('explained', DEFAULT_EXPLAINED), ('weights', DEFAULT_WEIGHTS)):
                if key in corr:
                    corr[key] = {**defaults, **corr[key]}
            self.correlation = CorrelationSettings(**corr)

        if self.k_best < 1 or self.max_global < 1 or self.max_mc_candidates < 1:
            raise ValueError("k_best, max_global and max_mc_candidates must be positive")
        if self.target_se < 0:
            raise ValueError(f"target_se must be non-negative, got {self.target_se}")
        if self.min_sims < 0 or self.max_sims < 1 or self.min_sims > self.max_sims:
            raise ValueError(f"Need 0 <= min_sims <= max_sims, got {self.min_sims}/{self.max_sims}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.variance_reduction not in METHODS:
            raise ValueError(f"variance_reduction must be one of {METHODS}, got {self.variance_reduction!r}")
        if not 0.0 <= self.cross_correlation < self.correlation.max_explained:
            raise ValueError(f"cross_correlation out of range: {self.cross_correlation}")
        if not self.risk_lambdas:
            raise ValueError("risk_lambdas cannot be empty")
        if self.base_seed < 0:
            raise ValueError(f"base_seed must be non-negative, got {self.base_seed}")
        if self.n_workers < 1:
            raise ValueError(f"n_workers must be at least 1, got {self.n_workers}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_optimizer_config(config_path: Optional[str] = None, **overrides) -> OptimizerConfig:
    """Load optimizer configuration with fallbacks to defaults."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    values: Dict[str, Any] = {}
    try:
        with open(config_path, 'r') as f:
            file_config = yaml.safe_load(f) or {}
        values.update(file_config.get('optimizer', file_config))
        logging.info(f"Loaded optimizer config from {config_path}")
    except FileNotFoundError:
        logging.warning(f"No optimizer config at {config_path}, using defaults")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    values.update(overrides)

    known = {f.name for f in fields(OptimizerConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        logging.warning(f"Ignoring unknown optimizer config keys: {unknown}")
    return OptimizerConfig(**{k: v for k, v in values.items() if k in known})


def setup_logging(log_level=logging.INFO, log_file: Optional[str] = None):
    """Setup logging configuration"""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )
