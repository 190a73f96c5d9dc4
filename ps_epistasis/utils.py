# ps_epistasis/utils.py
"""
Utility functions for configuration loading and creation.
"""

import argparse
import json
import logging
from pathlib import Path
from typing import Optional

import yaml

from .config import EpistasisConfig

logger = logging.getLogger(__name__)

# CLI argument name -> config attribute
ARG_TO_FIELD = {
    'resamples': 'resample_count',
    'subsample_fraction': 'subsample_fraction',
    'seed': 'random_state',
    'n_lambdas': 'n_lambdas',
    'aggregation': 'aggregation',
    'shift': 'shift',
    'nuisance_model': 'nuisance_model',
    'mechanism': 'mechanism',
    'n_jobs': 'n_jobs',
}


def load_config_file(config_path: str) -> EpistasisConfig:
    """Load configuration from a YAML or JSON file; unknown keys are ignored with a warning."""
    path = Path(config_path)
    with open(path, 'r') as f:
        if path.suffix.lower() == '.json':
            config_dict = json.load(f)
        else:
            config_dict = yaml.safe_load(f) or {}
    if not isinstance(config_dict, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")

    config = EpistasisConfig()
    known = set(EpistasisConfig.field_names())
    # sections ('analysis', 'stability', ...) are flattened
    flat = {}
    for key, value in config_dict.items():
        if isinstance(value, dict) and key not in known:
            flat.update(value)
        else:
            flat[key] = value
    for key, value in flat.items():
        if key in known:
            setattr(config, key, value)
        else:
            logger.warning(f"Unknown configuration parameter: {key}")
    return config.validate()


def create_config_from_args(args: argparse.Namespace,
                            config: Optional[EpistasisConfig] = None) -> EpistasisConfig:
    """Create configuration from command line arguments, on top of `config` when given."""
    config = config or EpistasisConfig()
    for arg, attr in ARG_TO_FIELD.items():
        value = getattr(args, arg, None)
        if value is not None:
            setattr(config, attr, value)
    if getattr(args, 'methods', None):
        config.methods = [m.strip() for m in args.methods.split(',') if m.strip()]
    if getattr(args, 'output_format', None):
        config.output_formats = args.output_format.split(',')
    return config.validate()
