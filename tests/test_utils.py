"""Tests for configuration loading."""

import argparse
import json

import pytest
import yaml

from ps_epistasis.config import EpistasisConfig
from ps_epistasis.utils import create_config_from_args, load_config_file


def test_yaml_sections_are_flattened(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        'stability': {'resample_count': 30, 'aggregation': 'max'},
        'outcome': {'shift': 0.2},
        'mechanism': 'recessive',
    }))
    config = load_config_file(str(path))
    assert config.resample_count == 30
    assert config.aggregation == 'max'
    assert config.shift == 0.2
    assert config.mechanism == 'recessive'


def test_json_config_and_unknown_keys(tmp_path, caplog):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({'n_lambdas': 7, 'colour': 'blue'}))
    config = load_config_file(str(path))
    assert config.n_lambdas == 7
    assert "Unknown configuration parameter: colour" in caplog.text


def test_invalid_values_are_rejected(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("subsample_fraction: 1.5\n")
    with pytest.raises(ValueError, match="subsample_fraction"):
        load_config_file(str(path))


def test_arguments_override_config():
    base = EpistasisConfig(resample_count=30, shift=0.3)
    args = argparse.Namespace(resamples=10, seed=7, shift=None, methods="owl, robust",
                              output_format="csv")
    config = create_config_from_args(args, base)
    assert config.resample_count == 10
    assert config.random_state == 7
    assert config.shift == 0.3
    assert config.methods == ['owl', 'robust']
    assert config.output_formats == ['csv']


def test_unknown_method_argument():
    with pytest.raises(ValueError, match="Unknown methods"):
        create_config_from_args(argparse.Namespace(methods="owl,boost"))
