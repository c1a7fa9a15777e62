"""Configuration for the CHARLS imputation pipeline.

Holds the default settings, the YAML loader and the immutable variable
vocabulary used by the classifier.
"""

import os
import copy
import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

VARIABLE_CATEGORIES = ('binary', 'ordinal', 'continuous', 'required', 'excluded')


def get_default_config():
    """Return a fresh copy of the default pipeline configuration."""
    return {
        'variables': {
            # 0/1 coded in CHARLS
            'binary': [
                'nation', 'marry', 'smoken', 'drinkl', 'pension', 'ins',
                'fall_down', 'hip', 'pain', 'disability', 'teeth', 'cm'
            ],
            'ordinal': [
                'srh', 'satlife', 'disability_status', 'eyesight_distance',
                'eyesight_close', 'hear', 'edu'
            ],
            'continuous': ['sleep', 'total_cognition', 'cesd10', 'hhcperc', 'age', 'cm_num'],
            'required': ['ID', 'wave', 'gender'],
            'excluded': ['num', 'adyear', 'admonth', 'chronic_num', 'mul_chronic'],
        },
        'columns': {
            'subject_id': 'ID',
            'wave': 'wave',
            'age': 'age',
            'row_index': 'num',
        },
        'target_preference': ['cesd10', 'srh', 'total_cognition'],
        'proportion_columns': ['hhcperc'],
        'mcmc': {
            'chains': 2,
            'adapt_steps': 300,
            'draws': 2000,
            'thin': 1,
        },
        'parallel': {
            'enabled': True,
            'workers': max(1, (os.cpu_count() or 2) - 1),
        },
        'output': {
            'save_models': True,
            'default_imputations': 5,
        },
        'paths': {
            'raw': 'data/raw',
            'processed': 'data/processed',
            'imputed': 'data/imputed',
            'models': 'output/models',
            'figures': 'output/figures',
        },
        'seed': 123,
    }


def _deep_merge(base, override):
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path):
    """
    Load pipeline configuration from a YAML file.

    Values in the file override the defaults from ``get_default_config``;
    anything the file leaves out keeps its default.

    Parameters:
    -----------
    config_path : str or Path
        Path to the YAML configuration file

    Returns:
    --------
    dict : Configuration dictionary

    Example YAML structure:
        variables:
          binary: [nation, marry]
          ordinal: [srh]
          continuous: [age, cesd10]
          required: [ID, wave]
          excluded: [num]
        mcmc:
          chains: 2
          adapt_steps: 300
          draws: 2000
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Configuration file must contain a mapping: {config_path}")

    required_keys = ['variables']
    missing_keys = [key for key in required_keys if key not in config]
    if missing_keys:
        raise ValueError(f"Missing required configuration keys: {missing_keys}")

    variables = config['variables'] or {}
    unknown = [key for key in variables if key not in VARIABLE_CATEGORIES]
    if unknown:
        raise ValueError(f"Unknown variable categories: {unknown}")

    # A single name is allowed in place of a list
    for category in VARIABLE_CATEGORIES:
        value = variables.get(category)
        if value is None:
            continue
        if not isinstance(value, list):
            variables[category] = [value]

    config = _deep_merge(get_default_config(), config)
    logger.info(f"Loaded configuration from {config_path}")
    return config


@dataclass(frozen=True)
class VariableVocabulary:
    """Static name lists describing the CHARLS variables."""
    binary: tuple = ()
    ordinal: tuple = ()
    continuous: tuple = ()
    required: tuple = ()
    excluded: tuple = ()

    @classmethod
    def from_config(cls, config):
        variables = config.get('variables', {})
        return cls(**{
            category: tuple(variables.get(category) or ())
            for category in VARIABLE_CATEGORIES
        })

    def names(self, category):
        return getattr(self, category)


CHARLS_VOCABULARY = VariableVocabulary.from_config(get_default_config())
