"""
Configuration loading for the brokerage note engine.

Settings live in a YAML file (``config/settings.yaml`` by default). Values
found in the file are deep-merged over the built-in defaults below, so a
partial file only needs the keys it changes.
"""

import copy
import logging
from typing import Any, Dict, Optional

import yaml

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"

DEFAULT_SETTINGS: Dict[str, Any] = {
    'market': {
        'timezone': 'America/Sao_Paulo',
        'settlement_days': 2,
        'default_broker': 'XP Investimentos',
    },
    'costs': {
        'brokerage_rate': 0.0025,
        'min_brokerage': 5.00,
        'settlement_rate': 0.00025,
        'registration_rate': 0.00005,
    },
    'taxes': {
        'day_trade_rate': 0.20,
        'swing_trade_rate': 0.15,
        'rate_overrides': {
            'reit_fund': {'swing_trade': 0.20},
        },
        'carried_loss_factor': 0.3,
        'swing_exemption_limit': 20000,
        'exemption_eligible_types': ['stock'],
    },
    'registry': {
        'extra_codes': [],
        'extra_aliases': {},
    },
    'quotes': {
        'provider': 'yahoo',
        'timeout': 10,
        'max_retries': 3,
        'brapi_token': None,
    },
    'logging': {
        'level': 'INFO',
        'log_dir': 'logs',
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def default_config() -> Dict[str, Any]:
    """Return a fresh copy of the built-in settings."""
    return copy.deepcopy(DEFAULT_SETTINGS)


def load_config(config_path: Optional[str] = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration with error handling.

    A missing file is not fatal: the error is logged and the defaults are
    returned. An invalid YAML file is.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary merged over the defaults

    Raises:
        yaml.YAMLError: If config file is invalid
        ValueError: If the file does not hold a mapping
    """
    if config_path is None:
        return default_config()

    try:
        with open(config_path, 'r', encoding='utf-8') as file:
            loaded = yaml.safe_load(file) or {}
    except FileNotFoundError:
        logger.error(f"Configuration file not found: {config_path} - using defaults")
        return default_config()
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML configuration: {str(e)}")
        raise

    if not isinstance(loaded, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")

    logger.info(f"Configuration loaded from {config_path}")
    return _deep_merge(DEFAULT_SETTINGS, loaded)
