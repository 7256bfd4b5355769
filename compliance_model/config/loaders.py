import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from cerberus import Validator
from pydantic import ValidationError

from .models import CompliancePolicy

# Configure logger for this module
logger = logging.getLogger(__name__)

_NUMBER = {"type": "number", "required": False}
_INTEGER = {"type": "integer", "required": False}
_BOOLEAN = {"type": "boolean", "required": False}

# Structural schema checked before the values reach the pydantic models
POLICY_SCHEMA: Dict[str, Any] = {
    "compliance": {
        "type": "dict",
        "required": False,
        "nullable": True,
        "schema": {"default_threshold": _NUMBER, "warning_buffer": _NUMBER},
    },
    "residency": {
        "type": "dict",
        "required": False,
        "nullable": True,
        "schema": {
            "min_days": _INTEGER,
            "unknown_start_qualifies": _BOOLEAN,
            "min_confidence": _NUMBER,
            "stale_verification_days": _INTEGER,
        },
    },
    "legacy": {
        "type": "dict",
        "required": False,
        "nullable": True,
        "schema": {
            "cap_fraction": _NUMBER,
            "max_count": {"type": "integer", "required": False, "nullable": True},
        },
    },
    "grace": {
        "type": "dict",
        "required": False,
        "nullable": True,
        "schema": {
            "redesignation_years": _INTEGER,
            "threshold_miss_months": _INTEGER,
            "assume_compliant_at_certification": _BOOLEAN,
        },
    },
    "alerts": {
        "type": "dict",
        "required": False,
        "nullable": True,
        "schema": {
            "breach_margin": _NUMBER,
            "pending_lead_days": _INTEGER,
            "grace_expiry_lead_days": _INTEGER,
            "small_workforce_size": _INTEGER,
        },
    },
    "forecast": {
        "type": "dict",
        "required": False,
        "nullable": True,
        "schema": {
            "history_window": _INTEGER,
            "max_periods": _INTEGER,
            "period_days": _INTEGER,
            "min_history": _INTEGER,
            "z_score": _NUMBER,
            "trend_change_points": _NUMBER,
        },
    },
    "persistence": {
        "type": "dict",
        "required": False,
        "nullable": True,
        "schema": {"max_retries": _INTEGER, "backoff_seconds": _NUMBER},
    },
}


class ConfigLoadError(Exception):
    """Custom exception for errors during config loading."""

    pass


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Loads configuration data from a YAML file.

    Args:
        config_path: Path pointing to the YAML configuration file.

    Returns:
        A dictionary containing the loaded configuration. An empty file yields
        an empty dictionary.

    Raises:
        ConfigLoadError: If the file cannot be found or parsed.
    """
    if not isinstance(config_path, Path):
        config_path = Path(config_path)

    logger.info(f"Attempting to load configuration from: {config_path}")

    if not config_path.is_file():
        logger.error(f"Configuration file not found at path: {config_path}")
        raise ConfigLoadError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.exception(f"Error parsing YAML configuration file {config_path}: {e}")
        raise ConfigLoadError(f"Error parsing YAML file {config_path}") from e
    except OSError as e:
        logger.exception(f"Could not read configuration file {config_path}: {e}")
        raise ConfigLoadError(f"Could not read configuration file {config_path}") from e

    if config_data is None:
        return {}
    if not isinstance(config_data, dict):
        logger.error(f"Configuration file {config_path} did not parse into a dictionary.")
        raise ConfigLoadError(
            f"Invalid configuration format in {config_path}: Expected a dictionary."
        )

    logger.info(f"Successfully loaded configuration from {config_path}")
    return config_data


def policy_from_dict(config_data: Optional[Dict[str, Any]]) -> CompliancePolicy:
    """
    Validates a raw configuration mapping and builds a CompliancePolicy.

    Null sections are dropped so the model defaults apply.
    """
    config_data = dict(config_data or {})

    # 1. Schema validation
    v = Validator(POLICY_SCHEMA)
    if not v.validate(config_data):
        raise ConfigLoadError(f"Config validation failed: {v.errors}")

    # 2. Drop null sections so pydantic fills defaults
    cleaned = {k: val for k, val in config_data.items() if val is not None}

    # 3. Value validation
    try:
        policy = CompliancePolicy(**cleaned)
    except ValidationError as e:
        raise ConfigLoadError(f"Invalid compliance policy: {e}") from e

    logger.debug(f"Compliance policy loaded: {policy.model_dump()}")
    return policy


def load_policy(config_path: Optional[Union[str, Path]] = None) -> CompliancePolicy:
    """Load a policy from YAML, or return the defaults when no path is given."""
    if config_path is None:
        return CompliancePolicy()
    return policy_from_dict(load_yaml_config(config_path))


# Expose for import
__all__ = [
    "load_yaml_config",
    "load_policy",
    "policy_from_dict",
    "ConfigLoadError",
    "POLICY_SCHEMA",
]
