# compliance_model/config/__init__.py
"""
Configuration package: policy models and YAML loaders.
"""

from .loaders import ConfigLoadError, load_policy, load_yaml_config
from .models import CompliancePolicy

__all__ = ["CompliancePolicy", "ConfigLoadError", "load_policy", "load_yaml_config"]
