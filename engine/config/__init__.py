"""
Config Module

YAML stack configuration loading and validation.
"""

from .loader import (
    ConfigBool,
    ConfigLoader,
    Configuration,
    EngineSettings,
    ReportingSettings,
    StackConfig,
)

__all__ = [
    "ConfigBool",
    "ConfigLoader",
    "Configuration",
    "EngineSettings",
    "ReportingSettings",
    "StackConfig",
]
