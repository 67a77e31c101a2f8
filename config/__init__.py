"""Configuration management for the vote credential system."""

from .config import (
    SystemConfig,
    CSPConfig,
    ZKConfig,
    SNARK_SCALAR_FIELD,
    load_config,
    save_config,
)

__all__ = ['SystemConfig', 'CSPConfig', 'ZKConfig', 'SNARK_SCALAR_FIELD',
           'load_config', 'save_config']
