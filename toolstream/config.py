"""
Configuration entry point for toolstream.

Exposes the process-wide ``config`` loaded from ``config/config.yaml``
(or ``CONFIG_PATH``), with environment interpolation applied.
"""

from .config_loader import load_app_config

# Global config instance
config = load_app_config()
