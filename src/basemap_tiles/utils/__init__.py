"""
Utilities Module

Configuration loading and logging setup.
"""

from .config import Config, LoggingConfig, MetricsConfig, OverzoomConfig, ServerConfig
from .logging import configure_logging

__all__ = [
    "Config",
    "LoggingConfig",
    "MetricsConfig",
    "OverzoomConfig",
    "ServerConfig",
    "configure_logging",
]
