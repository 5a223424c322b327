# ywatch/utils/__init__.py

"""
ywatch utilities: configuration and logging
"""
from .config import (
    Config, WatchlistConfig, WatchConfig, FilterConfig, ActionConfig,
    GuardConfig, EmailConfig, LoggingConfig,
    load_config, parse_config, save_config,
)
from .logger import setup_logging, get_logger, log_exception

__all__ = [
    'Config', 'WatchlistConfig', 'WatchConfig', 'FilterConfig', 'ActionConfig',
    'GuardConfig', 'EmailConfig', 'LoggingConfig',
    'load_config', 'parse_config', 'save_config',
    'setup_logging', 'get_logger', 'log_exception',
]
