# ywatch/actions/console.py

"""
Console action: write a formatted line through logging
"""
import logging

from ..exceptions import ConfigurationError
from .base import Action

CONSOLE_LOGGER = 'ywatch.console'

CONSOLE_LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARN': logging.WARNING,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'FATAL': logging.CRITICAL,
    'CRITICAL': logging.CRITICAL,
}

DEFAULT_FORMAT = 'File %event%: %fullpath%'


class ConsoleAction(Action):
    """Log each event on the ``ywatch.console`` logger"""

    type_name = 'console'

    def __init__(self, config, settings, watchlist=None):
        super().__init__(config, settings, watchlist)

        level_name = str(self.option('level', 'INFO')).upper()
        if level_name not in CONSOLE_LEVELS:
            raise ConfigurationError(f"Invalid console level: {level_name}")

        self.level = CONSOLE_LEVELS[level_name]
        self.format = str(self.option('format', DEFAULT_FORMAT))
        self.logger = logging.getLogger(CONSOLE_LOGGER)

    def run(self, context):
        self.logger.log(self.level, self.expand(self.format, context))
