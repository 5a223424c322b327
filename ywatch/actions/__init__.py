# ywatch/actions/__init__.py

"""
ywatch actions

A fixed registry maps configuration ``type`` values to action classes.
"""
from typing import Dict, Optional, Type, TYPE_CHECKING

from ..exceptions import ConfigurationError
from .base import Action, ActionResult, expand_variables
from .command import CommandAction
from .console import ConsoleAction
from .email import EmailAction
from .syslog import SyslogAction

if TYPE_CHECKING:
    from ..utils.config import ActionConfig, Config, WatchlistConfig

ACTION_TYPES: Dict[str, Type[Action]] = {
    'console': ConsoleAction,
    'syslog': SyslogAction,
    'email': EmailAction,
    'command': CommandAction,
}


def build_action(config: 'ActionConfig', settings: 'Config',
                 watchlist: Optional['WatchlistConfig'] = None) -> Action:
    """
    Construct the action for one configuration entry

    Raises:
        ConfigurationError: Unknown type or invalid options
    """
    try:
        action_class = ACTION_TYPES[config.type]
    except KeyError:
        raise ConfigurationError(f"Invalid action type: {config.type!r}") from None

    try:
        return action_class(config, settings, watchlist)
    except ConfigurationError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Failed to create {config.type} action: {e}") from e


__all__ = [
    'Action',
    'ActionResult',
    'ACTION_TYPES',
    'build_action',
    'expand_variables',
    'CommandAction',
    'ConsoleAction',
    'EmailAction',
    'SyslogAction',
]
