# ywatch/utils/config.py

"""
Configuration management for ywatch
"""
import os
import json
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple, Union
from dataclasses import dataclass, field, asdict
import logging

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

LOG_LEVELS = ('DEBUG', 'INFO', 'WARN', 'WARNING', 'ERROR', 'FATAL', 'CRITICAL')
LOG_FORMATS = ('text', 'color', 'json')


@dataclass(frozen=True)
class FilterConfig:
    """Include/exclude regexes for one watch"""
    include: Optional[str] = None
    exclude: Optional[str] = None
    scope: str = "path"  # path or name


@dataclass(frozen=True)
class ActionConfig:
    """One action entry; everything but ``type`` is action-specific"""
    type: str
    options: Dict[str, Any] = field(default_factory=dict, hash=False, compare=True)

    def get(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)


@dataclass(frozen=True)
class WatchConfig:
    """A single watched directory (the unit the watch tree installs)"""
    path: str
    recursive: bool = False
    events: Tuple[str, ...] = ()
    filters: FilterConfig = field(default_factory=FilterConfig)
    actions: Tuple[ActionConfig, ...] = ()


@dataclass(frozen=True)
class WatchlistConfig:
    """Named group of watches sharing contacts"""
    name: str
    watches: Tuple[WatchConfig, ...] = ()
    enabled: bool = True
    description: str = ""
    contacts: Tuple[Any, ...] = ()


@dataclass
class GuardConfig:
    """Default contact"""
    name: str = ""
    email: str = ""


@dataclass
class EmailConfig:
    """Defaults used by email actions"""
    from_address: str = ""
    smtp_host: str = "localhost"
    smtp_port: int = 25


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "text"  # text, color, or json


@dataclass
class Config:
    """Main configuration class"""
    name: str = "ywatch"
    watchlists: List[WatchlistConfig] = field(default_factory=list)
    startup_actions: List[ActionConfig] = field(default_factory=list)

    guard: GuardConfig = field(default_factory=GuardConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Runtime
    poll_interval: float = 1.0  # seconds between flag checks when idle
    reload_on_change: bool = False
    source: Optional[Path] = None

    def enabled_watchlists(self) -> List[WatchlistConfig]:
        """Watchlists that take part in a generation"""
        return [wl for wl in self.watchlists if wl.enabled]

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary in file layout"""
        def action_dict(action: ActionConfig) -> Dict[str, Any]:
            return {'type': action.type, **action.options}

        def watch_dict(watch: WatchConfig) -> Dict[str, Any]:
            return {
                'path': watch.path,
                'recursive': watch.recursive,
                'events': list(watch.events),
                'filters': asdict(watch.filters),
                'actions': [action_dict(a) for a in watch.actions],
            }

        return {
            'name': self.name,
            'poll_interval': self.poll_interval,
            'reload_on_change': self.reload_on_change,
            'logging': asdict(self.logging),
            'guard': asdict(self.guard),
            'email': {
                'from': self.email.from_address,
                'smtp_host': self.email.smtp_host,
                'smtp_port': self.email.smtp_port,
            },
            'startup_actions': [action_dict(a) for a in self.startup_actions],
            'watchlists': [
                {
                    'name': wl.name,
                    'description': wl.description,
                    'enabled': wl.enabled,
                    'contacts': list(wl.contacts),
                    'watches': [watch_dict(w) for w in wl.watches],
                }
                for wl in self.watchlists
            ],
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert config to JSON string"""
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def to_yaml(self) -> str:
        """Convert config to YAML string"""
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)


def _require_mapping(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigurationError(f"{what} must be a mapping")
    return value


def _require_list(value: Any, what: str) -> List[Any]:
    if not isinstance(value, list):
        raise ConfigurationError(f"{what} must be a list")
    return value


def _require_bool(value: Any, what: str) -> bool:
    # Quoted YAML such as "false" would otherwise be truthy
    if not isinstance(value, bool):
        raise ConfigurationError(f"{what} must be true or false, got {value!r}")
    return value


def _parse_action(data: Any, where: str) -> ActionConfig:
    # Imported here: the action registry imports this module
    from ..actions import ACTION_TYPES

    data = _require_mapping(data, f"Action in {where}")
    action_type = data.get('type')
    if not action_type:
        raise ConfigurationError(f"Action in {where} must have 'type' field")
    if not isinstance(action_type, str):
        raise ConfigurationError(f"Action type in {where} must be a string, got {action_type!r}")
    if action_type not in ACTION_TYPES:
        raise ConfigurationError(
            f"Invalid action type in {where}: {action_type!r} "
            f"(expected one of: {', '.join(sorted(ACTION_TYPES))})"
        )

    options = {k: v for k, v in data.items() if k != 'type'}

    if action_type == 'command' and not options.get('execute'):
        raise ConfigurationError(f"Command action in {where} must have 'execute' field")

    return ActionConfig(type=action_type, options=options)


def _parse_filters(data: Any, where: str) -> FilterConfig:
    from ..watch.patterns import FilterChain

    if data is None:
        return FilterConfig()

    data = _require_mapping(data, f"'filters' of {where}")
    filters = FilterConfig(
        include=data.get('include') or None,
        exclude=data.get('exclude') or None,
        scope=data.get('scope', 'path'),
    )

    # Compile once here so a bad pattern is reported with its location
    try:
        FilterChain(filters.include, filters.exclude, filters.scope)
    except ConfigurationError as e:
        raise ConfigurationError(f"{e} in {where}") from e

    return filters


def _parse_watch(data: Any, watchlist_name: str) -> WatchConfig:
    from ..watch.events import build_event_mask

    data = _require_mapping(data, f"Watch in watchlist '{watchlist_name}'")

    path = data.get('path')
    if not path:
        raise ConfigurationError(f"Watch in watchlist '{watchlist_name}' must have 'path' field")
    path = os.path.abspath(os.path.expanduser(str(path)))
    where = f"watch '{path}'"

    if not os.path.exists(path):
        raise ConfigurationError(f"Watch path does not exist: {path}")
    if not os.path.isdir(path):
        raise ConfigurationError(f"Watch path is not a directory: {path}")

    events = data.get('events') or []
    events = _require_list(events, f"'events' of {where}")
    build_event_mask(events)

    actions = _require_list(data.get('actions') or [], f"'actions' of {where}")

    return WatchConfig(
        path=path,
        recursive=_require_bool(data.get('recursive', False), f"'recursive' of {where}"),
        events=tuple(events),
        filters=_parse_filters(data.get('filters'), where),
        actions=tuple(_parse_action(a, where) for a in actions),
    )


def _parse_watchlist(data: Any) -> WatchlistConfig:
    data = _require_mapping(data, "Watchlist")

    name = data.get('name')
    if not name:
        raise ConfigurationError("Watchlist must have 'name' field")

    watches = data.get('watches')
    if not watches or not isinstance(watches, list):
        raise ConfigurationError(f"Watchlist '{name}' must have a non-empty 'watches' list")

    contacts = data.get('contacts') or []
    contacts = _require_list(contacts, f"'contacts' of watchlist '{name}'")

    return WatchlistConfig(
        name=str(name),
        watches=tuple(_parse_watch(w, name) for w in watches),
        enabled=_require_bool(data.get('enabled', True), f"'enabled' of watchlist '{name}'"),
        description=str(data.get('description', '')),
        contacts=tuple(contacts),
    )


def parse_config(data: Any, source: Optional[Path] = None) -> Config:
    """
    Validate raw configuration data and build a Config

    Args:
        data: Parsed YAML/JSON document
        source: File the data came from, kept for reloads

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: On any structural or semantic problem
    """
    if not data:
        raise ConfigurationError("Configuration file is empty or invalid")
    data = _require_mapping(data, "Configuration")

    if 'watchlists' not in data:
        raise ConfigurationError("Configuration must contain 'watchlists' section")
    watchlists = _require_list(data['watchlists'], "'watchlists'")
    if not watchlists:
        raise ConfigurationError("At least one watchlist is required")

    log_data = _require_mapping(data.get('logging') or {}, "'logging' section")
    level = str(log_data.get('level', 'INFO')).upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(
            f"Invalid log level: {level} (must be one of {', '.join(LOG_LEVELS)})"
        )
    log_format = str(log_data.get('format', 'text')).lower()
    if log_format not in LOG_FORMATS:
        raise ConfigurationError(f"Invalid log format: {log_format}")

    guard_data = _require_mapping(data.get('guard') or {}, "'guard' section")
    email_data = _require_mapping(data.get('email') or {}, "'email' section")

    try:
        smtp_port = int(email_data.get('smtp_port', 25))
        poll_interval = float(data.get('poll_interval', 1.0))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid numeric setting: {e}") from e
    if poll_interval <= 0:
        raise ConfigurationError("'poll_interval' must be positive")

    startup = _require_list(data.get('startup_actions') or [], "'startup_actions'")

    config = Config(
        name=str(data.get('name', 'ywatch')),
        watchlists=[_parse_watchlist(wl) for wl in watchlists],
        startup_actions=[_parse_action(a, 'startup_actions') for a in startup],
        guard=GuardConfig(
            name=str(guard_data.get('name', '')),
            email=str(guard_data.get('email', '')),
        ),
        email=EmailConfig(
            from_address=str(email_data.get('from', '')),
            smtp_host=str(email_data.get('smtp_host', 'localhost')),
            smtp_port=smtp_port,
        ),
        logging=LoggingConfig(
            level=level,
            file=log_data.get('file'),
            format=log_format,
        ),
        poll_interval=poll_interval,
        reload_on_change=_require_bool(data.get('reload_on_change', False), "'reload_on_change'"),
        source=source,
    )

    _check_email_recipients(config)

    return config


def _check_email_recipients(config: Config):
    """Email actions need at least one recipient from somewhere"""
    for wl in config.watchlists:
        for watch in wl.watches:
            for action in watch.actions:
                if action.type != 'email':
                    continue
                if not (action.get('to') or wl.contacts or config.guard.email):
                    raise ConfigurationError(
                        f"Email action in watch '{watch.path}' has no recipients "
                        f"('to', watchlist contacts, or guard email)"
                    )


def load_config(path: Union[str, Path]) -> Config:
    """
    Load configuration from a YAML or JSON file

    Args:
        path: Configuration file; ``.json`` is read as JSON, anything else as YAML

    Raises:
        ConfigurationError: If the file is missing, unreadable, or invalid
    """
    config_path = Path(path).expanduser()

    if not config_path.is_file():
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    if not os.access(config_path, os.R_OK):
        raise ConfigurationError(f"Configuration file not readable: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            if config_path.suffix.lower() == '.json':
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (yaml.YAMLError, ValueError) as e:
        # ValueError covers JSONDecodeError and undecodable bytes
        raise ConfigurationError(f"Failed to parse configuration {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration {config_path}: {e}") from e

    config = parse_config(data, source=config_path)
    logger.info(f"Configuration loaded: {len(config.watchlists)} watchlist(s)")
    return config


def save_config(config: Config, path: Union[str, Path]):
    """Save configuration to file"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w', encoding='utf-8') as f:
        if path.suffix.lower() == '.json':
            f.write(config.to_json())
        else:
            f.write(config.to_yaml())

    logger.info(f"Configuration saved to {path}")
