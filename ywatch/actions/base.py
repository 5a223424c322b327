# ywatch/actions/base.py

"""
Base class and result type for event actions
"""
import re
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, TYPE_CHECKING

from ..exceptions import ActionExecutionError

if TYPE_CHECKING:
    from ..utils.config import ActionConfig, Config, WatchlistConfig
    from ..watch.events import EventContext

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r'%(file|path|fullpath|event|timestamp|watchlist|pid|hostname)%')


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one action invocation"""
    ok: bool
    error: Optional[ActionExecutionError] = None

    @classmethod
    def succeeded(cls) -> 'ActionResult':
        return cls(ok=True)

    @classmethod
    def failed(cls, error: ActionExecutionError) -> 'ActionResult':
        return cls(ok=False, error=error)


def expand_variables(template: Optional[str], context: 'EventContext',
                     transform: Optional[Callable[[str], str]] = None) -> str:
    """
    Substitute ``%name%`` placeholders with context values

    Args:
        template: Text with placeholders; None gives an empty string
        context: Event being handled
        transform: Applied to every substituted value (e.g. shell quoting)

    Returns:
        Expanded text; unknown ``%x%`` sequences are left untouched
    """
    if template is None:
        return ''

    values = context.variables()

    def replace(match):
        value = values.get(match.group(1)) or ''
        return transform(value) if transform else value

    return PLACEHOLDER_RE.sub(replace, str(template))


class Action:
    """
    Base class for all action handlers

    Subclasses implement ``run`` and raise on failure; ``execute`` turns
    any failure into an ``ActionResult`` so callers never see an exception.
    """

    type_name = 'action'

    def __init__(self, config: 'ActionConfig', settings: 'Config',
                 watchlist: Optional['WatchlistConfig'] = None):
        """
        Initialize action

        Args:
            config: This action's configuration entry
            settings: Whole configuration (global defaults)
            watchlist: Owning watchlist, None for startup actions
        """
        self.config = config
        self.settings = settings
        self.watchlist = watchlist

    @property
    def watchlist_name(self) -> str:
        if self.watchlist is not None:
            return self.watchlist.name
        return self.settings.name

    def option(self, key: str, default: Any = None) -> Any:
        """Read an action option, treating empty values as unset"""
        value = self.config.get(key)
        if value is None or value == '':
            return default
        return value

    def expand(self, template: Optional[str], context: 'EventContext') -> str:
        return expand_variables(template, context)

    def get_contacts(self) -> List[str]:
        """Email addresses listed on the owning watchlist"""
        if self.watchlist is None:
            return []

        emails = []
        for contact in self.watchlist.contacts:
            if isinstance(contact, dict):
                if contact.get('email'):
                    emails.append(str(contact['email']))
            elif contact:
                emails.append(str(contact))
        return emails

    def execute(self, context: 'EventContext') -> ActionResult:
        """Run the action for one event; never raises"""
        try:
            self.run(context)
        except ActionExecutionError as e:
            return ActionResult.failed(e)
        except Exception as e:
            return ActionResult.failed(ActionExecutionError(self.type_name, str(e) or repr(e), cause=e))
        return ActionResult.succeeded()

    def run(self, context: 'EventContext'):
        raise NotImplementedError("run() must be implemented by subclass")

    def poll(self):
        """Out-of-band housekeeping, called once per main loop iteration"""

    def close(self):
        """Release resources when the owning generation is dropped"""

    def __repr__(self):
        return f"{type(self).__name__}(watchlist={self.watchlist_name!r})"
