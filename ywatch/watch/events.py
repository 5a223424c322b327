# ywatch/watch/events.py

"""
Inotify event kinds, mask construction and label classification
"""
import os
import socket
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from inotify_simple import flags

from ..exceptions import ConfigurationError


CREATE = int(flags.CREATE)
MODIFY = int(flags.MODIFY)
DELETE = int(flags.DELETE)
DELETE_SELF = int(flags.DELETE_SELF)
MOVED_FROM = int(flags.MOVED_FROM)
MOVED_TO = int(flags.MOVED_TO)
MOVE_SELF = int(flags.MOVE_SELF)
ATTRIB = int(flags.ATTRIB)
OPEN = int(flags.OPEN)
ACCESS = int(flags.ACCESS)
CLOSE_WRITE = int(flags.CLOSE_WRITE)
CLOSE_NOWRITE = int(flags.CLOSE_NOWRITE)
CLOSE = CLOSE_WRITE | CLOSE_NOWRITE

ISDIR = int(flags.ISDIR)
IGNORED = int(flags.IGNORED)
Q_OVERFLOW = int(flags.Q_OVERFLOW)

# Configuration event names and the kernel bits each one subscribes to
EVENT_KINDS = {
    'create': CREATE,
    'modify': MODIFY,
    'delete': DELETE | DELETE_SELF,
    'move': MOVED_FROM | MOVED_TO | MOVE_SELF,
    'move_from': MOVED_FROM,
    'move_to': MOVED_TO,
    'close_write': CLOSE_WRITE,
    'attrib': ATTRIB,
    'open': OPEN,
    'close': CLOSE,
    'access': ACCESS,
}

DEFAULT_EVENTS = ('create', 'modify', 'delete')

# Fixed label order; close bits are appended after these
LABEL_ORDER: Tuple[Tuple[int, str], ...] = (
    (CREATE, 'CREATE'),
    (MODIFY, 'MODIFY'),
    (DELETE, 'DELETE'),
    (DELETE_SELF, 'DELETE_SELF'),
    (MOVED_FROM, 'MOVED_FROM'),
    (MOVED_TO, 'MOVED_TO'),
    (MOVE_SELF, 'MOVE_SELF'),
    (ATTRIB, 'ATTRIB'),
    (OPEN, 'OPEN'),
    (ACCESS, 'ACCESS'),
)

STARTUP_LABEL = 'STARTUP'
UNKNOWN_LABEL = 'UNKNOWN'


def build_event_mask(events: Optional[Iterable[str]] = None) -> int:
    """
    Convert configured event names into an inotify mask

    Args:
        events: Event names from the closed set in EVENT_KINDS. Empty or
            None selects DEFAULT_EVENTS.

    Returns:
        Combined bitmask

    Raises:
        ConfigurationError: If a name is not a known event kind
    """
    names = list(events or DEFAULT_EVENTS)

    mask = 0
    for name in names:
        try:
            mask |= EVENT_KINDS[name]
        except (KeyError, TypeError):
            raise ConfigurationError(
                f"Invalid event type: {name!r} "
                f"(expected one of: {', '.join(EVENT_KINDS)})"
            ) from None

    return mask


def build_raw_mask(action_mask: int, recursive: bool) -> int:
    """Mask handed to the kernel; recursive watches always see directory creation"""
    if recursive:
        return action_mask | CREATE
    return action_mask


def classify(mask: int) -> str:
    """
    Decode a raw bitmask into a deterministic label

    All matching bits are collected in LABEL_ORDER and joined with ``|``.
    Exactly one close label is appended when a close bit is present.

    Args:
        mask: Raw inotify bitmask

    Returns:
        Label such as ``CREATE`` or ``MODIFY|CLOSE_WRITE``, or ``UNKNOWN``
    """
    labels: List[str] = [name for bit, name in LABEL_ORDER if mask & bit]

    if mask & CLOSE_WRITE:
        labels.append('CLOSE_WRITE')
    elif mask & CLOSE_NOWRITE:
        labels.append('CLOSE_NOWRITE')
    elif mask & CLOSE:
        # Unreachable while CLOSE is exactly the two bits above
        labels.append('CLOSE')

    return '|'.join(labels) or UNKNOWN_LABEL


def describe_mask(mask: int) -> str:
    """Readable form of a mask for log messages"""
    return '|'.join(str(flag.name) for flag in flags.from_mask(mask)) or '0'


TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


@dataclass(frozen=True)
class EventContext:
    """Everything an action may know about one dispatched event"""
    event_label: str
    file_name: str
    directory: str
    full_path: str
    watchlist: str
    timestamp: datetime = field(default_factory=datetime.now)
    pid: int = field(default_factory=os.getpid)
    hostname: str = field(default_factory=socket.gethostname)

    @classmethod
    def startup(cls, watchlist: str = '') -> 'EventContext':
        """Synthetic context for actions run once at process start"""
        return cls(
            event_label=STARTUP_LABEL,
            file_name='',
            directory='',
            full_path='',
            watchlist=watchlist,
        )

    def variables(self) -> Dict[str, str]:
        """Values for the ``%name%`` placeholders of action templates"""
        return {
            'file': self.file_name,
            'path': self.directory,
            'fullpath': self.full_path,
            'event': self.event_label,
            'timestamp': self.timestamp.strftime(TIMESTAMP_FORMAT),
            'watchlist': self.watchlist,
            'pid': str(self.pid),
            'hostname': self.hostname,
        }

    def __str__(self):
        return f"{self.event_label}: {self.full_path}"
