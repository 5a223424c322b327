# ywatch/watch/handlers.py

"""
Per-event dispatch pipeline
"""
import os
import socket
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import ActionExecutionError, WatchInstallError
from ..utils.logger import log_exception
from .events import CREATE, ISDIR, EventContext, classify
from .watcher import WatchEntry, WatchTree

logger = logging.getLogger(__name__)

DISCARDED = 'discarded'
STALE = 'stale'
GATED = 'gated'
FILTERED = 'filtered'
DISPATCHED = 'dispatched'


@dataclass
class DispatchOutcome:
    """What happened to one raw event"""
    status: str
    full_path: Optional[str] = None
    label: Optional[str] = None
    invoked: int = 0
    errors: List[ActionExecutionError] = field(default_factory=list)
    extended: Optional[WatchEntry] = None


class Dispatcher:
    """
    Route raw inotify events of one generation to their actions

    Steps, in order: name guard, generation guard, dynamic extension of
    recursive watches, action-mask gate, filter gate, classification,
    context construction, isolated action invocation.
    """

    def __init__(self, tree: WatchTree,
                 hostname: Optional[str] = None,
                 clock: Callable[[], datetime] = datetime.now):
        """
        Initialize dispatcher

        Args:
            tree: Watch tree of the same generation
            hostname: Reported in every context (defaults to this host)
            clock: Source of event timestamps
        """
        self.tree = tree
        self.hostname = hostname or socket.gethostname()
        self.pid = os.getpid()
        self.clock = clock

        self.stats = {
            'events_received': 0,
            'events_discarded': 0,
            'events_gated': 0,
            'events_filtered': 0,
            'events_dispatched': 0,
            'watches_extended': 0,
            'action_errors': 0,
            'last_event': None,
        }

    @property
    def generation(self) -> int:
        return self.tree.generation

    def dispatch(self, event: Any, entry: WatchEntry) -> DispatchOutcome:
        """
        Run the pipeline for one raw event

        Args:
            event: Raw inotify event (``mask`` and ``name`` attributes)
            entry: Watch the event arrived on

        Returns:
            Outcome describing how far the event got
        """
        self.stats['events_received'] += 1

        # Self-referential notifications carry no name
        if not event.name:
            self.stats['events_discarded'] += 1
            return DispatchOutcome(DISCARDED)

        if entry.generation != self.generation:
            logger.warning(f"Event for superseded generation {entry.generation} on {entry.path} dropped")
            self.stats['events_discarded'] += 1
            return DispatchOutcome(STALE)

        binding = entry.binding
        mask = event.mask
        full_path = os.path.join(entry.path, event.name)

        # New subdirectories are watched whatever the filter says
        extended = None
        if binding.recursive and mask & CREATE and mask & ISDIR and not os.path.islink(full_path):
            extended = self._extend(binding, full_path)

        if not mask & entry.action_mask:
            self.stats['events_gated'] += 1
            return DispatchOutcome(GATED, full_path=full_path, extended=extended)

        if not binding.filter_chain.matches(full_path):
            logger.debug(f"Event filtered out: {full_path}")
            self.stats['events_filtered'] += 1
            return DispatchOutcome(FILTERED, full_path=full_path, extended=extended)

        label = classify(mask)
        logger.info(f"Event: {label} on {full_path}")

        context = EventContext(
            event_label=label,
            file_name=event.name,
            directory=os.path.dirname(full_path),
            full_path=full_path,
            watchlist=entry.watchlist,
            timestamp=self.clock(),
            pid=self.pid,
            hostname=self.hostname,
        )

        outcome = DispatchOutcome(DISPATCHED, full_path=full_path, label=label, extended=extended)
        outcome.errors = self.run_actions(binding.actions, context)
        outcome.invoked = len(binding.actions)

        self.stats['events_dispatched'] += 1
        self.stats['last_event'] = context.timestamp
        return outcome

    def _extend(self, binding, full_path: str) -> Optional[WatchEntry]:
        try:
            entry = self.tree.extend_on_create(binding, full_path)
        except WatchInstallError as e:
            logger.warning(f"Cannot extend recursive watch: {e}")
            return None

        self.stats['watches_extended'] += 1
        return entry

    def run_actions(self, actions: List[Any], context: EventContext) -> List[ActionExecutionError]:
        """
        Invoke each action once, in order, isolating failures

        Returns:
            Errors reported by failed actions
        """
        errors = []

        for action in actions:
            try:
                result = action.execute(context)
            except Exception as e:
                # Action broke its contract and raised
                error = ActionExecutionError(getattr(action, 'type_name', type(action).__name__), str(e), cause=e)
                log_exception(logger, e, f"Action failed: {error}")
            else:
                if result.ok:
                    continue
                error = result.error or ActionExecutionError(action.type_name, "reported failure")
                logger.error(f"Action failed: {error}")

            errors.append(error)
            self.stats['action_errors'] += 1

        return errors

    def get_stats(self) -> Dict[str, Any]:
        """Get dispatcher statistics"""
        return self.stats.copy()
