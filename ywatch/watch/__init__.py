# ywatch/watch/__init__.py

"""
ywatch Watch Module
inotify watches, event dispatch and reload handling
"""
from .monitor import Monitor, SignalState
from .events import EventContext, build_event_mask, classify
from .patterns import FilterChain
from .handlers import Dispatcher, DispatchOutcome
from .watcher import WatchTree, WatchEntry, WatchBinding
from .generation import Generation, ReloadCoordinator, build_generation
from .config_watcher import ConfigWatcher

__all__ = [
    'Monitor',
    'SignalState',
    'EventContext',
    'build_event_mask',
    'classify',
    'FilterChain',
    'Dispatcher',
    'DispatchOutcome',
    'WatchTree',
    'WatchEntry',
    'WatchBinding',
    'Generation',
    'ReloadCoordinator',
    'build_generation',
    'ConfigWatcher',
]
