# ywatch/watch/monitor.py

"""
Main file system monitor for ywatch
"""
import os
import signal
import logging
import selectors
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from inotify_simple import INotify

from ..actions import build_action
from ..exceptions import ConfigurationError
from ..utils.config import Config, load_config
from ..utils.logger import log_exception
from .config_watcher import ConfigWatcher
from .events import IGNORED, Q_OVERFLOW, EventContext
from .generation import Generation, ReloadCoordinator

logger = logging.getLogger(__name__)

RELOAD = 'reload'
SHUTDOWN = 'shutdown'

SIGNAL_REQUESTS = {
    signal.SIGHUP: RELOAD,
    signal.SIGTERM: SHUTDOWN,
    signal.SIGINT: SHUTDOWN,
}


class SignalState:
    """
    The one piece of state shared with signal delivery

    Signal handlers only record the request; the main loop reads and
    clears it between iterations. A pending shutdown is never replaced by
    a reload.
    """

    def __init__(self):
        self.pending: Optional[str] = None

    def record(self, request: str):
        if self.pending != SHUTDOWN:
            self.pending = request

    def take(self) -> Optional[str]:
        request, self.pending = self.pending, None
        return request


class Monitor:
    """
    Host loop: wait on inotify and the signal wake-up pipe, dispatch
    events one at a time, act on reload and shutdown requests in between.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None,
                 config: Optional[Config] = None,
                 loader: Callable[[Union[str, Path]], Config] = load_config,
                 inotify_factory: Callable[[], Any] = INotify):
        """
        Initialize monitor

        Args:
            config_path: Configuration file, re-read on every reload
            config: Already loaded configuration (loaded from config_path if None)
            loader: Reads and validates a configuration file
            inotify_factory: Creates one inotify instance per generation
        """
        if config is None and config_path is None:
            raise ValueError("Either config_path or config is required")

        self.config_path = Path(config_path) if config_path else None
        self.loader = loader
        self.initial_config = config

        self.coordinator = ReloadCoordinator(inotify_factory)
        self.signals = SignalState()
        self.config_watcher: Optional[ConfigWatcher] = None

        self.is_running = False
        self._selector: Optional[selectors.BaseSelector] = None
        self._registered_fd: Optional[int] = None
        self._wake_r: Optional[int] = None
        self._wake_w: Optional[int] = None
        self._previous_handlers: Dict[int, Any] = {}
        self._previous_wakeup_fd: Optional[int] = None

        self.stats = {
            'events_routed': 0,
            'unknown_watch_events': 0,
            'queue_overflows': 0,
            'reloads': 0,
            'failed_reloads': 0,
        }

    @property
    def generation(self) -> Optional[Generation]:
        return self.coordinator.current

    # Lifecycle

    def start(self):
        """
        Install the first generation and run startup actions

        Raises:
            ConfigurationError: If the configuration cannot be used (fatal)
        """
        if self.is_running:
            logger.warning("Monitor is already running")
            return

        config = self.initial_config or self.loader(self.config_path)

        logger.info("Setting up filesystem watches...")
        self.coordinator.activate(config)

        self._selector = selectors.DefaultSelector()
        self._wake_r, self._wake_w = os.pipe()
        os.set_blocking(self._wake_r, False)
        os.set_blocking(self._wake_w, False)
        self._selector.register(self._wake_r, selectors.EVENT_READ)
        self._register_generation()

        self.run_startup_actions(config)
        self._install_signal_handlers()

        if config.reload_on_change and self.config_path:
            self.config_watcher = ConfigWatcher(self.config_path)
            self.config_watcher.start()

        self.is_running = True
        logger.info("Monitoring started")

    def stop(self):
        """Release watches, signal handlers and the wake-up pipe"""
        if self.config_watcher is not None:
            self.config_watcher.stop()
            self.config_watcher = None

        self._restore_signal_handlers()
        self.coordinator.shutdown()

        if self._selector is not None:
            self._selector.close()
            self._selector = None
            self._registered_fd = None
        for fd in (self._wake_r, self._wake_w):
            if fd is not None:
                os.close(fd)
        self._wake_r = self._wake_w = None

        self.is_running = False
        logger.info("Filesystem monitor stopped")

    def run(self):
        """Start, loop until a shutdown request, then stop"""
        self.start()
        try:
            while self.is_running:
                self.run_once(self.generation.config.poll_interval)
        finally:
            self.stop()

    # Main loop

    def run_once(self, timeout: Optional[float] = None) -> int:
        """
        Wait once for events or signals and handle what arrived

        Args:
            timeout: Seconds to wait; None blocks until something happens

        Returns:
            Number of inotify events routed
        """
        routed = 0
        inotify_ready = False

        for key, _ in self._selector.select(timeout):
            if key.fd == self._wake_r:
                self._drain_wakeup()
            elif key.fd == self._registered_fd:
                inotify_ready = True

        generation = self.generation
        generation.poll_actions()

        if inotify_ready:
            for event in generation.tree.read_events(timeout=0):
                self.route(event, generation)
                routed += 1

        self._handle_request(self.signals.take())
        return routed

    def route(self, event, generation: Generation):
        """Kernel bookkeeping first, then hand the event to the dispatcher"""
        self.stats['events_routed'] += 1

        if event.mask & Q_OVERFLOW:
            self.stats['queue_overflows'] += 1
            logger.warning("Inotify event queue overflowed; some events were lost")
            return

        if event.mask & IGNORED:
            generation.tree.forget(event.wd)
            return

        entry = generation.tree.lookup(event.wd)
        if entry is None:
            self.stats['unknown_watch_events'] += 1
            logger.debug(f"Event for unknown watch descriptor {event.wd} ignored")
            return

        generation.dispatcher.dispatch(event, entry)

    def _handle_request(self, request: Optional[str]):
        if request == RELOAD:
            self.reload()
        elif request == SHUTDOWN:
            logger.info("Shutting down...")
            self.is_running = False

    # Reload

    def request_reload(self):
        self.signals.record(RELOAD)

    def request_shutdown(self):
        self.signals.record(SHUTDOWN)

    def reload(self) -> bool:
        """
        Re-read the configuration and swap generations

        Returns:
            True if the new generation is active, False if the old one was kept
        """
        logger.info("Reloading configuration...")

        try:
            config = self.loader(self.config_path) if self.config_path else self.generation.config
            self.coordinator.reload(config)
        except ConfigurationError as e:
            self.stats['failed_reloads'] += 1
            logger.error(f"Failed to reload configuration: {e}")
            logger.error("Continuing with old configuration")
            return False
        except Exception as e:
            # A reload never ends the loop
            self.stats['failed_reloads'] += 1
            log_exception(logger, e, f"Unexpected error while reloading configuration: {e}")
            logger.error("Continuing with old configuration")
            return False

        self._register_generation()
        self.stats['reloads'] += 1
        logger.info("Configuration reloaded successfully")
        return True

    def _register_generation(self):
        if self._selector is None:
            return

        if self._registered_fd is not None:
            # Already closed with the old generation; unregister by key
            try:
                self._selector.unregister(self._registered_fd)
            except (KeyError, ValueError):
                pass

        fd = self.generation.tree.fileno()
        self._selector.register(fd, selectors.EVENT_READ)
        self._registered_fd = fd

    # Startup actions

    def run_startup_actions(self, config: Config) -> int:
        """
        Run ``startup_actions`` once with a synthetic STARTUP context

        Returns:
            Number of actions that failed
        """
        if not config.startup_actions:
            return 0

        context = EventContext.startup(config.name)
        failures = 0

        for action_config in config.startup_actions:
            try:
                action = build_action(action_config, config)
            except ConfigurationError as e:
                logger.error(f"Skipping startup action: {e}")
                failures += 1
                continue

            result = action.execute(context)
            if not result.ok:
                logger.error(f"Startup action failed: {result.error}")
                failures += 1
            action.poll()
            action.close()

        return failures

    # Signals

    def _on_signal(self, signum, frame):
        # Only record; everything else happens in the main loop
        self.signals.record(SIGNAL_REQUESTS[signum])

    def _install_signal_handlers(self):
        try:
            self._previous_wakeup_fd = signal.set_wakeup_fd(self._wake_w)
            for signum in SIGNAL_REQUESTS:
                self._previous_handlers[signum] = signal.signal(signum, self._on_signal)
        except ValueError:
            # Not the main thread: callers drive reload/shutdown themselves
            logger.debug("Signal handlers not installed (not in main thread)")
            return

        logger.debug("Signal handlers installed")

    def _restore_signal_handlers(self):
        if not self._previous_handlers:
            return

        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

        signal.set_wakeup_fd(self._previous_wakeup_fd if self._previous_wakeup_fd is not None else -1)
        self._previous_wakeup_fd = None

    def _drain_wakeup(self):
        try:
            while os.read(self._wake_r, 512):
                pass
        except BlockingIOError:
            pass

    def get_status(self) -> Dict[str, Any]:
        """Get monitor status"""
        generation = self.generation
        status = {
            'is_running': self.is_running,
            'config_path': str(self.config_path) if self.config_path else None,
            'stats': self.stats.copy(),
        }
        if generation is not None:
            status.update({
                'generation': generation.id,
                'watched_directories': generation.tree.paths(),
                'tree': generation.tree.get_stats(),
                'dispatcher': generation.dispatcher.get_stats(),
            })
        return status
