# ywatch/watch/config_watcher.py

"""
Request a reload when the configuration file changes
"""
import os
import signal
import threading
import time
import logging
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


def send_reload_signal():
    """Deliver SIGHUP to this process so the main loop sees a reload request"""
    os.kill(os.getpid(), signal.SIGHUP)


class ConfigChangeHandler(FileSystemEventHandler):
    """
    React to changes of one file inside the observed directory

    Editors often write several times per save, so triggers closer than
    ``debounce_seconds`` are collapsed.
    """

    def __init__(self, config_path: Path,
                 trigger: Callable[[], None] = send_reload_signal,
                 debounce_seconds: float = 1.0):
        super().__init__()
        self.config_path = Path(config_path).resolve()
        self.trigger = trigger
        self.debounce_seconds = debounce_seconds
        self._last_trigger = 0.0
        self._lock = threading.Lock()

    def _is_config(self, path) -> bool:
        if not path:
            return False
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        return Path(path).resolve() == self.config_path

    def on_any_event(self, event):
        if event.is_directory or event.event_type not in ('created', 'modified', 'moved', 'closed'):
            return

        if not (self._is_config(event.src_path) or self._is_config(getattr(event, 'dest_path', None))):
            return

        now = time.monotonic()
        with self._lock:
            if now - self._last_trigger < self.debounce_seconds:
                logger.debug(f"Config change debounced: {self.config_path}")
                return
            self._last_trigger = now

        logger.info(f"Configuration file changed: {self.config_path}")
        try:
            self.trigger()
        except Exception as e:
            logger.error(f"Failed to request reload: {e}")


class ConfigWatcher:
    """
    Watch the configuration file with a watchdog observer

    The observer thread never reloads anything itself; it only raises
    SIGHUP, which reaches the main loop through the usual signal flag.
    """

    def __init__(self, config_path: Path,
                 trigger: Callable[[], None] = send_reload_signal,
                 debounce_seconds: float = 1.0):
        self.config_path = Path(config_path).expanduser().resolve()
        self.handler = ConfigChangeHandler(self.config_path, trigger, debounce_seconds)
        self.observer: Optional[Observer] = None

    @property
    def is_running(self) -> bool:
        return self.observer is not None

    def start(self) -> bool:
        """Start watching; returns False if the directory cannot be watched"""
        if self.observer is not None:
            return True

        # Watch the parent: editors replace the file on save
        watch_dir = self.config_path.parent
        observer = Observer()
        try:
            observer.schedule(self.handler, str(watch_dir), recursive=False)
            observer.start()
        except OSError as e:
            logger.error(f"Cannot watch configuration directory {watch_dir}: {e}")
            return False

        self.observer = observer
        logger.info(f"Watching configuration file for changes: {self.config_path}")
        return True

    def stop(self):
        if self.observer is None:
            return

        self.observer.stop()
        self.observer.join(timeout=5.0)
        self.observer = None
        logger.debug("Configuration watcher stopped")
