# tests/conftest.py

"""
Shared fixtures for ywatch tests
"""
import os
import errno
import logging
from datetime import datetime

import pytest
import yaml

from ywatch.actions import ActionResult
from ywatch.exceptions import ActionExecutionError
from ywatch.utils.config import (
    Config, FilterConfig, WatchConfig, parse_config,
)
from ywatch.watch.events import EventContext, build_event_mask
from ywatch.watch.patterns import FilterChain
from ywatch.watch.watcher import WatchBinding


class RecordingAction:
    """Stand-in action that records every context it is given"""

    type_name = 'recording'

    def __init__(self, fail=False, raise_error=False):
        self.fail = fail
        self.raise_error = raise_error
        self.calls = []
        self.polled = 0
        self.closed = False

    def execute(self, context):
        self.calls.append(context)
        if self.raise_error:
            raise RuntimeError("action blew up")
        if self.fail:
            return ActionResult.failed(ActionExecutionError(self.type_name, "always fails"))
        return ActionResult.succeeded()

    def poll(self):
        self.polled += 1

    def close(self):
        self.closed = True


class FakeInotify:
    """In-memory inotify that can refuse chosen paths"""

    def __init__(self, refuse=()):
        self.refuse = {os.path.normpath(str(p)) for p in refuse}
        self.watches = {}
        self.pending = []
        self.next_wd = 1
        self.closed = False

    def add_watch(self, path, mask):
        path = os.path.normpath(str(path))
        if path in self.refuse:
            raise OSError(errno.EACCES, os.strerror(errno.EACCES), path)

        for wd, (watched, _) in self.watches.items():
            if watched == path:
                self.watches[wd] = (path, mask)
                return wd

        wd = self.next_wd
        self.next_wd += 1
        self.watches[wd] = (path, mask)
        return wd

    def rm_watch(self, wd):
        if wd not in self.watches:
            raise OSError(errno.EINVAL, os.strerror(errno.EINVAL))
        del self.watches[wd]

    def read(self, timeout=None, read_delay=None):
        events, self.pending = self.pending, []
        return events

    def fileno(self):
        return -1

    def close(self):
        self.closed = True


@pytest.fixture
def recording_action():
    return RecordingAction


@pytest.fixture
def fake_inotify():
    return FakeInotify


@pytest.fixture
def settings():
    """Minimal global configuration for building actions"""
    return Config(name='test-watcher')


@pytest.fixture
def context():
    return EventContext(
        event_label='CREATE',
        file_name='app.conf',
        directory='/etc/app',
        full_path='/etc/app/app.conf',
        watchlist='config_monitor',
        timestamp=datetime(2024, 1, 2, 3, 4, 5),
        pid=4242,
        hostname='testhost',
    )


@pytest.fixture
def make_binding():
    """Build a WatchBinding without going through configuration files"""
    def _make(path, recursive=False, events=None, include=None, exclude=None,
              scope='path', actions=None, watchlist='test'):
        spec = WatchConfig(
            path=str(path),
            recursive=recursive,
            events=tuple(events or ()),
            filters=FilterConfig(include, exclude, scope),
        )
        return WatchBinding(
            watchlist=watchlist,
            spec=spec,
            action_mask=build_event_mask(spec.events),
            filter_chain=FilterChain(include, exclude, scope),
            actions=list(actions or []),
        )
    return _make


@pytest.fixture
def make_config():
    """Build a validated Config watching the given directories"""
    def _make(*paths, recursive=False, events=None, actions=None, **extra):
        watches = []
        for path in paths:
            watch = {
                'path': str(path),
                'recursive': recursive,
                'actions': actions if actions is not None else [{'type': 'console'}],
            }
            if events:
                watch['events'] = list(events)
            watches.append(watch)

        data = {
            'name': 'test-watcher',
            'watchlists': [{'name': 'test', 'watches': watches}],
        }
        data.update(extra)
        return parse_config(data)
    return _make


@pytest.fixture
def write_config(tmp_path):
    """Write a configuration mapping to a YAML file and return its path"""
    def _write(data, name='ywatch.yaml'):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path
    return _write


@pytest.fixture
def watched_dir(tmp_path):
    path = tmp_path / 'watched'
    path.mkdir()
    return path


@pytest.fixture
def restore_logging():
    """Undo root logger changes made by setup_logging"""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
