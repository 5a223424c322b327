# tests/test_handlers.py

import dataclasses
from datetime import datetime

import pytest
from inotify_simple import Event

from ywatch.watch.events import CLOSE_WRITE, CREATE, DELETE, ISDIR, MODIFY
from ywatch.watch.handlers import (
    DISCARDED, DISPATCHED, FILTERED, GATED, STALE, Dispatcher,
)
from ywatch.watch.watcher import WatchTree


@pytest.fixture
def tree():
    tree = WatchTree(generation=1)
    yield tree
    tree.close()


@pytest.fixture
def dispatcher(tree):
    return Dispatcher(tree, hostname='testhost', clock=lambda: datetime(2024, 1, 2, 3, 4, 5))


def raw_event(entry, mask, name):
    return Event(wd=entry.wd, mask=mask, cookie=0, name=name)


class TestGuards:

    def test_event_without_name_is_discarded(self, tree, dispatcher, make_binding, watched_dir, recording_action):
        action = recording_action()
        entry = tree.install(make_binding(watched_dir, actions=[action]))[0]

        outcome = dispatcher.dispatch(raw_event(entry, DELETE, ''), entry)

        assert outcome.status == DISCARDED
        assert action.calls == []

    def test_entry_from_other_generation_is_refused(self, tree, dispatcher, make_binding, watched_dir,
                                                    recording_action):
        action = recording_action()
        entry = tree.install(make_binding(watched_dir, actions=[action]))[0]
        stale = dataclasses.replace(entry, generation=entry.generation + 1)

        outcome = dispatcher.dispatch(raw_event(stale, CREATE, 'x'), stale)

        assert outcome.status == STALE
        assert action.calls == []


class TestDynamicExtension:

    def test_new_subdirectory_gets_one_watch(self, tree, dispatcher, make_binding, tmp_path, recording_action):
        root = tmp_path / 'a'
        (root / 'b').mkdir(parents=True)
        action = recording_action()
        root_entry = tree.install(make_binding(root, recursive=True, actions=[action]))[0]
        assert len(tree) == 2

        (root / 'c').mkdir()
        outcome = dispatcher.dispatch(raw_event(root_entry, CREATE | ISDIR, 'c'), root_entry)

        assert len(tree) == 3
        assert outcome.extended.path == str(root / 'c')
        assert outcome.status == DISPATCHED
        assert len(action.calls) == 1
        assert dispatcher.get_stats()['watches_extended'] == 1

    def test_extension_runs_even_when_filtered(self, tree, dispatcher, make_binding, watched_dir, recording_action):
        action = recording_action()
        entry = tree.install(make_binding(watched_dir, recursive=True, include=r'\.conf$', actions=[action]))[0]

        (watched_dir / 'logs').mkdir()
        outcome = dispatcher.dispatch(raw_event(entry, CREATE | ISDIR, 'logs'), entry)

        assert outcome.status == FILTERED
        assert str(watched_dir / 'logs') in tree
        assert action.calls == []

    def test_extension_runs_even_when_gated(self, tree, dispatcher, make_binding, watched_dir, recording_action):
        action = recording_action()
        entry = tree.install(make_binding(watched_dir, recursive=True, events=['modify'], actions=[action]))[0]

        (watched_dir / 'sub').mkdir()
        outcome = dispatcher.dispatch(raw_event(entry, CREATE | ISDIR, 'sub'), entry)

        assert outcome.status == GATED
        assert outcome.extended is not None
        assert action.calls == []

    def test_symlink_to_directory_is_not_followed(self, tree, dispatcher, make_binding, tmp_path):
        root = tmp_path / 'a'
        root.mkdir()
        outside = tmp_path / 'outside'
        outside.mkdir()
        entry = tree.install(make_binding(root, recursive=True))[0]

        (root / 'link').symlink_to(outside)
        outcome = dispatcher.dispatch(raw_event(entry, CREATE, 'link'), entry)

        assert outcome.extended is None
        assert tree.paths() == [str(root)]

    def test_non_recursive_watch_does_not_extend(self, tree, dispatcher, make_binding, watched_dir):
        entry = tree.install(make_binding(watched_dir))[0]

        (watched_dir / 'sub').mkdir()
        outcome = dispatcher.dispatch(raw_event(entry, CREATE | ISDIR, 'sub'), entry)

        assert outcome.extended is None
        assert len(tree) == 1

    def test_created_file_does_not_extend(self, tree, dispatcher, make_binding, watched_dir):
        entry = tree.install(make_binding(watched_dir, recursive=True))[0]

        (watched_dir / 'file.txt').write_text('data')
        outcome = dispatcher.dispatch(raw_event(entry, CREATE, 'file.txt'), entry)

        assert outcome.extended is None
        assert len(tree) == 1

    def test_extension_failure_does_not_stop_dispatch(self, fake_inotify, make_binding, watched_dir,
                                                      recording_action):
        tree = WatchTree(1, lambda: fake_inotify(refuse=[watched_dir / 'locked']))
        action = recording_action()
        entry = tree.install(make_binding(watched_dir, recursive=True, actions=[action]))[0]

        (watched_dir / 'locked').mkdir()
        outcome = Dispatcher(tree).dispatch(raw_event(entry, CREATE | ISDIR, 'locked'), entry)

        assert outcome.status == DISPATCHED
        assert outcome.extended is None
        assert len(action.calls) == 1


class TestGating:

    def test_modify_with_create_only_mask_invokes_nothing(self, tree, dispatcher, make_binding, watched_dir,
                                                           recording_action):
        action = recording_action()
        entry = tree.install(make_binding(watched_dir, events=['create'], actions=[action]))[0]

        outcome = dispatcher.dispatch(raw_event(entry, MODIFY, 'existing.txt'), entry)

        assert outcome.status == GATED
        assert outcome.invoked == 0
        assert action.calls == []

    @pytest.mark.parametrize('events, mask, invoked', [
        (['create'], CREATE, True),
        (['create'], MODIFY, False),
        (['modify', 'delete'], DELETE, True),
        (['close_write'], MODIFY | CLOSE_WRITE, True),
        (['attrib'], MODIFY | CLOSE_WRITE, False),
    ])
    def test_invoked_iff_masks_intersect(self, tree, dispatcher, make_binding, watched_dir, recording_action,
                                         events, mask, invoked):
        action = recording_action()
        entry = tree.install(make_binding(watched_dir, events=events, actions=[action]))[0]

        dispatcher.dispatch(raw_event(entry, mask, 'f'), entry)

        assert bool(action.calls) == invoked


class TestFiltering:

    def test_include_pattern(self, tree, dispatcher, make_binding, watched_dir, recording_action):
        action = recording_action()
        entry = tree.install(make_binding(watched_dir, include=r'\.conf$', actions=[action]))[0]

        txt = dispatcher.dispatch(raw_event(entry, CREATE, 'x.txt'), entry)
        assert txt.status == FILTERED
        assert action.calls == []

        conf = dispatcher.dispatch(raw_event(entry, CREATE, 'x.conf'), entry)
        assert conf.status == DISPATCHED
        assert [ctx.file_name for ctx in action.calls] == ['x.conf']

    def test_exclude_pattern(self, tree, dispatcher, make_binding, watched_dir, recording_action):
        action = recording_action()
        entry = tree.install(make_binding(watched_dir, exclude=r'~$|\.swp$', actions=[action]))[0]

        dispatcher.dispatch(raw_event(entry, MODIFY, 'app.conf~'), entry)
        dispatcher.dispatch(raw_event(entry, MODIFY, '.app.conf.swp'), entry)
        dispatcher.dispatch(raw_event(entry, MODIFY, 'app.conf'), entry)

        assert [ctx.file_name for ctx in action.calls] == ['app.conf']
        assert dispatcher.get_stats()['events_filtered'] == 2


class TestActions:

    def test_context_contents(self, tree, dispatcher, make_binding, watched_dir, recording_action):
        action = recording_action()
        entry = tree.install(make_binding(watched_dir, watchlist='config_monitor', actions=[action]))[0]

        outcome = dispatcher.dispatch(raw_event(entry, MODIFY | CLOSE_WRITE, 'app.conf'), entry)

        assert outcome.label == 'MODIFY|CLOSE_WRITE'
        context = action.calls[0]
        assert context.event_label == 'MODIFY|CLOSE_WRITE'
        assert context.file_name == 'app.conf'
        assert context.directory == str(watched_dir)
        assert context.full_path == str(watched_dir / 'app.conf')
        assert context.watchlist == 'config_monitor'
        assert context.hostname == 'testhost'
        assert context.timestamp == datetime(2024, 1, 2, 3, 4, 5)

    def test_all_actions_share_one_context(self, tree, dispatcher, make_binding, watched_dir, recording_action):
        first, second = recording_action(), recording_action()
        entry = tree.install(make_binding(watched_dir, actions=[first, second]))[0]

        dispatcher.dispatch(raw_event(entry, CREATE, 'f'), entry)

        assert first.calls[0] is second.calls[0]

    def test_failing_action_does_not_stop_the_rest(self, tree, dispatcher, make_binding, watched_dir,
                                                   recording_action):
        failing, succeeding = recording_action(fail=True), recording_action()
        entry = tree.install(make_binding(watched_dir, actions=[failing, succeeding]))[0]

        outcome = dispatcher.dispatch(raw_event(entry, CREATE, 'f'), entry)

        assert len(succeeding.calls) == 1
        assert outcome.invoked == 2
        assert len(outcome.errors) == 1
        assert outcome.errors[0].action == 'recording'

        # Next event is dispatched normally
        dispatcher.dispatch(raw_event(entry, CREATE, 'g'), entry)
        assert len(succeeding.calls) == 2

    def test_raising_action_is_contained(self, tree, dispatcher, make_binding, watched_dir, recording_action):
        raising, succeeding = recording_action(raise_error=True), recording_action()
        entry = tree.install(make_binding(watched_dir, actions=[raising, succeeding]))[0]

        outcome = dispatcher.dispatch(raw_event(entry, CREATE, 'f'), entry)

        assert len(succeeding.calls) == 1
        assert 'action blew up' in str(outcome.errors[0])
        assert dispatcher.get_stats()['action_errors'] == 1
