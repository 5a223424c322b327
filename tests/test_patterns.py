# tests/test_patterns.py

import os
import re

import pytest

from ywatch.exceptions import ConfigurationError
from ywatch.watch.patterns import FilterChain

PATHS = [
    '/etc/app/app.conf',
    '/etc/app/app.conf~',
    '/etc/app/.app.conf.swp',
    '/etc/app/notes.txt',
    '/srv/conf.d/readme',
    'relative.conf',
]

PATTERN_PAIRS = [
    (None, None),
    (r'\.conf$', None),
    (None, r'~$|\.swp$'),
    (r'\.conf', r'~$|\.swp$'),
    (r'^app', r'txt'),
]


def expected(include, exclude, subject):
    return ((include is None or re.search(include, subject) is not None)
            and (exclude is None or re.search(exclude, subject) is None))


@pytest.mark.parametrize('include, exclude', PATTERN_PAIRS)
@pytest.mark.parametrize('path', PATHS)
def test_filter_law(include, exclude, path):
    chain = FilterChain(include, exclude)
    assert chain.matches_name(path) == expected(include, exclude, os.path.basename(path))
    assert chain.matches_full_path(path) == expected(include, exclude, path)


@pytest.mark.parametrize('path', [None, ''])
def test_empty_path_never_matches(path):
    chain = FilterChain()
    assert not chain.matches_name(path)
    assert not chain.matches_full_path(path)
    assert not chain.matches(path)


def test_empty_patterns_are_absent():
    chain = FilterChain('', '')
    assert chain.is_empty
    assert chain.matches('/anything/at/all')


def test_name_and_path_scopes_differ():
    # Directory name matches, file name does not
    path_chain = FilterChain(r'conf\.d')
    name_chain = FilterChain(r'conf\.d', scope='name')

    assert path_chain.matches('/srv/conf.d/readme')
    assert not name_chain.matches('/srv/conf.d/readme')


def test_anchored_name_pattern():
    chain = FilterChain(r'^app', scope='name')
    assert chain.matches('/etc/app/app.conf')
    assert not chain.matches('/etc/app/.app.conf.swp')


@pytest.mark.parametrize('include, exclude', [('(unclosed', None), (None, '[z-a]')])
def test_invalid_regex(include, exclude):
    with pytest.raises(ConfigurationError, match='Invalid .* regex pattern'):
        FilterChain(include, exclude)


def test_invalid_scope():
    with pytest.raises(ConfigurationError, match='Invalid filter scope'):
        FilterChain(scope='basename')
