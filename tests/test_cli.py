# tests/test_cli.py

import pytest

from ywatch.cli import build_parser, main


@pytest.fixture
def config_file(write_config, watched_dir):
    return write_config({
        'name': 'cli-watcher',
        'watchlists': [{'name': 'files', 'watches': [{'path': str(watched_dir)}]}],
    })


def test_validate_ok(config_file, capsys, restore_logging):
    assert main(['--validate', str(config_file)]) == 0
    assert 'Configuration OK: 1 enabled watchlist(s), 1 watch(es)' in capsys.readouterr().out


def test_invalid_configuration_exits_nonzero(tmp_path, restore_logging):
    assert main(['--validate', str(tmp_path / 'missing.yaml')]) == 1


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.config == '/etc/ywatch/ywatch.yaml'
    assert not args.debug
    assert args.log_format is None
