# tests/test_logger.py

import json
import logging

import pytest

from ywatch.utils.logger import ColorFormatter, log_exception, resolve_level, setup_logging


@pytest.mark.parametrize('name, level', [
    ('WARN', logging.WARNING),
    ('fatal', logging.CRITICAL),
    ('debug', logging.DEBUG),
    ('bogus', logging.INFO),
])
def test_resolve_level(name, level):
    assert resolve_level(name) == level


def test_json_log_file(tmp_path, restore_logging):
    log_file = tmp_path / 'logs' / 'ywatch.log'
    setup_logging('INFO', str(log_file), 'json')

    logger = logging.getLogger('ywatch.test')
    try:
        raise ValueError("bad value")
    except ValueError as e:
        log_exception(logger, e, "Handling failed", extra={'path': '/etc/app'})

    for handler in logging.getLogger().handlers:
        handler.flush()

    records = [json.loads(line) for line in log_file.read_text().splitlines()]
    failure = records[-1]
    assert failure['message'] == 'Handling failed'
    assert failure['level'] == 'ERROR'
    assert failure['path'] == '/etc/app'
    assert 'ValueError: bad value' in failure['exception']


def test_warn_alias_sets_root_level(restore_logging):
    root = setup_logging('WARN')
    assert root.level == logging.WARNING
    assert logging.getLogger('watchdog').level == logging.WARNING


def test_color_formatter_leaves_record_untouched():
    record = logging.LogRecord('ywatch', logging.ERROR, __file__, 1, 'boom', None, None)
    output = ColorFormatter('%(levelname)s %(message)s').format(record)

    assert '\033[31m' in output
    assert record.levelname == 'ERROR'
