# ywatch/actions/syslog.py

"""
Syslog action
"""
import syslog

from ..exceptions import ConfigurationError
from .base import Action

PRIORITIES = {
    'emerg': syslog.LOG_EMERG,
    'alert': syslog.LOG_ALERT,
    'crit': syslog.LOG_CRIT,
    'err': syslog.LOG_ERR,
    'error': syslog.LOG_ERR,
    'warning': syslog.LOG_WARNING,
    'warn': syslog.LOG_WARNING,
    'notice': syslog.LOG_NOTICE,
    'info': syslog.LOG_INFO,
    'debug': syslog.LOG_DEBUG,
}

FACILITIES = {
    'user': syslog.LOG_USER,
    'daemon': syslog.LOG_DAEMON,
    'auth': syslog.LOG_AUTH,
    'cron': syslog.LOG_CRON,
    'mail': syslog.LOG_MAIL,
    'syslog': syslog.LOG_SYSLOG,
    'local0': syslog.LOG_LOCAL0,
    'local1': syslog.LOG_LOCAL1,
    'local2': syslog.LOG_LOCAL2,
    'local3': syslog.LOG_LOCAL3,
    'local4': syslog.LOG_LOCAL4,
    'local5': syslog.LOG_LOCAL5,
    'local6': syslog.LOG_LOCAL6,
    'local7': syslog.LOG_LOCAL7,
}

DEFAULT_MESSAGE = 'ywatch: %event% %fullpath%'


class SyslogAction(Action):
    """Send each event to the local syslog daemon"""

    type_name = 'syslog'

    def __init__(self, config, settings, watchlist=None):
        super().__init__(config, settings, watchlist)

        # Unknown priorities fall back to info
        self.priority = PRIORITIES.get(str(self.option('priority', 'info')).lower(), syslog.LOG_INFO)

        facility = str(self.option('facility', 'user')).lower()
        if facility not in FACILITIES:
            raise ConfigurationError(f"Invalid syslog facility: {facility}")
        self.facility = FACILITIES[facility]

        self.message = str(self.option('message', DEFAULT_MESSAGE))
        self.ident = str(self.option('ident', 'ywatch'))
        self._opened = False

    def run(self, context):
        # openlog() is process-wide; reopen in case another action changed ident
        syslog.openlog(self.ident, syslog.LOG_PID, self.facility)
        self._opened = True
        syslog.syslog(self.priority, self.expand(self.message, context))

    def close(self):
        if self._opened:
            syslog.closelog()
            self._opened = False
