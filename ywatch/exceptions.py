# ywatch/exceptions.py

"""
Error taxonomy for ywatch
"""
from typing import Optional


class YwatchError(Exception):
    """Base class for all ywatch errors"""


class ConfigurationError(YwatchError):
    """Invalid watch spec, pattern, or action spec.

    Fatal at startup. During a reload the previous generation stays active.
    """


class WatchInstallError(YwatchError):
    """The kernel refused a watch (permission, resource limit, path vanished)"""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot watch {path}: {reason}")


class ActionExecutionError(YwatchError):
    """An action failed while handling one event"""

    def __init__(self, action: str, message: str, cause: Optional[BaseException] = None):
        self.action = action
        self.message = message
        self.cause = cause
        super().__init__(f"{action} action failed: {message}")
