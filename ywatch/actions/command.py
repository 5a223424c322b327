# ywatch/actions/command.py

"""
Shell command action
"""
import os
import shlex
import signal
import time
import logging
import subprocess
from dataclasses import dataclass
from typing import List

from ..exceptions import ActionExecutionError, ConfigurationError
from .base import Action, expand_variables

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
DEFAULT_SHELL = '/bin/bash'


@dataclass
class _Child:
    """Asynchronous command awaiting reaping"""
    process: subprocess.Popen
    command: str
    deadline: float


class CommandAction(Action):
    """
    Run a shell command per event

    Asynchronous by default: the command is launched and reaped later from
    ``poll()``. Synchronous commands block the monitor loop for up to
    ``timeout`` seconds.

    Placeholders are substituted verbatim unless ``quote`` is set, so quote
    them in the template (``'/usr/local/bin/process.sh "%fullpath%"'``)
    when file names may contain shell metacharacters.
    """

    type_name = 'command'

    def __init__(self, config, settings, watchlist=None):
        super().__init__(config, settings, watchlist)

        self.command = self.option('execute')
        if not self.command:
            raise ConfigurationError("Command action requires 'execute' parameter")
        self.command = str(self.command)

        self.run_async = bool(self.config.get('async', True))
        self.shell = str(self.option('shell', DEFAULT_SHELL))
        self.quote = bool(self.option('quote', False))

        try:
            self.timeout = float(self.option('timeout', DEFAULT_TIMEOUT))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid command timeout: {e}") from e
        if self.timeout <= 0:
            raise ConfigurationError("Command timeout must be positive")

        self.children: List[_Child] = []

    def render(self, context) -> str:
        return expand_variables(self.command, context, shlex.quote if self.quote else None)

    def run(self, context):
        command = self.render(context)
        logger.debug(f"Executing command: {command}")

        if self.run_async:
            self._execute_async(command)
        else:
            self._execute_sync(command)

    def _execute_sync(self, command: str):
        try:
            result = subprocess.run(
                command,
                shell=True,
                executable=self.shell,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ActionExecutionError(
                self.type_name, f"timed out after {self.timeout:g} seconds: {command}", cause=e
            ) from e
        except OSError as e:
            raise ActionExecutionError(self.type_name, f"cannot start {command}: {e}", cause=e) from e

        if result.stdout:
            logger.debug(f"Output: {result.stdout.rstrip()}")

        if result.returncode != 0:
            raise ActionExecutionError(
                self.type_name, f"exited with code {result.returncode}: {command}"
            )

        logger.debug("Command completed successfully")

    def _execute_async(self, command: str):
        # Reap earlier children first so finished ones do not pile up
        self.poll()

        try:
            process = subprocess.Popen(
                command,
                shell=True,
                executable=self.shell,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise ActionExecutionError(self.type_name, f"cannot start {command}: {e}", cause=e) from e

        self.children.append(_Child(process, command, time.monotonic() + self.timeout))
        logger.debug(f"Command started with PID {process.pid}")

    def poll(self):
        """Reap finished children; kill those past their timeout"""
        if not self.children:
            return

        now = time.monotonic()
        running = []

        for child in self.children:
            code = child.process.poll()
            if code is None:
                if now < child.deadline:
                    running.append(child)
                    continue
                self._kill(child)
                logger.warning(f"Child process {child.process.pid} timed out: {child.command}")
            elif code != 0:
                logger.warning(f"Child process {child.process.pid} exited with code {code}: {child.command}")
            else:
                logger.debug(f"Child process {child.process.pid} finished")

        self.children = running

    def _kill(self, child: _Child):
        # Each child leads its own session; take the whole group down
        try:
            os.killpg(child.process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        child.process.wait()

    def close(self):
        """Leave running children alone but stop tracking them"""
        self.poll()
        if self.children:
            logger.debug(f"Detaching {len(self.children)} running command(s)")
        self.children = []
