"""
Starting a headless nREPL server on this machine.
"""

import logging
import os
import re
import signal

import curio
import curio.subprocess

from .connection import DEFAULT_LOCAL_HOST, ConnectionInfo
from .errors import ReplStartError

logger = logging.getLogger(__name__)

LEIN_COMMAND = ['lein', 'repl', ':headless', ':host', DEFAULT_LOCAL_HOST]
LEIN_REGEX = re.compile(r"nREPL server started on port (\d+)")
STOP_TIMEOUT = 5


class LeinRepl:
    """
    A `lein repl :headless` subprocess.

    `start()` returns once the server reports its port; output lines are
    passed to `on_output` as they arrive, before and after that.
    """

    def __init__(self, command=None, host=DEFAULT_LOCAL_HOST, cwd=None, on_output=None):
        self.command = list(command or LEIN_COMMAND)
        self.host = host
        self.cwd = cwd
        self.on_output = on_output
        self._process = None
        self._pump = None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def _output(self, line: bytes):
        text = line.decode('utf8', errors='replace')
        logger.debug('repl: %s', text.rstrip())
        if self.on_output is not None:
            self.on_output(text)

    async def _forward_output(self, stdout):
        async for line in stdout:
            self._output(line)

    async def start(self) -> ConnectionInfo:
        if self.running:
            raise ReplStartError('Already starting a nREPL. Disconnect first.')
        logger.info('$ %s', ' '.join(self.command))
        try:
            # its own process group, lein runs the server in a child JVM
            self._process = curio.subprocess.Popen(
                self.command, cwd=self.cwd,
                stdout=curio.subprocess.PIPE, stderr=curio.subprocess.STDOUT,
                start_new_session=True)
        except OSError as e:
            raise ReplStartError("Can't start nREPL: {}".format(e)) from e

        async for line in self._process.stdout:
            self._output(line)
            match = LEIN_REGEX.search(line.decode('utf8', errors='replace'))
            if match:
                port = int(match.group(1))
                logger.info('local nREPL listening on port %d', port)
                self._pump = await curio.spawn(self._forward_output, self._process.stdout, daemon=True)
                return ConnectionInfo(self.host, port)

        code = await self._process.wait()
        self._process = None
        raise ReplStartError("Can't start nREPL: {} exited with {}.".format(self.command[0], code))

    async def stop(self):
        process, self._process = self._process, None
        if self._pump is not None:
            await self._pump.cancel()
            self._pump = None
        if process is None or process.returncode is not None:
            return
        logger.info('stopping the local nREPL (pid %d)', process.pid)
        try:
            os.killpg(process.pid, signal.SIGTERM)
        except ProcessLookupError:
            return
        try:
            await curio.timeout_after(STOP_TIMEOUT, process.wait)
        except curio.TaskTimeout:
            os.killpg(process.pid, signal.SIGKILL)
            await process.wait()
