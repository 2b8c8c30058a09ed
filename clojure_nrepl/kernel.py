import logging
import os

import curio
from ipykernel.kernelbase import Kernel

from . import __version__, operations
from .connection import DEFAULT_LOCAL_HOST, ConnectionManager, find_local_port
from .errors import ConnectionRefused, NreplError
from .process import LeinRepl

logger = logging.getLogger(__name__)

PORT_ENV = 'CLOJURE_NREPL_PORT'
TIMEOUT_ENV = 'CLOJURE_NREPL_TIMEOUT'
# Seconds a cell may take. Also bounds cells whose only result is nil, which
# the client can not tell apart from a result still on its way.
DEFAULT_TIMEOUT = 30.0


def eval_timeout():
    """Deadline for nREPL calls from `CLOJURE_NREPL_TIMEOUT`; 0 waits forever."""
    raw = os.environ.get(TIMEOUT_ENV)
    if not raw:
        return DEFAULT_TIMEOUT
    try:
        timeout = float(raw)
    except ValueError:
        logger.warning('ignoring %s=%r, not a number of seconds', TIMEOUT_ENV, raw)
        return DEFAULT_TIMEOUT
    return timeout if timeout > 0 else None


def error_reply(error):
    return {
        'status': 'error',
        'ename': type(error).__name__,
        'evalue': str(error),
        'traceback': [str(error)],
    }


def execute_reply(responses, execution_count):
    """Builds the execute reply for the frames an eval produced."""
    error = operations.remote_error(responses)
    if error is not None:
        return {
            'status': 'error',
            'ename': error.ex or '',
            'evalue': '',
            'traceback': [error.err] if error.err else [],
        }
    return {
        'status': 'ok',
        'execution_count': execution_count,
        'payload': [],
        'user_expressions': {},
    }


class KernelNotifier:
    """Shows connection messages in the notebook output."""

    def __init__(self, kernel):
        self.kernel = kernel

    def info(self, message):
        self.kernel.on_out(message + "\n")

    def warning(self, message):
        self.kernel.on_out(message + "\n")

    def error(self, message):
        self.kernel.on_stderr(message + "\n")

    def status(self, text):
        logger.debug('status: %s', text)


class ClojureKernel(Kernel):
    implementation = 'Clojure'
    implementation_version = __version__
    language = 'Clojure'

    language_version = ''
    language_info = {
        'name': 'clojure',
        'mimetype': 'text/x-clojure',
        'file_extension': '.clj',
    }
    kernel_json = {
        "argv": ["clojure-kernel", "-f", "{connection_file}"],
        "display_name": "Clojure",
        "language": "clojure",
        "mimetype": "text/x-clojure",
        "name": "clojure",
    }
    banner = ''
    kernel = None
    connections = None

    def start_loop(self):
        self.kernel = curio.Kernel()
        self.connections = ConnectionManager(
            notifier=KernelNotifier(self),
            repl=LeinRepl(cwd=os.getcwd(), on_output=self.on_out),
            project_dir=os.getcwd(),
            timeout=eval_timeout(),
        )

    async def connect_async(self):
        """Connects to a running nREPL if one is known, otherwise starts one."""
        port = os.environ.get(PORT_ENV) or find_local_port(os.getcwd())
        if port:
            await self.connections.connect(DEFAULT_LOCAL_HOST, port)
        else:
            await self.connections.start_local()

    def on_value(self, value):
        self.send_response(self.iopub_socket, 'execute_result', {
            'data': {'text/plain': value},
            'metadata': {},
            'execution_count': self.execution_count
        })

    def on_out(self, out):
        self.send_response(self.iopub_socket, 'stream', {
            'name': 'stdout',
            'text': out
        })

    def on_stderr(self, err):
        self.send_response(self.iopub_socket, 'stream', {
            'name': 'stderr',
            'text': err
        })

    def on_exception(self, exception):
        self.send_response(self.iopub_socket, 'error', {
            'ename': exception,
            'evalue': '',
            'traceback': []
        })

    def on_response(self, response):
        if 'out' in response:
            self.on_out(response['out'])
        if 'err' in response:
            self.on_stderr(response['err'])
        if 'ex' in response:
            self.on_exception(response['ex'])
        if response.get('value') is not None:
            self.on_value(response['value'])

    def do_shutdown(self, restart):
        if self.kernel:
            self.kernel.run(self.connections.disconnect, False)
            self.kernel.run(shutdown=True)
            self.kernel = None
        if restart:
            self.start_loop()
        return {'status': 'ok', 'restart': restart}

    def do_execute(self, code, silent, store_history=True, user_expressions=None,
                   allow_stdin=False):
        if not self.kernel:
            self.start_loop()
        try:
            if not self.connections.is_connected():
                self.kernel.run(self.connect_async)
        except NreplError as e:
            # already shown by the connection manager
            return error_reply(e)
        try:
            responses = self.kernel.run(operations.evaluate, self.connections.client, code)
        except NreplError as e:
            if not isinstance(e, ConnectionRefused):
                self.on_stderr(str(e) + "\n")
            return error_reply(e)
        if not silent:
            for response in responses:
                self.on_response(response)
        return execute_reply(responses, self.execution_count)
