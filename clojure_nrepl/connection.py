"""
Keeps track of the nREPL we are connected to.

The host supplies where the connection is persisted (a store with ``get``
and ``set``) and how the user is told about it (a notifier). Nothing here
touches a UI directly.
"""

import logging
import os
from collections import namedtuple
from pathlib import Path

from . import operations
from .errors import ConnectionRefused, NreplError
from .nrepl import NreplClient

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_HOST = '127.0.0.1'
LOCAL_HOSTS = (DEFAULT_LOCAL_HOST, 'localhost')
PROJECT_PORT_FILE = '.nrepl-port'
LEIN_PORT_FILE = Path('.lein', 'repl-port')

ConnectionInfo = namedtuple('ConnectionInfo', ['host', 'port'])


class MemoryStore:
    """Connection state that lives as long as the process."""

    def __init__(self, connection=None):
        self._connection = connection

    def get(self):
        return self._connection

    def set(self, connection):
        self._connection = connection


class LoggingNotifier:
    """Notifier for hosts without a UI."""

    def info(self, message):
        logger.info(message)

    def warning(self, message):
        logger.warning(message)

    def error(self, message):
        logger.error(message)

    def status(self, text):
        logger.debug('status: %s', text)


def read_port_file(path):
    try:
        return int(Path(path).read_text(encoding='utf8').strip())
    except (OSError, ValueError):
        return None


def find_local_port(project_dir=None, home=None):
    """
    Port of a REPL started for the project (``.nrepl-port``), falling back
    to the one leiningen records in the home directory.
    """
    if project_dir is not None:
        port = read_port_file(Path(project_dir, PROJECT_PORT_FILE))
        if port:
            return port
    if home is None:
        home = os.environ.get('HOME') or os.environ.get('HOMEPATH') or os.environ.get('USERPROFILE')
    if home is None:
        return None
    return read_port_file(Path(home, LEIN_PORT_FILE))


class ConnectionManager:
    """
    Owns the current connection of a workspace.

    `repl` is an optional local REPL process (``start()`` returning a
    ConnectionInfo and ``stop()``), used instead of entering a host and port.
    """

    def __init__(self, store=None, notifier=None, repl=None, project_dir=None, timeout=None):
        self.store = store if store is not None else MemoryStore()
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.repl = repl
        self.project_dir = project_dir
        self.starting = False
        self.client = NreplClient(self, timeout=timeout)

    def get_connection(self):
        return self.store.get()

    def is_connected(self) -> bool:
        return self.store.get() is not None

    def default_port(self, host: str):
        if host.lower() not in LOCAL_HOSTS:
            return None
        return find_local_port(self.project_dir)

    def _save_connection(self, connection):
        self.store.set(connection)
        logger.info('connected to nrepl://%s:%s', connection.host, connection.port)
        self.notifier.status('⚡nrepl://{}:{}'.format(connection.host, connection.port))
        self.notifier.info('Connected to nREPL.')

    def _save_disconnection(self, show_message=True):
        self.store.set(None)
        logger.info('disconnected')
        self.notifier.status('')
        if show_message:
            self.notifier.info('Disconnected from nREPL.')

    def _refuse_while_busy(self) -> bool:
        if self.starting:
            self.notifier.warning('Already starting a nREPL. Disconnect first.')
            return True
        if self.is_connected():
            self.notifier.warning('Already connected to nREPL. Disconnect first.')
            return True
        return False

    async def connect(self, host: str, port=None):
        """
        Tests and stores a manually entered connection. `port` defaults to
        the local port file when connecting to this machine.
        """
        if self._refuse_while_busy():
            return None
        try:
            if not host:
                raise NreplError('Host must be informed.')
            if port is None or port == '':
                port = self.default_port(host)
            if port is None or port == '':
                raise NreplError('Port number must be informed.')
            try:
                port = int(port)
            except ValueError:
                port = 0
            if not port:
                raise NreplError('Port number must be an integer.')

            connection = ConnectionInfo(host, port)
            await operations.test(self.client, connection)
        except ConnectionRefused:
            raise
        except NreplError as e:
            self.notifier.error(str(e) or "Can't connect to the nREPL.")
            raise
        self._save_connection(connection)
        return connection

    async def start_local(self):
        """Starts the local REPL process and connects to it."""
        if self.is_connected():
            self.notifier.warning('Already connected to nREPL. Disconnect first.')
            return None
        if self.repl is None:
            raise NreplError("Can't start nREPL.")

        self.starting = True
        self.notifier.status('⚡Starting nREPL')
        try:
            connection = await self.repl.start()
            await operations.test(self.client, connection)
        except NreplError as e:
            self.starting = False
            await self.disconnect(show_message=False)
            self.notifier.error(str(e) or "Can't start nREPL.")
            raise
        self.starting = False
        self._save_connection(connection)
        return connection

    async def disconnect(self, show_message=True):
        if self.is_connected() or self.starting or (self.repl is not None and self.repl.running):
            self.starting = False
            if self.repl is not None:
                await self.repl.stop()
            self._save_disconnection(show_message)
        elif show_message:
            self.notifier.warning('Not connected to any nREPL.')

    async def connection_refused(self, connection):
        """Called by the client when the server refuses a connection."""
        self.notifier.error('Connection refused.')
        if self.is_connected():
            await self.disconnect(show_message=False)
