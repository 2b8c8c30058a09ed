"""
Clojure nREPL client, capable of sending operations to a nREPL server.

Every call opens its own socket, writes one bencoded request and reads
until the response is complete:

    CONNECTING -> SENDING -> AWAITING_FRAMES -> COMPLETED | FAILED
"""

import enum
import logging

import curio

from . import bencode
from .errors import ConnectionRefused, NoConnection, RequestTimeout, TransportError
from .framing import MarkerBoundary

logger = logging.getLogger(__name__)

RECV_SIZE = 4096


class CallState(enum.Enum):
    CONNECTING = 'connecting'
    SENDING = 'sending'
    AWAITING_FRAMES = 'awaiting-frames'
    COMPLETED = 'completed'
    FAILED = 'failed'


def is_value_bearing(message) -> bool:
    """
    True for frames carrying an evaluation result, output or error text.
    A value of "nil" does not count.
    """
    if not isinstance(message, dict):
        return False
    value = message.get('value')
    return ((value is not None and value != 'nil')
            or bool(message.get('out'))
            or bool(message.get('err')))


class PendingRequest:
    """
    In-flight state of one round trip.

    Bytes are accumulated until the boundary reports a completion point.
    The frames before it are decoded and kept. If the caller expects a value
    and none has been seen yet, the server is still going (e.g. it sent a
    bare "done" first) and the bytes after the completion point become the
    new buffer. A completion point that leaves an undecoded tail was marker
    text inside a payload, not the end of a frame.
    """

    def __init__(self, message: dict, expect_value: bool = False, boundary=None):
        self.message = bencode.strip_absent(message)
        self.expect_value = expect_value
        self.boundary = boundary or MarkerBoundary()
        self.buffer = b''
        self.has_value = False
        self.responses = []
        self.state = CallState.CONNECTING

    def feed(self, data: bytes) -> bool:
        """Adds received bytes, returns True once the response is complete."""
        self.buffer += data
        end = self.boundary.find_end(self.buffer)
        if end < 0:
            return False
        objects, rest = bencode.decode(self.buffer[:end])
        logger.debug('decoded %r', objects)
        self.responses.extend(objects)
        if any(is_value_bearing(o) for o in objects):
            self.has_value = True
        if not rest and (self.has_value or not self.expect_value):
            self.state = CallState.COMPLETED
            return True
        self.buffer = rest + self.buffer[end:]
        return False


class NreplClient:
    """
    Sends nREPL operations.

    `connections` provides the stored connection (``get_connection()``) and
    is told when the server refuses us (``connection_refused(info)``). It
    may be None when every call passes its own connection.
    """

    def __init__(self, connections=None, boundary=None, timeout=None):
        self.connections = connections
        self.boundary = boundary or MarkerBoundary()
        self.timeout = timeout

    async def send(self, message: dict, connection=None, expect_value: bool = False,
                   timeout: float = None, boundary=None) -> list:
        """
        Sends `message` and returns every decoded response frame in order.

        `expect_value` keeps reading past completion markers until a frame
        with a value, output or error shows up. `timeout` (seconds) overrides
        the client's deadline; None waits forever. `boundary` overrides how
        the end of this response is found.
        """
        if connection is None and self.connections is not None:
            connection = self.connections.get_connection()
        if connection is None:
            raise NoConnection('No connection found.')

        request = PendingRequest(message, expect_value, boundary or self.boundary)
        if timeout is None:
            timeout = self.timeout
        if timeout is None:
            return await self._round_trip(connection, request)
        try:
            return await curio.timeout_after(timeout, self._round_trip, connection, request)
        except curio.TaskTimeout:
            request.state = CallState.FAILED
            raise RequestTimeout('No response from nrepl://{}:{} after {}s.'.format(
                connection.host, connection.port, timeout)) from None

    async def _round_trip(self, connection, request: PendingRequest) -> list:
        try:
            sock = await curio.open_connection(connection.host, connection.port)
        except ConnectionRefusedError as e:
            request.state = CallState.FAILED
            logger.warning('connection to %s:%s refused', connection.host, connection.port)
            if self.connections is not None:
                await self.connections.connection_refused(connection)
            raise ConnectionRefused('Connection refused.') from e
        except OSError as e:
            request.state = CallState.FAILED
            raise TransportError("Can't reach nrepl://{}:{}: {}".format(
                connection.host, connection.port, e)) from e

        try:
            request.state = CallState.SENDING
            logger.debug('sending %r to %s:%s', request.message, connection.host, connection.port)
            await sock.sendall(bencode.encode(request.message))
            request.state = CallState.AWAITING_FRAMES
            while True:
                data = await sock.recv(RECV_SIZE)
                if not data:
                    raise TransportError('Connection closed before the response was complete.')
                if request.feed(data):
                    return request.responses
        except OSError as e:
            raise TransportError('Connection to nrepl://{}:{} failed: {}'.format(
                connection.host, connection.port, e)) from e
        finally:
            if request.state is not CallState.COMPLETED:
                request.state = CallState.FAILED
            await sock.close()

