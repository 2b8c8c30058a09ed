"""
Errors raised by the nREPL client.
"""


class NreplError(Exception):
    """Base error; the message is short enough to show to a user."""


class NoConnection(NreplError):
    """An operation was attempted with no stored connection."""


class ConnectionRefused(NreplError):
    """The OS refused the TCP connection."""


class TransportError(NreplError):
    """Any other socket level failure (reset, unreachable, DNS...)."""


class ProtocolDecodeError(NreplError):
    """Bytes that can not be read as bencode."""


class RequestTimeout(NreplError):
    """The server did not complete the response before the deadline."""


class SessionError(NreplError):
    """The server did not hand out a session when asked to clone one."""


class ConnectionTestFailed(NreplError):
    """The liveness check against a candidate connection failed."""


class ReplStartError(NreplError):
    """The local REPL process could not be started."""


class RemoteEvalError(NreplError):
    """
    The remote side raised while evaluating. Built from a response message,
    the transport never raises it.
    """

    def __init__(self, message, ex=None, err=None, response=None):
        super().__init__(message)
        self.ex = ex
        self.err = err
        self.response = response
