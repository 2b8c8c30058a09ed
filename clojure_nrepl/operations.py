"""
Typed wrappers over `NreplClient.send` for the nREPL ops we use.
"""

import logging

from .errors import ConnectionTestFailed, RemoteEvalError, SessionError
from .framing import StatusBoundary

logger = logging.getLogger(__name__)

# Replies to these ops often carry another status next to "done"
# (unknown-op, session-closed, no-info), so they are read frame by frame.
STATUS = StatusBoundary()


async def clone(client, session: str = None) -> str:
    """
    Clones `session` (or the server's default session when None) and
    returns the id of the new one.
    """
    responses = await client.send({'op': 'clone', 'session': session})
    for response in responses:
        if 'new-session' in response:
            return response['new-session']
    raise SessionError('The nREPL server did not create a session.')


async def evaluate(client, code: str, session: str = None) -> list:
    """
    Evaluates `code` in a fresh clone of `session`.

    Evaluation errors are part of the returned frames (``ex``/``err``), see
    `remote_error`.
    """
    session_id = await clone(client, session)
    return await client.send({'op': 'eval', 'code': code, 'session': session_id},
                             expect_value=True)


async def evaluate_file(client, code: str, filepath: str = None, session: str = None) -> list:
    session_id = await clone(client, session)
    return await client.send({
        'op': 'load-file',
        'file': code,
        'file-path': filepath,
        'session': session_id,
    })


async def stacktrace(client, session: str) -> list:
    return await client.send({'op': 'stacktrace', 'session': session}, boundary=STATUS)


async def close(client, session: str = None) -> list:
    return await client.send({'op': 'close', 'session': session}, boundary=STATUS)


async def test(client, connection) -> str:
    """
    Liveness check against a candidate connection, not the stored one.
    Returns the id of the session the server created.
    """
    responses = await client.send({'op': 'clone'}, connection=connection)
    if not responses or 'new-session' not in responses[0]:
        logger.info('nrepl://%s:%s answered without a session: %r',
                    connection.host, connection.port, responses)
        raise ConnectionTestFailed("Can't connect to the nREPL.")
    return responses[0]['new-session']


async def list_sessions(client):
    responses = await client.send({'op': 'ls-sessions'}, boundary=STATUS)
    response = responses[0] if responses else {}
    if 'done' in response.get('status', []):
        return response.get('sessions', [])
    return None


async def info(client, symbol: str, ns: str, session: str = None) -> dict:
    responses = await client.send({'op': 'info', 'symbol': symbol, 'ns': ns, 'session': session},
                                  boundary=STATUS)
    return responses[0] if responses else {}


async def complete(client, symbol: str, ns: str = None) -> dict:
    responses = await client.send({'op': 'complete', 'symbol': symbol, 'ns': ns}, boundary=STATUS)
    return responses[0] if responses else {}


async def describe(client) -> dict:
    responses = await client.send({'op': 'describe'}, boundary=STATUS)
    return responses[0] if responses else {}


def remote_error(responses):
    """
    Returns a `RemoteEvalError` for the first frame reporting an exception,
    None when the evaluation went fine. The server usually sends ``err``
    (the printed trace) and ``ex`` (the exception class) in separate frames.
    """
    ex = next((r['ex'] for r in responses if 'ex' in r), None)
    err = next((r['err'] for r in responses if 'err' in r), None)
    if ex is None and err is None:
        return None
    source = next(r for r in responses if 'ex' in r or 'err' in r)
    return RemoteEvalError(err or ex, ex=ex, err=err, response=source)
