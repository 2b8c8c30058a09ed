"""Tests for the protocol client and its per-call state machine."""

import curio
import pytest

from clojure_nrepl.connection import ConnectionInfo, ConnectionManager
from clojure_nrepl.errors import (ConnectionRefused, NoConnection, ProtocolDecodeError,
                                  RequestTimeout, TransportError)
from clojure_nrepl.framing import StatusBoundary
from clojure_nrepl.nrepl import CallState, NreplClient, PendingRequest, is_value_bearing

from conftest import CLOSE, FakeNrepl, frames

VALUE = {'session': 's1', 'value': '3'}
DONE = {'session': 's1', 'status': ['done']}


class TestIsValueBearing:

    def test_value(self):
        assert is_value_bearing({'value': '3'})

    def test_nil_value_does_not_count(self):
        assert not is_value_bearing({'value': 'nil'})

    def test_output_and_errors(self):
        assert is_value_bearing({'out': 'hi'})
        assert is_value_bearing({'err': 'boom'})
        assert not is_value_bearing({'out': ''})

    def test_status_only(self):
        assert not is_value_bearing(DONE)
        assert not is_value_bearing('done')


class TestPendingRequest:

    def test_strips_absent_fields(self):
        request = PendingRequest({'op': 'clone', 'session': None})
        assert request.message == {'op': 'clone'}
        assert request.state is CallState.CONNECTING

    def test_waits_for_marker(self):
        request = PendingRequest({'op': 'eval'}, expect_value=True)
        assert not request.feed(frames(VALUE))
        assert request.responses == []
        assert request.feed(frames(DONE))
        assert request.responses == [VALUE, DONE]
        assert request.state is CallState.COMPLETED

    def test_marker_split_across_chunks(self):
        data = frames(VALUE, DONE)
        request = PendingRequest({'op': 'eval'}, expect_value=True)
        assert not request.feed(data[:-3])
        assert request.feed(data[-3:])
        assert request.responses == [VALUE, DONE]

    def test_completes_on_marker_without_value(self):
        request = PendingRequest({'op': 'load-file'})
        assert request.feed(frames(DONE))
        assert request.responses == [DONE]

    def test_keeps_waiting_for_value(self):
        handshake = {'new-session': 's1', 'status': ['done']}
        request = PendingRequest({'op': 'eval'}, expect_value=True)
        assert not request.feed(frames(handshake))
        assert request.buffer == b''
        assert not request.feed(frames({'session': 's1', 'value': 'nil'}, DONE)[:5])
        assert request.feed(frames({'session': 's1', 'value': 'nil'}, DONE)[5:] + frames(VALUE, DONE))
        assert request.responses == [handshake, {'session': 's1', 'value': 'nil'}, DONE, VALUE, DONE]

    def test_marker_inside_payload_is_not_a_boundary(self):
        tricky = {'value': 'a4:doneee'}
        request = PendingRequest({'op': 'load-file'})
        data = frames(tricky)
        assert not request.feed(data[:-1])
        assert not request.feed(data[-1:])
        assert request.feed(frames(DONE))
        assert request.responses == [tricky, DONE]

    def test_corrupt_bytes(self):
        request = PendingRequest({'op': 'eval'})
        with pytest.raises(ProtocolDecodeError):
            request.feed(b'x' + frames(DONE))

    def test_status_boundary(self):
        request = PendingRequest({'op': 'eval'}, boundary=StatusBoundary())
        assert request.feed(frames({'status': ['done', 'error']}))


def run_client(*replies, expect_value=False, message=None, **client_options):
    """Sends one message to a fake server, returns the responses and requests."""
    server = FakeNrepl(*replies)

    async def main():
        connection = await server.start()
        client = NreplClient(**client_options)
        return await client.send(message or {'op': 'eval', 'code': '(+ 1 2)'},
                                 connection=connection, expect_value=expect_value)

    return curio.run(main), server.requests


class TestNreplClient:

    def test_evaluate_success(self):
        responses, requests = run_client([frames(VALUE, DONE)], expect_value=True)
        assert responses == [VALUE, DONE]
        assert responses[0]['value'] == '3'
        assert requests == [{'op': 'eval', 'code': '(+ 1 2)'}]

    def test_frames_in_separate_chunks(self):
        data = frames({'out': '1\n'}, VALUE, DONE)
        chunks = [data[i:i + 7] for i in range(0, len(data), 7)]
        responses, _ = run_client(chunks, expect_value=True)
        assert responses == [{'out': '1\n'}, VALUE, DONE]

    def test_eval_error_is_data(self):
        failure = {'err': 'ArityException', 'ex': 'class clojure.lang.ArityException',
                   'session': 's1', 'status': ['eval-error']}
        responses, _ = run_client([frames(failure, DONE)], expect_value=True)
        assert failure in responses

    def test_absent_fields_not_sent(self):
        _, requests = run_client([frames({'new-session': 's2', 'status': ['done']})],
                                 message={'op': 'clone', 'session': None})
        assert requests == [{'op': 'clone'}]

    def test_connection_closed_early(self):
        with pytest.raises(TransportError):
            run_client([frames(VALUE), CLOSE], expect_value=True)

    def test_timeout(self):
        with pytest.raises(RequestTimeout):
            run_client([frames(VALUE)], timeout=0.2)

    def test_connection_refused(self, free_port):
        async def main():
            await NreplClient().send({'op': 'clone'}, connection=ConnectionInfo('127.0.0.1', free_port))

        with pytest.raises(ConnectionRefused, match='Connection refused.'):
            curio.run(main)

    def test_no_connection(self):
        async def main():
            await ConnectionManager().client.send({'op': 'clone'})

        with pytest.raises(NoConnection, match='No connection found.'):
            curio.run(main)

    def test_refused_clears_stored_connection(self, free_port, notifier):
        manager = ConnectionManager(notifier=notifier)
        manager.store.set(ConnectionInfo('127.0.0.1', free_port))

        async def main():
            await manager.client.send({'op': 'clone'})

        with pytest.raises(ConnectionRefused):
            curio.run(main)
        assert not manager.is_connected()
        assert ('error', 'Connection refused.') in notifier.messages
        assert ('info', 'Disconnected from nREPL.') not in notifier.messages

