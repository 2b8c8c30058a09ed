"""Tests for response boundary detection."""

import pytest

from clojure_nrepl.framing import DONE_MARKER, MarkerBoundary, StatusBoundary

from conftest import frames

VALUE = {'session': 's1', 'value': '3'}
DONE = {'session': 's1', 'status': ['done']}


class TestMarkerBoundary:

    def test_done_frame_ends_with_marker(self):
        assert frames(DONE).endswith(DONE_MARKER)

    def test_not_found(self):
        assert MarkerBoundary().find_end(frames(VALUE)) == -1

    def test_end_of_last_marker(self):
        data = frames(DONE, VALUE, DONE) + b'd2:'
        assert MarkerBoundary().find_end(data) == len(data) - 3

    def test_custom_marker(self):
        assert MarkerBoundary(b'doneee').find_end(b'xxdoneeeyy') == 8

    def test_empty_marker_rejected(self):
        with pytest.raises(ValueError):
            MarkerBoundary(b'')


class TestStatusBoundary:

    def test_not_found_without_done(self):
        assert StatusBoundary().find_end(frames(VALUE)) == -1

    def test_end_of_last_done_frame(self):
        data = frames(VALUE, DONE)
        assert StatusBoundary().find_end(data + frames(VALUE)[:4]) == len(data)

    def test_done_anywhere_in_status(self):
        data = frames({'status': ['done', 'error', 'unknown-op']})
        assert MarkerBoundary().find_end(data) == -1
        assert StatusBoundary().find_end(data) == len(data)

    def test_marker_text_in_payload_is_ignored(self):
        data = frames({'value': '"4:doneee"'})
        assert StatusBoundary().find_end(data) == -1
