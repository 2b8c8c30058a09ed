"""
Finding where a response ends in the bytes received so far.

nREPL never announces how many frames a response has; the last one carries
``done`` in its ``status``. `MarkerBoundary` looks for the raw bytes of that
frame's tail, `StatusBoundary` decodes frames to find it.
"""

from . import bencode

# "done" as the last status, closing the status list and then the frame.
# Servers sort mapping keys, and "status" sorts after every other key a done
# frame carries. Status lists are not sorted though: a reply such as
# ["done", "unknown-op"] or ["done", "session-closed"] never ends with these
# bytes. Ops answered that way use StatusBoundary.
DONE_MARKER = b'4:doneee'


class ResponseBoundary:

    def find_end(self, buffer: bytes) -> int:
        """
        Offset just past the last completion point in `buffer`, or -1 when
        the response is not complete yet.
        """
        raise NotImplementedError()


class MarkerBoundary(ResponseBoundary):

    def __init__(self, marker: bytes = DONE_MARKER):
        if not marker:
            raise ValueError('marker must not be empty')
        self.marker = marker

    def find_end(self, buffer: bytes) -> int:
        index = buffer.rfind(self.marker)
        if index < 0:
            return -1
        return index + len(self.marker)

    def __repr__(self):
        return 'MarkerBoundary({!r})'.format(self.marker)


class StatusBoundary(ResponseBoundary):

    def find_end(self, buffer: bytes) -> int:
        end = -1
        offset = 0
        while offset < len(buffer):
            try:
                frame, offset = bencode.decode_one(buffer, offset)
            except bencode.NeedMoreData:
                break
            if isinstance(frame, dict) and 'done' in frame.get('status', []):
                end = offset
        return end

    def __repr__(self):
        return 'StatusBoundary()'
