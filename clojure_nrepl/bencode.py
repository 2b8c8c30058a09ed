"""
Bencode codec for nREPL messages.

Encoding is delegated to bencode.py. Decoding is incremental: a response
arrives over TCP in arbitrary chunks, so ``decode`` takes whatever bytes are
buffered and splits them into the complete top-level values plus the bytes
that do not form a value yet.

    >>> decode(b'd5:value1:3ed6:statusl4:doneee3:')
    DecodeResult(objects=[{'value': '3'}, {'status': ['done']}], rest=b'3:')
"""

import logging
import re
from collections import namedtuple

import bencode

from .errors import ProtocolDecodeError

logger = logging.getLogger(__name__)

DecodeResult = namedtuple('DecodeResult', ['objects', 'rest'])

INTEGER = re.compile(rb'-?(0|[1-9][0-9]*)')
PARTIAL_INTEGER = re.compile(rb'-?|-?[1-9][0-9]*|0')
LENGTH = re.compile(rb'0|[1-9][0-9]*')


class NeedMoreData(Exception):
    """The buffer ends in the middle of a value."""


class MalformedData(ProtocolDecodeError):
    """The buffer holds bytes that can never start a valid value."""

    def __init__(self, message, offset):
        super().__init__('{} (at byte {})'.format(message, offset))
        self.offset = offset


def strip_absent(value):
    """
    Bencode has no null, so fields and list items without a value are
    dropped instead of being encoded.
    """
    if isinstance(value, dict):
        return {key: strip_absent(item) for key, item in value.items() if item is not None}
    if isinstance(value, (list, tuple)):
        return [strip_absent(item) for item in value if item is not None]
    return value


def encode(value) -> bytes:
    return bencode.encode(strip_absent(value))


def _text(raw: bytes):
    try:
        return raw.decode('utf8')
    except UnicodeDecodeError:
        return raw


def _decode_integer(buffer: bytes, offset: int):
    end = buffer.find(b'e', offset + 1)
    digits = buffer[offset + 1:end] if end >= 0 else buffer[offset + 1:]
    if end < 0:
        if not PARTIAL_INTEGER.fullmatch(digits):
            raise MalformedData('invalid integer', offset)
        raise NeedMoreData()
    if not INTEGER.fullmatch(digits) or digits == b'-0':
        raise MalformedData('invalid integer {!r}'.format(digits), offset)
    return int(digits), end + 1


def _decode_string(buffer: bytes, offset: int):
    colon = buffer.find(b':', offset)
    digits = buffer[offset:colon] if colon >= 0 else buffer[offset:]
    if not LENGTH.fullmatch(digits):
        raise MalformedData('invalid string length {!r}'.format(digits), offset)
    if colon < 0:
        raise NeedMoreData()
    end = colon + 1 + int(digits)
    if end > len(buffer):
        raise NeedMoreData()
    return _text(buffer[colon + 1:end]), end


def decode_one(buffer: bytes, offset: int = 0):
    """
    Decodes the value starting at `offset`.

    Returns the value and the offset just past it. Raises `NeedMoreData` when
    the buffer stops inside the value and `MalformedData` when it can never be
    completed.

    Open lists and mappings are kept on an explicit stack, so how deeply a
    value nests is bounded by the buffer and not by the interpreter.
    """
    # [container, key waiting for its value] per open list or mapping
    stack = []
    position = offset
    while True:
        if position >= len(buffer):
            raise NeedMoreData()
        lead = buffer[position:position + 1]
        top = stack[-1] if stack else None

        if top is not None and lead == b'e' and top[1] is None:
            value = stack.pop()[0]
            position += 1
        elif top is not None and isinstance(top[0], dict) and top[1] is None:
            if not lead.isdigit():
                raise MalformedData('mapping keys must be strings', position)
            top[1], position = _decode_string(buffer, position)
            continue
        elif lead == b'l':
            stack.append([[], None])
            position += 1
            continue
        elif lead == b'd':
            stack.append([{}, None])
            position += 1
            continue
        elif lead == b'i':
            value, position = _decode_integer(buffer, position)
        elif lead.isdigit():
            value, position = _decode_string(buffer, position)
        else:
            raise MalformedData('unexpected byte {!r}'.format(lead), position)

        if not stack:
            return value, position
        container, key = stack[-1]
        if isinstance(container, dict):
            container[key] = value
            stack[-1][1] = None
        else:
            container.append(value)


def decode(buffer) -> DecodeResult:
    """
    Splits `buffer` into all the complete values at its start and the
    remaining bytes.

    An incomplete trailing value is returned untouched as `rest`, so decoding
    `rest` again without appending to it yields no new objects.
    """
    buffer = bytes(buffer)
    objects = []
    offset = 0
    while offset < len(buffer):
        try:
            value, offset = decode_one(buffer, offset)
        except NeedMoreData:
            break
        objects.append(value)
    if offset < len(buffer):
        logger.debug('%d bytes left waiting for the rest of a value', len(buffer) - offset)
    return DecodeResult(objects, buffer[offset:])
