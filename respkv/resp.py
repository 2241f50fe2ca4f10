"""RESP wire format: values, a stream reader and a thread-safe writer."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO

logger = logging.getLogger(__name__)

_STRING = b"+"
_ERROR = b"-"
_INTEGER = b":"
_BULK = b"$"
_ARRAY = b"*"
_CRLF = b"\r\n"

_INT_PATTERN = re.compile(rb"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def _encode(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def _decode(data: bytes) -> str:
    return data.decode("utf-8", "surrogateescape")


class ValueType(str, Enum):
    """Kinds of RESP values; EMPTY marks a value of unknown type."""

    ARRAY = "array"
    BULK = "bulk"
    STRING = "string"
    INTEGER = "integer"
    NULL = "null"
    ERROR = "error"
    EMPTY = ""


@dataclass
class Value:
    """A RESP value. Which field is meaningful depends on ``type``."""

    type: ValueType = ValueType.EMPTY
    text: str = ""
    num: int = 0
    bulk: str = ""
    array: list[Value] = field(default_factory=list)

    def marshal(self) -> bytes:
        """Serialise the value to its RESP wire form."""
        if self.type is ValueType.ARRAY:
            head = _ARRAY + str(len(self.array)).encode() + _CRLF
            return head + b"".join(item.marshal() for item in self.array)
        if self.type is ValueType.BULK:
            data = _encode(self.bulk)
            return _BULK + str(len(data)).encode() + _CRLF + data + _CRLF
        if self.type is ValueType.STRING:
            return _STRING + _encode(self.text) + _CRLF
        if self.type is ValueType.INTEGER:
            return _INTEGER + str(self.num).encode() + _CRLF
        if self.type is ValueType.NULL:
            return b"$-1\r\n"
        if self.type is ValueType.ERROR:
            return _ERROR + _encode(self.text) + _CRLF
        return b""


class RespReader:
    """Reads RESP arrays and bulk strings from a binary stream.

    ``read`` raises EOFError when the stream runs out and ValueError
    when a length field is malformed.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def _read_byte(self) -> bytes:
        byte = self._stream.read(1)
        if not byte:
            raise EOFError("end of stream")
        return byte

    def _read_line(self) -> bytes:
        line = bytearray()
        while True:
            line += self._read_byte()
            if len(line) >= 2 and line[-2] == 0x0D:
                return bytes(line[:-2])

    def _read_integer(self) -> int:
        line = self._read_line()
        if not _INT_PATTERN.fullmatch(line):
            raise ValueError(f"invalid integer: {line!r}")
        number = int(line)
        if not _INT64_MIN <= number <= _INT64_MAX:
            raise ValueError(f"integer out of range: {line!r}")
        return number

    def read(self) -> Value:
        """Read the next value from the stream."""
        prefix = self._read_byte()
        if prefix == _ARRAY:
            return self._read_array()
        if prefix == _BULK:
            return self._read_bulk()
        logger.warning("Unknown type: %s", _decode(prefix))
        return Value()

    def _read_array(self) -> Value:
        length = self._read_integer()
        return Value(ValueType.ARRAY, array=[self.read() for _ in range(length)])

    def _read_bulk(self) -> Value:
        length = self._read_integer()
        if length < 0:
            raise ValueError(f"negative bulk length: {length}")
        data = self._stream.read(length) if length else b""
        try:
            self._read_line()
        except EOFError:
            pass
        return Value(ValueType.BULK, bulk=_decode(data or b""))


class RespWriter:
    """Writes marshalled values to a binary stream, one writer at a time."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def write(self, value: Value) -> None:
        """Marshal ``value`` and write it to the stream."""
        data = value.marshal()
        with self._lock:
            self._stream.write(data)
            flush = getattr(self._stream, "flush", None)
            if flush is not None:
                flush()