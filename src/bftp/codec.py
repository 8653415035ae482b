"""Wire primitives.

Every function here takes an already established byte stream and either
writes one field or reads one field. Nothing is buffered beyond what
``read_exact`` needs to assemble a complete field.
"""
from __future__ import annotations

from typing import Protocol

from .constants import BOOL_STRUCT, INT_STRUCT, MAX_U16, TAG_LEN, U16_STRUCT
from .errors import ConnectionClosedError, FrameError


class ByteReader(Protocol):
    def read(self, n: int) -> bytes: ...

    def unread(self, data: bytes) -> None: ...


class ByteWriter(Protocol):
    def write(self, data: bytes) -> None: ...


def read_exact(stream: ByteReader, length: int) -> bytes:
    # a single read may return fewer bytes than asked for
    buf = bytearray()
    try:
        while len(buf) < length:
            chunk = stream.read(length - len(buf))
            if not chunk:
                raise ConnectionClosedError(
                    f"stream closed after {len(buf)} of {length} bytes"
                )
            buf.extend(chunk)
    except TimeoutError:
        if buf:
            stream.unread(bytes(buf))
        raise
    return bytes(buf)


def _read_body(stream: ByteReader, header: bytes, length: int) -> bytes:
    # keep a length-prefixed field whole if a timeout splits it
    try:
        return read_exact(stream, length)
    except TimeoutError:
        stream.unread(header)
        raise


def write_int(stream: ByteWriter, value: int) -> None:
    stream.write(INT_STRUCT.pack(value))


def read_int(stream: ByteReader) -> int:
    (value,) = INT_STRUCT.unpack(read_exact(stream, INT_STRUCT.size))
    return value


def write_bool(stream: ByteWriter, value: bool) -> None:
    stream.write(BOOL_STRUCT.pack(bool(value)))


def read_bool(stream: ByteReader) -> bool:
    return read_exact(stream, 1) != b"\x00"


def write_utf(stream: ByteWriter, text: str) -> None:
    raw = text.encode("utf-8", "surrogatepass")
    if len(raw) > MAX_U16:
        raise ValueError(f"string too long to frame: {len(raw)} bytes")
    stream.write(U16_STRUCT.pack(len(raw)) + raw)


def read_utf(stream: ByteReader) -> str:
    header = read_exact(stream, U16_STRUCT.size)
    (length,) = U16_STRUCT.unpack(header)
    raw = _read_body(stream, header, length)
    try:
        return raw.decode("utf-8", "surrogatepass")
    except UnicodeDecodeError as e:
        raise FrameError(f"string is not valid UTF-8: {e}") from e


def write_tag(stream: ByteWriter, tag: str) -> None:
    if len(tag) != TAG_LEN or not tag.isascii():
        raise ValueError(f"tag must be {TAG_LEN} ASCII characters: {tag!r}")
    write_utf(stream, tag)


def read_tag(stream: ByteReader) -> str:
    return read_utf(stream)


def encode_filename(name: str) -> bytes:
    units = name.encode("utf-16-be", "surrogatepass")
    count = len(units) // 2
    if count < 1 or count > MAX_U16:
        raise ValueError(f"filename must be 1..{MAX_U16} UTF-16 code units, got {count}")
    return U16_STRUCT.pack(count) + units


def write_filename(stream: ByteWriter, name: str) -> None:
    stream.write(encode_filename(name))


def read_filename(stream: ByteReader) -> str:
    """Read a filename as a uint16 count followed by UTF-16 code units.

    Raises ``FrameError`` for a zero count. Unpaired surrogates are kept
    as-is so every sequence of code units decodes.
    """
    header = read_exact(stream, U16_STRUCT.size)
    (count,) = U16_STRUCT.unpack(header)
    if count < 1:
        raise FrameError(f"Length of filename was not a positive integer (received {count})")
    return _read_body(stream, header, count * 2).decode("utf-16-be", "surrogatepass")


def write_blob(stream: ByteWriter, data: bytes) -> None:
    stream.write(data)


def read_blob(stream: ByteReader, length: int) -> bytes:
    if length < 0:
        raise ValueError(f"negative blob length: {length}")
    return read_exact(stream, length)
