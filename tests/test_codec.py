from __future__ import annotations

import pytest

from bftp import codec
from bftp.errors import ConnectionClosedError, FrameError


class MemoryStream:
    """In-memory stream that hands out at most ``chunk`` bytes per read."""

    def __init__(self, data: bytes = b"", chunk: int = 1 << 20):
        self.buf = bytearray(data)
        self.chunk = chunk
        self.out = bytearray()

    def read(self, n: int) -> bytes:
        take = min(n, self.chunk)
        data = bytes(self.buf[:take])
        del self.buf[:take]
        return data

    def unread(self, data: bytes) -> None:
        self.buf[:0] = data

    def write(self, data: bytes) -> None:
        self.out.extend(data)


class StallingStream(MemoryStream):
    """Delivers ``stall_after`` bytes, then times out once."""

    def __init__(self, data: bytes, stall_after: int):
        super().__init__(data, chunk=1)
        self.stall_after = stall_after
        self.delivered = 0
        self.stalled = False

    def read(self, n: int) -> bytes:
        if not self.stalled and self.delivered == self.stall_after:
            self.stalled = True
            raise TimeoutError("timed out")
        data = super().read(n)
        self.delivered += len(data)
        return data


def loop(stream: MemoryStream) -> MemoryStream:
    return MemoryStream(bytes(stream.out))


def test_roundtrip_int():
    s = MemoryStream()
    for v in (0, 1, -1, 2**31 - 1, -(2**31)):
        codec.write_int(s, v)
    r = loop(s)
    assert [codec.read_int(r) for _ in range(5)] == [0, 1, -1, 2**31 - 1, -(2**31)]


def test_int_is_big_endian():
    s = MemoryStream()
    codec.write_int(s, 1)
    assert bytes(s.out) == b"\x00\x00\x00\x01"


def test_bool_wire_shape():
    s = MemoryStream()
    codec.write_bool(s, True)
    codec.write_bool(s, False)
    assert bytes(s.out) == b"\x01\x00"
    # any non-zero byte reads as true
    assert codec.read_bool(MemoryStream(b"\x07")) is True


def test_tag_is_length_prefixed_utf8():
    s = MemoryStream()
    codec.write_tag(s, "DWLD")
    assert bytes(s.out) == b"\x00\x04DWLD"
    assert codec.read_tag(loop(s)) == "DWLD"


@pytest.mark.parametrize("tag", ["DEL", "UPLOAD", "ÄBCD", ""])
def test_bad_tag_rejected(tag):
    with pytest.raises(ValueError):
        codec.write_tag(MemoryStream(), tag)


def test_filename_is_utf16_code_units():
    s = MemoryStream()
    codec.write_filename(s, "aé")
    assert bytes(s.out) == b"\x00\x02\x00a\x00\xe9"


@pytest.mark.parametrize(
    "name",
    ["a", "sub/b.txt", "naïve ☃.bin", "\U0001f600.png", "\ud800lone", "x" * 65535],
)
def test_roundtrip_filename(name):
    s = MemoryStream()
    codec.write_filename(s, name)
    assert codec.read_filename(loop(s)) == name


def test_filename_length_limits():
    with pytest.raises(ValueError):
        codec.encode_filename("")
    with pytest.raises(ValueError):
        codec.encode_filename("x" * 65536)
    # a supplementary character counts as two code units
    with pytest.raises(ValueError):
        codec.encode_filename("x" * 65534 + "\U0001f600")


def test_zero_length_filename_is_frame_error():
    with pytest.raises(FrameError):
        codec.read_filename(MemoryStream(b"\x00\x00"))


@pytest.mark.parametrize("length", [0, 1, 1000, 70000])
def test_roundtrip_blob(length):
    data = bytes(i % 251 for i in range(length))
    s = MemoryStream()
    codec.write_blob(s, data)
    assert codec.read_blob(loop(s), length) == data


@pytest.mark.parametrize("chunk", [1, 2, 3, 7, 999])
def test_read_exact_accumulates_short_reads(chunk):
    data = bytes(range(256)) * 4
    stream = MemoryStream(data + b"tail", chunk=chunk)
    assert codec.read_blob(stream, len(data)) == data
    assert bytes(stream.buf) == b"tail"


def test_read_exact_eof_is_connection_error():
    with pytest.raises(ConnectionClosedError) as exc:
        codec.read_blob(MemoryStream(b"abc"), 10)
    assert isinstance(exc.value, OSError)


def test_utf_length_limit():
    with pytest.raises(ValueError):
        codec.write_utf(MemoryStream(), "x" * 65536)


def test_utf_keeps_lone_surrogates():
    s = MemoryStream()
    codec.write_utf(s, "\udc80.txt")
    assert codec.read_utf(loop(s)) == "\udc80.txt"


def test_invalid_utf8_is_frame_error():
    with pytest.raises(FrameError):
        codec.read_utf(MemoryStream(b"\x00\x02\xff\xfe"))


@pytest.mark.parametrize("stall_after", [0, 1, 2, 3, 5])
def test_timeout_mid_field_keeps_bytes(stall_after):
    s = MemoryStream()
    codec.write_tag(s, "LIST")
    stream = StallingStream(bytes(s.out), stall_after)
    with pytest.raises(TimeoutError):
        codec.read_tag(stream)
    # the retry sees the whole field again
    assert codec.read_tag(stream) == "LIST"


def test_timeout_mid_filename_keeps_bytes():
    s = MemoryStream()
    codec.write_filename(s, "dir/file.txt")
    stream = StallingStream(bytes(s.out), 4)
    with pytest.raises(TimeoutError):
        codec.read_filename(stream)
    assert codec.read_filename(stream) == "dir/file.txt"
