from __future__ import annotations

import contextlib
import socket
from typing import Iterator, Tuple

from .constants import RECV_CHUNK
from .errors import ConnectionClosedError


class SocketReader:
    """Read half of a connection, with a pushback buffer for interrupted frames."""

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self._pending = bytearray()
        self.closed = False

    def read(self, n: int) -> bytes:
        if self.closed:
            raise ConnectionClosedError("read from closed stream")
        if self._pending:
            data = bytes(self._pending[:n])
            del self._pending[:n]
            return data
        return self._sock.recv(min(n, RECV_CHUNK))

    def unread(self, data: bytes) -> None:
        self._pending[:0] = data

    def close(self) -> None:
        self.closed = True
        self._pending.clear()


class SocketWriter:
    def __init__(self, sock: socket.socket):
        self._sock = sock
        self.closed = False

    def write(self, data: bytes) -> None:
        if self.closed:
            raise ConnectionClosedError("write to closed stream")
        self._sock.sendall(data)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._sock.shutdown(socket.SHUT_WR)


class TcpChannel:
    """One TCP connection split into a read stream, a write stream and the socket.

    ``timeout_ms`` is the read timeout applied to every blocking read; 0
    means block forever.
    """

    def __init__(self, sock: socket.socket, timeout_ms: int = 0):
        self.sock = sock
        self.reader = SocketReader(sock)
        self.writer = SocketWriter(sock)
        self._timeout_ms = 0
        self.set_timeout_ms(timeout_ms)
        with contextlib.suppress(OSError):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

    @classmethod
    def connect(cls, host: str, port: int, timeout_ms: int = 0) -> "TcpChannel":
        sock = socket.create_connection(
            (host, port), timeout=timeout_ms / 1000.0 if timeout_ms > 0 else None
        )
        return cls(sock, timeout_ms)

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    def set_timeout_ms(self, timeout_ms: int) -> None:
        self._timeout_ms = timeout_ms
        self.sock.settimeout(timeout_ms / 1000.0 if timeout_ms > 0 else None)

    @contextlib.contextmanager
    def timeout_override(self, seconds: float) -> Iterator[None]:
        previous = self._timeout_ms
        self.sock.settimeout(seconds)
        try:
            yield
        finally:
            self.set_timeout_ms(previous)

    def peer(self) -> Tuple[str, int] | None:
        try:
            return self.sock.getpeername()
        except OSError:
            return None

    def close(self) -> None:
        self.writer.close()
        self.reader.close()
        self.sock.close()

    def force_close(self) -> None:
        with contextlib.suppress(OSError):
            self.writer.close()
        with contextlib.suppress(OSError):
            self.reader.close()
        with contextlib.suppress(OSError):
            self.sock.close()

