from __future__ import annotations

import enum
import logging
import socket
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from . import codec
from .config import ServerConfig
from .constants import (
    ACCEPT_POLL_S,
    DELETE_GRACE_S,
    MAX_FILE_SIZE,
    STATUS_EXISTS,
    STATUS_NOT_FOUND,
    STATUS_TOO_LARGE,
    TAG_DELETE,
    TAG_DOWNLOAD,
    TAG_LIST,
    TAG_QUIT,
    TAG_UPLOAD,
)
from .errors import FrameError, PathEscapeError, ProtocolError
from .metrics import TransferMetrics
from .net import TcpChannel
from .storage import Storage

logger = logging.getLogger(__name__)


class HandlerState(enum.Enum):
    AWAITING_OP = "awaiting_op"
    UPLOAD = "upload"
    LIST = "list"
    DOWNLOAD = "download"
    DELETE = "delete"
    CLOSED_GRACEFUL = "closed_graceful"
    CLOSED_ERROR = "closed_error"


class ConnectionLog(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"[connection {self.extra['conn_id']}] {msg}", kwargs


class ConnectionHandler:
    """Serves one accepted connection until QUIT, a protocol error or an I/O fault.

    Requests are handled strictly one at a time: each exchange runs to
    completion on both sides before the next tag is read.
    """

    def __init__(
        self,
        channel: TcpChannel,
        conn_id: int,
        storage: Storage,
        log: Optional[logging.Logger] = None,
    ):
        self.channel = channel
        self.conn_id = conn_id
        self.storage = storage
        self.state = HandlerState.AWAITING_OP
        self.log = ConnectionLog(log or logger, {"conn_id": conn_id})
        self._ops: Dict[str, Callable[[], None]] = {
            TAG_UPLOAD: self.upload,
            TAG_LIST: self.list,
            TAG_DOWNLOAD: self.download,
            TAG_DELETE: self.delete,
        }

    def run(self) -> HandlerState:
        self.log.info("client connected from %s", self.channel.peer())
        try:
            try:
                final = self._main_loop()
            except ProtocolError as e:
                final = HandlerState.CLOSED_ERROR
                self.log.warning("%s", e)
                if e.send_to_client:
                    self.log.info("sending error message back to client")
                    codec.write_bool(self.channel.writer, False)
                    codec.write_utf(self.channel.writer, str(e))
                self.log.info("attempting to end connection gracefully")
            self.channel.close()
            self.state = final
        except OSError as e:
            self.log.warning("input/output error: %s", e)
            self.log.info("closing client connection forcefully")
            self.channel.force_close()
            self.state = HandlerState.CLOSED_ERROR
        except Exception:
            self.log.exception("unexpected error; closing client connection forcefully")
            self.channel.force_close()
            self.state = HandlerState.CLOSED_ERROR
        self.log.info("client disconnected")
        return self.state

    def _main_loop(self) -> HandlerState:
        while True:
            self.state = HandlerState.AWAITING_OP
            try:
                tag = codec.read_tag(self.channel.reader)
            except TimeoutError:
                # idle client; the timeout only bounds each blocking read
                continue
            except FrameError as e:
                self.log.warning("undecodable operation tag (%s); terminating connection", e)
                return HandlerState.CLOSED_ERROR

            if tag == TAG_QUIT:
                self.log.info("QUIT triggered by client")
                return HandlerState.CLOSED_GRACEFUL
            op = self._ops.get(tag)
            if op is None:
                self.log.warning("operation unknown: %r", tag)
                self.log.info("terminating connection due to client error")
                return HandlerState.CLOSED_ERROR
            op()

    def _read_name(self, send_to_client: bool) -> str:
        try:
            return codec.read_filename(self.channel.reader)
        except FrameError as e:
            raise ProtocolError(str(e), send_to_client) from e

    def _resolve(self, name: str, send_to_client: bool) -> Path:
        try:
            return self.storage.resolve(name)
        except PathEscapeError as e:
            raise ProtocolError(str(e), send_to_client) from e

    def _read_filename(self, send_to_client: bool) -> Tuple[str, Path]:
        name = self._read_name(send_to_client)
        return name, self._resolve(name, send_to_client)

    def delete(self) -> None:
        self.state = HandlerState.DELETE
        self.log.info("client is requesting to delete a file")
        _name, path = self._read_filename(send_to_client=False)
        writer = self.channel.writer

        if not self.storage.exists(path):
            self.log.info("file doesn't exist: %s", path)
            codec.write_int(writer, STATUS_NOT_FOUND)
            return

        self.log.info("waiting for confirmation to delete: %s", path)
        codec.write_int(writer, STATUS_EXISTS)
        with self.channel.timeout_override(DELETE_GRACE_S):
            confirm = codec.read_bool(self.channel.reader)
        if not confirm:
            self.log.info("client did not confirm file deletion")
            return

        try:
            self.storage.delete(path)
            msg = "File deleted"
        except OSError as e:
            msg = f"Error deleting file ({e.strerror or e})"
        self.log.info("%s", msg)
        codec.write_utf(writer, msg)

    def download(self) -> None:
        self.state = HandlerState.DOWNLOAD
        self.log.info("client is requesting to download a file")
        name, path = self._read_filename(send_to_client=False)
        writer = self.channel.writer

        if not self.storage.is_file(path):
            self.log.info("the file %r does not exist on the server", name)
            codec.write_int(writer, STATUS_NOT_FOUND)
            return

        size = path.stat().st_size
        if size > MAX_FILE_SIZE:
            self.log.warning("file %r is too large to send (%d bytes)", name, size)
            codec.write_int(writer, STATUS_TOO_LARGE)
            return
        codec.write_int(writer, size)

        # the client round trip for "ready" overlaps with the disk read
        self.log.info("reading file from disk")
        data = self.storage.read_bytes(path)
        if len(data) != size:
            raise OSError(f"file {name!r} changed size during download ({size} -> {len(data)})")

        if not codec.read_bool(self.channel.reader):
            self.log.info("client returned false for ready status")
            return
        codec.write_blob(writer, data)
        self.log.info("bytes sent")

    def list(self) -> None:
        self.state = HandlerState.LIST
        self.log.info("sending listings to client")
        entries = self.storage.listing()
        writer = self.channel.writer
        codec.write_int(writer, len(entries))
        for entry in entries:
            codec.write_utf(writer, entry)
        self.log.info("sent %d listings to client", len(entries))

    def upload(self) -> None:
        self.state = HandlerState.UPLOAD
        self.log.info("client is requesting to upload a file")
        metrics = TransferMetrics()
        name = self._read_name(send_to_client=True)
        self.log.info("filename: %s", name)

        size = codec.read_int(self.channel.reader)
        if size < 0:
            raise ProtocolError(f"File size is less than 0 ({size})", send_to_client=True)
        path = self._resolve(name, send_to_client=True)
        self.log.info("filesize: %d", size)

        self.log.info("ready to receive data")
        codec.write_bool(self.channel.writer, True)
        data = codec.read_blob(self.channel.reader, size)

        try:
            self.storage.write_bytes(path, data)
        except OSError as e:
            msg = f"Server error, could not write to disk ({e.strerror or e})"
            self.log.error("error writing file to disk: %s", e)
        else:
            msg = metrics.finish(size).summary()
            self.log.info("%s", msg)
        codec.write_utf(self.channel.writer, msg)
        self.log.info("upload finished")


class Server:
    """Accept loop: one ``ConnectionHandler`` thread per accepted socket."""

    def __init__(
        self,
        config: ServerConfig,
        storage: Optional[Storage] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.storage = storage or Storage(config.base_dir)
        self.log = log or logger
        self._sock: Optional[socket.socket] = None
        self._next_id = 1
        self._stopping = threading.Event()

    @property
    def address(self) -> Tuple[str, int]:
        if self._sock is None:
            raise RuntimeError("server is not bound")
        return self._sock.getsockname()[:2]

    def bind(self) -> Tuple[str, int]:
        self.storage.ensure_base_dir()
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.config.host, self.config.port))
            sock.listen()
        except OSError:
            sock.close()
            raise
        # polled so shutdown() is noticed without another connection arriving
        sock.settimeout(ACCEPT_POLL_S)
        self._sock = sock
        host, port = self.address
        self.log.info(
            "server started on %s:%d with timeout %dms; serving %s",
            host,
            port,
            self.config.timeout_ms,
            self.storage.base_dir,
        )
        return host, port

    def serve_forever(self) -> None:
        if self._sock is None:
            self.bind()
        assert self._sock is not None
        while not self._stopping.is_set():
            try:
                client_sock, _addr = self._sock.accept()
            except TimeoutError:
                continue
            except OSError as e:
                if self._stopping.is_set():
                    break
                self.log.error("error accepting client connection: %s", e)
                continue
            self._spawn(client_sock)
        self.log.info("server stopped")

    def start(self) -> threading.Thread:
        if self._sock is None:
            self.bind()
        t = threading.Thread(target=self.serve_forever, name="bftp-accept", daemon=True)
        t.start()
        return t

    def _spawn(self, client_sock: socket.socket) -> Optional[ConnectionHandler]:
        conn_id = self._next_id
        self._next_id += 1
        try:
            channel = TcpChannel(client_sock, self.config.timeout_ms)
        except OSError as e:
            self.log.error("error configuring client connection %d: %s", conn_id, e)
            client_sock.close()
            return None
        handler = ConnectionHandler(channel, conn_id, self.storage, self.log)
        t = threading.Thread(target=handler.run, name=f"bftp-conn-{conn_id}", daemon=True)
        t.start()
        return handler

    def shutdown(self) -> None:
        self._stopping.set()
        if self._sock is not None:
            self._sock.close()
