from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Union

from . import codec
from .constants import (
    MAX_FILE_SIZE,
    STATUS_EXISTS,
    STATUS_NOT_FOUND,
    TAG_DELETE,
    TAG_DOWNLOAD,
    TAG_LIST,
    TAG_QUIT,
    TAG_UPLOAD,
)
from .errors import FrameError
from .metrics import TransferMetrics
from .net import TcpChannel

logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    DATA = "data"
    NO_DATA = "no_data"
    # the connection is unusable; the caller must quit()
    FATAL = "fatal"


class DeleteStatus(enum.IntEnum):
    EXISTS = STATUS_EXISTS
    NOT_FOUND = STATUS_NOT_FOUND
    ANOMALY = 0


@dataclass(frozen=True, slots=True)
class Result:
    outcome: Outcome
    data: Union[bytes, List[str], None] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is not Outcome.FATAL

    @property
    def has_data(self) -> bool:
        return self.outcome is Outcome.DATA


class Client:
    """Synchronous driver for one connection.

    Every public method performs exactly one request/response exchange and
    reports the result instead of raising. A ``FATAL`` outcome means the
    byte stream can no longer be trusted and ``quit()`` should follow.
    """

    def __init__(self, channel: TcpChannel, log: Optional[logging.Logger] = None):
        self.channel = channel
        self.log = log or logger

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        timeout_ms: int,
        log: Optional[logging.Logger] = None,
    ) -> Optional["Client"]:
        log = log or logger
        log.info("connecting to server %s:%d", host, port)
        try:
            channel = TcpChannel.connect(host, port, timeout_ms)
        except OSError as e:
            log.error("could not connect: %s", e)
            return None
        log.info("connected")
        return cls(channel, log)

    def _encode_name(self, filename: str) -> Optional[bytes]:
        try:
            return codec.encode_filename(filename)
        except ValueError as e:
            self.log.error("refusing to send filename: %s", e)
            return None

    def delete_request(self, filename: str) -> DeleteStatus:
        name = self._encode_name(filename)
        if name is None:
            return DeleteStatus.NOT_FOUND
        try:
            self.log.info("sending DELF operation to server")
            codec.write_tag(self.channel.writer, TAG_DELETE)
            self.channel.writer.write(name)
            response = codec.read_int(self.channel.reader)
        except OSError as e:
            self.log.error("%s", e)
            return DeleteStatus.ANOMALY

        if response == STATUS_EXISTS:
            self.log.info("file exists on the server")
            return DeleteStatus.EXISTS
        if response == STATUS_NOT_FOUND:
            self.log.info("file does not exist on server")
            return DeleteStatus.NOT_FOUND
        self.log.warning("unknown value returned for whether the file exists (%d)", response)
        return DeleteStatus.ANOMALY

    def delete_confirm(self, confirm: bool) -> Result:
        try:
            codec.write_bool(self.channel.writer, confirm)
            if not confirm:
                self.log.info("delete abandoned by the user")
                return Result(Outcome.NO_DATA, message="Delete abandoned by the user")
            msg = codec.read_utf(self.channel.reader)
        except (OSError, FrameError) as e:
            self.log.error("error sending confirmation input to server: %s", e)
            return Result(Outcome.FATAL, message=str(e))
        self.log.info("%s", msg)
        return Result(Outcome.DATA, message=msg)

    def download(self, filename: str) -> Result:
        name = self._encode_name(filename)
        if name is None:
            return Result(Outcome.NO_DATA, message="invalid filename")
        metrics = TransferMetrics()
        try:
            self.log.info("sending DWLD operation to server")
            codec.write_tag(self.channel.writer, TAG_DOWNLOAD)
            self.channel.writer.write(name)

            size = codec.read_int(self.channel.reader)
            if size == STATUS_NOT_FOUND:
                self.log.info("file does not exist on server")
                return Result(Outcome.NO_DATA, message="File does not exist on server")
            if size < 0:
                self.log.warning("negative size returned that was not -1 (%d); download cancelled", size)
                return Result(Outcome.NO_DATA, message=f"Server returned size {size}")

            codec.write_bool(self.channel.writer, True)
            self.log.info("downloading from server")
            data = codec.read_blob(self.channel.reader, size)
        except OSError as e:
            # a half-read payload leaves the stream unrecoverable
            self.log.error("%s", e)
            return Result(Outcome.FATAL, message=str(e))

        summary = metrics.finish(len(data)).summary()
        self.log.info("%s", summary)
        return Result(Outcome.DATA, data=data, message=summary)

    def list(self) -> Result:
        try:
            self.log.info("retrieving listings")
            codec.write_tag(self.channel.writer, TAG_LIST)
            count = codec.read_int(self.channel.reader)
            if count <= 0:
                self.log.info("server contains no listings")
                return Result(Outcome.NO_DATA, data=[])
            entries = [codec.read_utf(self.channel.reader) for _ in range(count)]
        except (OSError, FrameError) as e:
            self.log.error("%s", e)
            return Result(Outcome.FATAL, message=str(e))

        self.log.info("listings:")
        for entry in entries:
            self.log.info("%s", entry)
        return Result(Outcome.DATA, data=entries)

    def upload(self, path: Union[str, os.PathLike[str]], filename: str) -> Result:
        self.log.info("reading file from disk")
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            # local problem only; the connection is untouched
            self.log.error("could not read %s: %s", path, e)
            return Result(Outcome.NO_DATA, message=str(e))
        if len(data) > MAX_FILE_SIZE:
            self.log.error("file too large to upload (%d bytes)", len(data))
            return Result(Outcome.NO_DATA, message="file too large")
        name = self._encode_name(filename)
        if name is None:
            return Result(Outcome.NO_DATA, message="invalid filename")

        metrics = TransferMetrics()
        try:
            self.log.info("sending UPLD operation to server and waiting for response")
            codec.write_tag(self.channel.writer, TAG_UPLOAD)
            self.channel.writer.write(name)
            codec.write_int(self.channel.writer, len(data))

            if not codec.read_bool(self.channel.reader):
                reason = codec.read_utf(self.channel.reader)
                self.log.warning("server rejected request: %s", reason)
                return Result(Outcome.NO_DATA, message=reason)

            self.log.info("sending data to server")
            codec.write_blob(self.channel.writer, data)
            msg = codec.read_utf(self.channel.reader)
        except (OSError, FrameError) as e:
            self.log.error("%s", e)
            return Result(Outcome.FATAL, message=str(e))

        self.log.info("%s", msg)
        self.log.debug("client side: %s", metrics.finish(len(data)).summary())
        return Result(Outcome.DATA, message=msg)

    def quit(self) -> None:
        try:
            codec.write_tag(self.channel.writer, TAG_QUIT)
            self.channel.close()
        except OSError as e:
            self.log.warning("error quitting gracefully (%s); force closing", e)
            self.channel.force_close()
        self.log.info("session closed")
