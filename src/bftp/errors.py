from __future__ import annotations


class ConnectionClosedError(ConnectionError):
    """Peer closed the stream before a frame was complete."""


class FrameError(ValueError):
    pass


class PathEscapeError(ValueError):
    pass


class ProtocolError(Exception):
    """Client-attributable protocol violation; always ends the connection.

    ``send_to_client`` decides whether the message is written back to the
    peer (as ``False`` followed by the text) before the connection closes.
    """

    def __init__(self, message: str, send_to_client: bool = False):
        super().__init__(message)
        self.send_to_client = send_to_client
