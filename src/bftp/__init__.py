"""Binary File Transfer Protocol (BFTP)

A small TCP protocol for uploading, downloading, deleting and listing files
on a remote store:
- ``codec``: wire primitives (tags, UTF-16 filenames, int32, bool, blobs)
- ``server``: accept loop and the per-connection request state machine
- ``client``: one blocking call per protocol exchange, typed outcomes
"""

from .client import Client, DeleteStatus, Outcome, Result
from .server import ConnectionHandler, HandlerState, Server

__all__ = [
    "Client",
    "ConnectionHandler",
    "DeleteStatus",
    "HandlerState",
    "Outcome",
    "Result",
    "Server",
]
