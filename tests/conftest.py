from __future__ import annotations

import pytest

from bftp.client import Client
from bftp.config import ServerConfig
from bftp.net import TcpChannel
from bftp.server import Server

IDLE_TIMEOUT_MS = 200


@pytest.fixture
def store(tmp_path):
    return tmp_path / "store"


@pytest.fixture
def server(store):
    srv = Server(ServerConfig(host="127.0.0.1", port=0, timeout_ms=IDLE_TIMEOUT_MS, base_dir=str(store)))
    srv.bind()
    srv.start()
    yield srv
    srv.shutdown()


@pytest.fixture
def client(server):
    host, port = server.address
    c = Client.connect(host, port, timeout_ms=5000)
    assert c is not None
    yield c
    c.quit()


@pytest.fixture
def raw(server):
    """A bare channel for speaking the wire format by hand."""
    host, port = server.address
    ch = TcpChannel.connect(host, port, timeout_ms=5000)
    yield ch
    ch.force_close()
