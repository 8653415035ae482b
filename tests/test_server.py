from __future__ import annotations

import logging
import socket
import threading

import pytest

from bftp import codec
from bftp.client import Client
from bftp.net import TcpChannel
from bftp.server import ConnectionHandler, HandlerState
from bftp.storage import Storage


@pytest.fixture
def pair(tmp_path):
    """A handler serving one end of a socketpair; the test drives the other."""
    a, b = socket.socketpair()
    storage = Storage(tmp_path / "store")
    storage.ensure_base_dir()
    handler = ConnectionHandler(TcpChannel(a, 100), 7, storage)
    result = {}
    t = threading.Thread(target=lambda: result.setdefault("state", handler.run()), daemon=True)
    t.start()
    peer = TcpChannel(b, 5000)
    yield handler, peer, t, result
    peer.force_close()
    t.join(timeout=5)


def test_quit_is_graceful(pair):
    handler, peer, t, result = pair
    codec.write_tag(peer.writer, "QUIT")
    t.join(timeout=5)
    assert result["state"] is HandlerState.CLOSED_GRACEFUL


def test_unknown_tag_is_error(pair):
    handler, peer, t, result = pair
    codec.write_tag(peer.writer, "HELO")
    t.join(timeout=5)
    assert result["state"] is HandlerState.CLOSED_ERROR


def test_peer_disconnect_is_error(pair):
    handler, peer, t, result = pair
    peer.force_close()
    t.join(timeout=5)
    assert result["state"] is HandlerState.CLOSED_ERROR


def test_protocol_error_is_error(pair):
    handler, peer, t, result = pair
    codec.write_tag(peer.writer, "UPLD")
    codec.write_filename(peer.writer, "x")
    codec.write_int(peer.writer, -1)
    assert codec.read_bool(peer.reader) is False
    codec.read_utf(peer.reader)
    t.join(timeout=5)
    assert result["state"] is HandlerState.CLOSED_ERROR


def test_delete_restores_timeout_after_refusal(pair, tmp_path):
    handler, peer, t, result = pair
    (tmp_path / "store" / "f.txt").write_bytes(b"x")
    client = Client(peer)
    assert client.delete_request("f.txt") == 1
    assert not client.delete_confirm(False).has_data
    # the next exchange proves the handler is back in its loop
    assert client.list().data == ["f.txt"]
    assert handler.channel.timeout_ms == 100
    assert handler.channel.sock.gettimeout() == pytest.approx(0.1)


def test_log_lines_carry_connection_id(pair, caplog):
    handler, peer, t, result = pair
    with caplog.at_level(logging.INFO, logger="bftp.server"):
        codec.write_tag(peer.writer, "QUIT")
        t.join(timeout=5)
    assert any(m.startswith("[connection 7] ") for m in caplog.messages)
    assert "[connection 7] QUIT triggered by client" in caplog.messages


def test_unexpected_error_ends_in_closed_error(pair, monkeypatch, caplog):
    handler, peer, t, result = pair

    def broken_listing():
        raise RuntimeError("listing exploded")

    monkeypatch.setattr(handler.storage, "listing", broken_listing)
    with caplog.at_level(logging.INFO, logger="bftp.server"):
        codec.write_tag(peer.writer, "LIST")
        t.join(timeout=5)
    # run() returned a state instead of raising out of the thread
    assert result["state"] is HandlerState.CLOSED_ERROR
    assert "[connection 7] client disconnected" in caplog.messages
