"""Tests for tartrunner.vnc module."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from tartrunner.exceptions import InjectError, VNCAuthError, VNCConnectError
from tartrunner.models import KeyPress, KeystrokeSequence, NetworkEndpoint, TypeText
from tartrunner.vnc import VNCSession

ENDPOINT = NetworkEndpoint(host="127.0.0.1", port=5900, password="s3cr3t")


@pytest.fixture
def vnc_client():
    client = MagicMock()
    with (
        patch("tartrunner.vnc.socket.create_connection") as mock_conn,
        patch("tartrunner.vnc.api.connect", return_value=client) as mock_connect,
    ):
        yield client, mock_conn, mock_connect


class TestConnect:
    def test_connects_with_password(self, vnc_client):
        client, mock_conn, mock_connect = vnc_client
        session = VNCSession(ENDPOINT, connect_timeout=7).connect()
        mock_conn.assert_called_once_with(("127.0.0.1", 5900), timeout=7)
        mock_connect.assert_called_once_with("127.0.0.1::5900", password="s3cr3t", timeout=7)
        client.pause.assert_called_once_with(0)
        assert session.client is client

    def test_tcp_failure_raises_connect_error(self):
        with patch("tartrunner.vnc.socket.create_connection", side_effect=ConnectionRefusedError("refused")):
            with pytest.raises(VNCConnectError, match="Failed to connect"):
                VNCSession(ENDPOINT).connect()

    def test_handshake_failure_raises_auth_error_and_disconnects(self, vnc_client):
        client, _, _ = vnc_client
        client.pause.side_effect = Exception("Authentication failed")
        session = VNCSession(ENDPOINT)
        with pytest.raises(VNCAuthError, match="Authentication failed"):
            session.connect()
        client.disconnect.assert_called_once()
        assert session.client is None

    def test_auth_error_is_a_connect_error(self):
        assert issubclass(VNCAuthError, VNCConnectError)


class TestSession:
    def test_context_manager_closes(self, vnc_client):
        client, _, _ = vnc_client
        with VNCSession(ENDPOINT) as session:
            session.key_press("enter")
        client.keyPress.assert_called_once_with("enter")
        client.disconnect.assert_called_once()

    def test_close_is_idempotent(self, vnc_client):
        client, _, _ = vnc_client
        session = VNCSession(ENDPOINT).connect()
        session.close()
        session.close()
        client.disconnect.assert_called_once()

    def test_events_require_connection(self):
        with pytest.raises(VNCConnectError, match="not connected"):
            VNCSession(ENDPOINT).key_press("a")

    def test_inject_types_sequence(self, vnc_client):
        client, _, _ = vnc_client
        seq = KeystrokeSequence([TypeText("ok"), KeyPress("enter")])
        with VNCSession(ENDPOINT, key_interval=0) as session:
            session.inject(seq)
        assert [c[0][0] for c in client.keyPress.call_args_list] == ["o", "k", "enter"]

    def test_inject_failure_reports_index(self, vnc_client):
        client, _, _ = vnc_client
        client.keyPress.side_effect = [None, OSError("connection reset")]
        seq = KeystrokeSequence([KeyPress("esc"), KeyPress("enter"), KeyPress("tab")])
        with VNCSession(ENDPOINT, key_interval=0) as session:
            with pytest.raises(InjectError) as excinfo:
                session.inject(seq)
        assert excinfo.value.index == 1
        assert client.keyPress.call_count == 2

    def test_modifier_and_mouse_events(self, vnc_client):
        client, _, _ = vnc_client
        with VNCSession(ENDPOINT) as session:
            session.key_down("lctrl")
            session.key_up("lctrl")
            session.mouse_move(5, 6)
            session.mouse_click()
        client.keyDown.assert_called_once_with("lctrl")
        client.keyUp.assert_called_once_with("lctrl")
        client.mouseMove.assert_called_once_with(5, 6)
        client.mousePress.assert_called_once_with(1)
