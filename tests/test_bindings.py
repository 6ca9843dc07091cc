"""Tests for the socket and polling bindings."""

import json
from unittest.mock import Mock, patch

import httpx
import pytest
from websockets.exceptions import ConnectionClosedError

from agentlink.bindings import PollingBinding, SocketBinding
from agentlink.exceptions import NotBoundError, TransportError


def _transport(handler):
    return httpx.MockTransport(handler)


class TestPollingBinding:
    """Tests for PollingBinding."""

    def test_attach_probes_server(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, json={})

        binding = PollingBinding("http://server.test", probe_path="/health", transport=_transport(handler))

        assert binding.attach() is True
        assert binding.is_attached
        assert seen == ["/health"]

    def test_attach_fails_on_server_error(self):
        binding = PollingBinding("http://server.test", transport=_transport(lambda r: httpx.Response(503)))

        assert binding.attach() is False
        assert not binding.is_attached

    def test_attach_fails_when_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        binding = PollingBinding("http://server.test", transport=_transport(handler))

        assert binding.attach() is False

    def test_request_sends_query_parameters(self):
        def handler(request):
            if request.url.path == "/":
                return httpx.Response(200)
            assert request.method == "GET"
            assert request.url.params["host"] == "node-1"
            assert json.loads(request.url.params["ids"]) == [1, 2]
            return httpx.Response(200, json={"tasks": []})

        binding = PollingBinding("http://server.test", transport=_transport(handler))
        binding.attach()

        assert binding.request("/tasks", {"host": "node-1", "ids": [1, 2]}) == {"tasks": []}

    def test_submit_posts_json(self):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200)
            assert json.loads(request.content) == {"status": "done"}
            return httpx.Response(200, json={"ok": True})

        binding = PollingBinding("http://server.test", transport=_transport(handler))
        binding.attach()

        assert binding.submit("/tasks/7", {"status": "done"}) == {"ok": True}

    def test_http_error_raises_transport_error(self):
        def handler(request):
            if request.url.path == "/":
                return httpx.Response(200)
            return httpx.Response(404)

        binding = PollingBinding("http://server.test", transport=_transport(handler))
        binding.attach()

        with pytest.raises(TransportError):
            binding.request("/missing")

    def test_non_object_reply_raises_transport_error(self):
        binding = PollingBinding(
            "http://server.test", transport=_transport(lambda r: httpx.Response(200, json=[1, 2, 3]))
        )
        binding.attach()

        with pytest.raises(TransportError):
            binding.request("/list")

    def test_exchange_requires_attach(self):
        binding = PollingBinding("http://server.test", transport=_transport(lambda r: httpx.Response(200)))

        with pytest.raises(NotBoundError):
            binding.request("/tasks")

    def test_detach(self):
        binding = PollingBinding("http://server.test", transport=_transport(lambda r: httpx.Response(200)))

        assert binding.detach() is False
        binding.attach()
        assert binding.detach() is True
        assert not binding.is_attached

    def test_empty_url_rejected(self):
        with pytest.raises(ValueError):
            PollingBinding("")


class TestSocketBinding:
    """Tests for SocketBinding."""

    @patch("agentlink.bindings.websocket.connect")
    def test_attach_connects(self, mock_connect):
        binding = SocketBinding("ws://server.test/socket", timeout=3.0)

        assert binding.attach() is True
        mock_connect.assert_called_once_with("ws://server.test/socket", open_timeout=3.0)

    @patch("agentlink.bindings.websocket.connect")
    def test_secure_url_uses_ssl_context(self, mock_connect):
        binding = SocketBinding("wss://server.test/socket")

        binding.attach()

        assert "ssl" in mock_connect.call_args.kwargs

    @patch("agentlink.bindings.websocket.connect", side_effect=OSError("connection refused"))
    def test_attach_failure_returns_false(self, mock_connect):
        binding = SocketBinding("ws://server.test/socket")

        assert binding.attach() is False
        assert not binding.is_attached

    @patch("agentlink.bindings.websocket.connect")
    def test_request_round_trip(self, mock_connect):
        connection = Mock()
        connection.recv.return_value = json.dumps({"tasks": ["update"]})
        mock_connect.return_value = connection
        binding = SocketBinding("ws://server.test/socket", timeout=2.0)
        binding.attach()

        assert binding.request("/tasks", {"host": "node-1"}) == {"tasks": ["update"]}

        frame = json.loads(connection.send.call_args[0][0])
        assert frame == {"method": "GET", "url": "/tasks", "data": {"host": "node-1"}}
        connection.recv.assert_called_once_with(timeout=2.0)

    @patch("agentlink.bindings.websocket.connect")
    def test_submit_sends_post_frame(self, mock_connect):
        connection = Mock()
        connection.recv.return_value = "{}"
        mock_connect.return_value = connection
        binding = SocketBinding("ws://server.test/socket")
        binding.attach()

        binding.submit("/tasks/7")

        frame = json.loads(connection.send.call_args[0][0])
        assert frame["method"] == "POST"
        assert frame["data"] == {}

    @patch("agentlink.bindings.websocket.connect")
    def test_closed_connection_raises_transport_error(self, mock_connect):
        connection = Mock()
        connection.recv.side_effect = ConnectionClosedError(None, None)
        mock_connect.return_value = connection
        binding = SocketBinding("ws://server.test/socket")
        binding.attach()

        with pytest.raises(TransportError):
            binding.request("/tasks")

    @patch("agentlink.bindings.websocket.connect")
    def test_timeout_raises_transport_error(self, mock_connect):
        connection = Mock()
        connection.recv.side_effect = TimeoutError()
        mock_connect.return_value = connection
        binding = SocketBinding("ws://server.test/socket")
        binding.attach()

        with pytest.raises(TransportError):
            binding.request("/tasks")

    @patch("agentlink.bindings.websocket.connect")
    def test_detach_closes_connection(self, mock_connect):
        connection = Mock()
        mock_connect.return_value = connection
        binding = SocketBinding("ws://server.test/socket")
        binding.attach()

        assert binding.detach() is True
        connection.close.assert_called_once()
        assert not binding.is_attached
        assert binding.detach() is False

    def test_exchange_requires_attach(self):
        with pytest.raises(NotBoundError):
            SocketBinding("ws://server.test/socket").submit("/tasks")
