from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

import pytest
from requests import ConnectionError as RequestsConnectionError

from depfetch.errors import NotFoundError, TransportError
from depfetch.http import HttpClient


def make_response(status_code: int = 200, headers: dict | None = None, payload: object = None) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = payload
    return response


class TestGetJson:
    """Test JSON requests against a mocked requests session."""

    @patch("depfetch.http.Session")
    def test_headers_and_timeouts(self, mock_session_class: Mock) -> None:
        session = mock_session_class.return_value
        session.headers = {}
        session.get.return_value = make_response(payload={"ok": True})

        client = HttpClient(user_agent="tests/1.0", connect_timeout=5, read_timeout=7)
        assert client.get_json("https://api.example/x", params={"limit": 25}) == {"ok": True}

        assert session.headers["User-Agent"] == "tests/1.0"
        assert session.headers["Accept"] == "application/json"
        session.get.assert_called_once_with(
            "https://api.example/x", params={"limit": 25}, headers=None, timeout=(5, 7)
        )

    @patch("depfetch.http.Session")
    def test_default_user_agent(self, mock_session_class: Mock) -> None:
        session = mock_session_class.return_value
        session.headers = {}
        HttpClient()
        assert session.headers["User-Agent"].startswith("depfetch/")

    @patch("depfetch.http.Session")
    def test_not_found(self, mock_session_class: Mock) -> None:
        mock_session_class.return_value.get.return_value = make_response(404)
        with pytest.raises(NotFoundError) as excinfo:
            HttpClient(user_agent="t").get_json("https://api.example/missing", dependency="LuckPerms")
        assert excinfo.value.dependency == "LuckPerms"
        assert str(excinfo.value).startswith("[LuckPerms] Not found")

    @patch("depfetch.http.Session")
    def test_server_error(self, mock_session_class: Mock) -> None:
        mock_session_class.return_value.get.return_value = make_response(503)
        with pytest.raises(TransportError, match="HTTP 503"):
            HttpClient(user_agent="t").get_json("https://api.example/x")

    @patch("depfetch.http.Session")
    def test_connection_error(self, mock_session_class: Mock) -> None:
        mock_session_class.return_value.get.side_effect = RequestsConnectionError("refused")
        with pytest.raises(TransportError, match="refused"):
            HttpClient(user_agent="t").get_json("https://api.example/x")

    @patch("depfetch.http.Session")
    def test_invalid_json(self, mock_session_class: Mock) -> None:
        response = make_response()
        response.json.side_effect = ValueError("Expecting value")
        mock_session_class.return_value.get.return_value = response
        with pytest.raises(TransportError, match="Invalid JSON"):
            HttpClient(user_agent="t").get_json("https://api.example/x")

    @patch("depfetch.http.Session")
    def test_rate_limit_warning(self, mock_session_class: Mock, caplog: pytest.LogCaptureFixture) -> None:
        mock_session_class.return_value.get.return_value = make_response(
            headers={"X-RateLimit-Remaining": "3"}, payload=[]
        )
        with caplog.at_level(logging.WARNING, logger="depfetch.http"):
            HttpClient(user_agent="t").get_json("https://api.example/x")
        assert "rate limit low" in caplog.text


class TestDownload:
    """Test streaming downloads into the install directory."""

    @patch("depfetch.http.Session")
    def test_download(self, mock_session_class: Mock, tmp_path: Path) -> None:
        response = make_response(headers={"Content-Length": "5"})
        response.iter_content.return_value = [b"hel", b"", b"lo"]
        mock_session_class.return_value.get.return_value = response

        target = tmp_path / "plugins" / "Plugin.jar"
        result = HttpClient(user_agent="t", download_timeout=60).download("https://cdn.example/p.jar", target)

        assert result == target
        assert target.read_bytes() == b"hello"
        assert not (tmp_path / "plugins" / "Plugin.jar.part").exists()
        response.close.assert_called_once()
        assert mock_session_class.return_value.get.call_args.kwargs["stream"] is True
        assert mock_session_class.return_value.get.call_args.kwargs["timeout"][1] == 60

    @patch("depfetch.http.Session")
    def test_download_not_found(self, mock_session_class: Mock, tmp_path: Path) -> None:
        mock_session_class.return_value.get.return_value = make_response(404)
        target = tmp_path / "Plugin.jar"
        with pytest.raises(NotFoundError):
            HttpClient(user_agent="t").download("https://cdn.example/p.jar", target)
        assert not target.exists()

    @patch("depfetch.http.Session")
    def test_interrupted_download_leaves_nothing(self, mock_session_class: Mock, tmp_path: Path) -> None:
        def chunks(chunk_size: int) -> object:  # noqa: ARG001
            yield b"partial"
            raise RequestsConnectionError("reset by peer")

        response = make_response()
        response.iter_content.side_effect = chunks
        mock_session_class.return_value.get.return_value = response

        target = tmp_path / "Plugin.jar"
        target.write_bytes(b"previous")
        with pytest.raises(TransportError, match="reset by peer"):
            HttpClient(user_agent="t").download("https://cdn.example/p.jar", target)
        assert not (tmp_path / "Plugin.jar.part").exists()
        assert target.read_bytes() == b"previous"

    @patch("depfetch.http.Session")
    def test_context_manager_closes(self, mock_session_class: Mock) -> None:
        mock_session_class.return_value = MagicMock()
        with HttpClient(user_agent="t"):
            pass
        mock_session_class.return_value.close.assert_called_once()
