# FILE: tests/test_remote_backend.py
"""
Tests for scribe/actions/remote_backend.py
HTTP client for remote SQL execution and function deploys.
"""

import io
import json
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

import pytest


def _response(body: str):
    resp = MagicMock()
    resp.read.return_value = body.encode("utf-8")
    resp.__enter__.return_value = resp
    resp.__exit__.return_value = False
    return resp


def _http_error(code: int, body: str = "") -> HTTPError:
    return HTTPError("http://x", code, "error", {}, io.BytesIO(body.encode("utf-8")))


class TestRequests:
    """Request construction and error mapping."""

    def test_execute_sql_posts_query(self):
        from scribe.actions.remote_backend import RemoteBackendClient

        client = RemoteBackendClient(base_url="https://api.test/v1/", token="tok", timeout=5)
        with patch("scribe.actions.remote_backend.urlopen", return_value=_response('[{"ok": 1}]')) as mock_open:
            rows = client.execute_sql("proj", "select 1;")

        assert rows == [{"ok": 1}]
        request = mock_open.call_args[0][0]
        assert request.full_url == "https://api.test/v1/projects/proj/database/query"
        assert request.get_method() == "POST"
        assert request.get_header("Authorization") == "Bearer tok"
        assert json.loads(request.data) == {"query": "select 1;"}
        assert mock_open.call_args[1]["timeout"] == 5

    def test_http_error_raises_with_status(self):
        from scribe.actions.errors import RemoteBackendError
        from scribe.actions.remote_backend import RemoteBackendClient

        client = RemoteBackendClient(base_url="https://api.test", token="")
        with patch("scribe.actions.remote_backend.urlopen", side_effect=_http_error(400, "syntax error")):
            with pytest.raises(RemoteBackendError) as exc_info:
                client.execute_sql("proj", "selec 1")

        assert exc_info.value.status == 400
        assert "syntax error" in str(exc_info.value)

    def test_connection_error(self):
        from scribe.actions.errors import RemoteBackendError
        from scribe.actions.remote_backend import RemoteBackendClient

        client = RemoteBackendClient(base_url="https://api.test", token="")
        with patch("scribe.actions.remote_backend.urlopen", side_effect=URLError("refused")):
            with pytest.raises(RemoteBackendError) as exc_info:
                client.delete_function("proj", "hello")

        assert exc_info.value.status == 0

    def test_empty_body_is_none(self):
        from scribe.actions.remote_backend import RemoteBackendClient

        client = RemoteBackendClient(base_url="https://api.test", token="")
        with patch("scribe.actions.remote_backend.urlopen", return_value=_response("")):
            assert client.delete_function("proj", "hello") is None


class TestDeployFunction:
    """Update-or-create deploys."""

    def test_existing_function_patched(self):
        from scribe.actions.remote_backend import RemoteBackendClient

        client = RemoteBackendClient(base_url="https://api.test", token="")
        with patch("scribe.actions.remote_backend.urlopen", return_value=_response("{}")) as mock_open:
            client.deploy_function("proj", "hello", "serve()")

        assert mock_open.call_count == 1
        request = mock_open.call_args[0][0]
        assert request.get_method() == "PATCH"
        assert request.full_url.endswith("/projects/proj/functions/hello")

    def test_missing_function_created(self):
        from scribe.actions.remote_backend import RemoteBackendClient

        client = RemoteBackendClient(base_url="https://api.test", token="")
        with patch(
            "scribe.actions.remote_backend.urlopen",
            side_effect=[_http_error(404), _response("{}")],
        ) as mock_open:
            client.deploy_function("proj", "hello", "serve()")

        second = mock_open.call_args_list[1][0][0]
        assert second.get_method() == "POST"
        assert second.full_url.endswith("/projects/proj/functions")
        assert json.loads(second.data)["body"] == "serve()"

    def test_other_errors_not_retried(self):
        from scribe.actions.errors import RemoteBackendError
        from scribe.actions.remote_backend import RemoteBackendClient

        client = RemoteBackendClient(base_url="https://api.test", token="")
        with patch("scribe.actions.remote_backend.urlopen", side_effect=_http_error(500)) as mock_open:
            with pytest.raises(RemoteBackendError):
                client.deploy_function("proj", "hello", "serve()")

        assert mock_open.call_count == 1
