"""Shared pytest fixtures for upstream-sync tests."""

import json
from unittest.mock import Mock

import pytest
from dotenv import load_dotenv

from upstream_sync.config import Config

load_dotenv()


@pytest.fixture(autouse=True)
def _clean_lb_env(monkeypatch):
    """Keep LB_* variables from a developer .env out of unit tests."""
    for key in (
        "LB_API_URL",
        "LB_USERNAME",
        "LB_PASSWORD",
        "LB_INSECURE",
        "LB_DEBUG",
        "LB_API_VERSION",
        "LB_CHECK_API",
        "LB_MAX_API",
        "LB_TIMEOUT",
        "LOG_LEVEL",
        "UPSTREAM_SYNC_CONFIG",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        api_url="http://lb.example.com:8080/api",
        username="admin",
        password="secret",
    )


@pytest.fixture
def mock_response():
    """Factory fixture for fake ``requests.Response`` objects."""

    def _create_response(status_code=200, body=None, raw=None):
        response = Mock()
        response.status_code = status_code
        if raw is not None:
            response.content = raw
            response.json.side_effect = ValueError("Expecting value")
        elif body is not None:
            response.content = json.dumps(body).encode()
            response.json.return_value = body
        else:
            response.content = b""
            response.json.side_effect = ValueError("Expecting value")
        return response

    return _create_response


@pytest.fixture
def api_error_body():
    """Factory for the remote error document."""

    def _body(status=404, code="UpstreamNotFound", text="upstream not found"):
        return {
            "error": {"status": status, "text": text, "code": code},
            "request_id": "abc123",
            "href": "https://nginx.org/en/docs/http/ngx_http_api_module.html",
        }

    return _body
