"""Tests for upstream_sync.config_schema: Pydantic config models."""

import pytest
from pydantic import ValidationError

from upstream_sync.config_schema import (
    ApiConfig,
    LoggingConfig,
    UnifiedConfig,
    UpstreamEntry,
    build_config,
)
from upstream_sync.sync.models import StreamUpstreamServer, UpstreamServer


class TestBuildConfig:
    def test_empty_gives_defaults(self):
        unified = build_config({})

        assert unified == UnifiedConfig()
        assert unified.api.api_version == 9
        assert unified.logging.level == "INFO"
        assert unified.upstreams == {}

    def test_full_document(self):
        unified = build_config(
            {
                "api": {"url": "http://lb:8080/api", "max_api": True, "timeout": 3},
                "logging": {"level": "DEBUG", "format": "json"},
                "upstreams": {
                    "backend": {"servers": [{"server": "10.0.0.1"}]},
                    "dns": {"kind": "stream", "servers": [{"server": "10.0.0.2:53"}]},
                },
            }
        )

        assert unified.api.max_api is True
        assert unified.api.timeout == 3.0
        assert unified.logging.format == "json"
        assert unified.upstreams["backend"].kind == "http"
        assert unified.upstreams["dns"].kind == "stream"

    def test_version_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            build_config({"api": {"api_version": 10}})

    def test_invalid_upstream_name_rejected(self):
        with pytest.raises(ValidationError, match="Upstream name"):
            build_config({"upstreams": {"bad name": {"servers": []}}})

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            build_config({"upstreams": {"u": {"kind": "udp"}}})

    def test_models_frozen(self):
        with pytest.raises(ValidationError):
            ApiConfig().url = "http://x"  # type: ignore[misc]
        with pytest.raises(ValidationError):
            LoggingConfig().level = "DEBUG"  # type: ignore[misc]


class TestUpstreamEntry:
    def test_http_servers(self):
        servers = UpstreamEntry(
            servers=[{"server": "10.0.0.1", "weight": 2}, {"server": "10.0.0.2:81"}]
        ).to_servers()

        assert all(isinstance(s, UpstreamServer) for s in servers)
        assert servers[0].weight == 2

    def test_stream_servers(self):
        servers = UpstreamEntry(
            kind="stream", servers=[{"server": "10.0.0.1:53"}]
        ).to_servers()

        assert isinstance(servers[0], StreamUpstreamServer)

    def test_invalid_server_rejected(self):
        with pytest.raises(ValidationError):
            UpstreamEntry(servers=[{"server": ""}]).to_servers()

