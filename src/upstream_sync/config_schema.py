"""Unified configuration schema for upstream_sync.

Defines Pydantic models for the YAML config file: the API connection, the
logging setup and the desired servers of each upstream.  The ``api`` section
is handed to ``load_config`` as YAML fallbacks for the ``Config`` dataclass.

Usage:
    from upstream_sync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    servers = unified.upstreams["backend"].to_servers()
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from .core.versions import DEFAULT_API_VERSION, MAX_API_VERSION, MIN_API_VERSION
from .sync.models import ServerRecord, StreamUpstreamServer, UpstreamServer
from .validators import validate_upstream_name

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ApiConfig(BaseModel):
    """Load balancer API connection settings.

    All fields are optional so env vars and CLI args can supply them.
    """

    url: str | None = Field(default=None, description="API base URL")
    username: str | None = Field(default=None, description="Basic-auth username")
    password: str | None = Field(default=None, description="Basic-auth password")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    api_version: int = Field(
        default=DEFAULT_API_VERSION,
        ge=MIN_API_VERSION,
        le=MAX_API_VERSION,
        description="API version used in request paths",
    )
    check_api: bool = Field(
        default=False,
        description="Fail unless the server advertises api_version",
    )
    max_api: bool = Field(
        default=False,
        description="Negotiate the highest version both sides support",
    )
    timeout: float = Field(
        default=10.0, gt=0, description="Per-request timeout in seconds"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``"text"`` or ``"json"``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(
        default="text", description="Log line format"
    )

    model_config = {"frozen": True}


class UpstreamEntry(BaseModel):
    """Desired servers of one upstream.

    Attributes:
        kind: ``"http"`` or ``"stream"``.
        servers: Server entries; each needs at least ``server``.
    """

    kind: Literal["http", "stream"] = "http"
    servers: list[dict[str, Any]] = Field(default_factory=list)

    model_config = {"frozen": True}

    def to_servers(self) -> list[ServerRecord]:
        """Validate the entries into server models of the right kind."""
        model = UpstreamServer if self.kind == "http" else StreamUpstreamServer
        return [model.model_validate(entry) for entry in self.servers]


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` is always valid.
    """

    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    upstreams: dict[str, UpstreamEntry] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @field_validator("upstreams")
    @classmethod
    def _valid_upstream_names(
        cls, value: dict[str, UpstreamEntry]
    ) -> dict[str, UpstreamEntry]:
        for name in value:
            is_valid, error_msg = validate_upstream_name(name)
            if not is_valid:
                raise ValueError(error_msg)
        return value


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)

