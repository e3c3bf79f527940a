"""Core load balancer API client functionality shared by the CLI and library callers."""

from .client import UpstreamClient
from .context import CallContext

__all__ = ["CallContext", "UpstreamClient"]
