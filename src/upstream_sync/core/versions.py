"""API version negotiation.

The remote lists the API versions it serves as a JSON array at its root
path (``GET /`` -> ``[4, 5, 6, 7, 8, 9]``).  This build understands the
versions in ``[MIN_API_VERSION, MAX_API_VERSION]``.
"""

from __future__ import annotations

import logging
from typing import Any

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

MIN_API_VERSION = 4
MAX_API_VERSION = 9
DEFAULT_API_VERSION = 9


def check_supported(version: int) -> None:
    """Reject versions this build does not understand.

    Raises:
        ConfigurationError: If *version* is outside the supported range.
    """
    if not (MIN_API_VERSION <= version <= MAX_API_VERSION):
        raise ConfigurationError(
            f"API version {version} is not supported by the client "
            f"(supported: {MIN_API_VERSION}-{MAX_API_VERSION})"
        )


def parse_versions(body: Any) -> list[int]:
    """Extract the integer versions from a decoded ``GET /`` body.

    Non-list bodies yield an empty list.  Non-integer members (strings,
    floats, booleans) are ignored.
    """
    if not isinstance(body, list):
        return []
    return [
        v for v in body if isinstance(v, int) and not isinstance(v, bool)
    ]


def ensure_advertised(requested: int, advertised: list[int]) -> None:
    """Raise ``ConfigurationError`` if the remote does not serve *requested*."""
    if requested not in advertised:
        raise ConfigurationError(
            f"API version {requested} is not supported by the server "
            f"(server supports: {advertised})"
        )


def negotiate(requested: int, advertised: list[int]) -> int:
    """Pick the highest version both sides speak.

    Returns ``min(requested, max(advertised))`` when the remote advertises
    at least one version in ``[MIN_API_VERSION, requested]``.  Otherwise
    *requested* is kept unchanged.
    """
    usable = [v for v in advertised if MIN_API_VERSION <= v <= requested]
    if not usable:
        logger.debug(
            "No usable API version advertised (%s); keeping %d",
            advertised,
            requested,
        )
        return requested
    return min(requested, max(advertised))
