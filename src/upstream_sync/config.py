"""Connection configuration for the load balancer API client.

Reads API connection settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    LB_API_URL: API base URL, e.g. http://lb.example.com:8080/api (required)
    LB_USERNAME: Basic-auth username (optional)
    LB_PASSWORD: Basic-auth password (optional)
    LB_INSECURE: Skip SSL verification (optional, default: false)
    LB_API_VERSION: API version to use (optional, default: 9)
    LB_CHECK_API: Fail unless the server advertises the version (optional)
    LB_MAX_API: Negotiate the highest common version (optional)
    LB_TIMEOUT: Per-request timeout in seconds (optional, default: 10)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from .core.versions import DEFAULT_API_VERSION, MAX_API_VERSION, MIN_API_VERSION

logger = logging.getLogger(__name__)


@dataclass
class Config:
    api_url: str
    username: str = ""
    password: str = ""
    insecure: bool = False
    debug: bool = False
    api_version: int = DEFAULT_API_VERSION
    check_api: bool = False
    max_api: bool = False
    timeout: float = 10.0


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the URL format, API version or timeout is invalid,
            or a password is given without a username.
    """
    # Normalize URL: strip whitespace
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )

    config.api_url = config.api_url.removesuffix("/")

    if config.password and not config.username.strip():
        raise ValueError(
            "API username cannot be empty when a password is set. Set LB_USERNAME environment variable."
        )

    if not (MIN_API_VERSION <= config.api_version <= MAX_API_VERSION):
        raise ValueError(
            f"Invalid API version {config.api_version}: must be between {MIN_API_VERSION} and {MAX_API_VERSION}"
        )

    if config.timeout <= 0:
        raise ValueError(
            f"Invalid timeout {config.timeout}: must be a positive number of seconds"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _resolve_flag(cli_value: bool, env_key: str, fallback: object) -> bool:
    if cli_value:
        return True
    env_value = _get_bool_env(env_key)
    if env_value is not None:
        return env_value
    return bool(fallback)


def load_config(
    url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    api_version: int | None = None,
    check_api: bool = False,
    max_api: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override API URL.
        username: Override username.
        password: Override password.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        api_version: Override API version.
        check_api: Require the server to advertise the API version (CLI flag).
        max_api: Negotiate the highest common API version (CLI flag).
        yaml_fallbacks: Dict of values from the YAML config file ``api``
            section.  Used as fallback when CLI arg and env var are unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the API URL is missing or any value is invalid.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML ---

    api_url = url or os.getenv("LB_API_URL") or fb.get("url")
    if not api_url:
        raise ValueError(
            "API URL not found. Set LB_API_URL environment variable, "
            "pass --url CLI argument, or add 'url' to config.yml."
        )

    final_username = (
        username or os.getenv("LB_USERNAME") or fb.get("username") or ""
    ).strip()
    final_password = (
        password or os.getenv("LB_PASSWORD") or fb.get("password") or ""
    ).strip()

    # --- Boolean fields: CLI > env > YAML > default ---

    final_insecure = _resolve_flag(
        insecure, "LB_INSECURE", fb.get("insecure", False)
    )
    final_debug = _resolve_flag(debug, "LB_DEBUG", fb.get("debug", False))
    final_check_api = _resolve_flag(
        check_api, "LB_CHECK_API", fb.get("check_api", False)
    )
    final_max_api = _resolve_flag(
        max_api, "LB_MAX_API", fb.get("max_api", False)
    )

    # --- Numeric fields: CLI > env > YAML > default ---

    if api_version is not None:
        final_api_version = api_version
    else:
        version_raw = os.getenv("LB_API_VERSION")
        if version_raw is not None:
            try:
                final_api_version = int(version_raw)
            except ValueError:
                raise ValueError(
                    f"Invalid LB_API_VERSION '{version_raw}': must be a number between {MIN_API_VERSION} and {MAX_API_VERSION}"
                ) from None
        elif "api_version" in fb:
            final_api_version = int(fb["api_version"])
        else:
            final_api_version = DEFAULT_API_VERSION

    timeout_raw = os.getenv("LB_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid LB_TIMEOUT '{timeout_raw}': must be a number of seconds"
            ) from None
    elif "timeout" in fb:
        final_timeout = float(fb["timeout"])
    else:
        final_timeout = 10.0

    config = Config(
        api_url=api_url,
        username=final_username,
        password=final_password,
        insecure=final_insecure,
        debug=final_debug,
        api_version=final_api_version,
        check_api=final_check_api,
        max_api=final_max_api,
        timeout=final_timeout,
    )

    validate_config(config)

    return config
