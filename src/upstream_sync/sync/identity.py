"""Server identity and parameter equality.

Desired records usually leave most tunables unset, while the remote always
reports concrete values.  An unset field therefore means "whatever the
remote default is": it matches the remote only when the remote holds
exactly that default.
"""

from __future__ import annotations

from typing import TypeVar

from .models import ServerBase, UpstreamServer

S = TypeVar("S", bound=ServerBase)

DEFAULT_SERVER_PORT = "80"

DEFAULT_MAX_CONNS = 0
DEFAULT_MAX_FAILS = 1
DEFAULT_FAIL_TIMEOUT = "10s"
DEFAULT_SLOW_START = "0s"
DEFAULT_BACKUP = False
DEFAULT_DOWN = False
DEFAULT_WEIGHT = 1
DEFAULT_DRAIN = False

_DEFAULTS: dict[str, object] = {
    "max_conns": DEFAULT_MAX_CONNS,
    "max_fails": DEFAULT_MAX_FAILS,
    "fail_timeout": DEFAULT_FAIL_TIMEOUT,
    "slow_start": DEFAULT_SLOW_START,
    "backup": DEFAULT_BACKUP,
    "down": DEFAULT_DOWN,
    "weight": DEFAULT_WEIGHT,
}

_HTTP_DEFAULTS: dict[str, object] = {**_DEFAULTS, "drain": DEFAULT_DRAIN}


def normalize_address(address: str) -> str:
    """Append the default port to *address* when it has none.

    ``host:port``, ``[ipv6]:port`` and ``unix:/path`` forms are returned
    unchanged, so the function is idempotent.

    Examples:
        >>> normalize_address("example.com")
        'example.com:80'
        >>> normalize_address("[::1]")
        '[::1]:80'
        >>> normalize_address("unix:/var/run/app.sock")
        'unix:/var/run/app.sock'
    """
    if len(address.split(":")) == 2:
        return address
    if len(address.split("]:")) == 2:
        return address
    if address.startswith("unix:"):
        return address
    return f"{address}:{DEFAULT_SERVER_PORT}"


def server_key(record: ServerBase) -> str:
    """Matching key of a record: its normalized address."""
    return normalize_address(record.server)


def apply_defaults(record: S) -> S:
    """Return a copy of *record* with every unset tunable set to its default."""
    defaults = (
        _HTTP_DEFAULTS if isinstance(record, UpstreamServer) else _DEFAULTS
    )
    update = {
        name: value
        for name, value in defaults.items()
        if getattr(record, name) is None
    }
    if not update:
        return record
    return record.model_copy(update=update)


def same_parameters(desired: ServerBase, remote: ServerBase) -> bool:
    """Whether two records are equal for reconciliation purposes.

    ``id`` is ignored.  Unset fields compare equal to the remote default;
    set fields must match exactly.
    """
    if type(desired) is not type(remote):
        return False
    left = apply_defaults(desired).model_dump(exclude={"id"})
    right = apply_defaults(remote).model_dump(exclude={"id"})
    return left == right
