"""Pydantic models for upstream servers and reconciliation results.

- ``UpstreamServer``: a server of an HTTP upstream.
- ``StreamUpstreamServer``: a server of a stream (TCP/UDP) upstream.
- ``ReconcileResult``: what one reconciliation actually changed.

Every tunable field is optional: ``None`` means "not set by the caller"
and is distinct from an explicit zero, ``False`` or ``"0s"``.  The remote
always reports concrete values; see ``sync.identity`` for how unset
fields compare against them.

All models are frozen (immutable).
"""

from __future__ import annotations

from typing import Any, Literal, TypeVar, Union

from pydantic import BaseModel, field_validator

from ..validators import validate_server_address

S = TypeVar("S", bound="ServerBase")


class ServerBase(BaseModel):
    """Fields shared by HTTP and stream upstream servers.

    Attributes:
        id: Remote-assigned identifier.  ``None`` in desired records.
        server: ``host:port``, ``[ipv6]:port`` or ``unix:/path`` address.
        max_conns: Connection limit (remote default 0, unlimited).
        max_fails: Failed attempts before marking unavailable (default 1).
        fail_timeout: Window for ``max_fails`` (default ``"10s"``).
        slow_start: Weight ramp-up period (default ``"0s"``).
        backup: Whether the server is a backup (default ``False``).
        down: Whether the server is marked down (default ``False``).
        weight: Load-balancing weight (default 1).
        service: DNS SRV service name, when resolving by service.
    """

    id: int | None = None
    server: str
    max_conns: int | None = None
    max_fails: int | None = None
    fail_timeout: str | None = None
    slow_start: str | None = None
    backup: bool | None = None
    down: bool | None = None
    weight: int | None = None
    service: str | None = None

    model_config = {"frozen": True}

    @field_validator("server")
    @classmethod
    def _valid_address(cls, value: str) -> str:
        is_valid, error_msg = validate_server_address(value)
        if not is_valid:
            raise ValueError(error_msg)
        return value

    @field_validator("fail_timeout", "slow_start", "service", mode="before")
    @classmethod
    def _empty_string_is_unset(cls, value: Any) -> Any:
        if value == "":
            return None
        return value

    @classmethod
    def from_payload(cls: type[S], data: dict[str, Any]) -> S:
        """Decode a server object from the remote API (unknown keys ignored)."""
        return cls.model_validate(data)

    def to_payload(self) -> dict[str, Any]:
        """JSON body for add/update calls: unset fields and ``id`` omitted."""
        return self.model_dump(exclude_none=True, exclude={"id"})

    def with_id(self: S, server_id: int | None) -> S:
        return self.model_copy(update={"id": server_id})

    def with_server(self: S, server: str) -> S:
        return self.model_copy(update={"server": server})


class UpstreamServer(ServerBase):
    """Server of an HTTP upstream.

    Attributes:
        route: Session-affinity route name.
        drain: Whether the server is draining (default ``False``).
    """

    route: str | None = None
    drain: bool | None = None

    @field_validator("route", mode="before")
    @classmethod
    def _empty_route_is_unset(cls, value: Any) -> Any:
        if value == "":
            return None
        return value


class StreamUpstreamServer(ServerBase):
    """Server of a stream (TCP/UDP) upstream."""


ServerRecord = Union[UpstreamServer, StreamUpstreamServer]


class ReconcileResult(BaseModel):
    """Outcome of reconciling one upstream.

    The ``added``/``deleted``/``updated`` lists hold exactly the servers
    the remote acknowledged (or, for a dry run, would have been sent).

    Attributes:
        upstream: Upstream name.
        kind: ``"http"`` or ``"stream"``.
        dry_run: Whether mutating calls were skipped.
        added: Servers created in the upstream.
        deleted: Servers removed from the upstream.
        updated: Servers whose parameters were changed (with remote IDs).
        error: Aggregate ``ReconcileError`` when anything failed.
        started_at: ISO 8601 timestamp when reconciliation started.
        completed_at: ISO 8601 timestamp when reconciliation completed.
    """

    upstream: str
    kind: Literal["http", "stream"] = "http"
    dry_run: bool = False
    added: list[ServerRecord] = []
    deleted: list[ServerRecord] = []
    updated: list[ServerRecord] = []
    error: Exception | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def changed(self) -> bool:
        return bool(self.added or self.deleted or self.updated)

    @property
    def errors(self) -> list[BaseException]:
        """Individual failures joined in ``error``."""
        if self.error is None:
            return []
        if isinstance(self.error, BaseExceptionGroup):
            return list(self.error.exceptions)
        return [self.error]

    def raise_for_error(self) -> None:
        """Raise the aggregate error, if any."""
        if self.error is not None:
            raise self.error

    def summary(self) -> str:
        """One-line summary with counts by operation."""
        text = (
            f"{self.kind} upstream '{self.upstream}': "
            f"{len(self.added)} added, {len(self.deleted)} deleted, "
            f"{len(self.updated)} updated"
        )
        if self.dry_run:
            text += " (dry run)"
        if self.error is not None:
            text += f", {len(self.errors)} errors"
        return text

