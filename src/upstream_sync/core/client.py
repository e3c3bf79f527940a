from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator, Literal, Sequence
from urllib.parse import quote

import pydantic
import requests

from ..sync.identity import normalize_address
from ..sync.models import (
    ReconcileResult,
    ServerBase,
    StreamUpstreamServer,
    UpstreamServer,
)
from ..validators import validate_upstream_name
from .context import CallContext, background
from .errors import (
    ApiError,
    ConfigurationError,
    ResponseDecodeError,
    ServerExistsError,
    ServerNotFoundError,
    TransportError,
    UpstreamSyncError,
)
from .versions import (
    check_supported,
    ensure_advertised,
    negotiate,
    parse_versions,
)

if TYPE_CHECKING:
    from ..config import Config

logger = logging.getLogger(__name__)

Kind = Literal["http", "stream"]

_MODELS: dict[str, type[ServerBase]] = {
    "http": UpstreamServer,
    "stream": StreamUpstreamServer,
}

_MUTATING_METHODS = ("POST", "PUT", "PATCH", "DELETE")


@contextmanager
def _error_context(context: str) -> Iterator[None]:
    """Prefix errors raised inside the block with *context*."""
    try:
        yield
    except ApiError as exc:
        raise exc.wrap(context) from exc
    except TransportError as exc:
        raise type(exc)(f"{context}: {exc}") from exc


class UpstreamClient:
    """Client for the load balancer's administrative API.

    The API version is resolved once, here, and never changes afterwards:

    - ``config.api_version`` must be within the range this build supports
      (checked before any request).
    - ``config.check_api``: the remote must advertise that version.
    - ``config.max_api``: adopt the highest version both sides support,
      keeping ``config.api_version`` when the remote list is unusable.

    Raises:
        ConfigurationError: Unsupported or unadvertised API version, or
            an invalid API URL.
        ApiError, TransportError: ``check_api`` could not fetch versions.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.api_url = config.api_url.rstrip("/")
        if not self.api_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"Invalid API URL '{config.api_url}': must start with http:// or https://"
            )

        check_supported(config.api_version)
        self.api_version = config.api_version

        if config.check_api:
            advertised = self._fetch_versions(background())
            ensure_advertised(self.api_version, advertised)

        if config.max_api:
            try:
                advertised = self._fetch_versions(background())
            except UpstreamSyncError as exc:
                logger.warning(
                    "Could not fetch API versions, keeping version %d: %s",
                    self.api_version,
                    exc,
                )
            else:
                self.api_version = negotiate(self.api_version, advertised)

        logger.debug(
            "Using API version %d at %s", self.api_version, self.api_url
        )

    @property
    def session(self) -> requests.Session:
        """Session of the current thread."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        if self.config.username:
            session.auth = (self.config.username, self.config.password)
        session.verify = not self.config.insecure
        return session

    def _request(
        self,
        method: str,
        path: str,
        ctx: CallContext | None = None,
        body: Any = None,
        expected_status: int = 200,
        decode: bool = True,
    ) -> Any:
        """
        Send one request to the API and decode its JSON response.

        Returns:
            Decoded JSON body, or ``None`` for an empty body or when
            *decode* is false.

        Raises:
            OperationCancelled: *ctx* was cancelled or its deadline passed.
            TransportError: No HTTP response was received.
            ApiError: The response status was not *expected_status*.
            ResponseDecodeError: The expected response was not valid JSON.
        """
        ctx = ctx or background()
        ctx.check()

        url = f"{self.api_url}{path}"
        headers = {"Accept": "application/json"}
        if method in _MUTATING_METHODS:
            headers["Content-Type"] = "application/json"

        try:
            response = self._get_session().request(
                method,
                url,
                json=body,
                headers=headers,
                timeout=ctx.request_timeout(self.config.timeout),
            )
        except requests.Timeout as exc:
            raise TransportError(f"{method} {url} timed out") from exc
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if response.status_code != expected_status:
            raise ApiError.from_response(response, expected_status)

        if not decode or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ResponseDecodeError(
                f"failed to decode response of {method} {url}: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # API versions
    # ------------------------------------------------------------------

    def _fetch_versions(self, ctx: CallContext) -> list[int]:
        with _error_context("failed to get API versions"):
            body = self._request("GET", "/", ctx)
        return parse_versions(body)

    def resolved_version(self) -> int:
        """API version used for every request made by this client."""
        return self.api_version

    def max_remote_version(self, ctx: CallContext | None = None) -> int:
        """
        Highest API version the remote advertises.

        Independent of the version this client uses.

        Raises:
            ApiError, TransportError: The version list could not be fetched.
            ConfigurationError: The remote advertises no integer version.
        """
        advertised = self._fetch_versions(ctx or background())
        if not advertised:
            raise ConfigurationError(
                "the server does not advertise any API version"
            )
        return max(advertised)

    # ------------------------------------------------------------------
    # Server primitives (shared by HTTP and stream upstreams)
    # ------------------------------------------------------------------

    def _servers_path(self, kind: Kind, upstream: str) -> str:
        is_valid, error_msg = validate_upstream_name(upstream)
        if not is_valid:
            raise ConfigurationError(error_msg)
        return (
            f"/{self.api_version}/{kind}/upstreams/"
            f"{quote(upstream, safe='')}/servers/"
        )

    def list_servers(
        self, kind: Kind, upstream: str, ctx: CallContext | None = None
    ) -> list[ServerBase]:
        """
        Get the servers of an upstream.

        Returns:
            Server records with remote IDs, in the order the remote lists them.

        Raises:
            ApiError: Upstream not found or other remote failure.
            TransportError: No response.
            ResponseDecodeError: The body is not a JSON list of server records.
        """
        path = self._servers_path(kind, upstream)
        with _error_context(f"failed to get servers of {upstream} upstream"):
            body = self._request("GET", path, ctx)
        if body is None:
            return []
        if not isinstance(body, list):
            raise ResponseDecodeError(
                f"failed to get servers of {upstream} upstream: expected a list, got {type(body).__name__}"
            )
        model = _MODELS[kind]
        try:
            return [model.from_payload(item) for item in body]
        except pydantic.ValidationError as exc:
            raise ResponseDecodeError(
                f"failed to get servers of {upstream} upstream: malformed server record: {exc}"
            ) from exc

    def create_server(
        self,
        kind: Kind,
        upstream: str,
        server: ServerBase,
        ctx: CallContext | None = None,
    ) -> None:
        """POST one server without checking whether it already exists."""
        path = self._servers_path(kind, upstream)
        with _error_context(
            f"failed to add {server.server} server to {upstream} upstream"
        ):
            self._request(
                "POST",
                path,
                ctx,
                body=server.to_payload(),
                expected_status=201,
                decode=False,
            )

    def remove_server(
        self,
        kind: Kind,
        upstream: str,
        server: ServerBase,
        ctx: CallContext | None = None,
    ) -> None:
        """DELETE one server by its remote ID."""
        path = f"{self._servers_path(kind, upstream)}{server.id}"
        with _error_context(
            f"failed to remove {server.server} server from {upstream} upstream"
        ):
            self._request("DELETE", path, ctx, decode=False)

    def patch_server(
        self,
        kind: Kind,
        upstream: str,
        server: ServerBase,
        ctx: CallContext | None = None,
    ) -> None:
        """PATCH the parameters of one server identified by ``server.id``."""
        path = f"{self._servers_path(kind, upstream)}{server.id}"
        with _error_context(
            f"failed to update {server.server} server to {upstream} upstream"
        ):
            self._request(
                "PATCH", path, ctx, body=server.to_payload(), decode=False
            )

    def _find_server(
        self,
        kind: Kind,
        upstream: str,
        address: str,
        ctx: CallContext | None,
    ) -> ServerBase | None:
        key = normalize_address(address)
        for record in self.list_servers(kind, upstream, ctx):
            if record.server == key:
                return record
        return None

    # ------------------------------------------------------------------
    # HTTP upstreams
    # ------------------------------------------------------------------

    def check_if_upstream_exists(
        self, upstream: str, ctx: CallContext | None = None
    ) -> None:
        """
        Raise ``ApiError`` (typically 404) if the HTTP upstream does not exist.
        """
        self.list_servers("http", upstream, ctx)

    def get_http_servers(
        self, upstream: str, ctx: CallContext | None = None
    ) -> list[UpstreamServer]:
        return self.list_servers("http", upstream, ctx)  # type: ignore[return-value]

    def add_http_server(
        self,
        upstream: str,
        server: UpstreamServer,
        ctx: CallContext | None = None,
    ) -> None:
        """
        Add a server to an HTTP upstream.

        The address is normalized (default port 80) before it is sent.

        Raises:
            ServerExistsError: The address is already in the upstream.
            ApiError, TransportError: The request failed.
        """
        self._add_server("http", upstream, server, ctx)

    def delete_http_server(
        self, upstream: str, address: str, ctx: CallContext | None = None
    ) -> None:
        """
        Remove a server from an HTTP upstream by address.

        Raises:
            ServerNotFoundError: The address is not in the upstream.
            ApiError, TransportError: The request failed.
        """
        self._delete_server("http", upstream, address, ctx)

    def update_http_server(
        self,
        upstream: str,
        server: UpstreamServer,
        ctx: CallContext | None = None,
    ) -> None:
        """
        Update the parameters of a server of an HTTP upstream.

        When ``server.id`` is unset the ID is looked up by address.

        Raises:
            ServerNotFoundError: No server has that address.
            ApiError, TransportError: The request failed.
        """
        self._update_server("http", upstream, server, ctx)

    def reconcile_http_servers(
        self,
        upstream: str,
        servers: Sequence[UpstreamServer],
        ctx: CallContext | None = None,
        dry_run: bool = False,
    ) -> ReconcileResult:
        """
        Make the servers of an HTTP upstream match *servers*.

        See ``upstream_sync.sync.engine.Reconciler`` for the semantics.
        """
        from ..sync.engine import Reconciler

        return Reconciler(self, "http").reconcile(
            upstream, servers, ctx=ctx, dry_run=dry_run
        )

    # ------------------------------------------------------------------
    # Stream upstreams
    # ------------------------------------------------------------------

    def check_if_stream_upstream_exists(
        self, upstream: str, ctx: CallContext | None = None
    ) -> None:
        self.list_servers("stream", upstream, ctx)

    def get_stream_servers(
        self, upstream: str, ctx: CallContext | None = None
    ) -> list[StreamUpstreamServer]:
        return self.list_servers("stream", upstream, ctx)  # type: ignore[return-value]

    def add_stream_server(
        self,
        upstream: str,
        server: StreamUpstreamServer,
        ctx: CallContext | None = None,
    ) -> None:
        self._add_server("stream", upstream, server, ctx)

    def delete_stream_server(
        self, upstream: str, address: str, ctx: CallContext | None = None
    ) -> None:
        self._delete_server("stream", upstream, address, ctx)

    def update_stream_server(
        self,
        upstream: str,
        server: StreamUpstreamServer,
        ctx: CallContext | None = None,
    ) -> None:
        self._update_server("stream", upstream, server, ctx)

    def reconcile_stream_servers(
        self,
        upstream: str,
        servers: Sequence[StreamUpstreamServer],
        ctx: CallContext | None = None,
        dry_run: bool = False,
    ) -> ReconcileResult:
        """Make the servers of a stream upstream match *servers*."""
        from ..sync.engine import Reconciler

        return Reconciler(self, "stream").reconcile(
            upstream, servers, ctx=ctx, dry_run=dry_run
        )

    # ------------------------------------------------------------------
    # Single-server helpers
    # ------------------------------------------------------------------

    def _add_server(
        self,
        kind: Kind,
        upstream: str,
        server: ServerBase,
        ctx: CallContext | None,
    ) -> None:
        server = server.with_server(normalize_address(server.server))
        if self._find_server(kind, upstream, server.server, ctx) is not None:
            raise ServerExistsError(
                f"failed to add {server.server} server to {upstream} upstream: server already exists"
            )
        self.create_server(kind, upstream, server, ctx)

    def _delete_server(
        self,
        kind: Kind,
        upstream: str,
        address: str,
        ctx: CallContext | None,
    ) -> None:
        existing = self._find_server(kind, upstream, address, ctx)
        if existing is None:
            raise ServerNotFoundError(
                f"failed to remove {address} server from {upstream} upstream: server doesn't exist"
            )
        self.remove_server(kind, upstream, existing, ctx)

    def _update_server(
        self,
        kind: Kind,
        upstream: str,
        server: ServerBase,
        ctx: CallContext | None,
    ) -> None:
        server = server.with_server(normalize_address(server.server))
        if server.id is None:
            existing = self._find_server(kind, upstream, server.server, ctx)
            if existing is None:
                raise ServerNotFoundError(
                    f"failed to update {server.server} server to {upstream} upstream: server doesn't exist"
                )
            server = server.with_id(existing.id)
        self.patch_server(kind, upstream, server, ctx)
