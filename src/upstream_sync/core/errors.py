"""Exception taxonomy for the load balancer API client.

Three families of failure are kept apart so callers can react correctly:

- ``ConfigurationError``: detected locally before any mutating request
  (unsupported API version, ambiguous duplicate servers).
- ``TransportError``: the request never produced an HTTP response
  (connection refused, timeout, cancelled call context).
- ``ApiError``: the remote answered with an unexpected status.  Carries the
  remote ``status`` and machine-readable ``code``.

Several per-server failures are joined into a single ``ReconcileError``
(an ``ExceptionGroup``).  ``find_status_error()`` digs the first error
exposing ``status`` and ``code`` out of wrapped or grouped exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Protocol, runtime_checkable

if TYPE_CHECKING:
    import requests


class UpstreamSyncError(Exception):
    """Base class for all upstream_sync exceptions."""


class ConfigurationError(UpstreamSyncError, ValueError):
    """Invalid client-side input, rejected before any mutating request."""


class ParameterMismatchError(ConfigurationError):
    """Several desired records share an address but differ in parameters."""

    def __init__(self, server: str, upstream: str) -> None:
        self.server = server
        self.upstream = upstream
        super().__init__(
            f"failed to update {server} server to {upstream} upstream: "
            "duplicate servers have different parameters"
        )


class ServerExistsError(UpstreamSyncError):
    """The server address is already present in the upstream."""


class ServerNotFoundError(UpstreamSyncError):
    """The server address is not present in the upstream."""


class ResponseDecodeError(UpstreamSyncError):
    """A successful response carried a body that is not the expected JSON."""


class TransportError(UpstreamSyncError):
    """Request failed without an HTTP response (DNS, refused, timeout)."""


class OperationCancelled(TransportError):
    """The call context was cancelled or ran past its deadline."""


@runtime_checkable
class StatusError(Protocol):
    """Anything exposing a remote HTTP-like status and a machine code."""

    @property
    def status(self) -> int: ...  # pragma: no cover

    @property
    def code(self) -> str: ...  # pragma: no cover


class ApiError(UpstreamSyncError):
    """The remote API answered with an unexpected status.

    Attributes:
        status: HTTP status reported by the remote (``error.status`` in the
            body, or the response status when the body is not decodable).
        code: Machine-readable error code (e.g. ``UpstreamServerNotFound``).
        text: Human-readable description from the remote.
        request_id: Remote request identifier, when reported.
        href: Documentation link, when reported.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int,
        code: str = "",
        text: str = "",
        request_id: str = "",
        href: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self._status = status
        self._code = code
        self.text = text
        self.request_id = request_id
        self.href = href

    @property
    def status(self) -> int:
        return self._status

    @property
    def code(self) -> str:
        return self._code

    def wrap(self, context: str) -> ApiError:
        """Return a new ``ApiError`` prefixed with *context*.

        The remote ``status``/``code`` are preserved and the original error
        is chained as ``__cause__``.
        """
        wrapped = ApiError(
            f"{context}: {self.message}",
            status=self._status,
            code=self._code,
            text=self.text,
            request_id=self.request_id,
            href=self.href,
        )
        wrapped.__cause__ = self
        return wrapped

    @classmethod
    def from_response(
        cls, response: requests.Response, expected_status: int
    ) -> ApiError:
        """Build an ``ApiError`` from an unexpected HTTP response.

        The body is expected to look like::

            {"error": {"status": 404, "text": "...", "code": "..."},
             "request_id": "...", "href": "..."}

        When it does not, the HTTP status is used and ``code`` stays empty.
        """
        status = response.status_code
        code = text = request_id = href = ""
        try:
            body: Any = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            error = body["error"]
            try:
                status = int(error.get("status") or status)
            except (TypeError, ValueError):
                status = response.status_code
            text = str(error.get("text") or "")
            code = str(error.get("code") or "")
            request_id = str(body.get("request_id") or "")
            href = str(body.get("href") or "")
            detail = (
                f"error.status={status}; error.text={text}; "
                f"error.code={code}; request_id={request_id}; href={href}"
            )
        else:
            detail = f"status={status}; body could not be decoded"

        return cls(
            f"expected {expected_status} response, got {response.status_code}: {detail}",
            status=status,
            code=code,
            text=text,
            request_id=request_id,
            href=href,
        )


class ReconcileError(ExceptionGroup):
    """Aggregate of every failure seen during one reconciliation.

    Unlike a plain ``ExceptionGroup`` its string form lists each member
    error, so failed server addresses and remote codes stay readable.
    """

    def __str__(self) -> str:
        lines = [self.message]
        lines.extend(f"  - {exc}" for exc in self.exceptions)
        return "\n".join(lines)

    def derive(self, excs):  # type: ignore[override]
        return ReconcileError(self.message, excs)


def join_errors(
    message: str, errors: Iterable[Exception]
) -> ReconcileError | None:
    """Join *errors* into a ``ReconcileError``, or ``None`` if there are none."""
    collected = list(errors)
    if not collected:
        return None
    return ReconcileError(message, collected)


def find_status_error(exc: BaseException | None) -> StatusError | None:
    """Return the first error in *exc*'s tree that exposes ``status``/``code``.

    Searches exception-group members and the ``__cause__``/``__context__``
    chains depth-first.  Returns ``None`` for plain transport or
    validation errors.
    """
    stack: list[BaseException] = [exc] if exc is not None else []
    seen: set[int] = set()
    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))

        if isinstance(current, StatusError):
            return current
        if current.__context__ is not None:
            stack.append(current.__context__)
        if current.__cause__ is not None:
            stack.append(current.__cause__)
        if isinstance(current, BaseExceptionGroup):
            stack.extend(reversed(current.exceptions))
    return None
