"""Reconciliation engine for the servers of one upstream.

The ``Reconciler`` makes the remote server set of an upstream match a
desired list.  A run:

1. Normalizes desired addresses and collapses duplicates.  Duplicates with
   different parameters make their address ambiguous: it is reported and
   left untouched on the remote.
2. Fetches the current servers of the upstream.  Failure here aborts the
   run before any change is made.
3. Diffs desired against remote (``determine_updates``).
4. Adds, then deletes, then updates servers, one request each.

Error handling is per-server: an ``ApiError`` or ``TransportError`` on one
call is recorded and the run continues.  A cancelled or expired
``CallContext`` (``OperationCancelled``) stops the run.  Every error is
joined into the ``ReconcileError`` returned in ``ReconcileResult.error``;
the success lists hold exactly what the remote acknowledged.

There is no locking: concurrent runs against the same upstream each fetch
their own baseline and race at the remote.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Literal, Sequence, TypeVar

from ..core.context import CallContext, background
from ..core.errors import (
    ApiError,
    OperationCancelled,
    ParameterMismatchError,
    TransportError,
    join_errors,
)
from .differ import determine_updates
from .identity import normalize_address, same_parameters
from .models import ReconcileResult, ServerBase

if TYPE_CHECKING:
    from ..core.client import UpstreamClient

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=ServerBase)


def deduplicate_servers(
    upstream: str, servers: Sequence[S]
) -> tuple[list[S], set[str], list[ParameterMismatchError]]:
    """Normalize addresses and collapse duplicate desired servers.

    Records sharing a normalized address collapse into the first one when
    all of them have the same parameters.  Otherwise the address is
    ambiguous and none of its records is kept.

    Returns:
        ``(unique, ambiguous, errors)``: unique records in first-seen order,
        the set of ambiguous addresses, and one ``ParameterMismatchError``
        per ambiguous address.
    """
    first: dict[str, S] = {}
    ambiguous: set[str] = set()
    errors: list[ParameterMismatchError] = []

    for record in servers:
        key = normalize_address(record.server)
        record = record.with_server(key)
        if key not in first:
            first[key] = record
            continue
        if key in ambiguous:
            continue
        if not same_parameters(record, first[key]):
            ambiguous.add(key)
            errors.append(ParameterMismatchError(key, upstream))

    unique = [r for key, r in first.items() if key not in ambiguous]
    return unique, ambiguous, errors


class Reconciler:
    """Apply a desired server list to one kind of upstream.

    Args:
        client: Client used for every remote call.
        kind: ``"http"`` or ``"stream"``.
    """

    def __init__(
        self,
        client: UpstreamClient,
        kind: Literal["http", "stream"],
    ) -> None:
        self.client = client
        self.kind = kind

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def reconcile(
        self,
        upstream: str,
        servers: Sequence[ServerBase],
        ctx: CallContext | None = None,
        dry_run: bool = False,
    ) -> ReconcileResult:
        """Reconcile the servers of *upstream* with *servers*.

        Args:
            upstream: Upstream name.
            servers: Desired servers (IDs ignored).
            ctx: Bounds every remote call; defaults to no deadline.
            dry_run: If ``True``, compute the plan but send no changes.

        Returns:
            A ``ReconcileResult`` with the applied (or planned) operations
            and the aggregate error, if any.

        Raises:
            ApiError, TransportError: The current servers could not be
                fetched.  Nothing was changed.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        ctx = ctx or background()

        unique, ambiguous, errors = deduplicate_servers(upstream, servers)
        for err in errors:
            logger.warning("%s", err)

        try:
            remote = self.client.list_servers(self.kind, upstream, ctx)
        except Exception as exc:
            logger.error(
                "Failed to fetch servers of %s upstream %s: %s",
                self.kind,
                upstream,
                exc,
            )
            raise

        remote = [r for r in remote if r.server not in ambiguous]
        to_add, to_delete, to_update = determine_updates(unique, remote)
        logger.debug(
            "Plan for %s upstream %s: %d to add, %d to delete, %d to update",
            self.kind,
            upstream,
            len(to_add),
            len(to_delete),
            len(to_update),
        )

        failures: list[Exception] = list(errors)
        if dry_run:
            added, deleted, updated = to_add, to_delete, to_update
        else:
            added, deleted, updated = [], [], []
            steps: list[tuple[str, list[ServerBase], Callable, list]] = [
                ("add", to_add, self.client.create_server, added),
                ("delete", to_delete, self.client.remove_server, deleted),
                ("update", to_update, self.client.patch_server, updated),
            ]
            try:
                for verb, records, call, done in steps:
                    self._apply(
                        verb, upstream, records, call, done, failures, ctx
                    )
            except OperationCancelled as exc:
                logger.error(
                    "Stopping reconciliation of %s upstream %s: %s",
                    self.kind,
                    upstream,
                    exc,
                )
                failures.append(exc)

        error = join_errors(
            f"failed to update servers of {upstream} upstream", failures
        )
        return ReconcileResult(
            upstream=upstream,
            kind=self.kind,
            dry_run=dry_run,
            added=added,
            deleted=deleted,
            updated=updated,
            error=error,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )

    # ------------------------------------------------------------------
    # Operation batches
    # ------------------------------------------------------------------

    def _apply(
        self,
        verb: str,
        upstream: str,
        records: list[ServerBase],
        call: Callable,
        done: list[ServerBase],
        failures: list[Exception],
        ctx: CallContext,
    ) -> None:
        """Issue *call* for each record; ``OperationCancelled`` propagates."""
        for record in records:
            try:
                call(self.kind, upstream, record, ctx)
            except OperationCancelled:
                raise
            except ApiError as exc:
                logger.warning(
                    "Failed to %s server %s (status=%s, code=%s): %s",
                    verb,
                    record.server,
                    exc.status,
                    exc.code or "-",
                    exc,
                )
                failures.append(exc)
                continue
            except TransportError as exc:
                logger.warning(
                    "Failed to %s server %s: %s", verb, record.server, exc
                )
                failures.append(exc)
                continue
            logger.info(
                "%s upstream %s: %s server %s",
                self.kind,
                upstream,
                _PAST_TENSE[verb],
                record.server,
            )
            done.append(record)


_PAST_TENSE = {"add": "added", "delete": "deleted", "update": "updated"}
