"""Reconciliation report formatting functions.

Provides human-readable and machine-readable output for reconciliation runs:

- ``format_reconcile_report`` -- full post-run summary for one upstream.
- ``report_to_json`` -- structured dict for ``--json`` CLI output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..core.errors import find_status_error

if TYPE_CHECKING:
    from .models import ReconcileResult, ServerBase


def _describe(server: ServerBase) -> str:
    params = server.model_dump(exclude_none=True, exclude={"id", "server"})
    text = server.server
    if server.id is not None:
        text += f" (id={server.id})"
    if params:
        text += " " + " ".join(f"{k}={v}" for k, v in params.items())
    return text


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_reconcile_report(result: ReconcileResult) -> str:
    """Format a reconciliation result as human-readable text.

    Sections are only included when they contain at least one server.

    Args:
        result: The completed reconciliation result.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Reconcile report for {result.kind} upstream '{result.upstream}'"
    if result.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {result.started_at}")
    if result.completed_at:
        lines.append(f"Completed: {result.completed_at}")
    lines.append("")

    errors = result.errors
    lines.append(
        f"{len(result.added)} added, {len(result.deleted)} deleted, "
        f"{len(result.updated)} updated, {len(errors)} errors"
    )
    lines.append("")

    added_title = "To add:" if result.dry_run else "Added:"
    deleted_title = "To delete:" if result.dry_run else "Deleted:"
    updated_title = "To update:" if result.dry_run else "Updated:"

    for title, servers in (
        (added_title, result.added),
        (deleted_title, result.deleted),
        (updated_title, result.updated),
    ):
        if servers:
            lines.append(title)
            for server in servers:
                lines.append(f"  {_describe(server)}")
            lines.append("")

    if errors:
        lines.append("Errors:")
        for err in errors:
            lines.append(f"  {err}")
        lines.append("")

    if not result.changed and not errors:
        lines.append("Nothing to do: upstream already matches.")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def _error_to_json(error: BaseException) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "type": type(error).__name__,
        "message": str(error),
    }
    status_error = find_status_error(error)
    if status_error is not None:
        entry["status"] = status_error.status
        entry["code"] = status_error.code
    return entry


def report_to_json(result: ReconcileResult) -> dict[str, Any]:
    """Convert a reconciliation result to a JSON-serializable dict.

    Args:
        result: The reconciliation result.

    Returns:
        Dict with upstream metadata, per-operation server lists (as sent to
        the API, plus ``id`` when known), and a list of errors.
    """

    def _server(server: ServerBase) -> dict[str, Any]:
        return server.model_dump(exclude_none=True)

    return {
        "upstream": result.upstream,
        "kind": result.kind,
        "dry_run": result.dry_run,
        "started_at": result.started_at,
        "completed_at": result.completed_at,
        "summary": {
            "added": len(result.added),
            "deleted": len(result.deleted),
            "updated": len(result.updated),
            "errors": len(result.errors),
        },
        "added": [_server(s) for s in result.added],
        "deleted": [_server(s) for s in result.deleted],
        "updated": [_server(s) for s in result.updated],
        "errors": [_error_to_json(e) for e in result.errors],
    }
