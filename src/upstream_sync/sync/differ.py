"""Compute add/delete/update sets between desired and remote servers."""

from __future__ import annotations

from typing import Sequence, TypeVar

from .identity import normalize_address, same_parameters
from .models import ServerBase

S = TypeVar("S", bound=ServerBase)


def determine_updates(
    desired: Sequence[S], remote: Sequence[S]
) -> tuple[list[S], list[S], list[S]]:
    """Diff *desired* against the servers currently in the upstream.

    Desired addresses are normalized for matching only; ``to_add`` holds
    the records as given.  Remote addresses are used as reported.

    Args:
        desired: Servers the upstream should contain (no IDs).
        remote: Servers the upstream contains (with IDs).

    Returns:
        ``(to_add, to_delete, to_update)``.  ``to_add`` and ``to_update``
        follow *desired* order, ``to_delete`` follows *remote* order.
        ``to_update`` entries are desired records carrying the remote ID.
    """
    by_key: dict[str, S] = {}
    for record in remote:
        by_key.setdefault(record.server, record)

    to_add: list[S] = []
    to_update: list[S] = []
    claimed: set[str] = set()

    for record in desired:
        key = normalize_address(record.server)
        match = by_key.get(key)
        if match is None:
            to_add.append(record)
            continue
        claimed.add(key)
        if not same_parameters(record.with_server(key), match):
            to_update.append(record.with_id(match.id))

    to_delete = [r for r in remote if r.server not in claimed]
    return to_add, to_delete, to_update

