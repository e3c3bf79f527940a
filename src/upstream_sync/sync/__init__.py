"""Upstream server reconciliation.

Makes the servers of a load balancer upstream match a desired list using
the fewest add/delete/update calls.

Modules:

- ``identity``  -- address normalization, remote defaults and parameter
  equality.
- ``differ``    -- ``determine_updates``: pure desired-vs-remote diff.
- ``engine``    -- ``Reconciler`` and ``deduplicate_servers``.
- ``models``    -- ``UpstreamServer``, ``StreamUpstreamServer``,
  ``ReconcileResult``.
- ``reporter``  -- human-readable and JSON report formatting.

Usage example
-------------
::

    from upstream_sync import UpstreamClient, load_config
    from upstream_sync.sync import UpstreamServer, format_reconcile_report

    client = UpstreamClient(load_config(url="http://lb:8080/api"))
    result = client.reconcile_http_servers(
        "backend",
        [UpstreamServer(server="10.0.0.1"), UpstreamServer(server="10.0.0.2")],
        dry_run=True,
    )
    print(format_reconcile_report(result))
"""

from .differ import determine_updates
from .engine import Reconciler, deduplicate_servers
from .identity import (
    apply_defaults,
    normalize_address,
    same_parameters,
    server_key,
)
from .models import (
    ReconcileResult,
    ServerRecord,
    StreamUpstreamServer,
    UpstreamServer,
)
from .reporter import format_reconcile_report, report_to_json

__all__ = [
    "Reconciler",
    "ReconcileResult",
    "ServerRecord",
    "StreamUpstreamServer",
    "UpstreamServer",
    "apply_defaults",
    "deduplicate_servers",
    "determine_updates",
    "format_reconcile_report",
    "normalize_address",
    "report_to_json",
    "same_parameters",
    "server_key",
]
