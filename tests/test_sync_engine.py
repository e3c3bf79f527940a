"""Tests for the reconciliation engine: dedupe, batches and error joining."""

import logging

import pytest

from upstream_sync.core.context import CallContext
from upstream_sync.core.errors import (
    ApiError,
    OperationCancelled,
    ParameterMismatchError,
    ReconcileError,
    TransportError,
    find_status_error,
)
from upstream_sync.sync.engine import Reconciler, deduplicate_servers
from upstream_sync.sync.models import StreamUpstreamServer, UpstreamServer


class FakeClient:
    """In-memory stand-in for UpstreamClient's server primitives."""

    def __init__(self, remote=None, failures=None, list_error=None):
        self.remote = list(remote or [])
        self.failures = failures or {}
        self.list_error = list_error
        self.calls = []

    def list_servers(self, kind, upstream, ctx=None):
        self.calls.append(("list", kind, upstream))
        if self.list_error is not None:
            raise self.list_error
        return list(self.remote)

    def _call(self, verb, kind, upstream, server):
        self.calls.append((verb, server.server))
        error = self.failures.get((verb, server.server))
        if error is not None:
            raise error

    def create_server(self, kind, upstream, server, ctx=None):
        self._call("add", kind, upstream, server)

    def remove_server(self, kind, upstream, server, ctx=None):
        self._call("delete", kind, upstream, server)

    def patch_server(self, kind, upstream, server, ctx=None):
        self._call("update", kind, upstream, server)

    def mutations(self):
        return [c for c in self.calls if c[0] != "list"]


def api_error(status=500, code="ServerError"):
    return ApiError(
        f"expected 201 response, got {status}", status=status, code=code
    )


# ---------------------------------------------------------------------------
# deduplicate_servers
# ---------------------------------------------------------------------------


class TestDeduplicateServers:
    def test_identical_duplicates_collapse(self):
        servers = [
            UpstreamServer(server="127.0.0.1"),
            UpstreamServer(server="127.0.0.1:80"),
            UpstreamServer(server="127.0.0.2:80"),
        ]
        unique, ambiguous, errors = deduplicate_servers("u", servers)

        assert [s.server for s in unique] == ["127.0.0.1:80", "127.0.0.2:80"]
        assert ambiguous == set()
        assert errors == []

    def test_explicit_default_is_not_a_conflict(self):
        servers = [
            UpstreamServer(server="127.0.0.1:80"),
            UpstreamServer(server="127.0.0.1:80", max_fails=1),
        ]
        unique, ambiguous, errors = deduplicate_servers("u", servers)

        assert len(unique) == 1
        assert errors == []

    def test_conflicting_duplicates_are_ambiguous(self):
        servers = [
            UpstreamServer(server="127.0.0.1:80", weight=1),
            UpstreamServer(server="127.0.0.2:80"),
            UpstreamServer(server="127.0.0.1:80", weight=2),
            UpstreamServer(server="127.0.0.1", weight=3),
        ]
        unique, ambiguous, errors = deduplicate_servers("backend", servers)

        assert [s.server for s in unique] == ["127.0.0.2:80"]
        assert ambiguous == {"127.0.0.1:80"}
        assert len(errors) == 1
        assert isinstance(errors[0], ParameterMismatchError)
        assert str(errors[0]) == (
            "failed to update 127.0.0.1:80 server to backend upstream: "
            "duplicate servers have different parameters"
        )


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class TestReconciler:
    def test_applies_add_delete_update_in_order(self):
        client = FakeClient(
            remote=[
                UpstreamServer(id=1, server="10.0.0.1:80"),
                UpstreamServer(id=2, server="10.0.0.2:80"),
            ]
        )
        desired = [
            UpstreamServer(server="10.0.0.1:80", weight=3),
            UpstreamServer(server="10.0.0.3"),
        ]

        result = Reconciler(client, "http").reconcile("backend", desired)

        assert result.ok
        assert client.mutations() == [
            ("add", "10.0.0.3:80"),
            ("delete", "10.0.0.2:80"),
            ("update", "10.0.0.1:80"),
        ]
        assert [s.server for s in result.added] == ["10.0.0.3:80"]
        assert [s.id for s in result.deleted] == [2]
        assert [(s.id, s.weight) for s in result.updated] == [(1, 3)]
        assert result.started_at
        assert result.completed_at

    def test_no_changes_when_in_sync(self):
        client = FakeClient(remote=[UpstreamServer(id=0, server="10.0.0.1:80")])

        result = Reconciler(client, "http").reconcile(
            "backend", [UpstreamServer(server="10.0.0.1")]
        )

        assert result.ok
        assert not result.changed
        assert client.mutations() == []

    def test_dry_run_sends_nothing(self):
        client = FakeClient(remote=[UpstreamServer(id=1, server="10.0.0.9:80")])

        result = Reconciler(client, "http").reconcile(
            "backend", [UpstreamServer(server="10.0.0.1:80")], dry_run=True
        )

        assert result.dry_run
        assert client.mutations() == []
        assert [s.server for s in result.added] == ["10.0.0.1:80"]
        assert [s.server for s in result.deleted] == ["10.0.0.9:80"]

    def test_api_error_recorded_and_batch_continues(self):
        client = FakeClient(
            failures={("add", "10.0.0.1:80"): api_error(500, "ServerError")}
        )
        desired = [
            UpstreamServer(server="10.0.0.1:80"),
            UpstreamServer(server="10.0.0.2:80"),
        ]

        result = Reconciler(client, "http").reconcile("backend", desired)

        assert client.mutations() == [
            ("add", "10.0.0.1:80"),
            ("add", "10.0.0.2:80"),
        ]
        assert [s.server for s in result.added] == ["10.0.0.2:80"]
        assert not result.ok
        assert isinstance(result.error, ReconcileError)
        assert len(result.error.exceptions) == 1

        status_error = find_status_error(result.error)
        assert status_error is not None
        assert status_error.status == 500
        assert status_error.code == "ServerError"

    def test_transport_error_recorded_and_batch_continues(self):
        client = FakeClient(
            remote=[UpstreamServer(id=5, server="10.0.0.9:80")],
            failures={("add", "10.0.0.1:80"): TransportError("connection refused")},
        )
        desired = [
            UpstreamServer(server="10.0.0.1:80"),
            UpstreamServer(server="10.0.0.2:80"),
        ]

        result = Reconciler(client, "http").reconcile("backend", desired)

        assert client.mutations() == [
            ("add", "10.0.0.1:80"),
            ("add", "10.0.0.2:80"),
            ("delete", "10.0.0.9:80"),
        ]
        assert [s.server for s in result.added] == ["10.0.0.2:80"]
        assert [s.id for s in result.deleted] == [5]
        assert isinstance(result.error.exceptions[0], TransportError)
        assert find_status_error(result.error) is None

    def test_cancelled_context_stops_batch(self):
        client = FakeClient(
            remote=[UpstreamServer(id=5, server="10.0.0.9:80")],
            failures={("add", "10.0.0.1:80"): OperationCancelled("operation cancelled")},
        )

        result = Reconciler(client, "http").reconcile(
            "backend",
            [UpstreamServer(server="10.0.0.1:80"), UpstreamServer(server="10.0.0.2:80")],
            ctx=CallContext(),
        )

        assert client.mutations() == [("add", "10.0.0.1:80")]
        assert result.added == []
        assert result.deleted == []
        assert isinstance(result.error.exceptions[-1], OperationCancelled)

    def test_partial_successes_kept_on_cancel(self):
        client = FakeClient(
            failures={("add", "10.0.0.2:80"): OperationCancelled("deadline exceeded")},
        )

        result = Reconciler(client, "http").reconcile(
            "backend",
            [
                UpstreamServer(server="10.0.0.1:80"),
                UpstreamServer(server="10.0.0.2:80"),
                UpstreamServer(server="10.0.0.3:80"),
            ],
        )

        assert [s.server for s in result.added] == ["10.0.0.1:80"]
        assert "deadline exceeded" in str(result.error)

    def test_ambiguous_key_neither_added_nor_deleted(self):
        client = FakeClient(
            remote=[
                UpstreamServer(id=1, server="10.0.0.1:80"),
                UpstreamServer(id=2, server="10.0.0.2:80"),
            ]
        )
        desired = [
            UpstreamServer(server="10.0.0.1:80", weight=1),
            UpstreamServer(server="10.0.0.1:80", weight=2),
        ]

        result = Reconciler(client, "http").reconcile("backend", desired)

        assert client.mutations() == [("delete", "10.0.0.2:80")]
        assert [s.id for s in result.deleted] == [2]
        assert len(result.error.exceptions) == 1
        assert isinstance(result.error.exceptions[0], ParameterMismatchError)
        assert "10.0.0.1:80" in str(result.error)

    def test_ambiguous_key_not_added_when_absent(self):
        client = FakeClient()
        desired = [
            UpstreamServer(server="10.0.0.1:80", down=True),
            UpstreamServer(server="10.0.0.1:80", down=False),
            UpstreamServer(server="10.0.0.2:80"),
        ]

        result = Reconciler(client, "http").reconcile("backend", desired)

        assert client.mutations() == [("add", "10.0.0.2:80")]
        assert not result.ok

    def test_fetch_failure_propagates_without_changes(self):
        error = ApiError("expected 200 response, got 404", status=404, code="UpstreamNotFound")
        client = FakeClient(list_error=error)

        with pytest.raises(ApiError) as exc_info:
            Reconciler(client, "http").reconcile(
                "missing", [UpstreamServer(server="10.0.0.1:80")]
            )

        assert exc_info.value.status == 404
        assert client.mutations() == []

    def test_stream_kind_passed_to_client(self):
        client = FakeClient()

        result = Reconciler(client, "stream").reconcile(
            "dns", [StreamUpstreamServer(server="10.0.0.1:53")]
        )

        assert client.calls[0] == ("list", "stream", "dns")
        assert result.kind == "stream"
        assert [s.server for s in result.added] == ["10.0.0.1:53"]

    def test_successes_logged_at_info(self, caplog):
        client = FakeClient()

        with caplog.at_level(logging.INFO, logger="upstream_sync.sync.engine"):
            Reconciler(client, "http").reconcile(
                "backend", [UpstreamServer(server="10.0.0.1:80")]
            )

        assert "added server 10.0.0.1:80" in caplog.text

    def test_raise_for_error(self):
        client = FakeClient(failures={("add", "10.0.0.1:80"): api_error()})

        result = Reconciler(client, "http").reconcile(
            "backend", [UpstreamServer(server="10.0.0.1:80")]
        )

        with pytest.raises(ReconcileError):
            result.raise_for_error()


def test_five_records_two_keys_one_ambiguous():
    client = FakeClient()
    desired = [
        UpstreamServer(server="10.0.0.1"),
        UpstreamServer(server="10.0.0.1:80"),
        UpstreamServer(server="10.0.0.1:80", max_fails=1),
        UpstreamServer(server="10.0.0.2:80", max_conns=1),
        UpstreamServer(server="10.0.0.2", max_conns=2),
    ]

    result = Reconciler(client, "http").reconcile("backend", desired)

    assert [s.server for s in result.added] == ["10.0.0.1:80"]
    assert result.error is not None
    assert "10.0.0.2:80" in str(result.error)
