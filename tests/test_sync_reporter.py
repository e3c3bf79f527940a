"""Tests for reconciliation report formatting."""

import json

from upstream_sync.core.errors import (
    ApiError,
    ParameterMismatchError,
    TransportError,
    join_errors,
)
from upstream_sync.sync.models import ReconcileResult, UpstreamServer
from upstream_sync.sync.reporter import format_reconcile_report, report_to_json


def make_result(**kwargs):
    defaults = {
        "upstream": "backend",
        "started_at": "2026-01-01T00:00:00+00:00",
        "completed_at": "2026-01-01T00:00:01+00:00",
    }
    defaults.update(kwargs)
    return ReconcileResult(**defaults)


class TestFormatReconcileReport:
    def test_nothing_to_do(self):
        text = format_reconcile_report(make_result())

        assert "Reconcile report for http upstream 'backend'" in text
        assert "0 added, 0 deleted, 0 updated, 0 errors" in text
        assert "Nothing to do" in text

    def test_sections(self):
        result = make_result(
            added=[UpstreamServer(server="10.0.0.1:80", weight=2)],
            deleted=[UpstreamServer(id=4, server="10.0.0.9:80")],
        )

        text = format_reconcile_report(result)

        assert "Added:\n  10.0.0.1:80 weight=2" in text
        assert "Deleted:\n  10.0.0.9:80 (id=4)" in text
        assert "Updated:" not in text

    def test_dry_run_titles(self):
        result = make_result(
            dry_run=True, added=[UpstreamServer(server="10.0.0.1:80")]
        )

        text = format_reconcile_report(result)

        assert "(DRY RUN)" in text
        assert "To add:" in text

    def test_errors_listed(self):
        error = join_errors(
            "failed to update servers of backend upstream",
            [ParameterMismatchError("10.0.0.1:80", "backend")],
        )

        text = format_reconcile_report(make_result(error=error))

        assert "Errors:" in text
        assert "duplicate servers have different parameters" in text
        assert "Nothing to do" not in text


class TestReportToJson:
    def test_serializable(self):
        error = join_errors(
            "failed",
            [
                ApiError("bad address", status=400, code="UpstreamBadAddress"),
                TransportError("connection refused"),
            ],
        )
        result = make_result(
            updated=[UpstreamServer(id=1, server="10.0.0.1:80", down=True)],
            error=error,
        )

        data = report_to_json(result)
        json.dumps(data)

        assert data["summary"] == {"added": 0, "deleted": 0, "updated": 1, "errors": 2}
        assert data["updated"] == [{"id": 1, "server": "10.0.0.1:80", "down": True}]
        assert data["errors"][0] == {
            "type": "ApiError",
            "message": "bad address",
            "status": 400,
            "code": "UpstreamBadAddress",
        }
        assert data["errors"][1] == {
            "type": "TransportError",
            "message": "connection refused",
        }

    def test_summary_line(self):
        result = make_result(added=[UpstreamServer(server="10.0.0.1:80")], dry_run=True)

        assert result.summary() == (
            "http upstream 'backend': 1 added, 0 deleted, 0 updated (dry run)"
        )
