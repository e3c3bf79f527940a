"""Command-line interface: ``upstream-sync``.

Reads the desired servers of each upstream from the YAML config file and
reconciles them against the load balancer API.

Exit codes:
    0  Success.
    1  A remote or transport failure (including partial reconciliation).
    2  Invalid configuration or arguments.
"""

import argparse
import json
import logging
import sys
from typing import Any

from dotenv import load_dotenv

from . import __version__
from .config import _resolve_flag, load_config
from .config_loader import ensure_config, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config
from .core.client import UpstreamClient
from .core.context import CallContext
from .core.errors import ConfigurationError, UpstreamSyncError
from .logger import setup_logging
from .sync.models import ReconcileResult
from .sync.reporter import format_reconcile_report, report_to_json

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="upstream-sync",
        description="Reconcile load balancer upstream servers with a declared list",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview the changes for every upstream in the config file
  upstream-sync apply --dry-run

  # Apply only the 'backend' upstream against another load balancer
  upstream-sync --url http://lb2:8080/api apply backend

  # Show the servers of a stream upstream
  upstream-sync show dns --stream

  # Negotiate the API version and print it
  upstream-sync --max-api versions
        """,
    )

    parser.add_argument(
        "--url",
        help="Override API URL (takes precedence over LB_API_URL and config files)",
    )
    parser.add_argument("--username", help="Override basic-auth username")
    parser.add_argument(
        "--password",
        help="Override basic-auth password"
        " (visible in process list -- prefer LB_PASSWORD env var)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--api-version", type=int, help="API version used in request paths"
    )
    parser.add_argument(
        "--check-api",
        action="store_true",
        help="Fail unless the server advertises the API version",
    )
    parser.add_argument(
        "--max-api",
        action="store_true",
        help="Use the highest API version supported by both sides",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also append log records to this file")
    parser.add_argument(
        "--json", action="store_true", help="Print machine-readable JSON"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"upstream-sync version {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    apply_parser = subparsers.add_parser(
        "apply", help="Reconcile upstreams declared in the config file"
    )
    apply_parser.add_argument(
        "upstreams",
        nargs="*",
        metavar="UPSTREAM",
        help="Upstreams to reconcile (default: all declared)",
    )
    apply_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute the changes without sending them",
    )

    subparsers.add_parser(
        "versions", help="Print the resolved and remote API versions"
    )

    show_parser = subparsers.add_parser(
        "show", help="List the servers of an upstream"
    )
    show_parser.add_argument("upstream", metavar="UPSTREAM")
    show_parser.add_argument(
        "--stream", action="store_true", help="Query a stream upstream"
    )

    subparsers.add_parser(
        "init", help="Write a starter config file if none exists"
    )

    return parser


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "url": args.url,
        "username": args.username,
        "password": args.password,
        "insecure": args.insecure,
        "debug": args.debug,
        "api_version": args.api_version,
        "check_api": args.check_api,
        "max_api": args.max_api,
    }


def _make_client(args: argparse.Namespace, unified: UnifiedConfig) -> UpstreamClient:
    yaml_fallbacks = {
        k: v for k, v in unified.api.model_dump().items() if v is not None
    }
    config = load_config(**_cli_overrides(args), yaml_fallbacks=yaml_fallbacks)
    return UpstreamClient(config)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def cmd_apply(
    args: argparse.Namespace, unified: UnifiedConfig, client: UpstreamClient
) -> int:
    names = args.upstreams or list(unified.upstreams)
    if not names:
        raise ConfigurationError(
            "No upstreams declared. Add an 'upstreams' section to config.yml."
        )
    unknown = [name for name in names if name not in unified.upstreams]
    if unknown:
        raise ConfigurationError(
            f"Upstreams not declared in config: {', '.join(unknown)}"
        )

    ctx = CallContext()
    results: list[ReconcileResult] = []
    exit_code = EXIT_OK
    json_reports: list[dict[str, Any]] = []

    for name in names:
        entry = unified.upstreams[name]
        servers = entry.to_servers()
        reconcile = (
            client.reconcile_http_servers
            if entry.kind == "http"
            else client.reconcile_stream_servers
        )
        try:
            result = reconcile(name, servers, ctx=ctx, dry_run=args.dry_run)
        except UpstreamSyncError as exc:
            logger.error("Skipping %s upstream %s: %s", entry.kind, name, exc)
            json_reports.append(
                {"upstream": name, "kind": entry.kind, "error": str(exc)}
            )
            exit_code = EXIT_FAILURE
            continue

        results.append(result)
        json_reports.append(report_to_json(result))
        if not result.ok:
            exit_code = EXIT_FAILURE
        if not args.json:
            print(format_reconcile_report(result))
            print()

    if args.json:
        _print_json(json_reports)
    else:
        for result in results:
            logger.info("%s", result.summary())
    return exit_code


def cmd_versions(args: argparse.Namespace, client: UpstreamClient) -> int:
    resolved = client.resolved_version()
    remote_max = client.max_remote_version()
    if args.json:
        _print_json({"resolved": resolved, "remote_max": remote_max})
    else:
        print(f"Resolved API version: {resolved}")
        print(f"Highest remote API version: {remote_max}")
    return EXIT_OK


def cmd_show(args: argparse.Namespace, client: UpstreamClient) -> int:
    if args.stream:
        servers = client.get_stream_servers(args.upstream)
    else:
        servers = client.get_http_servers(args.upstream)

    if args.json:
        _print_json([s.model_dump(exclude_none=True) for s in servers])
        return EXIT_OK

    kind = "stream" if args.stream else "http"
    print(f"{kind} upstream '{args.upstream}': {len(servers)} servers")
    for server in servers:
        flags = [
            name
            for name in ("backup", "down", "drain")
            if getattr(server, name, None)
        ]
        line = f"  [{server.id}] {server.server} weight={server.weight}"
        if flags:
            line += " " + ",".join(flags)
        print(line)
    return EXIT_OK


def cmd_init() -> int:
    path = ensure_config()
    print(f"Config file: {path}")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the subcommand and return the exit code."""
    args = build_parser().parse_args(argv)

    # .env first so ${VAR} interpolation in config files can use it
    load_dotenv()

    try:
        unified = build_config(load_hierarchical_config())
    except (ValueError, OSError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    setup_logging(
        debug=_resolve_flag(args.debug, "LB_DEBUG", unified.api.debug),
        log_file=args.log_file or unified.logging.file,
        debug_format=unified.logging.format,
        level=unified.logging.level,
    )

    if args.command == "init":
        return cmd_init()

    try:
        client = _make_client(args, unified)
        if args.command == "apply":
            return cmd_apply(args, unified, client)
        if args.command == "versions":
            return cmd_versions(args, client)
        return cmd_show(args, client)
    except ValueError as exc:
        # ConfigurationError and pydantic ValidationError are ValueErrors
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    except UpstreamSyncError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
