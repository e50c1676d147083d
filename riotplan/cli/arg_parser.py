"""Argument parsing for the riotplan CLI."""

import argparse
from pathlib import Path


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="riotplan",
        description="Inspect and drive a RiotPlan HTTP MCP server",
    )
    parser.add_argument(
        "--url",
        help="Server base URL (default: from --config, else http://127.0.0.1:3002)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        metavar="PATH",
        help="JSON config file with client settings",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase log output (-v info, -vv debug)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("health", help="Check whether the server is reachable")

    plans_parser = subparsers.add_parser("plans", help="List plans")
    plans_parser.add_argument(
        "--filter", "-f",
        choices=["all", "active", "done", "hold"],
        default="all",
        help="Which plans to list (default: all)",
    )
    plans_parser.add_argument(
        "--json",
        action="store_true",
        help="Print raw JSON instead of a table",
    )

    call_parser = subparsers.add_parser("call", help="Send a raw JSON-RPC request")
    call_parser.add_argument("method", help="JSON-RPC method (e.g. tools/list)")
    call_parser.add_argument(
        "--params",
        default=None,
        metavar="JSON",
        help="Request params as a JSON object",
    )

    watch_parser = subparsers.add_parser("watch", help="Print pushed notifications")
    watch_parser.add_argument(
        "--method", "-m",
        action="append",
        dest="methods",
        metavar="METHOD",
        help="Notification method to print (repeatable, default: resource_changed)",
    )
    watch_parser.add_argument(
        "--seconds", "-s",
        type=float,
        default=None,
        help="Stop after this many seconds (default: until interrupted)",
    )

    download_parser = subparsers.add_parser("download", help="Download a plan archive")
    download_parser.add_argument("plan_id", help="Plan id to download")
    download_parser.add_argument(
        "--output", "-o",
        type=Path,
        default=Path("."),
        metavar="DIR",
        help="Directory to write the archive into (default: current directory)",
    )

    upload_parser = subparsers.add_parser("upload", help="Upload a plan archive")
    upload_parser.add_argument("file", type=Path, help="Plan archive to upload")

    return parser.parse_args(argv)
