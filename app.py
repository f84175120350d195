#!/usr/bin/env python3
"""Command Center - Application Entry Point.

Runs the API server, or talks to a running one to list and sync
remote operations. All implementation logic is in command_center/ modules.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

import httpx

from command_center.backend.core.server import run_server
from command_center.middleend.client import CommandCenterClient


def create_parser():
    """Create argument parser for CLI.

    Returns:
        ArgumentParser with all command-line options
    """
    parser = argparse.ArgumentParser(
        description="Command Center - Remote operation tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the API server
  python app.py --connections-file connections.yaml

  # Against a running server
  python app.py --list-operations <CONNECTION_ID>            # re-checks running ones
  python app.py --list-operations <CONNECTION_ID> --no-sync  # stored status only
  python app.py --sync-operations <CONNECTION_ID>
        """,
    )

    # Client commands
    command_group = parser.add_mutually_exclusive_group()
    command_group.add_argument(
        "--list-operations",
        metavar="CONNECTION_ID",
        help="List operations of a connection on a running server",
    )
    command_group.add_argument(
        "--sync-operations",
        metavar="CONNECTION_ID",
        help="Re-check running operations of a connection and print the summary",
    )
    parser.add_argument(
        "--no-sync",
        action="store_true",
        help="With --list-operations, skip the status re-check",
    )
    parser.add_argument(
        "--url",
        default=os.environ.get("COMMAND_CENTER_URL", "http://localhost:8000"),
        help="Server URL for client commands (default: http://localhost:8000)",
    )

    # Server configuration
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind (default: 8000)")
    parser.add_argument("--log-level", default="info", help="Log level (default: info)")
    parser.add_argument(
        "--connections-file",
        default=os.environ.get("COMMAND_CENTER_CONNECTIONS_FILE"),
        help="YAML file of connections to add at startup",
    )
    parser.add_argument(
        "--sync-concurrency",
        type=int,
        default=None,
        help="Maximum simultaneous liveness checks per sync (default: 4)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Operation monitor polling interval in seconds (default: 2.5)",
    )

    # Security
    parser.add_argument(
        "--api-key",
        default=os.environ.get("COMMAND_CENTER_API_KEY"),
        help="API key for authentication (or set COMMAND_CENTER_API_KEY env var)",
    )
    parser.add_argument(
        "--ssl-certfile",
        default=os.environ.get("COMMAND_CENTER_SSL_CERTFILE"),
        help="SSL certificate file path for HTTPS",
    )
    parser.add_argument(
        "--ssl-keyfile",
        default=os.environ.get("COMMAND_CENTER_SSL_KEYFILE"),
        help="SSL key file path for HTTPS",
    )

    return parser


async def run_client_command(args) -> int:
    async with CommandCenterClient(args.url, api_key=args.api_key) as client:
        try:
            if args.sync_operations:
                result = await client.sync_operations(args.sync_operations)
            else:
                result = await client.list_operations(
                    args.list_operations, sync_status=not args.no_sync
                )
        except httpx.HTTPError as e:
            logging.error(f"❌ Request failed: {e}")
            return 1

    print(json.dumps(result, indent=2))
    return 0


def main():
    """Main entry point for Command Center."""
    parser = create_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.no_sync and not args.list_operations:
        parser.error("--no-sync requires --list-operations")

    if args.list_operations or args.sync_operations:
        sys.exit(asyncio.run(run_client_command(args)))

    run_server(args)


if __name__ == "__main__":
    main()
