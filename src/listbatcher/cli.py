"""
Command-line interface for the list batcher.

Applies updates read from a JSON file to a SharePoint list.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import structlog
from pydantic import ValidationError

from listbatcher import __version__
from listbatcher.config import ErrorDirective, ListBatcherConfig, UpdateCommand, set_config
from listbatcher.core.errors import ConfigurationError
from listbatcher.core.outcome import AggregatedResult
from listbatcher.updater import ListUpdater

EXIT_OK = 0
EXIT_UPDATE_ERROR = 1
EXIT_CONFIG_ERROR = 2


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="listbatcher",
        description="Batch updates to SharePoint lists",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    update_parser = subparsers.add_parser("update", help="Apply updates to a list")
    update_parser.add_argument(
        "--web-url",
        required=True,
        help="URL of the site that owns the list",
    )
    update_parser.add_argument(
        "--list-name",
        required=True,
        help="Name or GUID of the list",
    )
    update_parser.add_argument(
        "--updates-file",
        required=True,
        help="JSON file with updates (objects, method strings or field pairs)",
    )
    update_parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Operations per request (default: 100)",
    )
    update_parser.add_argument(
        "--concurrency",
        type=int,
        default=2,
        help="Maximum concurrent requests (default: 2)",
    )
    update_parser.add_argument(
        "--update-type",
        choices=[c.value for c in UpdateCommand],
        default=UpdateCommand.UPDATE.value,
        help="Command for object updates (default: Update)",
    )
    update_parser.add_argument(
        "--on-error",
        choices=[d.value for d in ErrorDirective],
        default=ErrorDirective.CONTINUE.value,
        help="Remote behaviour when an operation fails (default: Continue)",
    )
    update_parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Request timeout in seconds (default: 30)",
    )
    update_parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    update_parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )

    return parser


def load_updates(path: str) -> Any:
    """Read updates from a JSON file."""
    with Path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def print_result(result: AggregatedResult) -> None:
    """Print a short summary of an update."""
    print(f"Status: {result.status.value}")
    print(f"Message: {result.message}")
    print(f"Batches: {result.batch_count}")


async def run_update(args: argparse.Namespace) -> AggregatedResult:
    """Run the update command."""
    config = ListBatcherConfig(
        web_url=args.web_url,
        list_name=args.list_name,
        batch_size=args.batch_size,
        concurrency=args.concurrency,
        update_type=UpdateCommand(args.update_type),
        on_error=ErrorDirective(args.on_error),
        request_timeout_seconds=args.timeout,
        log_level=args.log_level,
        log_json=args.log_json,
    )
    set_config(config)

    updates = load_updates(args.updates_file)

    async with ListUpdater(config) as updater:
        return await updater.update(updates)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_UPDATE_ERROR

    setup_logging(args.log_level, args.log_json)

    if args.command == "update":
        try:
            result = asyncio.run(run_update(args))
        except (ConfigurationError, ValidationError, OSError, json.JSONDecodeError) as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            return EXIT_CONFIG_ERROR

        print_result(result)
        return EXIT_OK if result.ok else EXIT_UPDATE_ERROR

    return EXIT_UPDATE_ERROR


if __name__ == "__main__":
    sys.exit(main())
