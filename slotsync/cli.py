"""
Command-line entry point for operator tasks.

Usage:
    slotsync bulk-reschedule <resourceId> <rangeStart> <rangeEnd> <newRangeStart> <newRangeEnd>
    python -m slotsync.cli bulk-reschedule 1 2026-11-02 2026-11-03 2026-11-09 2026-11-10

Dates are local calendar dates (YYYY-MM-DD) in the resource's timezone; all
ranges are inclusive. The tally is printed to stdout as JSON; logs go to
stderr.

Exit codes: 0 success, 1 unknown resource, 2 invalid arguments.
"""

import argparse
import asyncio
import logging
import sys
from datetime import date, datetime
from typing import Optional, Sequence

from slotsync.core.config import get_settings
from slotsync.core.logging import configure_logging
from slotsync.services.container import ServiceContainer, build_container
from slotsync.services.errors import NotFoundError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NOT_FOUND = 1


def _resource_id(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid resource id: {value!r}")
    if parsed < 1:
        raise argparse.ArgumentTypeError(f"resource id must be positive: {value!r}")
    return parsed


def _iso_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date (expected YYYY-MM-DD): {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slotsync",
        description="SlotSync operator commands.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    bulk = commands.add_parser(
        "bulk-reschedule",
        help="Move every confirmed booking in a date range into a new date range.",
    )
    bulk.add_argument("resource_id", type=_resource_id, help="Resource identifier.")
    bulk.add_argument("range_start", type=_iso_date, help="First affected date (YYYY-MM-DD).")
    bulk.add_argument("range_end", type=_iso_date, help="Last affected date (YYYY-MM-DD).")
    bulk.add_argument(
        "new_range_start",
        type=_iso_date,
        help="First date to move bookings into (YYYY-MM-DD).",
    )
    bulk.add_argument(
        "new_range_end",
        type=_iso_date,
        help="Last date to move bookings into (YYYY-MM-DD).",
    )
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """
    Parse and validate arguments; exits with status 2 on any problem.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "bulk-reschedule":
        if args.range_end < args.range_start:
            parser.error("rangeEnd must not be before rangeStart")
        if args.new_range_end < args.new_range_start:
            parser.error("newRangeEnd must not be before newRangeStart")

    return args


async def run_bulk_reschedule(args: argparse.Namespace, container: ServiceContainer) -> int:
    """
    Execute the bulk-reschedule command and print the tally.

    Returns the process exit code.
    """
    rescheduler = container.bulk_rescheduler
    try:
        windows = await rescheduler.replacement_windows_for_dates(
            args.resource_id,
            args.new_range_start,
            args.new_range_end,
        )
        tally = await rescheduler.bulk_reschedule(
            args.resource_id,
            args.range_start,
            args.range_end,
            windows,
        )
    except NotFoundError as exc:
        logger.error("%s", exc.message)
        return EXIT_NOT_FOUND

    sys.stdout.write(tally.model_dump_json(indent=2) + "\n")
    return EXIT_OK


async def _run(args: argparse.Namespace, container: ServiceContainer) -> int:
    from slotsync.db.session import init_db_for_startup

    await init_db_for_startup(container.session_factory.kw.get("bind"))
    try:
        return await run_bulk_reschedule(args, container)
    finally:
        await container.orchestrator.drain_notifications()


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)

    settings = get_settings()
    configure_logging("DEBUG" if args.verbose else settings.LOG_LEVEL)

    container = build_container(settings)
    code = asyncio.run(_run(args, container))
    if code != EXIT_OK:
        sys.exit(code)


if __name__ == "__main__":
    main()
