#!/usr/bin/env python3
"""
Run one overdue task scan pass from the command line.

Finds every task whose due date has passed and notifies the assignee and
all supervisors, exactly like the daily scheduled pass. Progress events are
printed as JSON lines.

Usage:
    python -m backend.src.scripts.check_overdue_tasks [--batch-size N] [--now ISO]

Options:
    --batch-size    Candidates per page (default: WNP_OVERDUE_BATCH_SIZE or 50)
    --now           Reference time as ISO 8601 (naive UTC), default: current time
    --help          Show this help message

Examples:
    # Scan with defaults
    python -m backend.src.scripts.check_overdue_tasks

    # Re-run the scan as of a past moment with smaller pages
    python -m backend.src.scripts.check_overdue_tasks --batch-size 20 --now 2026-03-01T00:00:00

Exit code is 0 when the pass completed and 1 when it failed.
"""

import argparse
import asyncio
import json
import signal
import sys
from datetime import datetime
from typing import List, Optional


def signal_handler(signum, frame):
    """Handle CTRL+C gracefully."""
    print("\n\nOperation interrupted by user.")
    sys.exit(130)


def parse_now(value: str) -> datetime:
    """argparse type for --now; accepts a trailing Z."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid ISO timestamp: {value}") from e
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run one overdue task scan pass.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Notes:
  - Task status is not changed; only notifications are created
  - Re-running a failed pass can create duplicate notifications
        """
    )
    parser.add_argument(
        "-b", "--batch-size",
        type=int,
        default=None,
        help="Candidates per page"
    )
    parser.add_argument(
        "--now",
        type=parse_now,
        default=None,
        help="Reference time (ISO 8601)"
    )

    args = parser.parse_args(argv)
    if args.batch_size is not None and args.batch_size < 1:
        parser.error("--batch-size must be at least 1")
    return args


async def print_event(event) -> None:
    print(json.dumps(event.to_message()), flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    args = parse_args(argv)

    # Imported late so --help works without a database configuration
    from backend.src.services.overdue_scheduler import execute_scan_pass
    from backend.src.utils.logging_config import init_logging

    init_logging()

    return asyncio.run(execute_scan_pass(
        print_event,
        batch_size=args.batch_size,
        now=args.now,
    ))


if __name__ == "__main__":
    sys.exit(main())
