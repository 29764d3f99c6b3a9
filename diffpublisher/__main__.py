"""CLI entry point for the augmented diff publisher.

Usage:
    python -m diffpublisher s3://osm-diffs/augmented/
    python -m diffpublisher -i 6018422 file://./diffs/
    python -m diffpublisher -t 2024-05-01T12:00:00Z s3://osm-diffs/augmented/
    parse-diffs | python -m diffpublisher --feed-file - file://./diffs/

Without -i or -t, publishing resumes after the sequence recorded in the
target's state.yaml.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from diffpublisher import __version__
from diffpublisher.lib.errors import DiffPublisherError
from diffpublisher.lib.observability import setup_logging
from diffpublisher.lib.publisher import KeyLayout
from diffpublisher.lib.runner import run
from diffpublisher.lib.settings import Settings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="overpass-diff-publisher",
        description="Publish augmented diffs, batched by sequence, to a file or S3 target",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Resume from the target's state.yaml
    overpass-diff-publisher s3://osm-diffs/augmented/

    # Start from an explicit sequence
    overpass-diff-publisher -i 6018422 file://./diffs/

    # Start from a point in time
    overpass-diff-publisher -t 2024-05-01T12:00:00Z file://./diffs/

    # Legacy flat, uncompressed layout
    overpass-diff-publisher --layout flat file://./diffs/
        """,
    )

    parser.add_argument(
        "target",
        nargs="?",
        help="Target URI (file:// or s3://). Defaults to file://./",
    )

    start = parser.add_mutually_exclusive_group()
    start.add_argument(
        "-i",
        "--initial-sequence",
        type=int,
        help="Sequence to start from",
    )
    start.add_argument(
        "-t",
        "--timestamp",
        help="Timestamp to start from (ISO-8601)",
    )

    parser.add_argument(
        "--layout",
        choices=KeyLayout.choices(),
        help="Data object layout: sharded (gzip, default) or flat (legacy)",
    )

    feed = parser.add_mutually_exclusive_group()
    feed.add_argument(
        "--feed-url",
        help="Base URL of the event feed (default: $OVERPASS_URL)",
    )
    feed.add_argument(
        "--feed-file",
        help="Read newline-delimited events from a file ('-' for stdin)",
    )

    parser.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds to wait before checking for an unpublished sequence again",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Stop at the first sequence the feed has not published yet",
    )
    parser.add_argument(
        "--env-file",
        help="Load environment variables from this .env file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument(
        "--log-file",
        help="Also write logs to this file",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


# A CLI choice from one of these pairs clears the other, even when the
# other was set in the environment (e.g. OVERPASS_URL with --feed-file).
EXCLUSIVE_OPTIONS = (
    ("initial_sequence", "timestamp"),
    ("feed_url", "feed_file"),
)


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Build settings, letting explicit CLI values override the environment."""
    overrides: Dict[str, Any] = {
        "target": args.target,
        "initial_sequence": args.initial_sequence,
        "timestamp": args.timestamp,
        "layout": args.layout,
        "feed_url": args.feed_url,
        "feed_file": args.feed_file,
        "poll_interval": args.poll_interval,
        "log_file": args.log_file,
    }
    values = {k: v for k, v in overrides.items() if v is not None}

    if args.once:
        values["infinite"] = False
    if args.verbose:
        values["verbose"] = True
    if args.json_log:
        values["json_log"] = True

    settings = Settings(**values)

    cleared: Dict[str, Any] = {}
    for first, second in EXCLUSIVE_OPTIONS:
        if first in values:
            cleared[second] = None
        elif second in values:
            cleared[first] = None
    if cleared:
        settings = settings.model_copy(update=cleared)

    return settings


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.env_file:
        load_dotenv(args.env_file)

    try:
        settings = settings_from_args(args)
    except ValueError as e:
        # pydantic validation errors
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    setup_logging(
        verbose=settings.verbose,
        json_format=settings.json_log,
        log_file=settings.log_file,
    )

    try:
        run(settings)
    except DiffPublisherError as e:
        logger.error("Publishing stopped: %s", e.message, extra={"error": e.to_dict()})
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_INTERRUPTED

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
