"""
Set a delete-after-N-days lifecycle rule on an upload bucket.

Usage:
    scriptability-mcp-lifecycle --bucket <bucket> [--days 1] [--prefix uploads]

Falls back to MCP_UPLOAD_BUCKET / MCP_OUTPUT_BUCKET for --bucket and
MCP_UPLOAD_OBJECT_PREFIX for --prefix.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from google.api_core import exceptions as gcs_exceptions

from .config import get_settings
from .firebase_client import get_bucket, init_firebase, set_delete_lifecycle

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scriptability-mcp-lifecycle",
        description="Delete objects under a prefix after a number of days.",
    )
    parser.add_argument("--bucket", help="Bucket name (default: MCP_UPLOAD_BUCKET or MCP_OUTPUT_BUCKET)")
    parser.add_argument("--days", type=int, default=1, help="Object age in days before deletion")
    parser.add_argument("--prefix", help="Object prefix (default: MCP_UPLOAD_OBJECT_PREFIX or 'uploads')")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()

    bucket_name = args.bucket or settings.upload_bucket or settings.output_bucket
    if not bucket_name:
        parser.print_usage(sys.stderr)
        return 2
    if args.days < 1:
        parser.error("--days must be at least 1")

    prefix = args.prefix or settings.upload_object_prefix
    if not prefix.endswith("/"):
        prefix = f"{prefix}/"

    init_firebase(settings)
    try:
        set_delete_lifecycle(get_bucket(bucket_name), args.days, [prefix])
    except gcs_exceptions.GoogleAPICallError as e:
        logger.error("Failed to set lifecycle on gs://%s: %s", bucket_name, e)
        return 1

    logger.info(
        "Lifecycle set on gs://%s: delete objects with prefix '%s' after %d day(s).",
        bucket_name,
        prefix,
        args.days,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
