"""
Command-line interface for ManifestKit.

Usage:
    manifestkit -i https://example.com/master.m3u8 -o ./output -c 10 --decrypt
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

from .models import MirrorConfig
from .mirror import mirror_manifest

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT = "./manifestkit-output"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="manifestkit",
        description="Fetch and save the contents of an HLS or DASH manifest locally.",
    )
    parser.add_argument("-i", "--input", required=True, help="uri to the master manifest (m3u8 or mpd)")
    parser.add_argument("-o", "--output", default=DEFAULT_OUTPUT, help=f"output path (default: {DEFAULT_OUTPUT})")
    parser.add_argument("-c", "--concurrency", type=int, default=10, help="number of simultaneous fetches (default: 10)")
    parser.add_argument(
        "-d", "--decrypt",
        action="store_true",
        help="decrypt segments and remove encryption from manifests (default: false)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = MirrorConfig(
        url=args.input,
        output_dir=args.output,
        concurrency=args.concurrency,
        decrypt=args.decrypt,
    )
    logger.info(f"Input: {config.url}")
    logger.info(f"Output: {config.output_dir}")
    logger.info(f"Concurrency: {config.concurrency}")
    logger.info(f"Decrypt: {config.decrypt}")

    start = time.time()
    try:
        resources = mirror_manifest(config)
    except Exception as e:
        logger.error(f"ERROR: {str(e)}")
        return 1

    logger.info(f"Mirrored {len(resources)} resources in {time.time() - start:.2f} seconds.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
