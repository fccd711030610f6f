"""
Command line entry point: ``xivdata-build``.

Builds every artifact into the output directory. Exits with status 1 when
the local data repository is missing.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from .config import DataRepoNotFoundError, load_settings
from .pipeline import BuildPipeline

logger = logging.getLogger("xivdata")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Build the item search data artifacts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Build with DATA_REPO_PATH / XIVDATA_OUTPUT_DIR from the environment
  xivdata-build

  # Explicit paths, verbose logging
  xivdata-build --data-dir ../ffxiv-datamining-tc --output-dir public/data -v
        """,
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Local datamining repository (default: $DATA_REPO_PATH or ../ffxiv-datamining-tc)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Artifact output directory (default: $XIVDATA_OUTPUT_DIR or public/data)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the build."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        settings = load_settings(data_dir=args.data_dir, output_dir=args.output_dir)
    except ValidationError as e:
        logger.error(f"❌ Invalid settings: {e}")
        sys.exit(1)

    try:
        asyncio.run(BuildPipeline(settings).run())
    except DataRepoNotFoundError as e:
        logger.error(f"❌ {e}")
        logger.error("To clone: git clone https://github.com/miaki3457/ffxiv-datamining-tc.git")
        sys.exit(1)


if __name__ == "__main__":
    main()
