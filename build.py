"""
Render the stored articles into the static site.

Usage:
    python build.py [--dist DIR] [--reindex]
"""

import argparse
import logging
import sys
from pathlib import Path

import articles
import config
import sitegen


def main(argv=None):
    parser = argparse.ArgumentParser(description="Build the static blog site")
    parser.add_argument(
        "--dist",
        default=str(config.SITE_DIST_DIR),
        help="Output directory for the generated HTML",
    )
    parser.add_argument(
        "--reindex",
        action="store_true",
        help="Rebuild the slug/category/tag indexes before building",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    if args.reindex:
        articles.reindex()

    try:
        result = sitegen.build_site(dist_dir=Path(args.dist))
    except OSError as exc:
        raise SystemExit(f"Build failed: {exc}")

    print(
        f"Built {result['generated_pages']} pages for {result['article_count']} articles "
        f"in {args.dist} ({result['removed_pages']} stale pages removed, "
        f"{result['build_time_ms']}ms)"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
