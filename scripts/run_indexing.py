#!/usr/bin/env python3
import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from searchengine.api.services import indexing_service, orchestrator


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Crawl and index the configured sites, or refresh a single page."
    )
    parser.add_argument("--page", help="Absolute URL of one page to re-index instead of a full crawl")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    if args.page:
        result = indexing_service.index_page(args.page)
        if not result.result:
            print(f"Refresh failed: {result.error}")
            sys.exit(1)
        print(f"Page re-indexed: {args.page}")
        return

    if not orchestrator.sites:
        print("No sites configured, set INDEXING_SITES")
        sys.exit(1)
    indexing_service.run_once()
    print(f"Indexing finished for {len(orchestrator.sites)} site(s)")


if __name__ == "__main__":
    main()
