"""CLI entry point."""

import argparse
import sys

from .config import load_config
from .errors import NapScraperError
from .logger import setup_logger
from .models import RunSummary
from .pipeline import Pipeline, summarize
from .store import clear_cache, load_snapshot


def show_stats(summary: RunSummary):
    """Display download and extraction statistics."""
    print("\n" + "=" * 50)
    print(f"  NAP DATASET: {summary.headline}")
    print("=" * 50)
    print(f"{'Records':<30} {summary.total:>10}")
    print(f"{'With PDF link':<30} {summary.with_link:>10}")
    print(f"{'Downloaded':<30} {summary.downloaded:>10}")
    print(f"{'Text extracted':<30} {summary.extracted:>10}")
    print(f"{'Downloaded this run':<30} {summary.downloaded_this_run:>10}")
    print(f"{'Extracted this run':<30} {summary.extracted_this_run:>10}")
    print(f"{'Total pages':<30} {summary.total_pages:>10,}")
    print(f"{'Average pages':<30} {summary.average_pages:>10}")

    if summary.failures:
        print("-" * 50)
        for slug, error in summary.failures.items():
            print(f"{slug:<30} {error}")
    print()


def main():
    parser = argparse.ArgumentParser(description="NAP Central scraper")
    parser.add_argument("--config", type=str, default="config.yaml",
                        help="Path to config file")
    parser.add_argument("--force", action="store_true",
                        help="Re-scrape the submissions table even if a snapshot exists")
    parser.add_argument("--parallel", action="store_true",
                        help="Extract text with a worker pool")
    parser.add_argument("--download-only", action="store_true",
                        help="Only download PDFs for records in the snapshot")
    parser.add_argument("--extract-only", action="store_true",
                        help="Only run text extraction on already-downloaded files")
    parser.add_argument("--stats", action="store_true",
                        help="Show statistics for the cached snapshot")
    parser.add_argument("--clear-cache", action="store_true",
                        help="Delete the snapshot")
    parser.add_argument("--remove-pdfs", action="store_true",
                        help="With --clear-cache, also delete downloaded PDFs")
    args = parser.parse_args()

    config = load_config(args.config)
    if args.parallel:
        config.extraction.parallel = True
    logger = setup_logger(config.log_dir, config.log_level)

    if args.clear_cache:
        removed = clear_cache(config.snapshot_path, config.download_dir, args.remove_pdfs)
        print(f"Removed {removed} file(s).")
        return

    try:
        if args.stats:
            show_stats(summarize(load_snapshot(config.snapshot_path)))
            return

        pipeline = Pipeline(config)
        try:
            if args.download_only:
                pipeline.download_only()
            elif args.extract_only:
                pipeline.extract_only()
            else:
                print("NAP Central scraper")
                print(f"Cache directory: {config.cache_dir}")
                print(f"Dataset: {config.dataset_path}")
                pipeline.refresh(force=args.force)
        finally:
            pipeline.close()
    except NapScraperError as e:
        logger.error(str(e))
        sys.exit(1)

    show_stats(pipeline.summary)


if __name__ == "__main__":
    main()
