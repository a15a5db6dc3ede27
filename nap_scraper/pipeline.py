"""Scrape -> download -> extract pipeline and the public dataset accessors."""

import logging
import os
import time
from typing import Callable, List, Optional

import httpx

from .config import AppConfig
from .downloader import Downloader
from .errors import CacheMissing
from .extractor import TextExtractor, read_pdf
from .fetcher import Fetcher
from .models import DownloadResult, ExtractionResult, NapRecord, RunSummary
from .store import RecordStore, export_dataset, load_snapshot, save_snapshot
from .table import parse_submissions

logger = logging.getLogger("nap_scraper")


def summarize(store: RecordStore,
              downloads: Optional[List[DownloadResult]] = None,
              extractions: Optional[List[ExtractionResult]] = None) -> RunSummary:
    records = list(store)
    extracted = [r for r in records if r.has_text]
    total_pages = sum(r.pdf_pages or 0 for r in extracted)
    return RunSummary(
        total=len(records),
        with_link=sum(1 for r in records if r.pdf_link),
        downloaded=sum(1 for r in records if r.pdf_download_success),
        extracted=len(extracted),
        total_pages=total_pages,
        average_pages=round(total_pages / len(extracted), 1) if extracted else 0.0,
        downloaded_this_run=sum(1 for r in downloads or [] if r.success),
        extracted_this_run=sum(1 for r in extractions or [] if r.success),
        failures={r.slug: r.error for r in records if r.error},
    )


class Pipeline:
    def __init__(self, config: AppConfig,
                 transport: Optional[httpx.BaseTransport] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 decoder=read_pdf):
        self.config = config
        self.fetcher = Fetcher(config.fetch, transport=transport, sleep=sleep)
        self.downloader = Downloader(config, self.fetcher)
        self.extractor = TextExtractor(config.extraction, decoder=decoder)
        self.summary: Optional[RunSummary] = None

    def close(self):
        self.fetcher.close()

    def load_store(self) -> RecordStore:
        try:
            return load_snapshot(self.config.snapshot_path)
        except CacheMissing as e:
            logger.info(f"Starting with an empty store ({e})")
            return RecordStore()

    def checkpoint(self, store: RecordStore):
        save_snapshot(store, self.config.snapshot_path)

    def scrape(self) -> List[NapRecord]:
        """Fetch and parse the submissions table. Raises ConnectionFailed or StructureNotFound."""
        url = self.config.fetch.table_url
        logger.info(f"Scraping NAP Central: {url}")
        html = self.fetcher.fetch_page(url)
        return parse_submissions(html)

    def refresh(self, force: bool = False) -> RecordStore:
        """Run the full pipeline and publish the dataset.

        A populated snapshot is resumed without re-scraping the table unless
        `force` is set; a forced scrape is merged into the cached records so
        finished downloads and extractions are kept.
        """
        started = time.time()
        os.makedirs(self.config.download_dir, exist_ok=True)
        store = self.load_store()

        if len(store) and not force:
            logger.info(f"Resuming {len(store)} cached records; table scrape skipped")
        else:
            added = store.merge(self.scrape())
            logger.info(f"Store holds {len(store)} records ({added} new)")
            self.checkpoint(store)

        downloads = self.downloader.download_all(store, checkpoint=lambda: self.checkpoint(store))
        extractions = self.extractor.extract_all(store, checkpoint=lambda: self.checkpoint(store))

        self.checkpoint(store)
        export_dataset(store, self.config.dataset_path, self.config.publish.only_processed)

        self.summary = summarize(store, downloads, extractions)
        log_summary(self.summary)
        logger.info(f"Pipeline finished in {(time.time() - started) / 60:.2f} minutes")
        return store

    def download_only(self) -> RecordStore:
        store = load_snapshot(self.config.snapshot_path)
        downloads = self.downloader.download_all(store, checkpoint=lambda: self.checkpoint(store))
        self.checkpoint(store)
        self.summary = summarize(store, downloads=downloads)
        return store

    def extract_only(self) -> RecordStore:
        store = load_snapshot(self.config.snapshot_path)
        extractions = self.extractor.extract_all(store, checkpoint=lambda: self.checkpoint(store))
        self.checkpoint(store)
        self.summary = summarize(store, extractions=extractions)
        return store


def log_summary(summary: RunSummary):
    logger.info(f"=== SUMMARY === {summary.headline}")
    logger.info(f"Total NAPs: {summary.total} ({summary.with_link} with a PDF link)")
    logger.info(f"PDFs downloaded in this run: {summary.downloaded_this_run}")
    logger.info(f"PDFs text extracted in this run: {summary.extracted_this_run}")
    logger.info(f"Total NAPs with successful downloads: {summary.downloaded}")
    logger.info(f"Total NAPs with text content: {summary.extracted}")
    logger.info(f"Pages: {summary.total_pages} total, {summary.average_pages} average")
    for slug, error in summary.failures.items():
        logger.info(f"  failed: {slug}: {error}")


def refresh(config: Optional[AppConfig] = None, force: bool = False,
            parallel: Optional[bool] = None, **pipeline_kwargs) -> RecordStore:
    """Scrape, download and extract, returning the final record store."""
    config = config or AppConfig()
    if parallel is not None:
        config.extraction.parallel = parallel
    pipeline = Pipeline(config, **pipeline_kwargs)
    try:
        return pipeline.refresh(force=force)
    finally:
        pipeline.close()


def get_cached(config: Optional[AppConfig] = None) -> RecordStore:
    """The last published dataset, without touching the network. Raises CacheMissing.

    Without a config this reads AppConfig().dataset_path: $NAP_DATASET_PATH,
    or data/nap_data.json relative to the current directory.
    """
    config = config or AppConfig()
    return load_snapshot(config.dataset_path)


def get_naps(refresh_data: bool = False, config: Optional[AppConfig] = None,
             **kwargs) -> RecordStore:
    if refresh_data:
        return refresh(config, **kwargs)
    return get_cached(config)
