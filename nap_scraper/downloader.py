"""Sequential PDF download with politeness delay, retries and exponential backoff."""

import logging
import os
from typing import Callable, List, Optional

import httpx

from .config import AppConfig
from .errors import DownloadFailed, EmptyDownload
from .fetcher import Fetcher
from .models import DownloadResult, NapRecord, RecordState
from .store import RecordStore

logger = logging.getLogger("nap_scraper")


class Downloader:
    def __init__(self, config: AppConfig, fetcher: Fetcher):
        self.config = config
        self.fetcher = fetcher
        self.download_dir = config.download_dir

    def target_path(self, record: NapRecord) -> str:
        return os.path.join(self.download_dir, record.filename)

    def revalidate(self, store: RecordStore) -> int:
        """Reset records marked downloaded whose PDF has disappeared.

        Records that already carry text keep their state; the text is what
        the dataset needs. Returns the number of records reset.
        """
        reset = 0
        for record in store:
            if not record.pdf_download_success or record.has_text:
                continue
            if record.pdf_path and os.path.exists(record.pdf_path):
                continue
            logger.warning(f"[{record.slug}] PDF missing from {record.pdf_path}, will download again")
            record.reset_pdf_state()
            reset += 1
        return reset

    def download_record(self, record: NapRecord) -> DownloadResult:
        """Try to fetch one record's PDF. Never raises for network or HTTP trouble."""
        local_path = self.target_path(record)
        max_attempts = self.config.fetch.max_attempts

        # Scraped hrefs are untrusted; a URL that can't be parsed never gets better on retry
        try:
            url = self.fetcher.resolve(record.pdf_link)
            httpx.URL(url)
        except (httpx.InvalidURL, ValueError) as e:
            logger.warning(f"[{record.slug}] Invalid PDF link {record.pdf_link!r}: {e}")
            return DownloadResult(record.slug, False, 0, local_path,
                                  error_kind="DownloadFailed", error=f"Invalid URL: {e}")

        error_kind, last_error = None, None
        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                self.fetcher.backoff(attempt)
            self.fetcher.rate_limit()
            try:
                size = self._fetch_to(url, local_path)
                return DownloadResult(record.slug, True, attempt, local_path, size)
            except (DownloadFailed, httpx.HTTPError, httpx.InvalidURL, OSError) as e:
                error_kind = type(e).__name__ if isinstance(e, DownloadFailed) else "DownloadFailed"
                last_error = str(e) or type(e).__name__
                logger.warning(
                    f"[{record.slug}] Attempt {attempt}/{max_attempts} for {url} failed: {last_error}"
                )

        return DownloadResult(record.slug, False, max_attempts, local_path,
                              error_kind=error_kind, error=last_error)

    def _fetch_to(self, url: str, local_path: str) -> int:
        # Stream into a side file so a failed retry never clobbers a good PDF
        part_path = local_path + ".part"
        try:
            status, size = self.fetcher.stream_to_file(
                url, part_path, self.config.download.max_file_size
            )
            if status != 200:
                raise DownloadFailed(f"HTTP {status}")
            if size == 0:
                raise EmptyDownload("Downloaded file is empty")
            os.replace(part_path, local_path)
            return size
        finally:
            if os.path.exists(part_path):
                os.remove(part_path)

    def download_all(self, store: RecordStore,
                     checkpoint: Optional[Callable[[], None]] = None) -> List[DownloadResult]:
        """Download every record that needs it, one request at a time.

        `checkpoint` is called after every `save_every` successful downloads
        and once more at the end if anything is unsaved.
        """
        skip_existing = self.config.download.skip_existing
        save_every = max(1, self.config.download.save_every)
        self.revalidate(store)

        records = list(store)
        total = len(records)
        results = []
        unsaved = 0

        for i, record in enumerate(records, 1):
            if not record.pdf_link:
                logger.info(f"No PDF link for entry {i} ({record.country_name})")
                continue

            record.pdf_path = self.target_path(record)
            if record.pdf_download_success and skip_existing:
                logger.debug(f"Skipping existing PDF {i} of {total}: {record.filename}")
                continue

            had_copy = record.pdf_download_success and os.path.exists(record.pdf_path)
            logger.info(f"Downloading PDF {i} of {total}: {record.filename}")
            result = self.download_record(record)
            results.append(result)
            record.download_attempts = result.attempts

            if result.success:
                record.pdf_download_success = True
                record.error = None
                if record.state != RecordState.EXTRACTED:
                    record.state = RecordState.DOWNLOADED
                logger.info(f"[{record.slug}] Downloaded: {record.filename} ({result.size:,} bytes)")
                unsaved += 1
                if checkpoint and unsaved >= save_every:
                    checkpoint()
                    unsaved = 0
            elif had_copy:
                record.error = f"{result.error_kind}: {result.error}"
                logger.warning(f"[{record.slug}] Re-download failed, keeping the existing copy")
            else:
                record.pdf_download_success = False
                record.state = RecordState.DOWNLOAD_FAILED
                record.error = f"{result.error_kind}: {result.error}"
                logger.error(
                    f"[{record.slug}] Download failed after {result.attempts} attempt(s): {result.error}"
                )

        if checkpoint and unsaved:
            checkpoint()

        ok = sum(1 for r in results if r.success)
        logger.info(f"Downloads done: {ok} downloaded, {len(results) - ok} failed")
        return results
