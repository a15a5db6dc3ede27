"""Text extraction from downloaded PDFs with PyMuPDF.

Documents are decoded in worker processes so a PDF that hangs the decoder
can be abandoned after `timeout` seconds. Work is done in chunks: results
are merged into the store only after the whole chunk has finished, then the
store is checkpointed, so a crash loses at most one chunk.
"""

import logging
import multiprocessing
import os
from typing import Callable, List, Optional, Sequence, Tuple

from .config import ExtractionConfig
from .models import ExtractionResult, NapRecord, RecordState
from .store import RecordStore

logger = logging.getLogger("nap_scraper")

PAGE_SEPARATOR = "\n\n"


def read_pdf(pdf_path: str) -> Tuple[int, List[str]]:
    """Return (page_count, per-page text) for a PDF."""
    import fitz  # PyMuPDF

    with fitz.open(pdf_path) as doc:
        return len(doc), [page.get_text() for page in doc]


def extract_document(slug: str, pdf_path: str,
                     decoder: Callable[[str], Tuple[int, List[str]]] = read_pdf) -> ExtractionResult:
    """Decode one PDF. Runs inside a worker; failures come back as results."""
    try:
        pages, texts = decoder(pdf_path)
        return ExtractionResult(slug, True, pages, PAGE_SEPARATOR.join(texts))
    except Exception as e:
        return ExtractionResult(slug, False, error=f"ExtractionFailed: {type(e).__name__}: {e}")


class TextExtractor:
    def __init__(self, config: ExtractionConfig,
                 decoder: Callable[[str], Tuple[int, List[str]]] = read_pdf):
        self.config = config
        self.decoder = decoder

    @property
    def workers(self) -> int:
        if not self.config.parallel:
            return 1
        return max(1, min((os.cpu_count() or 1) - 1, self.config.max_workers))

    @property
    def chunk_size(self) -> int:
        return max(1, self.config.chunk_size) if self.config.parallel else 1

    def extract_file(self, pdf_path: str) -> Tuple[int, str]:
        """Decode a single PDF in-process. Returns (page_count, text)."""
        pages, texts = self.decoder(pdf_path)
        return pages, PAGE_SEPARATOR.join(texts)

    def eligible(self, store: RecordStore) -> List[NapRecord]:
        records = []
        for record in store.pending_extractions():
            if record.pdf_path and os.path.exists(record.pdf_path):
                records.append(record)
                continue
            logger.warning(f"[{record.slug}] PDF file doesn't exist for processing: {record.pdf_path}")
            record.reset_pdf_state()
        return records

    def run_chunk(self, chunk: Sequence[NapRecord]) -> List[ExtractionResult]:
        """Decode a chunk in a fresh pool and wait for every document."""
        timeout = self.config.timeout
        with multiprocessing.Pool(processes=min(self.workers, len(chunk))) as pool:
            pending = [
                (r.slug, pool.apply_async(extract_document, (r.slug, r.pdf_path, self.decoder)))
                for r in chunk
            ]
            results = []
            for slug, async_result in pending:
                try:
                    results.append(async_result.get(timeout=timeout))
                except multiprocessing.TimeoutError:
                    results.append(ExtractionResult(
                        slug, False, error=f"ExtractionFailed: timed out after {timeout}s"
                    ))
        # Leaving the pool terminates any worker still stuck on a document
        return results

    def apply(self, store: RecordStore, result: ExtractionResult):
        record = store.get(result.slug)
        if result.success:
            record.pdf_pages = result.pages
            record.pdf_text = result.text
            record.state = RecordState.EXTRACTED
            record.error = None
            chars = len((result.text or "").strip())
            if result.pages and chars < self.config.min_chars * result.pages:
                logger.warning(
                    f"[{record.slug}] Only {chars:,} chars over {result.pages} pages; "
                    f"the PDF may be scanned without a text layer"
                )
            logger.info(f"[{record.slug}] Extracted {result.pages} pages, {chars:,} chars")
        else:
            record.state = RecordState.EXTRACTION_FAILED
            record.error = result.error
            logger.error(f"[{record.slug}] Extraction failed for {record.pdf_path}: {result.error}")

    def extract_all(self, store: RecordStore,
                    checkpoint: Optional[Callable[[], None]] = None) -> List[ExtractionResult]:
        records = self.eligible(store)
        if not records:
            logger.info("No PDFs need text extraction")
            return []

        size = self.chunk_size
        logger.info(
            f"Extracting text from {len(records)} PDFs "
            f"({self.workers} worker(s), chunks of {size})"
        )
        results = []
        for start in range(0, len(records), size):
            chunk = records[start:start + size]
            chunk_results = self.run_chunk(chunk)
            for result in chunk_results:
                self.apply(store, result)
            results.extend(chunk_results)
            if checkpoint:
                checkpoint()
            logger.info(f"Progress: {start + len(chunk)} of {len(records)} PDFs processed")

        ok = sum(1 for r in results if r.success)
        logger.info(f"Extraction done: {ok} extracted, {len(results) - ok} failed")
        return results
