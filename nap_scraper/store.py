"""Record store keyed by slug, persisted as a single JSON snapshot."""

import glob
import json
import logging
import os
import tempfile
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional

from .errors import CacheMissing
from .models import NapRecord

logger = logging.getLogger("nap_scraper")

SNAPSHOT_VERSION = 1

# Metadata taken from a fresh scrape when it is merged into a cached record
_SCRAPED_FIELDS = (
    "nap_id", "region", "ldc_sids_marker", "language_options",
    "language_links", "date_posted", "pdf_link",
)


class RecordStore:
    def __init__(self, records: Optional[Iterable[NapRecord]] = None):
        self._records: "OrderedDict[str, NapRecord]" = OrderedDict()
        self._by_country: Dict[str, List[str]] = {}
        for record in records or []:
            self.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[NapRecord]:
        return iter(list(self._records.values()))

    def __contains__(self, slug: str) -> bool:
        return slug in self._records

    def _unique_slug(self, base: str) -> str:
        if base not in self._records:
            return base
        n = 2
        while f"{base}_{n}" in self._records:
            n += 1
        return f"{base}_{n}"

    def append(self, record: NapRecord) -> NapRecord:
        """Add a new record. A slug already in use gets a numeric suffix."""
        slug = self._unique_slug(record.slug)
        if slug != record.slug:
            logger.warning(
                f"Slug collision: {record.country_name!r} maps to {record.slug!r}, "
                f"already used by {self._records[record.slug].country_name!r}; using {slug!r}"
            )
            record.slug = slug
        self._records[slug] = record
        self._by_country.setdefault(record.country_name, []).append(slug)
        return record

    def at(self, index: int) -> NapRecord:
        return list(self._records.values())[index]

    def get(self, slug: str) -> Optional[NapRecord]:
        return self._records.get(slug)

    def find(self, country_name: str, occurrence: int = 0) -> Optional[NapRecord]:
        """The record for a country; `occurrence` picks among repeated rows, in table order."""
        slugs = self._by_country.get(country_name, [])
        return self._records[slugs[occurrence]] if occurrence < len(slugs) else None

    def upsert(self, fresh: NapRecord, occurrence: int = 0) -> NapRecord:
        """Merge a freshly scraped row into the store.

        An existing entry for the same country keeps its download and
        extraction state unless the PDF link changed, in which case the PDF
        state is reset so the new document gets fetched.
        """
        existing = self.find(fresh.country_name, occurrence)
        if existing is None:
            return self.append(fresh)

        link_changed = existing.pdf_link != fresh.pdf_link
        for name in _SCRAPED_FIELDS:
            setattr(existing, name, getattr(fresh, name))
        if link_changed:
            logger.info(f"[{existing.slug}] PDF link changed, resetting download state")
            existing.reset_pdf_state()
        return existing

    def merge(self, scraped: Iterable[NapRecord]) -> int:
        """Upsert a whole scrape in table order. Returns the number of new records."""
        seen: Dict[str, int] = {}
        before = len(self)
        for record in scraped:
            occurrence = seen.get(record.country_name, 0)
            seen[record.country_name] = occurrence + 1
            self.upsert(record, occurrence)
        return len(self) - before

    def update(self, slug: str, **changes) -> NapRecord:
        record = self._records[slug]
        for name, value in changes.items():
            if not hasattr(record, name):
                raise AttributeError(f"NapRecord has no field {name!r}")
            setattr(record, name, value)
        return record

    def pending_downloads(self) -> List[NapRecord]:
        return [r for r in self if r.pdf_link and not r.pdf_download_success]

    def pending_extractions(self) -> List[NapRecord]:
        return [r for r in self if r.pdf_download_success and not r.has_text]

    def to_list(self) -> List[dict]:
        return [r.to_dict() for r in self]


def _write_json_atomic(path: str, payload: dict):
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".snapshot-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=1)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def save_snapshot(store: RecordStore, path: str):
    """Write the whole store to path, replacing any previous snapshot atomically."""
    _write_json_atomic(path, {
        "version": SNAPSHOT_VERSION,
        "saved_at": datetime.now(timezone.utc).isoformat(),
        "records": store.to_list(),
    })
    logger.debug(f"Saved snapshot of {len(store)} records to {path}")


def load_snapshot(path: str) -> RecordStore:
    if not os.path.exists(path):
        raise CacheMissing(f"No snapshot at {path}")
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        raise CacheMissing(f"Unreadable snapshot at {path}: {e}") from e

    if not isinstance(raw, dict) or raw.get("version") != SNAPSHOT_VERSION:
        raise CacheMissing(f"Unsupported snapshot format at {path}")
    return RecordStore(NapRecord.from_dict(r) for r in raw.get("records", []))


def export_dataset(store: RecordStore, path: str, only_processed: bool = False) -> int:
    """Publish the store as the consumer-facing dataset. Returns the record count."""
    records = [r for r in store if r.has_text] if only_processed else list(store)
    save_snapshot(RecordStore(records), path)
    logger.info(f"Published {len(records)} records to {path}")
    return len(records)


def clear_cache(snapshot_path: str, download_dir: Optional[str] = None,
                remove_pdfs: bool = False) -> int:
    """Delete the snapshot and, optionally, every downloaded PDF.

    Returns the number of files removed.
    """
    removed = 0
    if os.path.exists(snapshot_path):
        os.remove(snapshot_path)
        removed += 1
        logger.info(f"Removed snapshot {snapshot_path}")

    if remove_pdfs and download_dir and os.path.isdir(download_dir):
        targets = glob.glob(os.path.join(download_dir, "*.pdf"))
        targets += glob.glob(os.path.join(download_dir, "*.pdf.part"))
        for target in targets:
            os.remove(target)
        removed += len(targets)
        logger.info(f"Removed {len(targets)} downloaded files from {download_dir}")

    return removed
