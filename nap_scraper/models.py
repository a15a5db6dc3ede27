"""Data models for the scraper."""

import re
import unicodedata
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Dict, List, NamedTuple, Optional

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def slugify(name: str) -> str:
    """Filesystem-safe key for a country name.

    Accents are folded to their base letter first, then every remaining
    non-alphanumeric character becomes "_": "Côte d'Ivoire" -> "cote_d_ivoire".
    """
    decomposed = unicodedata.normalize("NFKD", name or "")
    folded = "".join(c for c in decomposed if not unicodedata.combining(c))
    return _NON_ALNUM.sub("_", folded).lower()


class RecordState(str, Enum):
    NOT_STARTED = "not_started"
    DOWNLOADED = "downloaded"
    EXTRACTED = "extracted"
    DOWNLOAD_FAILED = "download_failed"
    EXTRACTION_FAILED = "extraction_failed"


@dataclass
class NapRecord:
    nap_id: str
    country_name: str
    region: str = ""
    ldc_sids_marker: str = ""
    language_options: str = ""
    language_links: List[Dict[str, str]] = field(default_factory=list)
    date_posted: str = ""
    pdf_link: Optional[str] = None
    slug: str = ""
    # Filled by the download manager
    pdf_path: Optional[str] = None
    pdf_download_success: bool = False
    download_attempts: int = 0
    # Filled by the text extraction engine
    pdf_pages: Optional[int] = None
    pdf_text: Optional[str] = None
    state: RecordState = RecordState.NOT_STARTED
    error: Optional[str] = None

    def __post_init__(self):
        if not self.slug:
            self.slug = slugify(self.country_name)
        if not isinstance(self.state, RecordState):
            self.state = RecordState(self.state)

    @property
    def filename(self) -> str:
        return f"{self.slug}.pdf"

    @property
    def has_text(self) -> bool:
        return bool(self.pdf_text)

    def reset_pdf_state(self):
        """Forget everything learned about the PDF, keeping the metadata."""
        self.pdf_download_success = False
        self.download_attempts = 0
        self.pdf_pages = None
        self.pdf_text = None
        self.state = RecordState.NOT_STARTED
        self.error = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "NapRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class FetchResult(NamedTuple):
    url: str
    ok: bool
    status_code: Optional[int] = None
    text: str = ""
    error: Optional[str] = None


class DownloadResult(NamedTuple):
    slug: str
    success: bool
    attempts: int = 0
    path: Optional[str] = None
    size: int = 0
    error_kind: Optional[str] = None  # DownloadFailed, EmptyDownload
    error: Optional[str] = None


class ExtractionResult(NamedTuple):
    slug: str
    success: bool
    pages: Optional[int] = None
    text: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RunSummary:
    total: int = 0
    with_link: int = 0
    downloaded: int = 0
    extracted: int = 0
    total_pages: int = 0
    average_pages: float = 0.0
    downloaded_this_run: int = 0
    extracted_this_run: int = 0
    failures: Dict[str, str] = field(default_factory=dict)  # slug -> error

    @property
    def headline(self) -> str:
        return f"{self.extracted}/{self.total} processed"
