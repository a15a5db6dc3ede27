"""YAML config loader."""

import os
from dataclasses import dataclass, field
from typing import Optional

import yaml


@dataclass
class FetchConfig:
    table_url: str = "https://napcentral.org/submitted-naps"
    site_origin: str = "https://napcentral.org"
    user_agent: str = "Educational Research Project on National Adaptation Plans (nap-scraper)"
    request_delay: float = 2.0
    timeout: int = 120
    max_attempts: int = 3
    backoff_base: float = 5.0


@dataclass
class DownloadConfig:
    skip_existing: bool = True
    save_every: int = 1
    max_file_size: int = 524288000


@dataclass
class ExtractionConfig:
    parallel: bool = False
    chunk_size: int = 5
    max_workers: int = 4
    timeout: int = 300
    min_chars: int = 50


@dataclass
class PublishConfig:
    only_processed: bool = False


def get_cache_dir() -> str:
    return os.environ.get("NAP_CACHE_DIR", "nap_cache")


def get_dataset_path() -> str:
    return os.environ.get("NAP_DATASET_PATH", "data/nap_data.json")


def get_log_dir() -> str:
    return os.environ.get("NAP_LOG_DIR", "logs")


@dataclass
class AppConfig:
    cache_dir: str = field(default_factory=get_cache_dir)
    dataset_path: str = field(default_factory=get_dataset_path)
    log_dir: str = field(default_factory=get_log_dir)
    log_level: str = "INFO"
    fetch: FetchConfig = field(default_factory=FetchConfig)
    download: DownloadConfig = field(default_factory=DownloadConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)

    @property
    def snapshot_path(self) -> str:
        return os.path.join(self.cache_dir, "nap_data.json")

    @property
    def download_dir(self) -> str:
        return os.path.join(self.cache_dir, "pdfs")


def _section(cls, raw: Optional[dict]):
    raw = raw or {}
    return cls(**{k: v for k, v in raw.items() if k in cls.__dataclass_fields__})


def load_config(config_path: Optional[str] = "config.yaml") -> AppConfig:
    """Load config from YAML. A missing file yields the defaults."""
    if not config_path or not os.path.exists(config_path):
        return AppConfig()

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    return AppConfig(
        cache_dir=raw.get("cache_dir") or get_cache_dir(),
        dataset_path=raw.get("dataset_path") or get_dataset_path(),
        log_dir=raw.get("log_dir") or get_log_dir(),
        log_level=raw.get("log_level", "INFO"),
        fetch=_section(FetchConfig, raw.get("fetch")),
        download=_section(DownloadConfig, raw.get("download")),
        extraction=_section(ExtractionConfig, raw.get("extraction")),
        publish=_section(PublishConfig, raw.get("publish")),
    )
