"""Exception taxonomy.

Only ConnectionFailed, StructureNotFound and CacheMissing ever leave the
pipeline. The per-record kinds are caught where they happen and recorded on
the record and in the run summary.
"""


class NapScraperError(Exception):
    """Base exception for the scraper."""
    pass


class ConnectionFailed(NapScraperError):
    """The submissions page could not be fetched after all attempts."""
    pass


class StructureNotFound(NapScraperError):
    """The page was fetched but the submissions table is missing."""
    pass


class CacheMissing(NapScraperError):
    """No readable snapshot or dataset exists at the requested path."""
    pass


class RowMalformed(NapScraperError):
    """A table row has fewer cells than the fixed column layout needs."""
    pass


class DownloadFailed(NapScraperError):
    """A PDF could not be retrieved."""
    pass


class EmptyDownload(DownloadFailed):
    """The server answered 200 with an empty body."""
    pass


class ExtractionFailed(NapScraperError):
    """A PDF could not be decoded, or decoding timed out."""
    pass
