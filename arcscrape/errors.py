"""
Error taxonomy for scrape jobs.

Only EnumerationError ever reaches the caller of ScrapeJob.start(); the
others are caught per batch (or per conversion) and folded into the job's
sticky failure flag.
"""


class ScrapeError(Exception):
    """Base class for all scrape job errors."""
    pass


class EnumerationError(ScrapeError):
    """Layer metadata or object ID list could not be fetched or decoded."""
    pass


class TransportError(ScrapeError):
    """Batch request failed: connection error, timeout or non-200 status."""
    pass


class ParseError(ScrapeError):
    """Batch response body was not a valid feature set."""
    pass


class PersistError(ScrapeError):
    """Batch record could not be written to its chunk artifact."""
    pass


class ConversionError(ScrapeError):
    """The external converter exited non-zero or could not be started."""
    pass
