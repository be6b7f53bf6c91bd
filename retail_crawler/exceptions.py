"""
Exceptions raised by the retail crawler.

Job-level failures (fetch, extraction, ingestion) are caught at the job
boundary and converted into health, statistics and dead-letter records.
Configuration problems (an unresolvable scraper) skip the job instead.
"""

from dataclasses import dataclass
from typing import Optional


class CrawlerError(Exception):
    """Base class for retail crawler errors."""


class ScraperResolutionError(CrawlerError):
    """Raised when a scraper key has no registered scraper."""

    def __init__(self, scraper_key: str):
        self.scraper_key = scraper_key
        super().__init__(f"No scraper registered for key '{scraper_key}'")


class FetchError(CrawlerError):
    """Raised when a page could not be fetched successfully."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class IngestionError(CrawlerError):
    """Raised when one or more extracted records could not be persisted."""

    def __init__(self, message: str, failures: Optional[list] = None):
        self.failures = failures or []
        super().__init__(message)


class InvalidTransitionError(CrawlerError):
    """Raised when a retailer status change is not allowed from the current status."""

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot transition retailer from {from_status} to {to_status}")


@dataclass
class TransitionResult:
    """Outcome of an operator status action."""

    success: bool
    message: str
    old_status: Optional[str] = None
    new_status: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "old_status": self.old_status,
            "new_status": self.new_status,
        }
