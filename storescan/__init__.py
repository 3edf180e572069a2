"""Store-by-store catalog scanner.

This package drives a pool of browser pages through a retail site:
- Per-store task partitions with atomic claiming
- Session token acquisition with cached, observed, provoked and scanned tiers
- Serialized store switching with a page-navigation fallback
- Carousel and item field extraction from page HTML
"""

from .config import ScanConfig, ScanSettings, SiteConfig, load_config
from .errors import CapabilityUnavailableError, ErrorKind, Result
from .models import ProgressSnapshot, ScanResult, ScanTask, SessionToken, TokenSource
from .orchestrator import ScanOrchestrator
from .reporter import ProgressReporter

__all__ = [
    "CapabilityUnavailableError",
    "ErrorKind",
    "ProgressReporter",
    "ProgressSnapshot",
    "Result",
    "ScanConfig",
    "ScanOrchestrator",
    "ScanResult",
    "ScanSettings",
    "ScanTask",
    "SessionToken",
    "SiteConfig",
    "TokenSource",
    "load_config",
]
