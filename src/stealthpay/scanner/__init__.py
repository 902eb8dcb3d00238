"""
stealthpay.scanner — Finding a receiver's payments among published announcements.

Provides:
- AnnouncementScanner: lazy, resumable, view-tag filtered scanning
- LogAnnouncementSource / IndexerAnnouncementSource: interchangeable backends
"""

from stealthpay.scanner.scanner import AnnouncementScanner, ScanError, ScanIterator, ScanSettings
from stealthpay.scanner.sources import (
    AnnouncementSource,
    AnnouncementSourceError,
    IndexerAnnouncementSource,
    LogAnnouncementSource,
    source_for_config,
)

__all__ = [
    "AnnouncementScanner",
    "AnnouncementSource",
    "AnnouncementSourceError",
    "IndexerAnnouncementSource",
    "LogAnnouncementSource",
    "ScanError",
    "ScanIterator",
    "ScanSettings",
    "source_for_config",
]
