"""
AnnouncementScanner — finds the announcements addressed to a receiver.

For each announcement the scanner recomputes the shared secret with the
receiver's viewing key and applies the one-byte view tag as a cheap filter:

    s   = keccak256(compress(v·R)) mod n
    tag = keccak256(s)[0]              # reject ~255/256 foreign announcements here
    P   = P_spend + s·G                # only on a tag hit
    match  ⇔  address(P) == announcement.stealth_address

A tag hit alone is never reported: 1 in 256 foreign announcements share the
tag, so the stealth address is always recomputed and compared exactly.

Scanning is lazy and resumable. The block range is split into batches; after
every fully processed batch ``ScanIterator.last_scanned_block`` advances, so an
abandoned or failed scan restarts at ``last_scanned_block + 1`` without
skipping blocks. Transient source failures are retried with bounded
exponential backoff before a ``ScanError`` carrying that checkpoint is raised.
Malformed records are skipped and counted, never fatal.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from stealthpay.core.models import Announcement, ScanResult
from stealthpay.crypto.secp256k1 import (
    compress_public_key,
    parse_private_key,
    public_key_from_private,
    scalar_to_hex,
)
from stealthpay.crypto.stealth import (
    compute_shared_secret,
    compute_view_tag,
    stealth_address_for,
)
from stealthpay.scanner.sources import AnnouncementSource, AnnouncementSourceError

logger = logging.getLogger("stealthpay.scanner")


class ScanError(Exception):
    """
    Raised when announcement fetching fails after all retries.

    Attributes:
        last_scanned_block: last block whose announcements were fully examined;
            resume the scan at ``last_scanned_block + 1``.
    """

    def __init__(self, message: str, last_scanned_block: int) -> None:
        super().__init__(f"{message} (last fully scanned block: {last_scanned_block})")
        self.last_scanned_block = last_scanned_block


@dataclass
class ScanSettings:
    """
    Tuning knobs for announcement scanning.

    Args:
        batch_size:       blocks per range query
        max_retries:      retries per batch after the first failed attempt
        backoff_base:     first retry delay in seconds, doubled per attempt
        backoff_max:      cap on a single retry delay
        max_concurrency:  simultaneous batch fetches (1 = sequential)
    """
    batch_size: int = 5_000
    max_retries: int = 4
    backoff_base: float = 0.5
    backoff_max: float = 8.0
    max_concurrency: int = 1

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")
        if self.max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive, got {self.max_concurrency}")
        if self.backoff_base < 0 or self.backoff_max < 0:
            raise ValueError("backoff delays must be non-negative")

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        return min(self.backoff_max, self.backoff_base * (2 ** attempt))


def batch_windows(start_block: int, end_block: int, batch_size: int) -> list[tuple[int, int]]:
    """Split an inclusive block range into inclusive windows of ``batch_size`` blocks."""
    windows = []
    lo = start_block
    while lo <= end_block:
        hi = min(end_block, lo + batch_size - 1)
        windows.append((lo, hi))
        lo = hi + 1
    return windows


class ScanIterator:
    """
    Lazy sequence of ScanResults for one scan call, in ascending block order.

    Attributes:
        last_scanned_block: checkpoint for resumption (start_block - 1 before any batch)
        examined: well-formed announcements tested
        skipped: malformed records skipped
        matches: announcements confirmed as the receiver's
    """

    def __init__(
        self,
        scanner: AnnouncementScanner,
        viewing_private_key: int,
        spending_public_key: str,
        start_block: int,
        end_block: int,
        include_unmatched: bool = False,
    ) -> None:
        self._scanner = scanner
        self._viewing_private_key = viewing_private_key
        self._spending_public_key = spending_public_key
        self.start_block = start_block
        self.end_block = end_block
        self.include_unmatched = include_unmatched
        self.last_scanned_block = start_block - 1
        self.examined = 0
        self.skipped = 0
        self.matches = 0
        self._results = self._run()

    def __iter__(self) -> ScanIterator:
        return self

    def __next__(self) -> ScanResult:
        return next(self._results)

    @property
    def done(self) -> bool:
        return self.last_scanned_block >= self.end_block

    def close(self) -> None:
        """Abandon the scan; ``last_scanned_block`` stays valid for resumption."""
        self._results.close()

    def _run(self) -> Iterator[ScanResult]:
        settings = self._scanner.settings
        windows = batch_windows(self.start_block, self.end_block, settings.batch_size)
        group_size = settings.max_concurrency

        for i in range(0, len(windows), group_size):
            group = windows[i:i + group_size]
            batches = self._scanner._fetch_group(group, self.last_scanned_block)

            # Groups and windows are ascending, so yielding in window order keeps block order
            for (lo, hi), records in zip(group, batches):
                for announcement in self._parse_sorted(records):
                    self.examined += 1
                    result = self._scanner.check(
                        announcement,
                        self._viewing_private_key,
                        self._spending_public_key,
                        include_unmatched=self.include_unmatched,
                    )
                    if result is None:
                        continue
                    if result.matched:
                        self.matches += 1
                    yield result
                self.last_scanned_block = hi
                logger.debug(f"Scanned blocks {lo}-{hi}")

    def _parse_sorted(self, records: list[Any]) -> list[Announcement]:
        announcements = []
        for record in records:
            try:
                announcements.append(self._scanner.source.parse(record))
            except (ValueError, KeyError, TypeError) as e:
                self.skipped += 1
                logger.debug(f"Skipping malformed announcement record: {e}")
        announcements.sort(key=lambda a: a.sort_key)
        return announcements


class AnnouncementScanner:
    """
    Scans an announcement source for payments to one receiver.

    Usage:
        scanner = AnnouncementScanner(source)
        results = scanner.scan(view_pub, view_priv, spend_pub, start_block, end_block)
        for result in results:
            ...
        resume_from = results.last_scanned_block + 1
    """

    def __init__(
        self,
        source: AnnouncementSource,
        settings: ScanSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.source = source
        self.settings = settings or ScanSettings()
        self._sleep = sleep

    def scan(
        self,
        viewing_public_key: str,
        viewing_private_key: int | str,
        spending_public_key: str,
        start_block: int,
        end_block: int,
        include_unmatched: bool = False,
    ) -> ScanIterator:
        """
        Start a lazy scan over the inclusive block range.

        Args:
            viewing_public_key: receiver's viewing public key
            viewing_private_key: receiver's viewing private key
            spending_public_key: receiver's spending public key
            start_block: first block to scan
            end_block: last block to scan (inclusive)
            include_unmatched: also yield matched=False results

        Returns:
            ScanIterator yielding ScanResults in ascending block order.

        Raises:
            ValueError: mismatched viewing keys, malformed keys, or a bad range.
        """
        view_key = parse_private_key(viewing_private_key)
        if public_key_from_private(view_key) != compress_public_key(viewing_public_key):
            raise ValueError("viewing_public_key does not match viewing_private_key")
        spending_public_key = compress_public_key(spending_public_key)
        if start_block < 0:
            raise ValueError(f"start_block must be non-negative, got {start_block}")
        if end_block < start_block - 1:
            raise ValueError(f"end_block {end_block} precedes start_block {start_block}")

        return ScanIterator(
            self, view_key, spending_public_key, start_block, end_block, include_unmatched
        )

    @staticmethod
    def check(
        announcement: Announcement,
        viewing_private_key: int,
        spending_public_key: str,
        include_unmatched: bool = False,
    ) -> ScanResult | None:
        """
        Test one announcement against a receiver's keys.

        Returns:
            ScanResult(matched=True) on an exact stealth-address match;
            ScanResult(matched=False) for non-matches if include_unmatched;
            otherwise None.
        """
        s = compute_shared_secret(viewing_private_key, announcement.ephemeral_public_key)
        matched = (
            compute_view_tag(s) == announcement.view_tag
            and stealth_address_for(spending_public_key, s) == announcement.stealth_address
        )
        if matched:
            return ScanResult(
                matched=True,
                recovered_randomness=scalar_to_hex(s),
                announcement=announcement,
            )
        if include_unmatched:
            return ScanResult(matched=False, announcement=announcement)
        return None

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _fetch_group(self, group: list[tuple[int, int]], checkpoint: int) -> list[list[Any]]:
        """Fetch a group of windows, concurrently when configured, in window order."""
        if len(group) == 1:
            lo, hi = group[0]
            return [self._fetch_with_retry(lo, hi, checkpoint)]
        with ThreadPoolExecutor(max_workers=len(group)) as pool:
            return list(pool.map(lambda w: self._fetch_with_retry(w[0], w[1], checkpoint), group))

    def _fetch_with_retry(self, from_block: int, to_block: int, checkpoint: int) -> list[Any]:
        settings = self.settings
        attempt = 0
        while True:
            try:
                return self.source.fetch(from_block, to_block)
            except AnnouncementSourceError as e:
                if attempt >= settings.max_retries:
                    raise ScanError(
                        f"Fetching announcements for blocks {from_block}-{to_block} failed "
                        f"after {attempt + 1} attempts: {e}",
                        last_scanned_block=checkpoint,
                    ) from e
                delay = settings.backoff_delay(attempt)
                logger.warning(
                    f"Announcement fetch for blocks {from_block}-{to_block} failed "
                    f"(attempt {attempt + 1}): {e}; retrying in {delay:.2f}s"
                )
                self._sleep(delay)
                attempt += 1
