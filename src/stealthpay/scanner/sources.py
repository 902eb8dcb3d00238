"""
Announcement sources: where the scanner reads published announcements from.

Two backends expose the identical batched-range contract:

    fetch(from_block, to_block) -> list of raw records   (inclusive range)
    parse(record)               -> Announcement          (raises on malformed)

- LogAnnouncementSource reads Announcement events straight from ledger logs.
- IndexerAnnouncementSource queries a GraphQL indexing service, paging by id.

Both raise ``AnnouncementSourceError`` for transient failures so the scanner
can retry them without caring which backend is in use.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from stealthpay.core.contract import ANNOUNCEMENT_TOPIC, decode_announcement_log
from stealthpay.core.models import Announcement
from stealthpay.core.node import Ledger, NodeError

logger = logging.getLogger("stealthpay.sources")

_ANNOUNCEMENTS_QUERY = """
query Announcements($first: Int!, $fromBlock: BigInt!, $toBlock: BigInt!, $lastId: ID!) {
  announcementEntities(
    first: $first
    orderBy: id
    orderDirection: asc
    where: { block_gte: $fromBlock, block_lte: $toBlock, id_gt: $lastId }
  ) {
    id
    amount
    block
    logIndex
    ephemeralPublicKey
    receiver
    token
    viewTag
    txHash
  }
}
"""


class AnnouncementSourceError(Exception):
    """A transient failure fetching announcements (network, rate limit, 5xx)."""
    pass


@runtime_checkable
class AnnouncementSource(Protocol):
    """Batched, range-addressed access to published announcements."""

    def fetch(self, from_block: int, to_block: int) -> list[Any]: ...

    def parse(self, record: Any) -> Announcement: ...


class LogAnnouncementSource:
    """
    Reads Announcement events from the ledger's own logs.

    Usage:
        source = LogAnnouncementSource(node, config.contract_address)
    """

    def __init__(self, ledger: Ledger, contract_address: str) -> None:
        self.ledger = ledger
        self.contract_address = contract_address

    def fetch(self, from_block: int, to_block: int) -> list[dict[str, Any]]:
        try:
            return self.ledger.get_logs(
                self.contract_address, from_block, to_block, topics=[ANNOUNCEMENT_TOPIC]
            )
        except (NodeError, httpx.HTTPError) as e:
            raise AnnouncementSourceError(
                f"Log fetch failed for blocks {from_block}-{to_block}: {e}"
            ) from e

    def parse(self, record: dict[str, Any]) -> Announcement:
        return Announcement(**decode_announcement_log(record))


class IndexerAnnouncementSource:
    """
    Reads announcements from a GraphQL indexing service.

    Results for a block range are paged by entity id; every page of a range is
    fetched before ``fetch`` returns, so a range is either complete or failed.

    Usage:
        source = IndexerAnnouncementSource(config.announcement_source)
    """

    def __init__(
        self,
        url: str,
        page_size: int = 1000,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.url = url
        self.page_size = page_size
        self._client = client or httpx.Client(timeout=timeout)

    def fetch(self, from_block: int, to_block: int) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        last_id = ""
        while True:
            page = self._query_page(from_block, to_block, last_id)
            records.extend(page)
            if len(page) < self.page_size:
                return records
            try:
                last_id = str(page[-1]["id"])
            except (KeyError, TypeError) as e:
                raise AnnouncementSourceError(
                    f"Indexer page for blocks {from_block}-{to_block} has no record id to continue from"
                ) from e

    def parse(self, record: dict[str, Any]) -> Announcement:
        return Announcement(
            ephemeral_public_key=record["ephemeralPublicKey"],
            stealth_address=record["receiver"],
            view_tag=record["viewTag"],
            token_address=record["token"],
            amount=int(record["amount"]),
            block_number=int(record["block"]),
            log_index=int(record.get("logIndex") or 0),
            transaction_hash=record.get("txHash"),
        )

    def _query_page(self, from_block: int, to_block: int, last_id: str) -> list[dict[str, Any]]:
        payload = {
            "query": _ANNOUNCEMENTS_QUERY,
            "variables": {
                "first": self.page_size,
                "fromBlock": str(from_block),
                "toBlock": str(to_block),
                "lastId": last_id,
            },
        }
        try:
            response = self._client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise AnnouncementSourceError(f"Indexer request failed: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise AnnouncementSourceError(
                f"Indexer unavailable: {response.status_code} — {response.text}"
            )
        if response.status_code != 200:
            raise AnnouncementSourceError(
                f"Indexer error {response.status_code}: {response.text}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise AnnouncementSourceError(f"Indexer returned a non-JSON body: {e}") from e
        if not isinstance(body, dict):
            raise AnnouncementSourceError(f"Unexpected indexer response: {body!r}")
        if body.get("errors"):
            raise AnnouncementSourceError(f"Indexer query error: {body['errors']}")
        data = body.get("data") or {}
        page = data.get("announcementEntities") if isinstance(data, dict) else data
        if page is None:
            return []
        if not isinstance(page, list):
            raise AnnouncementSourceError(f"Unexpected announcement page: {page!r}")
        return page

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> IndexerAnnouncementSource:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()


def source_for_config(ledger: Ledger, config: Any) -> AnnouncementSource:
    """Pick the source a ChainConfig asks for: indexer URL or ledger logs."""
    if config.announcement_source:
        return IndexerAnnouncementSource(config.announcement_source)
    return LogAnnouncementSource(ledger, config.contract_address)
