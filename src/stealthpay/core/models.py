"""
Core data models for stealth payments.
All amounts are in the token's smallest unit (wei for the native asset).
"""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from stealthpay.core.address import validate_address
from stealthpay.crypto.secp256k1 import compress_public_key


class Announcement(BaseModel):
    """
    A published stealth payment record.

    Immutable once created; produced by a sender's ``send`` and consumed
    read-only by scanners. Construction fails with a pydantic
    ``ValidationError`` for malformed records.
    """
    model_config = ConfigDict(frozen=True)

    ephemeral_public_key: str
    stealth_address: str
    view_tag: int = Field(ge=0, le=255)
    token_address: str
    amount: int = Field(ge=0)
    block_number: int = Field(ge=0)
    transaction_hash: str | None = None
    log_index: int = 0

    @field_validator("ephemeral_public_key")
    @classmethod
    def _check_point(cls, value: str) -> str:
        return compress_public_key(value)

    @field_validator("stealth_address", "token_address")
    @classmethod
    def _check_address(cls, value: str, info: ValidationInfo) -> str:
        return validate_address(value, info.field_name)

    @field_validator("view_tag", mode="before")
    @classmethod
    def _coerce_view_tag(cls, value: Any) -> Any:
        # Logs carry bytes1, indexers a 0x-hex string
        if isinstance(value, (bytes, bytearray)):
            if len(value) != 1:
                raise ValueError(f"view tag must be 1 byte, got {len(value)}")
            return value[0]
        if isinstance(value, str) and value.lower().startswith("0x"):
            raw = bytes.fromhex(value[2:])
            if len(raw) != 1:
                raise ValueError(f"view tag must be 1 byte, got {len(raw)}")
            return raw[0]
        return value

    @property
    def sort_key(self) -> tuple[int, int]:
        return self.block_number, self.log_index


class ScanResult(BaseModel):
    """Outcome of testing one announcement against a receiver's keys."""
    model_config = ConfigDict(frozen=True)

    matched: bool
    recovered_randomness: str | None = None  # 0x hex shared secret s, set on a match
    announcement: Announcement

    @property
    def shared_secret(self) -> int | None:
        return int(self.recovered_randomness, 16) if self.recovered_randomness else None


class TransactionReceipt(BaseModel):
    """A mined transaction's receipt."""
    tx_hash: str
    block_number: int
    status: int
    gas_used: int = 0
    effective_gas_price: int = 0
    logs: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @property
    def fee(self) -> int:
        """Gas fee paid, in wei."""
        return self.gas_used * self.effective_gas_price


class PendingTransaction(BaseModel):
    """A submitted, not necessarily mined, transaction."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    tx_hash: str
    from_address: str
    to: str | None = None
    value: int = 0
    data: str = "0x"
    ledger: Any = Field(default=None, exclude=True, repr=False)

    def wait(self, timeout: float = 120.0, poll_interval: float = 1.0) -> TransactionReceipt:
        """
        Block until the transaction is mined.

        Raises:
            TimeoutError: if no receipt appears within ``timeout`` seconds.
            NodeError: if the transaction reverted.
        """
        from stealthpay.core.node import NodeError

        if self.ledger is None:
            raise RuntimeError("PendingTransaction is not bound to a ledger")
        deadline = time.monotonic() + timeout
        while True:
            receipt = self.ledger.get_transaction_receipt(self.tx_hash)
            if receipt is not None:
                if not receipt.succeeded:
                    raise NodeError(f"Transaction {self.tx_hash} reverted")
                return receipt
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Transaction {self.tx_hash} not mined after {timeout}s")
            time.sleep(poll_interval)
