"""
Withdrawal Relayer — submits token withdrawals on behalf of a stealth address.

The stealth address usually holds no native balance to pay gas. Its owner
signs a withdrawal authorisation (see ``stealthpay.crypto.withdrawal``) and
hands it to a relayer, who submits it and pays gas:

    stealth owner:  (v, r, s) = sign(digest(chainId, contract, stealth, destination,
                                            token, sponsor, sponsorFee, hook, data))
    relayer:        withdrawTokenOnBehalf(stealth, destination, token, sponsor,
                                          sponsorFee, v, r, s)
    contract:       recovers signer == stealth, pays sponsorFee to sponsor and
                    the remainder to destination

The relayer only checks that the request is well formed. Whether the
signature is valid is decided by the contract; a bad one reverts on-chain.
Submissions are never retried here, so a timeout can't double-submit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from stealthpay.core.address import ZERO_ADDRESS, is_native_token, validate_address
from stealthpay.core.config import ChainConfig
from stealthpay.core.contract import encode_call
from stealthpay.core.models import PendingTransaction
from stealthpay.core.node import Ledger, TransactionSigner
from stealthpay.crypto.withdrawal import (
    parse_amount,
    parse_hook_data,
    validate_signature_components,
)

logger = logging.getLogger("stealthpay.relayer")


@dataclass(frozen=True)
class WithdrawalRequest:
    """
    A validated relayed-withdrawal request.

    Attributes:
        stealth_address: address holding the tokens (the signer)
        destination: recipient of amount - sponsor_fee
        token: ERC-20 being withdrawn
        sponsor: recipient of sponsor_fee
        sponsor_fee: fee in the token's smallest unit
        v, r, s: withdrawal authorisation
        hook: optional contract called after the transfer
        hook_data: optional 0x-hex payload for the hook
    """
    stealth_address: str
    destination: str
    token: str
    sponsor: str
    sponsor_fee: int
    v: int
    r: str
    s: str
    hook: str | None = None
    hook_data: str | None = None

    @classmethod
    def create(
        cls,
        stealth_address: str,
        destination: str,
        token: str,
        sponsor: str,
        sponsor_fee: int | str,
        v: int,
        r: str,
        s: str,
        hook: str | None = None,
        hook_data: str | None = None,
    ) -> WithdrawalRequest:
        """
        Validate raw arguments into a request.

        Raises:
            AddressFormatError: malformed address (names the field).
            DataFormatError: malformed sponsor_fee or hook_data.
            SignatureError: malformed v, r or s.
            ValueError: the native asset was requested.
        """
        stealth_address = validate_address(stealth_address, "stealth_address")
        destination = validate_address(destination, "destination")
        if is_native_token(token):
            raise ValueError(
                "Native ETH is held by the stealth address itself and cannot be "
                "withdrawn on behalf; use a direct withdrawal"
            )
        token = validate_address(token, "token_address")
        sponsor = validate_address(sponsor, "sponsor")
        fee = parse_amount(sponsor_fee, "sponsor_fee")
        validate_signature_components(v, r, s)
        if hook is not None:
            hook = validate_address(hook, "hook")
        parse_hook_data(hook_data)
        return cls(
            stealth_address=stealth_address,
            destination=destination,
            token=token,
            sponsor=sponsor,
            sponsor_fee=fee,
            v=v,
            r=r,
            s=s,
            hook=hook,
            hook_data=hook_data,
        )

    @property
    def uses_hook(self) -> bool:
        return self.hook is not None or bool(self.hook_data and self.hook_data != "0x")


class WithdrawalRelayer:
    """
    Builds and submits relayed withdrawals for one stealth contract.

    Usage:
        relayer = WithdrawalRelayer(node, chain_config)
        request = WithdrawalRequest.create(stealth, dest, token, sponsor, fee, v, r, s)
        pending = relayer.relay(relayer_wallet, request)
    """

    def __init__(self, ledger: Ledger, chain_config: ChainConfig) -> None:
        self.ledger = ledger
        self.chain_config = chain_config

    def build_withdrawal_tx(self, request: WithdrawalRequest) -> dict[str, Any]:
        """
        Build the unsigned contract call for a request.

        Hook withdrawals go through ``withdrawTokenAndCallOnBehalf``; plain
        ones through ``withdrawTokenOnBehalf``.
        """
        r = bytes.fromhex(request.r[2:])
        s = bytes.fromhex(request.s[2:])
        if request.uses_hook:
            data = encode_call(
                "withdrawTokenAndCallOnBehalf",
                request.stealth_address,
                request.destination,
                request.token,
                request.sponsor,
                request.sponsor_fee,
                request.hook or ZERO_ADDRESS,
                parse_hook_data(request.hook_data),
                request.v,
                r,
                s,
            )
        else:
            data = encode_call(
                "withdrawTokenOnBehalf",
                request.stealth_address,
                request.destination,
                request.token,
                request.sponsor,
                request.sponsor_fee,
                request.v,
                r,
                s,
            )
        return {"to": self.chain_config.contract_address, "data": data, "value": 0}

    def relay(
        self,
        relayer: TransactionSigner,
        request: WithdrawalRequest,
        gas_limit: int | None = None,
    ) -> PendingTransaction:
        """
        Submit a relayed withdrawal, paying gas from ``relayer``.

        Contract reverts (bad signature, nothing to withdraw, fee too high)
        propagate unchanged from the ledger.
        """
        tx = self.build_withdrawal_tx(request)
        if gas_limit is not None:
            tx["gas"] = gas_limit
        tx_hash = self.ledger.submit_transaction(relayer, tx)
        logger.info(
            f"Relayed withdrawal of {request.token} from {request.stealth_address} "
            f"to {request.destination} (sponsor fee {request.sponsor_fee}) — tx: {tx_hash}"
        )
        return PendingTransaction(
            tx_hash=tx_hash,
            from_address=relayer.address,
            to=tx["to"],
            value=0,
            data="0x" + tx["data"].hex(),
            ledger=self.ledger,
        )
