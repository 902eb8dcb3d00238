"""
Unit tests for stealthpay.relayer.withdrawal_relayer — relayed withdrawals.

Signatures are verified by FakeLedger the way the contract does it, so a
tampered request reverts instead of paying out.
"""

import pytest

from stealthpay.core.address import ETH_ADDRESS, AddressFormatError
from stealthpay.core.contract import decode_call
from stealthpay.core.node import NodeError
from stealthpay.crypto.secp256k1 import address_from_point, scalar_mult_base
from stealthpay.crypto.withdrawal import DataFormatError, SignatureError, build_and_sign
from stealthpay.relayer.withdrawal_relayer import WithdrawalRelayer, WithdrawalRequest

from conftest import CHAIN_ID, CONTRACT, DAI, REGISTRY

STEALTH_KEY = 0xBEEF
STEALTH = address_from_point(scalar_mult_base(STEALTH_KEY))
DESTINATION = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
SPONSOR = "0x2B5AD5c4795c026514f8317c7a215E218DcCD6cF"
HOOK = "0x6813Eb9362372EEF6200f3b1dbC3f819671cBA69"
AMOUNT = 5 * 10**18
GOOD = "0x" + "11" * 32


def _signed_request(
    destination=DESTINATION,
    sponsor=SPONSOR,
    fee="2500",
    hook=None,
    hook_data=None,
    signed_destination=None,
    signed_sponsor=None,
    signed_fee=None,
):
    """Request for the given parameters, signed over the signed_* overrides if any."""
    auth = build_and_sign(
        STEALTH_KEY, CHAIN_ID, CONTRACT,
        signed_destination or destination, DAI,
        signed_sponsor or sponsor, signed_fee or fee,
        hook, hook_data,
    )
    return WithdrawalRequest.create(
        STEALTH, destination, DAI, sponsor, fee, auth.v, auth.r, auth.s, hook=hook, hook_data=hook_data
    )


class TestWithdrawalRequest:

    def test_create_normalises(self):
        request = WithdrawalRequest.create(STEALTH.lower(), DESTINATION, DAI, SPONSOR, "2500", 27, GOOD, GOOD)
        assert request.stealth_address == STEALTH
        assert request.sponsor_fee == 2500
        assert not request.uses_hook

    def test_native_asset_rejected(self):
        with pytest.raises(ValueError, match="direct withdrawal"):
            WithdrawalRequest.create(STEALTH, DESTINATION, ETH_ADDRESS, SPONSOR, 0, 27, GOOD, GOOD)

    @pytest.mark.parametrize(
        "index,field",
        [(0, "stealth_address"), (1, "destination"), (2, "token_address"), (3, "sponsor")],
    )
    def test_bad_address_named(self, index, field):
        args = [STEALTH, DESTINATION, DAI, SPONSOR]
        args[index] = "0x123"
        with pytest.raises(AddressFormatError, match=field):
            WithdrawalRequest.create(*args, 0, 27, GOOD, GOOD)

    def test_bad_fee(self):
        with pytest.raises(DataFormatError, match="sponsor_fee"):
            WithdrawalRequest.create(STEALTH, DESTINATION, DAI, SPONSOR, "25.00", 27, GOOD, GOOD)

    def test_bad_signature_components(self):
        with pytest.raises(SignatureError):
            WithdrawalRequest.create(STEALTH, DESTINATION, DAI, SPONSOR, 0, 30, GOOD, GOOD)

    def test_bad_hook_data(self):
        with pytest.raises(DataFormatError, match="0x prefix"):
            WithdrawalRequest.create(STEALTH, DESTINATION, DAI, SPONSOR, 0, 27, GOOD, GOOD, HOOK, "beef")

    def test_hook_data_alone_uses_hook(self):
        request = WithdrawalRequest.create(STEALTH, DESTINATION, DAI, SPONSOR, 0, 27, GOOD, GOOD, hook_data="0x01")
        assert request.uses_hook


class TestBuildTx:

    def test_plain_withdrawal(self, ledger, chain_config):
        relayer = WithdrawalRelayer(ledger, chain_config)
        tx = relayer.build_withdrawal_tx(_signed_request())
        name, args = decode_call(tx["data"])
        assert tx["to"] == CONTRACT
        assert tx["value"] == 0
        assert name == "withdrawTokenOnBehalf"
        assert args[:5] == [STEALTH, DESTINATION, DAI, SPONSOR, 2500]

    def test_hook_withdrawal(self, ledger, chain_config):
        relayer = WithdrawalRelayer(ledger, chain_config)
        tx = relayer.build_withdrawal_tx(_signed_request(hook=HOOK, hook_data="0xcafe"))
        name, args = decode_call(tx["data"])
        assert name == "withdrawTokenAndCallOnBehalf"
        assert args[5] == HOOK
        assert args[6] == b"\xca\xfe"


class TestRelay:

    def test_sponsored_withdrawal(self, ledger, chain_config, relayer):
        ledger.token_payments[(STEALTH, DAI)] = AMOUNT
        pending = WithdrawalRelayer(ledger, chain_config).relay(relayer, _signed_request())

        assert pending.wait().succeeded
        assert pending.from_address == relayer.address
        assert ledger.token_balance(DAI, DESTINATION) == AMOUNT - 2500
        assert ledger.token_balance(DAI, SPONSOR) == 2500
        assert ledger.held_for(STEALTH, DAI) == 0

    def test_swapped_destination_and_sponsor_reverts(self, ledger, chain_config, relayer):
        ledger.token_payments[(STEALTH, DAI)] = AMOUNT
        request = _signed_request(
            destination=SPONSOR, sponsor=DESTINATION,
            signed_destination=DESTINATION, signed_sponsor=SPONSOR,
        )
        with pytest.raises(NodeError, match="Invalid Signature"):
            WithdrawalRelayer(ledger, chain_config).relay(relayer, request)
        assert ledger.held_for(STEALTH, DAI) == AMOUNT

    def test_raised_fee_reverts(self, ledger, chain_config, relayer):
        ledger.token_payments[(STEALTH, DAI)] = AMOUNT
        request = _signed_request(fee="2501", signed_fee="2500")
        with pytest.raises(NodeError, match="Invalid Signature"):
            WithdrawalRelayer(ledger, chain_config).relay(relayer, request)

    def test_hook_withdrawal_calls_hook(self, ledger, chain_config, relayer):
        ledger.token_payments[(STEALTH, DAI)] = AMOUNT
        request = _signed_request(hook=HOOK, hook_data="0xcafe")
        WithdrawalRelayer(ledger, chain_config).relay(relayer, request)
        assert ledger.hook_calls == [(HOOK, b"\xca\xfe", AMOUNT - 2500)]

    def test_nothing_to_withdraw_reverts(self, ledger, chain_config, relayer):
        with pytest.raises(NodeError, match="No balance to withdraw"):
            WithdrawalRelayer(ledger, chain_config).relay(relayer, _signed_request())

    def test_gas_limit_passed_through(self, ledger, chain_config, relayer):
        ledger.token_payments[(STEALTH, DAI)] = AMOUNT
        WithdrawalRelayer(ledger, chain_config).relay(relayer, _signed_request(), gas_limit=250_000)
        assert ledger.submitted[-1]["gas"] == 250_000

    def test_registry_untouched(self, ledger, chain_config, relayer):
        ledger.token_payments[(STEALTH, DAI)] = AMOUNT
        WithdrawalRelayer(ledger, chain_config).relay(relayer, _signed_request())
        assert all(tx["to"] != REGISTRY for tx in ledger.submitted)
