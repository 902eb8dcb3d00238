#!/usr/bin/env python3
"""
Example 03: Build a relayed token withdrawal.

The stealth address holds tokens but no ETH for gas. Its owner signs a
withdrawal authorisation offline; a relayer submits it and keeps a fee.
This script only signs and prints the request.

Usage:
    python examples/03_relayed_withdrawal.py
"""

from stealthpay import StealthClient, Wallet

CHAIN_ID = 1
CONTRACT = "0xFb2dc580Eed955B528407b4d36FfaFe3da685401"
DAI = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
STEALTH_KEY = "0x" + "42" * 32
DESTINATION = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
RELAYER = "0x2B5AD5c4795c026514f8317c7a215E218DcCD6cF"
FEE = 2 * 10**18

stealth = Wallet.from_private_key(STEALTH_KEY)
auth = StealthClient.build_and_sign(
    STEALTH_KEY, CHAIN_ID, CONTRACT, DESTINATION, DAI, RELAYER, FEE,
)

print("=== Withdrawal request for the relayer ===")
print(f"stealth_address: {stealth.address}")
print(f"destination:     {DESTINATION}")
print(f"token:           {DAI}")
print(f"sponsor:         {RELAYER}")
print(f"sponsor_fee:     {FEE}")
print(f"v, r, s:         {auth.v}, {auth.r}, {auth.s}")
