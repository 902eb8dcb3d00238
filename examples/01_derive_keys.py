#!/usr/bin/env python3
"""
Example 01: Derive stealth keys from a wallet.

Signs the fixed key-derivation message and prints the public keys a sender
needs. Runs offline; no node required.

Usage:
    python examples/01_derive_keys.py
    python examples/01_derive_keys.py 0x<private key>
"""

import sys

from stealthpay import StealthClient, Wallet

# Hardhat's first dev account unless a key is given
DEFAULT_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
wallet = Wallet.from_private_key(sys.argv[1] if len(sys.argv) > 1 else DEFAULT_KEY)

keys = StealthClient.derive_keys(wallet)

print(f"Wallet:           {wallet.address}")
print(f"Spending pubkey:  {keys.spending_key_pair.public_key}")
print(f"Viewing pubkey:   {keys.viewing_key_pair.public_key}")
print()
print("Share the two public keys (or register them) so senders can pay you.")
print("The private halves are re-derived from the wallet whenever needed.")
