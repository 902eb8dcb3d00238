#!/usr/bin/env python3
"""
Example 02: Send ETH to a stealth address, find it, sweep it.

Needs a local dev node (anvil / hardhat) with the stealth payment contract
deployed at the default address and the dev accounts funded.

Usage:
    python examples/02_send_and_scan.py
    python examples/02_send_and_scan.py http://localhost:8545
"""

import sys

from stealthpay import EthereumNode, StealthClient, Wallet

RPC_URL = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8545"
SENDER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
RECEIVER_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"

node = EthereumNode(RPC_URL)
client = StealthClient(node, {
    "contract_address": "0xFb2dc580Eed955B528407b4d36FfaFe3da685401",
    "start_block": 0,
    "announcement_source": None,
})

sender = Wallet.from_private_key(SENDER_KEY)
receiver = Wallet.from_private_key(RECEIVER_KEY)
keys = client.derive_keys(receiver)

# Send 0.1 ETH; the toll is added automatically
result = client.send(sender, "ETH", 10**17, keys.public_keys)
receipt = result.pending_transaction.wait()
print(f"Sent to {result.stealth_address} in block {receipt.block_number}")

# Receiver side: scan, recover the stealth key, sweep
print("Scanning...")
for match in client.scan(
    keys.viewing_key_pair.public_key,
    keys.viewing_key_pair.private_key,
    keys.spending_key_pair.public_key,
):
    announcement = match.announcement
    print(f"  found {announcement.amount} wei at {announcement.stealth_address}")
    stealth_key = client.stealth_private_key_for(match, keys.spending_key_pair.private_key)
    pending = client.withdraw(stealth_key, announcement.token_address, receiver.address)
    print(f"  swept -> {pending.tx_hash}")

node.close()
