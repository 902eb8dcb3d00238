"""
stealthpay.relayer — Relayed ("on behalf") withdrawals.

Provides:
- WithdrawalRequest: a validated relayed-withdrawal request
- WithdrawalRelayer: submits requests, paying gas for the stealth address
"""

from stealthpay.relayer.withdrawal_relayer import WithdrawalRelayer, WithdrawalRequest

__all__ = [
    "WithdrawalRelayer",
    "WithdrawalRequest",
]
