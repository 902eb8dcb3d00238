"""
Payment flows for the stealthpay SDK.
"""
from .client import InsufficientBalanceError, SendResult, StealthClient

__all__ = [
    "InsufficientBalanceError",
    "SendResult",
    "StealthClient",
]
