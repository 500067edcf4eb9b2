"""
PayLink.

Unified send: wallet transfers through account-abstraction UserOperations,
email and phone transfers through claimable escrow.
"""

__version__ = "1.0.0"
