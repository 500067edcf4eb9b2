"""
Blockchain access.
"""

from paylink.services.blockchain.chain_client import ChainClient

__all__ = ["ChainClient"]
