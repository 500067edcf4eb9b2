"""
External service adapters.
"""

from paylink.services.external.bundler_client import BundlerClient
from paylink.services.external.json_rpc import JsonRpcClient
from paylink.services.external.notifier import LoggingNotifier
from paylink.services.external.signer import LocalAccountSigner
from paylink.services.external.sponsor_client import SponsorClient

__all__ = [
    "BundlerClient",
    "JsonRpcClient",
    "LocalAccountSigner",
    "LoggingNotifier",
    "SponsorClient",
]
