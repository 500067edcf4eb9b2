"""
Local key signer.

Signs UserOperation hashes with an owner key held in process memory
(EIP-191 personal message over the 32-byte hash, as SimpleAccount
verifies it). Intended for development and tests; production signing
happens in the caller's wallet.
"""

from eth_account import Account
from eth_account.messages import encode_defunct


class LocalAccountSigner:
    """Signer backed by an eth_account LocalAccount."""

    def __init__(self, private_key: str) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    async def sign(self, user_op_hash: str) -> str:
        message = encode_defunct(hexstr=user_op_hash)
        signed = self._account.sign_message(message)
        signature = signed.signature.hex()
        return signature if signature.startswith("0x") else f"0x{signature}"
