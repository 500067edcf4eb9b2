"""
Escrow channel strategies.

Per-channel identifier rules for deferred payments: how an identifier is
normalized, which identifier an account owns, and how two are compared.
"""

from abc import ABC, abstractmethod

from paylink.models.account import Account
from paylink.models.enums import EscrowChannel
from paylink.repositories.account_repository import AccountRepository
from paylink.utils.exceptions import ValidationError
from paylink.validators.unified import normalize_email, normalize_phone


class ChannelStrategy(ABC):
    """Identifier rules for one escrow channel."""

    channel: str

    @abstractmethod
    def normalize(self, raw: str) -> str:
        """Normalize a raw identifier. Raises ValidationError."""

    @abstractmethod
    def identifier_of(self, account: Account) -> str | None:
        """Identifier the account owns on this channel."""

    @abstractmethod
    async def find_account(
        self, accounts: AccountRepository, identifier: str
    ) -> Account | None:
        """Account registered under a normalized identifier."""

    def matches(self, account: Account, identifier: str) -> bool:
        """Check that the account owns the escrow's identifier."""
        own = self.identifier_of(account)
        if not own:
            return False
        try:
            return self.normalize(own) == self.normalize(identifier)
        except ValidationError:
            return False


class EmailChannel(ChannelStrategy):
    """Email identifiers, compared case-insensitively."""

    channel = EscrowChannel.EMAIL

    def normalize(self, raw: str) -> str:
        try:
            return normalize_email(raw)
        except ValueError as e:
            raise ValidationError(f"Invalid email: {e}") from e

    def identifier_of(self, account: Account) -> str | None:
        return account.email

    async def find_account(
        self, accounts: AccountRepository, identifier: str
    ) -> Account | None:
        return await accounts.get_by_email(identifier)


class PhoneChannel(ChannelStrategy):
    """E.164 phone identifiers."""

    channel = EscrowChannel.PHONE

    def normalize(self, raw: str) -> str:
        try:
            return normalize_phone(raw)
        except ValueError as e:
            raise ValidationError(f"Invalid phone number: {e}") from e

    def identifier_of(self, account: Account) -> str | None:
        return account.phone

    async def find_account(
        self, accounts: AccountRepository, identifier: str
    ) -> Account | None:
        return await accounts.get_by_phone(identifier)


CHANNEL_STRATEGIES: dict[str, ChannelStrategy] = {
    EscrowChannel.EMAIL: EmailChannel(),
    EscrowChannel.PHONE: PhoneChannel(),
}


def get_strategy(channel: str) -> ChannelStrategy:
    """
    Strategy for a channel.

    Raises:
        ValidationError: Unknown channel
    """
    strategy = CHANNEL_STRATEGIES.get(channel)
    if strategy is None:
        raise ValidationError(f"Unsupported escrow channel: {channel}")
    return strategy
