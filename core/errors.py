"""Error taxonomy shared by the wallet, chain and chat layers."""

from typing import Optional


class MintBotError(Exception):
    """Base class; ``user_message`` is what the chat user gets to see."""

    user_message = "❌ An error occurred."

    def __init__(self, message: str = "", *, user_message: Optional[str] = None) -> None:
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class ConfigError(MintBotError):
    user_message = "❌ The bot is misconfigured."


class CredentialError(MintBotError):
    pass


class InvalidCredentialFormat(CredentialError):
    user_message = "❌ Invalid input. Please provide a valid private key or mnemonic."


class CredentialParseError(CredentialError):
    user_message = "❌ Error importing wallet: the key or mnemonic could not be parsed."


class EncryptionError(MintBotError):
    user_message = "❌ Error importing wallet: the key could not be secured."


class RpcError(MintBotError):
    user_message = "❌ The blockchain node is unreachable. Please try again later."


class ContractRevert(MintBotError):
    """The contract (or node) refused the call; ``reason`` is the decoded text."""

    def __init__(self, reason: str = "", *, user_message: Optional[str] = None) -> None:
        self.reason = reason or "execution reverted"
        super().__init__(self.reason, user_message=user_message)
        if user_message is None:
            self.user_message = f"❌ Error minting NFT: {self.reason}"


class CooldownActive(ContractRevert):
    def __init__(self, reason: str = "", *, user_message: Optional[str] = None) -> None:
        super().__init__(
            reason,
            user_message=user_message or "❌ You must wait 24 hours between mints.",
        )


class InsufficientFunds(ContractRevert):
    def __init__(self, reason: str = "", *, user_message: Optional[str] = None) -> None:
        super().__init__(
            reason,
            user_message=user_message or "❌ Insufficient funds for gas fees.",
        )


class TransportError(MintBotError):
    user_message = "❌ Telegram refused the request."
