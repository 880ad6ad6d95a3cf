import logging
from typing import Any, Awaitable, Callable, Optional

from .chain import ChainGateway
from .crypto import SecretCipher
from .errors import (
    ContractRevert,
    CredentialError,
    EncryptionError,
    MintBotError,
)
from .sessions import PendingInputs, Session, SessionStore
from .wallets import WalletProvisioner

log = logging.getLogger(__name__)

Reply = Callable[[str], Awaitable[Any]]
InviteFactory = Callable[[], Awaitable[str]]

HELP_TEXT = (
    "Welcome to the NFT Minting Bot! 🚀\n\n"
    "Commands:\n"
    "/connect - Connect your wallet\n"
    "/import - Import your existing wallet (private key or mnemonic)\n"
    "/mint - Mint a new NFT\n"
    "/balance - Check your NFT balance\n"
    "/collection - View your NFT collection"
)
NO_SESSION_MINT = "❌ Please connect or import your wallet first using /connect or /import"
NO_SESSION = "❌ Please connect your wallet first using /connect"
IMPORT_PRIVATE_ONLY = (
    "⚠️ For security reasons, please use the /import command in a private message with the bot."
)
IMPORT_PROMPT = (
    "To import your wallet, send your private key or mnemonic (12 words) in the next message."
)
INVITE_TTL_NOTE = "⚠️ This invite link will expire in 5 minutes!"


class CommandDispatcher:
    """Transport-neutral handlers for the bot's chat commands."""

    def __init__(
        self,
        *,
        store: SessionStore,
        gateway: ChainGateway,
        cipher: SecretCipher,
        provisioner: Optional[WalletProvisioner] = None,
        pending: Optional[PendingInputs] = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.cipher = cipher
        self.provisioner = provisioner or WalletProvisioner()
        self.pending = pending or PendingInputs()

    async def start(self, reply: Reply) -> None:
        await reply(HELP_TEXT)

    async def connect(self, user_id: int, reply: Reply) -> Optional[Session]:
        existing = self.store.get(user_id)
        if existing is not None:
            await reply(f"🔗 Wallet already connected!\n\nAddress: {existing.address}")
            return existing
        try:
            account = self.provisioner.create_random()
        except Exception as exc:
            log.exception("wallet creation failed for %s", user_id)
            await reply(f"❌ Error connecting wallet: {exc}")
            return None
        session = Session(user_id=user_id, account=account, origin="created")
        if not self.store.compare_and_swap(user_id, None, session):
            winner = self.store.get(user_id)
            log.info("concurrent /connect for %s, keeping %s", user_id, winner.address)
            await reply(f"🔗 Wallet already connected!\n\nAddress: {winner.address}")
            return winner
        await reply(
            "🔐 New wallet created!\n\n"
            f"Address: {account.address}\n\n"
            "IMPORTANT: Save this private key securely:\n"
            f"{account.key.to_0x_hex()}\n\n"
            "⚠️ Never share your private key with anyone!\n\n"
            "💡 Send some ETH to this address to pay for minting gas fees."
        )
        return session

    async def begin_import(self, user_id: int, chat_id: int, is_private: bool, reply: Reply) -> bool:
        if not is_private:
            await reply(IMPORT_PRIVATE_ONLY)
            return False
        self.pending.begin(user_id, chat_id)
        await reply(IMPORT_PROMPT)
        return True

    async def receive_text(self, user_id: int, chat_id: int, text: str, reply: Reply) -> bool:
        """Consume ``text`` as a credential when this user has an import pending here."""
        if not self.pending.is_awaiting(user_id, chat_id):
            return False
        self.pending.clear(user_id)
        await self.complete_import(user_id, text or "", reply)
        return True

    async def complete_import(self, user_id: int, raw_input: str, reply: Reply) -> Optional[Session]:
        try:
            account = self.provisioner.import_from_secret(raw_input)
            encrypted = self.cipher.encrypt(account.key.to_0x_hex())
        except (CredentialError, EncryptionError) as exc:
            await reply(exc.user_message)
            return None
        previous = self.store.get(user_id)
        session = Session(
            user_id=user_id, account=account, origin="imported", encrypted_secret=encrypted
        )
        self.store.put(user_id, session)
        text = f"🔐 Wallet imported successfully!\n\nAddress: {account.address}\n\n"
        if previous is not None and previous.address != account.address:
            text += f"This replaces your previous wallet {previous.address}.\n\n"
        await reply(text + "Your wallet is now connected and ready for use.")
        return session

    async def mint(
        self, user_id: int, reply: Reply, invite_factory: Optional[InviteFactory] = None
    ) -> None:
        session = self.store.get(user_id)
        if session is None:
            await reply(NO_SESSION_MINT)
            return
        await reply("🔄 Preparing to mint your NFT... Please wait.")
        try:
            submitted = await self.gateway.submit_mint(session.account)
            await reply("🔄 Transaction submitted! Waiting for confirmation...")
            await self.gateway.wait_for_confirmation(submitted.tx_hash)
        except ContractRevert as exc:
            log.info("mint for %s reverted: %s", user_id, exc.reason)
            await reply(exc.user_message)
            return
        except MintBotError as exc:
            await reply(f"❌ Error minting NFT: {exc}")
            return
        except Exception as exc:
            log.exception("unexpected mint failure for %s", user_id)
            await reply(f"❌ An error occurred: {exc}")
            return

        text = f"✅ NFT Minted Successfully!\n\nTransaction: {submitted.tx_hash}"
        if invite_factory is not None:
            try:
                link = await invite_factory()
            except Exception as exc:
                log.warning("invite after mint failed for %s: %s", user_id, exc)
                text += "\n\n⚠️ Could not create a group invite right now."
            else:
                text += f"\n\n🎉 Join our exclusive group:\n{link}\n\n{INVITE_TTL_NOTE}"
        await reply(text)

    async def balance(self, user_id: int, reply: Reply) -> None:
        session = self.store.get(user_id)
        if session is None:
            await reply(NO_SESSION)
            return
        try:
            nft_balance = await self.gateway.get_token_balance(session.address)
            native_balance = await self.gateway.get_native_balance(session.address)
        except Exception as exc:
            if not isinstance(exc, MintBotError):
                log.exception("balance lookup failed for %s", user_id)
            await reply(f"❌ Error checking balance: {exc}")
            return
        await reply(
            "💰 Wallet Balance:\n\n"
            f"NFTs: {nft_balance}\n"
            f"ETH: {format_ether(native_balance)}"
        )

    async def collection(self, user_id: int, reply: Reply) -> None:
        session = self.store.get(user_id)
        if session is None:
            await reply(NO_SESSION)
            return
        try:
            tokens = await self.gateway.query_owned_tokens(session.address)
        except Exception as exc:
            if not isinstance(exc, MintBotError):
                log.exception("collection lookup failed for %s", user_id)
            await reply(f"❌ Error fetching collection: {exc}")
            return
        if not tokens:
            await reply("🖼️ You don't have any NFTs yet. Use /mint to get your first one!")
            return
        lines = ["🖼️ Your NFT Collection:", ""]
        for token in tokens:
            lines.append(f"NFT #{token.token_id}\nMetadata: {token.token_uri}\n")
        await reply("\n".join(lines))


def format_ether(amount) -> str:
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
