import logging

from eth_account import Account
from eth_account.signers.local import LocalAccount

from .errors import CredentialParseError, InvalidCredentialFormat

log = logging.getLogger(__name__)

Account.enable_unaudited_hdwallet_features()

MNEMONIC_WORDS = 12
DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/0"


class WalletProvisioner:
    """Creates fresh wallets and parses imported keys or mnemonic phrases."""

    def __init__(self, *, derivation_path: str = DEFAULT_DERIVATION_PATH) -> None:
        self.derivation_path = derivation_path

    def create_random(self) -> LocalAccount:
        account = Account.create()
        log.info("created wallet %s", account.address)
        return account

    @staticmethod
    def classify(raw_input: str) -> str:
        text = (raw_input or "").strip()
        if len(text.split()) == MNEMONIC_WORDS:
            return "mnemonic"
        if text.startswith("0x"):
            return "private_key"
        raise InvalidCredentialFormat("expected a 12-word mnemonic or a 0x-prefixed private key")

    def import_from_secret(self, raw_input: str) -> LocalAccount:
        kind = self.classify(raw_input)
        text = raw_input.strip()
        try:
            if kind == "mnemonic":
                phrase = " ".join(text.split())
                account = Account.from_mnemonic(phrase, account_path=self.derivation_path)
            else:
                account = Account.from_key(text)
        except Exception as exc:
            # The exception text may quote the secret, keep it out of the logs.
            log.info("credential parse failed (%s): %s", kind, type(exc).__name__)
            raise CredentialParseError(f"could not parse {kind.replace('_', ' ')}") from exc
        log.info("imported wallet %s from %s", account.address, kind)
        return account
