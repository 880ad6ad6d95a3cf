from unittest.mock import AsyncMock, MagicMock

import pytest

from core.crypto import SecretCipher
from core.dispatcher import CommandDispatcher
from core.sessions import SessionStore

# Well-known development mnemonic; account 0 is the address below.
DEV_MNEMONIC = "test test test test test test test test test test test junk"
DEV_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEV_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


class ReplyRecorder:
    """Stands in for a chat reply callable and keeps what was sent."""

    def __init__(self):
        self.messages = []

    async def __call__(self, text):
        self.messages.append(text)

    @property
    def last(self):
        return self.messages[-1] if self.messages else None


@pytest.fixture
def reply():
    return ReplyRecorder()


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def cipher():
    return SecretCipher("unit-test-passphrase", iterations=1_000)


@pytest.fixture
def gateway():
    return AsyncMock()


@pytest.fixture
def dispatcher(store, gateway, cipher):
    return CommandDispatcher(store=store, gateway=gateway, cipher=cipher)


@pytest.fixture
def mock_web3():
    """A web3 double whose contract object is exposed as ``mock_web3.contract_mock``."""
    web3 = MagicMock()
    contract = MagicMock()
    web3.eth.contract.return_value = contract
    web3.eth.get_transaction_count.return_value = 7
    web3.eth.chain_id = 1001
    web3.eth.send_raw_transaction.return_value = bytes.fromhex("ab" * 32)
    web3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 10}
    web3.contract_mock = contract
    return web3
