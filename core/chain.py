import asyncio
import functools
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, List, Optional, Sequence, Tuple, Type

from eth_abi import decode as abi_decode
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .errors import ContractRevert, CooldownActive, InsufficientFunds, RpcError

log = logging.getLogger(__name__)

# floor(estimate * 12 / 10); integer math keeps the limit exact and >= estimate
GAS_BUFFER_NUMERATOR = 12
GAS_BUFFER_DENOMINATOR = 10
RECEIPT_TIMEOUT = 600

ERROR_SELECTOR = "0x08c379a0"  # Error(string)
PANIC_SELECTOR = "0x4e487b71"  # Panic(uint256)

KNOWN_REVERT_REASONS: Sequence[Tuple[re.Pattern, Type[ContractRevert]]] = (
    (re.compile(r"wait\b.*\bbetween mints", re.IGNORECASE), CooldownActive),
    (re.compile(r"must wait 24 hours", re.IGNORECASE), CooldownActive),
    (re.compile(r"insufficient funds", re.IGNORECASE), InsufficientFunds),
)

DEFAULT_ABI: List[dict] = [
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "mint",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "to", "type": "address"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "tokenURI",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "string"}],
    },
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": True, "name": "tokenId", "type": "uint256"},
        ],
    },
]


@dataclass
class OwnedToken:
    token_id: int
    token_uri: str


@dataclass
class MintResult:
    tx_hash: str
    gas_estimate: int
    gas_limit: int
    receipt: Any


def buffered_gas_limit(estimate: int) -> int:
    return int(estimate) * GAS_BUFFER_NUMERATOR // GAS_BUFFER_DENOMINATOR


def _revert_payload(exc: BaseException) -> Optional[str]:
    data = getattr(exc, "data", None)
    if isinstance(data, dict):
        data = data.get("data")
    if isinstance(data, bytes):
        data = "0x" + data.hex()
    if isinstance(data, str) and data.startswith("0x") and len(data) > 10:
        return data
    return None


def _decode_payload(payload: str) -> Optional[str]:
    selector, body = payload[:10].lower(), payload[10:]
    try:
        if selector == ERROR_SELECTOR:
            (reason,) = abi_decode(["string"], bytes.fromhex(body))
            return reason
        if selector == PANIC_SELECTOR:
            (code,) = abi_decode(["uint256"], bytes.fromhex(body))
            return f"panic code {code:#x}"
    except Exception as exc:
        log.debug("undecodable revert payload %s: %s", payload[:10], exc)
    return None


def revert_reason(exc: BaseException) -> str:
    """Best available revert reason: decoded payload first, client text second."""
    payload = _revert_payload(exc)
    if payload:
        decoded = _decode_payload(payload)
        if decoded:
            return decoded
    message = getattr(exc, "message", None)
    if not isinstance(message, str) or not message:
        args = getattr(exc, "args", ())
        first = args[0] if args else ""
        if isinstance(first, dict):
            message = str(first.get("message") or first)
        else:
            message = str(first or exc)
    for prefix in ("execution reverted: ", "execution reverted:"):
        if message.startswith(prefix):
            return message[len(prefix) :].strip()
    return message.strip()


def classify_reason(reason: str) -> Optional[Type[ContractRevert]]:
    for pattern, kind in KNOWN_REVERT_REASONS:
        if pattern.search(reason):
            return kind
    return None


def decode_revert(exc: BaseException) -> ContractRevert:
    reason = revert_reason(exc)
    kind = classify_reason(reason) or ContractRevert
    return kind(reason)


def translate_error(exc: BaseException) -> Exception:
    if isinstance(exc, ContractLogicError):
        return decode_revert(exc)
    if isinstance(exc, TimeExhausted):
        return RpcError(f"timed out waiting for confirmation: {exc}")
    if isinstance(exc, (Web3Exception, ValueError, OSError)):
        reason = revert_reason(exc)
        kind = classify_reason(reason)
        if kind is not None:
            return kind(reason)
        if "revert" in reason.lower():
            return ContractRevert(reason)
        return RpcError(reason or type(exc).__name__)
    return exc


class ChainGateway:
    """Thin async façade over a web3 client and the NFT contract."""

    def __init__(
        self,
        *,
        contract_address: str,
        abi: Optional[List[dict]] = None,
        rpc_url: Optional[str] = None,
        web3: Optional[Web3] = None,
        receipt_timeout: float = RECEIPT_TIMEOUT,
    ) -> None:
        if web3 is None:
            if not rpc_url:
                raise ValueError("rpc_url or web3 is required")
            web3 = Web3(Web3.HTTPProvider(rpc_url))
        self.web3 = web3
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.contract = web3.eth.contract(address=self.contract_address, abi=abi or DEFAULT_ABI)
        self.receipt_timeout = receipt_timeout

    async def _run(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))
        except (ContractLogicError, TimeExhausted, Web3Exception, ValueError, OSError) as exc:
            translated = translate_error(exc)
            log.warning("chain call %s failed: %s", getattr(fn, "__name__", fn), translated)
            raise translated from exc

    async def get_chain_id(self) -> int:
        return int(await self._run(lambda: self.web3.eth.chain_id))

    async def get_token_balance(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        balance = await self._run(self.contract.functions.balanceOf(checksum).call)
        return int(balance)

    async def get_native_balance(self, address: str) -> Decimal:
        checksum = Web3.to_checksum_address(address)
        balance_wei = await self._run(self.web3.eth.get_balance, checksum)
        return Decimal(Web3.from_wei(balance_wei, "ether"))

    async def estimate_and_mint(
        self, account: LocalAccount, recipient: Optional[str] = None
    ) -> MintResult:
        result = await self.submit_mint(account, recipient)
        result.receipt = await self.wait_for_confirmation(result.tx_hash)
        return result

    async def submit_mint(
        self, account: LocalAccount, recipient: Optional[str] = None
    ) -> MintResult:
        """Estimate, buffer, sign and broadcast a mint; does not wait for a receipt."""
        to = Web3.to_checksum_address(recipient or account.address)
        mint_call = self.contract.functions.mint(to)
        estimate = int(await self._run(mint_call.estimate_gas, {"from": account.address}))
        gas_limit = buffered_gas_limit(estimate)

        def _build_and_send() -> str:
            tx = mint_call.build_transaction(
                {
                    "from": account.address,
                    "gas": gas_limit,
                    "nonce": self.web3.eth.get_transaction_count(account.address),
                    "chainId": self.web3.eth.chain_id,
                }
            )
            signed = account.sign_transaction(tx)
            return Web3.to_hex(self.web3.eth.send_raw_transaction(signed.raw_transaction))

        tx_hash = await self._run(_build_and_send)
        log.info(
            "mint submitted for %s (tx=%s, estimate=%d, limit=%d)", to, tx_hash, estimate, gas_limit
        )
        return MintResult(tx_hash=tx_hash, gas_estimate=estimate, gas_limit=gas_limit, receipt=None)

    async def wait_for_confirmation(self, tx_hash: str) -> Any:
        receipt = await self._run(
            self.web3.eth.wait_for_transaction_receipt, tx_hash, timeout=self.receipt_timeout
        )
        if receipt is not None and receipt.get("status") == 0:
            raise ContractRevert(f"transaction {tx_hash} reverted on chain")
        log.info("mint confirmed (tx=%s)", tx_hash)
        return receipt

    async def token_uri(self, token_id: int) -> str:
        return str(await self._run(self.contract.functions.tokenURI(token_id).call))

    async def query_owned_tokens(self, address: str) -> List[OwnedToken]:
        checksum = Web3.to_checksum_address(address)
        events = await self._run(
            self.contract.events.Transfer.get_logs,
            from_block=0,
            argument_filters={"to": checksum},
        )
        ordered = sorted(
            events or [], key=lambda ev: (ev.get("blockNumber", 0), ev.get("logIndex", 0))
        )
        tokens: List[OwnedToken] = []
        for event in ordered:
            token_id = int(event["args"]["tokenId"])
            tokens.append(OwnedToken(token_id=token_id, token_uri=await self.token_uri(token_id)))
        return tokens
