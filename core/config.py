import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

from .errors import ConfigError

TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    telegram_token: str
    rpc_url: str
    contract_address: str
    contract_abi: Optional[List[dict]]
    secret_key: str
    group_chat_id: Optional[int] = None
    auto_kick: bool = False
    sweep_interval: float = 3600.0
    chain_id: Optional[int] = None
    log_level: str = "INFO"

    @property
    def gating_enabled(self) -> bool:
        return self.group_chat_id is not None


def load_contract_bundle(path: str) -> Tuple[Optional[str], Optional[List[dict]]]:
    """Reads ``{"address": ..., "abi": [...]}``; a bare hardhat artifact carries only the abi."""
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot read contract bundle {path}: {exc}") from exc
    if isinstance(payload, list):
        return None, payload
    if not isinstance(payload, dict):
        raise ConfigError(f"contract bundle {path} must be a JSON object")
    abi = payload.get("abi")
    if abi is not None and not isinstance(abi, list):
        raise ConfigError(f"contract bundle {path} has a malformed abi")
    return payload.get("address"), abi


def _int_or_none(env: Mapping[str, str], name: str) -> Optional[int]:
    raw = (env.get(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env

    token = (env.get("TELEGRAM_BOT_TOKEN") or "").strip()
    rpc_url = (env.get("RPC_URL") or "").strip()
    secret_key = env.get("SECRET_KEY") or ""

    address: Optional[str] = None
    abi: Optional[List[dict]] = None
    contract_file = (env.get("CONTRACT_FILE") or "").strip()
    if contract_file:
        address, abi = load_contract_bundle(contract_file)
    address = (env.get("CONTRACT_ADDRESS") or "").strip() or address

    missing = [
        name
        for name, value in (
            ("TELEGRAM_BOT_TOKEN", token),
            ("RPC_URL", rpc_url),
            ("CONTRACT_ADDRESS or CONTRACT_FILE", address),
            ("SECRET_KEY", secret_key),
        )
        if not value
    ]
    if missing:
        raise ConfigError("missing required environment variables: " + ", ".join(missing))

    sweep_raw = (env.get("SWEEP_INTERVAL") or "").strip()
    try:
        sweep_interval = float(sweep_raw) if sweep_raw else 3600.0
    except ValueError as exc:
        raise ConfigError(f"SWEEP_INTERVAL must be a number, got {sweep_raw!r}") from exc
    if sweep_interval <= 0:
        raise ConfigError("SWEEP_INTERVAL must be positive")

    return Settings(
        telegram_token=token,
        rpc_url=rpc_url,
        contract_address=address,
        contract_abi=abi,
        secret_key=secret_key,
        group_chat_id=_int_or_none(env, "GROUP_CHAT_ID"),
        auto_kick=(env.get("AUTO_KICK") or "").strip().lower() in TRUTHY,
        sweep_interval=sweep_interval,
        chain_id=_int_or_none(env, "CHAIN_ID"),
        log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
    )
