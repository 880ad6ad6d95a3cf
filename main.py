import asyncio
import logging
import signal

from dotenv import load_dotenv

from core.chain import ChainGateway
from core.config import load_settings
from core.crypto import SecretCipher
from core.dispatcher import CommandDispatcher
from core.errors import MintBotError
from core.gatekeeper import GroupGatekeeper
from core.sessions import SessionStore
from transports.telegram_bot import TelegramTransport

log = logging.getLogger("mintbot")


async def main():
    load_dotenv()
    try:
        settings = load_settings()
    except MintBotError as exc:
        raise SystemExit(str(exc))
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s :: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    gateway = ChainGateway(
        rpc_url=settings.rpc_url,
        contract_address=settings.contract_address,
        abi=settings.contract_abi,
    )
    if settings.chain_id is not None:
        try:
            actual = await gateway.get_chain_id()
        except MintBotError as exc:
            raise SystemExit(f"RPC endpoint unreachable: {exc}")
        if actual != settings.chain_id:
            raise SystemExit(f"RPC endpoint is on chain {actual}, expected {settings.chain_id}")

    store = SessionStore()
    dispatcher = CommandDispatcher(
        store=store,
        gateway=gateway,
        cipher=SecretCipher(settings.secret_key),
    )
    gatekeeper = None
    if settings.gating_enabled:
        gatekeeper = GroupGatekeeper(
            store=store,
            gateway=gateway,
            group_chat_id=settings.group_chat_id,
            auto_kick=settings.auto_kick,
            sweep_interval=settings.sweep_interval,
        )
    telegram_transport = TelegramTransport(
        dispatcher, settings.telegram_token, gatekeeper=gatekeeper
    )

    stop_event = asyncio.Event()

    def _signal_handler(*_):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())

    log.info(
        "starting bot for contract %s (group gating %s)",
        gateway.contract_address,
        "on" if gatekeeper else "off",
    )
    telegram_task = asyncio.create_task(telegram_transport.start())
    stop_task = asyncio.create_task(stop_event.wait())

    done, _ = await asyncio.wait({telegram_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    if telegram_task in done:
        # polling ended on its own, e.g. the token was rejected
        stop_task.cancel()
        telegram_task.result()
        return

    await telegram_transport.stop()
    await telegram_task


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
