import asyncio
import contextlib
import logging
import time
from typing import Dict, List, Optional

from telegram import Bot
from telegram.constants import ChatMemberStatus

from .chain import ChainGateway
from .sessions import SessionStore

log = logging.getLogger(__name__)

INVITE_TTL_SECONDS = 300
SWEEP_INTERVAL_SECONDS = 3600
EXEMPT_STATUSES = (ChatMemberStatus.OWNER, ChatMemberStatus.ADMINISTRATOR)
GONE_STATUSES = (ChatMemberStatus.LEFT, ChatMemberStatus.BANNED)


class GroupGatekeeper:
    """
    Keeps a Telegram group limited to NFT holders.

    Ownership is checked through the wallet a member bound to the bot with
    /connect or /import, so a member without a session never passes. The Bot
    API cannot list ordinary members; the sweep walks the members this process
    has seen join or speak in the group.
    """

    def __init__(
        self,
        *,
        store: SessionStore,
        gateway: ChainGateway,
        group_chat_id: int,
        auto_kick: bool = False,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.group_chat_id = group_chat_id
        self.auto_kick = auto_kick
        self.sweep_interval = sweep_interval
        self._members: Dict[int, str] = {}

    @property
    def known_members(self) -> Dict[int, str]:
        return dict(self._members)

    def remember_member(self, user_id: int, name: str) -> None:
        self._members[user_id] = name or str(user_id)

    def forget_member(self, user_id: int) -> None:
        self._members.pop(user_id, None)

    async def has_required_nft(self, user_id: int) -> bool:
        session = self.store.get(user_id)
        if session is None:
            return False
        return await self.gateway.get_token_balance(session.address) > 0

    async def create_group_invite(self, bot: Bot, chat_id: Optional[int] = None) -> str:
        invite = await bot.create_chat_invite_link(
            chat_id if chat_id is not None else self.group_chat_id,
            member_limit=1,
            expire_date=int(time.time()) + INVITE_TTL_SECONDS,
        )
        return invite.invite_link

    async def on_member_joined(self, bot: Bot, chat_id: int, user_id: int, name: str) -> bool:
        """Returns whether the member holds the NFT; failures count as a pass."""
        if user_id == bot.id:
            return True
        self.remember_member(user_id, name)
        try:
            if await self.has_required_nft(user_id):
                return True
            await bot.send_message(
                chat_id, f"⚠️ Warning: User {name} doesn't own the required NFT."
            )
            if self.auto_kick:
                await bot.ban_chat_member(chat_id, user_id)
                # Unban straight away so the member can rejoin once they hold the NFT.
                await bot.unban_chat_member(chat_id, user_id, only_if_banned=True)
                self.forget_member(user_id)
                log.info("removed %s (%s) from %s: no NFT", name, user_id, chat_id)
            return False
        except Exception:
            log.exception("error handling new member %s in %s", user_id, chat_id)
            return True

    def on_member_left(self, user_id: int) -> None:
        self.forget_member(user_id)

    async def sweep(self, bot: Bot) -> List[int]:
        lacking: List[int] = []
        for user_id, name in list(self._members.items()):
            try:
                member = await bot.get_chat_member(self.group_chat_id, user_id)
                if member.status in GONE_STATUSES:
                    self.forget_member(user_id)
                    continue
                if member.status in EXEMPT_STATUSES:
                    continue
                if await self.has_required_nft(user_id):
                    continue
                lacking.append(user_id)
                await bot.send_message(
                    self.group_chat_id, f"⚠️ User {name} no longer owns the required NFT."
                )
            except Exception:
                log.exception("periodic check failed for member %s", user_id)
        log.info("sweep done: %d checked, %d lacking", len(self._members), len(lacking))
        return lacking

    async def run_periodic(self, bot: Bot, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=self.sweep_interval)
            if stop_event.is_set():
                break
            try:
                await self.sweep(bot)
            except Exception:
                log.exception("error in periodic check")
