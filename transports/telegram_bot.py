import asyncio
import logging
from typing import Optional

from telegram import Update
from telegram.constants import ChatType
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from core.dispatcher import CommandDispatcher
from core.errors import TransportError
from core.gatekeeper import GroupGatekeeper

log = logging.getLogger(__name__)


def _display_name(user) -> str:
    return user.first_name or user.full_name or user.username or str(user.id)


class TelegramTransport:
    def __init__(
        self,
        dispatcher: CommandDispatcher,
        token: str,
        *,
        gatekeeper: Optional[GroupGatekeeper] = None,
        application: Optional[Application] = None,
    ):
        self.dispatcher = dispatcher
        self.gatekeeper = gatekeeper
        self.application = application or (
            Application.builder().token(token).concurrent_updates(True).build()
        )
        self._register_handlers()
        self._stop_event = asyncio.Event()
        self._sweep_task: Optional[asyncio.Task] = None

    def _register_handlers(self):
        self.application.add_handler(CommandHandler("start", self.start_command))
        self.application.add_handler(CommandHandler("connect", self.connect))
        self.application.add_handler(CommandHandler("import", self.import_wallet))
        self.application.add_handler(CommandHandler("mint", self.mint))
        self.application.add_handler(CommandHandler("balance", self.balance))
        self.application.add_handler(CommandHandler("collection", self.collection))
        self.application.add_handler(
            MessageHandler(filters.StatusUpdate.NEW_CHAT_MEMBERS, self.handle_new_members)
        )
        self.application.add_handler(
            MessageHandler(filters.StatusUpdate.LEFT_CHAT_MEMBER, self.handle_left_member)
        )
        self.application.add_handler(
            MessageHandler(filters.TEXT & (~filters.COMMAND), self.handle_message)
        )

    @staticmethod
    def _reply_to(update: Update):
        message = update.effective_message

        async def _reply(text: str):
            return await message.reply_text(text)

        return _reply

    async def start_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not update.effective_message:
            return
        await self.dispatcher.start(self._reply_to(update))

    async def connect(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        if not user or not update.effective_message:
            return
        await self.dispatcher.connect(user.id, self._reply_to(update))

    async def import_wallet(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        chat = update.effective_chat
        if not user or not chat or not update.effective_message:
            return
        await self.dispatcher.begin_import(
            user.id, chat.id, chat.type == ChatType.PRIVATE, self._reply_to(update)
        )

    async def mint(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        if not user or not update.effective_message:
            return
        invite_factory = None
        if self.gatekeeper is not None:
            bot = context.bot

            async def invite_factory():
                try:
                    return await self.gatekeeper.create_group_invite(bot)
                except TelegramError as exc:
                    raise TransportError(str(exc)) from exc

        await self.dispatcher.mint(user.id, self._reply_to(update), invite_factory)

    async def balance(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        if not user or not update.effective_message:
            return
        await self.dispatcher.balance(user.id, self._reply_to(update))

    async def collection(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        if not user or not update.effective_message:
            return
        await self.dispatcher.collection(user.id, self._reply_to(update))

    async def handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        user = update.effective_user
        chat = update.effective_chat
        if not message or not message.text or not user or user.is_bot or not chat:
            return
        if chat.type == ChatType.PRIVATE:
            consumed = await self.dispatcher.receive_text(
                user.id, chat.id, message.text, self._reply_to(update)
            )
            if consumed:
                try:
                    await message.delete()
                except TelegramError as exc:
                    log.warning("could not delete credential message from %s: %s", user.id, exc)
            return
        if self.gatekeeper is not None and chat.id == self.gatekeeper.group_chat_id:
            self.gatekeeper.remember_member(user.id, _display_name(user))

    async def handle_new_members(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        chat = update.effective_chat
        if self.gatekeeper is None or not message or not chat:
            return
        if chat.id != self.gatekeeper.group_chat_id:
            return
        for member in message.new_chat_members or ():
            await self.gatekeeper.on_member_joined(
                context.bot, chat.id, member.id, _display_name(member)
            )

    async def handle_left_member(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        if self.gatekeeper is None or not message or not message.left_chat_member:
            return
        self.gatekeeper.on_member_left(message.left_chat_member.id)

    async def start(self):
        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling()
        if self.gatekeeper is not None:
            self._sweep_task = asyncio.create_task(
                self.gatekeeper.run_periodic(self.application.bot, self._stop_event)
            )
        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            if self._sweep_task is not None:
                self._sweep_task.cancel()
                try:
                    await self._sweep_task
                except asyncio.CancelledError:
                    pass
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()

    async def stop(self):
        self._stop_event.set()
