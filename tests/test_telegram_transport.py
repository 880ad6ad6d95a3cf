from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.constants import ChatType
from telegram.error import BadRequest

from core.errors import TransportError
from transports.telegram_bot import TelegramTransport

GROUP = -100777


def _update(user_id=42, chat_id=42, chat_type=ChatType.PRIVATE, text=None):
    update = MagicMock()
    update.effective_user.id = user_id
    update.effective_user.is_bot = False
    update.effective_user.first_name = "Alex"
    update.effective_chat.id = chat_id
    update.effective_chat.type = chat_type
    update.effective_message.text = text
    update.effective_message.reply_text = AsyncMock()
    update.effective_message.delete = AsyncMock()
    return update


@pytest.fixture
def dispatcher():
    return AsyncMock()


@pytest.fixture
def gatekeeper():
    gatekeeper = MagicMock()
    gatekeeper.group_chat_id = GROUP
    gatekeeper.on_member_joined = AsyncMock()
    gatekeeper.create_group_invite = AsyncMock(return_value="https://t.me/+x")
    return gatekeeper


@pytest.fixture
def transport(dispatcher, gatekeeper):
    return TelegramTransport(dispatcher, "123:abc", gatekeeper=gatekeeper, application=MagicMock())


def test_handlers_registered(transport):
    assert transport.application.add_handler.call_count == 9


@pytest.mark.asyncio
async def test_import_passes_private_flag(transport, dispatcher):
    await transport.import_wallet(_update(chat_id=GROUP, chat_type=ChatType.SUPERGROUP), MagicMock())

    args = dispatcher.begin_import.call_args.args
    assert args[:3] == (42, GROUP, False)


@pytest.mark.asyncio
async def test_reply_goes_back_to_the_chat(transport, dispatcher):
    update = _update()

    async def start(reply):
        await reply("hello")

    dispatcher.start.side_effect = start

    await transport.start_command(update, MagicMock())

    update.effective_message.reply_text.assert_awaited_once_with("hello")


@pytest.mark.asyncio
async def test_connect_failure_reply_comes_from_dispatcher(transport, dispatcher):
    update = _update()

    async def connect(user_id, reply):
        await reply("❌ Error connecting wallet: entropy source unavailable")
        return None

    dispatcher.connect.side_effect = connect

    await transport.connect(update, MagicMock())

    dispatcher.connect.assert_awaited_once()
    assert dispatcher.connect.call_args.args[0] == 42
    update.effective_message.reply_text.assert_awaited_once_with(
        "❌ Error connecting wallet: entropy source unavailable"
    )


@pytest.mark.asyncio
async def test_consumed_credential_message_is_deleted(transport, dispatcher):
    dispatcher.receive_text.return_value = True
    update = _update(text="0xabc")

    await transport.handle_message(update, MagicMock())

    dispatcher.receive_text.assert_awaited_once()
    update.effective_message.delete.assert_awaited_once()


@pytest.mark.asyncio
async def test_delete_failure_is_tolerated(transport, dispatcher):
    dispatcher.receive_text.return_value = True
    update = _update(text="0xabc")
    update.effective_message.delete.side_effect = BadRequest("message can't be deleted")

    await transport.handle_message(update, MagicMock())


@pytest.mark.asyncio
async def test_plain_private_text_is_left_alone(transport, dispatcher):
    dispatcher.receive_text.return_value = False
    update = _update(text="hi")

    await transport.handle_message(update, MagicMock())

    update.effective_message.delete.assert_not_called()


@pytest.mark.asyncio
async def test_group_speakers_are_remembered(transport, dispatcher, gatekeeper):
    update = _update(user_id=7, chat_id=GROUP, chat_type=ChatType.SUPERGROUP, text="gm")

    await transport.handle_message(update, MagicMock())

    gatekeeper.remember_member.assert_called_once_with(7, "Alex")
    dispatcher.receive_text.assert_not_called()


@pytest.mark.asyncio
async def test_new_members_are_checked(transport, gatekeeper):
    update = _update(chat_id=GROUP, chat_type=ChatType.SUPERGROUP)
    newcomer = MagicMock(id=5, first_name="Sam")
    update.effective_message.new_chat_members = [newcomer]
    context = MagicMock()

    await transport.handle_new_members(update, context)

    gatekeeper.on_member_joined.assert_awaited_once_with(context.bot, GROUP, 5, "Sam")


@pytest.mark.asyncio
async def test_mint_hands_invite_factory_to_dispatcher(transport, dispatcher, gatekeeper):
    context = MagicMock()

    await transport.mint(_update(), context)

    user_id, _, invite_factory = dispatcher.mint.call_args.args
    assert user_id == 42
    assert await invite_factory() == "https://t.me/+x"
    gatekeeper.create_group_invite.assert_awaited_once_with(context.bot)


@pytest.mark.asyncio
async def test_invite_failures_surface_as_transport_errors(transport, dispatcher, gatekeeper):
    gatekeeper.create_group_invite.side_effect = BadRequest("not enough rights")

    await transport.mint(_update(), MagicMock())

    _, _, invite_factory = dispatcher.mint.call_args.args
    with pytest.raises(TransportError):
        await invite_factory()
