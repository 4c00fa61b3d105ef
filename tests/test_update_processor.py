from unittest.mock import MagicMock

from aiogram.exceptions import TelegramBadRequest
from aiogram.types import Update
from sqlalchemy import select

from conftest import STAFF_CHAT_ID, callback_update, message_update, sent_messages
from database.models import TelegramSupportMessage
from supportbot.handlers.updates import UpdateKind, UpdateProcessor, classify_update


def test_classify_update():
    assert classify_update(message_update(chat_id=1, text="/start")) == UpdateKind.MESSAGE
    assert classify_update(message_update(chat_id=1, text="ok", reply_to=9)) == UpdateKind.REPLY
    assert classify_update(message_update(chat_id=1, text="   ")) == UpdateKind.IGNORED
    assert classify_update(callback_update(chat_id=1, data="menu_main")) == UpdateKind.CALLBACK
    assert classify_update(callback_update(chat_id=1, data="")) == UpdateKind.IGNORED
    assert classify_update(Update.model_validate({"update_id": 3})) == UpdateKind.IGNORED


async def test_staff_reply_is_stored_and_not_answered(container, bot):
    session_id = await container.chat_sessions.relay_visitor_message(message="Hi", visitor_name="Jane")
    bot.send_message.reset_mock()

    update = message_update(
        chat_id=STAFF_CHAT_ID, chat_type="supergroup", text="On it!", message_id=31, reply_to=1000
    )
    kind = await UpdateProcessor(container).process(update)

    assert kind == UpdateKind.REPLY
    bot.send_message.assert_not_awaited()
    history = await container.chat_sessions.list_messages(session_id=session_id)
    assert history[-1]["sender_type"] == "admin"
    assert history[-1]["message_text"] == "On it!"
    assert history[-1]["telegram_message_id"] == "31"


async def test_uncorrelated_reply_falls_back_to_router(container, bot):
    update = message_update(chat_id=777, text="hello there", reply_to=123456)
    await UpdateProcessor(container).process(update)

    ((chat_id, text),) = sent_messages(bot)
    assert chat_id == 777
    assert "Thank you for your message" in text
    assert await container.chat_sessions.list_sessions() == []


async def test_group_chatter_is_ignored(container, bot):
    update = message_update(chat_id=STAFF_CHAT_ID, chat_type="supergroup", text="lunch?")
    await UpdateProcessor(container).process(update)
    bot.send_message.assert_not_awaited()


async def test_uncorrelated_staff_reply_is_forwarded_not_dropped(container, bot, database):
    update = message_update(
        chat_id=STAFF_CHAT_ID, chat_type="supergroup", text="where is order 42?", reply_to=424242
    )
    kind = await UpdateProcessor(container).process(update)

    assert kind == UpdateKind.REPLY
    async with database.session() as session:
        rows = (await session.execute(select(TelegramSupportMessage))).scalars().all()
    assert [(r.chat_id, r.message_text) for r in rows] == [(STAFF_CHAT_ID, "where is order 42?")]
    ((chat_id, _),) = sent_messages(bot)
    assert chat_id == STAFF_CHAT_ID
    assert await container.chat_sessions.list_sessions() == []


async def test_send_failure_is_swallowed(container, bot):
    bot.send_message.side_effect = TelegramBadRequest(method=MagicMock(), message="Bad Request: chat not found")
    await UpdateProcessor(container).process(message_update(chat_id=777, text="/start"))


async def test_callback_edits_in_place_and_answers(container, bot):
    await UpdateProcessor(container).process(callback_update(chat_id=888, data="toggle_promotions"))

    bot.edit_message_text.assert_awaited_once()
    edit = bot.edit_message_text.await_args.kwargs
    assert (edit["chat_id"], edit["message_id"]) == (888, 500)
    assert "Notification Preferences" in edit["text"]
    answer = bot.answer_callback_query.await_args.kwargs
    assert answer["callback_query_id"] == "cbq-1"
    assert answer["text"] == "✅ Preference updated!"


async def test_noop_callback_is_only_acknowledged(container, bot):
    await UpdateProcessor(container).process(callback_update(chat_id=888, data="noop"))
    bot.edit_message_text.assert_not_awaited()
    bot.send_message.assert_not_awaited()
    bot.answer_callback_query.assert_awaited_once()


async def test_refused_edit_falls_back_to_send(container, bot):
    bot.edit_message_text.side_effect = TelegramBadRequest(
        method=MagicMock(), message="Bad Request: message can't be edited"
    )
    await UpdateProcessor(container).process(callback_update(chat_id=888, data="menu_support"))
    ((chat_id, text),) = sent_messages(bot)
    assert chat_id == 888
    assert "Customer Support" in text
