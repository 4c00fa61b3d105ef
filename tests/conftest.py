"""Shared fixtures: a throwaway SQLite database, a recording fake Bot and a wired container."""
import itertools
import os
from unittest.mock import AsyncMock, MagicMock

# webhook_server builds its Config at import time.
os.environ.setdefault("BOT_TOKEN", "123456:TEST")

import pytest
from aiogram.types import Update

from database.db import db
from supportbot.config import Config
from supportbot.container import ServiceContainer

STAFF_CHAT_ID = -1001234567890


@pytest.fixture
async def database(tmp_path):
    db.database_url = f"sqlite+aiosqlite:///{tmp_path / 'relay.db'}"
    await db.connect()
    await db.create_tables()
    yield db
    await db.disconnect()


@pytest.fixture
def config():
    return Config(
        bot_token="123456:TEST",
        admin_chat_id=STAFF_CHAT_ID,
        website_url="https://shop.example",
        sweep_send_delay_ms=0,
        sweep_interval_seconds=0,
    )


@pytest.fixture
def bot():
    """AsyncMock Bot whose sends succeed with increasing message ids."""
    ids = itertools.count(1000)
    fake = AsyncMock()

    async def _send_message(**kwargs):
        return MagicMock(message_id=next(ids), chat=MagicMock(id=kwargs.get("chat_id")))

    fake.send_message.side_effect = _send_message
    return fake


@pytest.fixture
async def container(database, config, bot):
    return await ServiceContainer.create(config, bot)


def sent_messages(bot) -> list[tuple[int, str]]:
    return [(c.kwargs["chat_id"], c.kwargs["text"]) for c in bot.send_message.await_args_list]


def message_update(
    *,
    chat_id: int,
    text: str,
    message_id: int = 1,
    chat_type: str = "private",
    user_id: int = 42,
    reply_to: int | None = None,
    update_id: int = 1,
) -> Update:
    message = {
        "message_id": message_id,
        "date": 1700000000,
        "chat": {"id": chat_id, "type": chat_type},
        "from": {"id": user_id, "is_bot": False, "first_name": "Ada", "username": "ada"},
        "text": text,
    }
    if reply_to is not None:
        message["reply_to_message"] = {
            "message_id": reply_to,
            "date": 1699999000,
            "chat": {"id": chat_id, "type": chat_type},
            "from": {"id": 1, "is_bot": True, "first_name": "ShopBot"},
            "text": "relay copy",
        }
    return Update.model_validate({"update_id": update_id, "message": message})


def callback_update(*, chat_id: int, data: str, message_id: int = 500, update_id: int = 2) -> Update:
    return Update.model_validate(
        {
            "update_id": update_id,
            "callback_query": {
                "id": "cbq-1",
                "chat_instance": "ci-1",
                "from": {"id": chat_id, "is_bot": False, "first_name": "Ada"},
                "data": data,
                "message": {
                    "message_id": message_id,
                    "date": 1700000000,
                    "chat": {"id": chat_id, "type": "private"},
                    "from": {"id": 1, "is_bot": True, "first_name": "ShopBot"},
                    "text": "menu",
                },
            },
        }
    )
