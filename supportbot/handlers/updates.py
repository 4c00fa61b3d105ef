"""Inbound update handling shared by the webhook endpoint and polling mode."""

from __future__ import annotations

import logging
from enum import Enum

from aiogram import F, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.types import CallbackQuery, Message, Update

from supportbot.container import ServiceContainer

logger = logging.getLogger(__name__)


class UpdateKind(str, Enum):
    CALLBACK = "callback"
    REPLY = "reply"
    MESSAGE = "message"
    IGNORED = "ignored"


def classify_message(message: Message | None) -> UpdateKind:
    if message is None:
        return UpdateKind.IGNORED
    if message.from_user is not None and message.from_user.is_bot:
        return UpdateKind.IGNORED
    if not (message.text or "").strip():
        return UpdateKind.IGNORED
    if message.reply_to_message is not None:
        return UpdateKind.REPLY
    return UpdateKind.MESSAGE


def classify_update(update: Update) -> UpdateKind:
    """Exactly one kind per update; anything without actionable text or button data is ignored."""
    callback = update.callback_query
    if callback is not None:
        return UpdateKind.CALLBACK if (callback.data or "").strip() else UpdateKind.IGNORED
    return classify_message(update.message)


class UpdateProcessor:
    """
    Routes one update: staff replies to their chat session, everything else to the command router.

    Validation problems and Bot API failures are logged and swallowed here so the platform
    does not redeliver the update; anything else propagates to the caller.
    """

    def __init__(self, container: ServiceContainer):
        self.container = container

    async def process(self, update: Update) -> UpdateKind:
        kind = classify_update(update)
        if kind == UpdateKind.CALLBACK:
            await self.handle_callback(update.callback_query)
        elif kind in (UpdateKind.REPLY, UpdateKind.MESSAGE):
            await self.handle_message(update.message)
        return kind

    async def handle_message(self, message: Message) -> None:
        kind = classify_message(message)
        if kind == UpdateKind.IGNORED:
            return
        try:
            if kind == UpdateKind.REPLY:
                session_id = await self.container.correlator.route_reply(
                    chat_id=int(message.chat.id),
                    reply_to_message_id=int(message.reply_to_message.message_id),
                    text=message.text.strip(),
                    platform_message_id=int(message.message_id),
                )
                if session_id is not None:
                    return
            await self._answer_text(message, fallback=kind == UpdateKind.REPLY)
        except (TelegramAPIError, ValueError) as e:
            logger.warning(f"Update for chat {message.chat.id} not handled: {e}")

    async def _answer_text(self, message: Message, *, fallback: bool = False) -> None:
        text = message.text.strip()
        # Group chats (the staff chat included) only get answers to explicit commands.
        # Replies that matched no session always reach the router.
        if not fallback and message.chat.type != "private" and not text.startswith("/"):
            return

        user = message.from_user
        reply = await self.container.command_router.handle_text(
            chat_id=int(message.chat.id),
            text=text,
            username=user.username if user else None,
            first_name=user.first_name if user else None,
            last_name=user.last_name if user else None,
        )
        await self.container.sender.send(int(message.chat.id), reply.text, reply_markup=reply.reply_markup)

    async def handle_callback(self, callback: CallbackQuery) -> None:
        chat_id = int(callback.message.chat.id) if callback.message else int(callback.from_user.id)
        reply = None
        try:
            reply = await self.container.command_router.handle_callback(
                chat_id=chat_id,
                data=callback.data or "",
                username=callback.from_user.username,
                first_name=callback.from_user.first_name,
                last_name=callback.from_user.last_name,
            )
            if reply is None:
                return
            if reply.edit_in_place and callback.message is not None:
                await self.container.sender.edit(
                    chat_id, int(callback.message.message_id), reply.text, reply_markup=reply.reply_markup
                )
            else:
                await self.container.sender.send(chat_id, reply.text, reply_markup=reply.reply_markup)
        except (TelegramAPIError, ValueError) as e:
            logger.warning(f"Callback {callback.data!r} for chat {chat_id} not handled: {e}")
        finally:
            await self.container.sender.answer_callback(callback.id, reply.notice if reply else None)


def create_update_handlers(container: ServiceContainer) -> Router:
    """Polling-mode router delegating to the same processor the webhook uses."""
    router = Router()
    processor = UpdateProcessor(container)

    @router.callback_query()
    async def on_callback(callback: CallbackQuery):
        if (callback.data or "").strip():
            await processor.handle_callback(callback)
        else:
            await container.sender.answer_callback(callback.id)

    @router.message(F.text)
    async def on_text(message: Message):
        await processor.handle_message(message)

    return router
