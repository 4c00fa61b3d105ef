"""Outbound sender - the single place that talks to the Bot API for relay traffic."""

from __future__ import annotations

import logging
from typing import Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.types import InlineKeyboardMarkup, Message, ReplyParameters

logger = logging.getLogger(__name__)


def _preview(text: str, limit: int = 60) -> str:
    text = (text or "").replace("\n", " ")
    return text if len(text) <= limit else (text[: limit - 3] + "...")


class OutboundSender:
    """
    Thin wrapper around `Bot.send_message` / `edit_message_text`.

    Every message is HTML formatted. There is no retry here: callers decide whether
    a failure is fatal (interactive paths) or counted (sweeps).
    """

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(
        self,
        chat_id: int,
        text: str,
        *,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
        reply_to_message_id: Optional[int] = None,
    ) -> Message:
        reply_parameters = None
        if reply_to_message_id is not None:
            reply_parameters = ReplyParameters(
                message_id=int(reply_to_message_id),
                allow_sending_without_reply=True,
            )
        try:
            return await self.bot.send_message(
                chat_id=int(chat_id),
                text=text,
                parse_mode="HTML",
                reply_markup=reply_markup,
                reply_parameters=reply_parameters,
            )
        except TelegramAPIError as e:
            logger.warning(f"send_message failed chat={chat_id} text='{_preview(text)}': {e}")
            raise

    async def edit(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        *,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
    ) -> None:
        """Re-render a message in place; falls back to a fresh send when the edit is refused."""
        try:
            await self.bot.edit_message_text(
                chat_id=int(chat_id),
                message_id=int(message_id),
                text=text,
                parse_mode="HTML",
                reply_markup=reply_markup,
            )
            return
        except TelegramBadRequest as e:
            if "message is not modified" in str(e).lower():
                return
            logger.debug(f"edit_message_text refused chat={chat_id} msg={message_id}: {e}")
        await self.send(chat_id, text, reply_markup=reply_markup)

    async def answer_callback(self, callback_query_id: str, text: Optional[str] = None) -> None:
        try:
            await self.bot.answer_callback_query(callback_query_id=callback_query_id, text=text)
        except TelegramAPIError as e:
            logger.debug(f"answer_callback_query failed id={callback_query_id}: {e}")
