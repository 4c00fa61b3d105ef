"""Session correlator - match staff replies in the relay chat back to widget sessions."""

from __future__ import annotations

import logging
from typing import Optional

from supportbot.services.chat_session_service import ChatSessionService

logger = logging.getLogger(__name__)


class SessionCorrelator:
    """
    A staff reply belongs to a session when it answers the session's header post
    (the correlation id) or any relayed message of that session. Message ids are only
    unique per chat, so when a staff chat is configured only replies posted there count.
    """

    def __init__(self, chat_sessions: ChatSessionService, admin_chat_id: Optional[int]):
        self.chat_sessions = chat_sessions
        self.admin_chat_id = admin_chat_id

    def accepts_chat(self, chat_id: int) -> bool:
        return self.admin_chat_id is None or int(chat_id) == int(self.admin_chat_id)

    async def find_session(self, reply_to_message_id: int) -> dict | None:
        key = str(reply_to_message_id)
        session = await self.chat_sessions.find_by_correlation(key)
        if session is None:
            session = await self.chat_sessions.find_by_relay_message(key)
        return session

    async def route_reply(
        self,
        *,
        chat_id: int,
        reply_to_message_id: int,
        text: str,
        platform_message_id: int,
    ) -> str | None:
        """
        Store a staff reply on its session.

        Returns the session id, or None when the reply does not belong to any session
        (the caller then treats the text as an ordinary bot message). Never creates sessions.
        """
        if not self.accepts_chat(chat_id):
            return None

        session = await self.find_session(reply_to_message_id)
        if session is None:
            logger.debug(f"Reply to {reply_to_message_id} in chat {chat_id} matched no session")
            return None

        await self.chat_sessions.append_message(
            session_id=session["id"],
            sender_type="admin",
            text=text,
            telegram_message_id=str(platform_message_id),
        )
        logger.info(f"Staff reply stored on session {session['id']}")
        return session["id"]
